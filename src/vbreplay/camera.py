"""
Camera parameters for the replayed beacon measurements.

Provides functionality to:
- Hold pinhole intrinsics and distortion for one camera
- Derive the undistorted variant used when blobs are already undistorted
- Load intrinsics from a calibration JSON file
"""

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Tuple

import numpy as np

from .measurements import IMAGE_SIZE


@dataclass(frozen=True)
class CameraParameters:
    """Pinhole camera intrinsics plus distortion."""
    focal_length_x: float
    focal_length_y: float
    principal_point: Tuple[float, float]
    distortion: Tuple[float, ...] = field(default_factory=lambda: (0.0, 0.0, 0.0, 0.0, 0.0))
    image_size: Tuple[int, int] = IMAGE_SIZE  # width, height

    @property
    def camera_matrix(self) -> np.ndarray:
        cx, cy = self.principal_point
        return np.array([
            [self.focal_length_x, 0.0, cx],
            [0.0, self.focal_length_y, cy],
            [0.0, 0.0, 1.0]
        ], dtype=np.float64)

    @property
    def distortion_coeffs(self) -> np.ndarray:
        return np.asarray(self.distortion, dtype=np.float64)

    @property
    def is_undistorted(self) -> bool:
        return not np.any(self.distortion_coeffs)

    def create_undistorted_variant(self) -> "CameraParameters":
        """Same intrinsics with zero distortion."""
        return replace(self, distortion=(0.0,) * len(self.distortion))


def nominal_camera_parameters() -> CameraParameters:
    """
    Nominal parameters for a 640x480 tracking camera.

    Blob logs are normally recorded after undistortion, so callers usually
    want ``nominal_camera_parameters().create_undistorted_variant()``.
    """
    width, height = IMAGE_SIZE
    return CameraParameters(
        focal_length_x=700.0,
        focal_length_y=700.0,
        principal_point=(width / 2.0, height / 2.0),
        distortion=(-0.15, 0.05, 0.0, 0.0, 0.0),
        image_size=IMAGE_SIZE
    )


def camera_parameters_from_dict(calibration: Dict[str, Any]) -> CameraParameters:
    """
    Convert calibration JSON to CameraParameters.

    Args:
        calibration: Dict with ``camera_matrix`` (``matrix`` or fx/fy/cx/cy),
            optional ``distortion_coefficients`` and ``resolution``

    Returns:
        CameraParameters
    """
    res = calibration.get("resolution", {"width": IMAGE_SIZE[0], "height": IMAGE_SIZE[1]})
    resolution = (int(res.get("width", IMAGE_SIZE[0])), int(res.get("height", IMAGE_SIZE[1])))

    cam_matrix = calibration.get("camera_matrix", {})
    if "matrix" in cam_matrix:
        K = np.array(cam_matrix["matrix"], dtype=np.float64).reshape(3, 3)
        fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]
    else:
        fx = cam_matrix.get("fx", 700.0)
        fy = cam_matrix.get("fy", fx)
        cx = cam_matrix.get("cx", resolution[0] / 2.0)
        cy = cam_matrix.get("cy", resolution[1] / 2.0)

    dist_data = calibration.get("distortion_coefficients", {})
    if "array" in dist_data:
        dist = tuple(float(v) for v in dist_data["array"])
    else:
        dist = tuple(float(dist_data.get(k, 0.0)) for k in ("k1", "k2", "p1", "p2", "k3"))

    return CameraParameters(
        focal_length_x=float(fx),
        focal_length_y=float(fy),
        principal_point=(float(cx), float(cy)),
        distortion=dist,
        image_size=resolution
    )


def load_camera_parameters(filepath) -> CameraParameters:
    """
    Load camera parameters from a calibration JSON file.

    Args:
        filepath: Path to the calibration file

    Returns:
        CameraParameters
    """
    with open(Path(filepath), 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, list):
        if not data:
            raise ValueError(f"No camera calibration in {filepath}")
        data = data[0]
    return camera_parameters_from_dict(data)
