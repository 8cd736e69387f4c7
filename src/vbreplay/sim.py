"""Synthetic measurement logs.

Projects the beacons of a simulated target, moving along a deterministic
trajectory in front of a single camera, and writes them with the target's
reference pose so replays can be checked against ground truth.
"""

from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .camera import CameraParameters, nominal_camera_parameters
from .geo import rotation_to_quaternion
from .measurements import (
    BeaconMeasurement, MeasurementRow, TimeValue, write_measurement_log
)
from .tracking import DEFAULT_BEACON_LAYOUT


def _static_motion(t_sec: float) -> tuple[np.ndarray, float]:
    return np.zeros(3), 0.0


def _linear_motion(t_sec: float) -> tuple[np.ndarray, float]:
    # 10 cm/s sideways while slowly turning.
    return np.array([0.10 * t_sec, 0.0, 0.0]), 0.05 * t_sec


def _circle_motion(t_sec: float) -> tuple[np.ndarray, float]:
    radius, omega = 0.08, 0.5
    angle = omega * t_sec
    return np.array([radius * np.cos(angle), radius * np.sin(angle), 0.0]), angle


# Offset from the base position and yaw (radians) as a function of time.
TRAJECTORIES = {
    "static": _static_motion,
    "linear": _linear_motion,
    "circle": _circle_motion,
}


class VirtualCamera:
    """Project target-frame points to 2D image points using OpenCV conventions."""

    def __init__(self, camera_params: CameraParameters):
        self.camera_params = camera_params

    def project_points(
        self,
        points_body: np.ndarray,
        rotation: np.ndarray,
        translation: np.ndarray,
    ) -> np.ndarray:
        points = np.asarray(points_body, dtype=np.float64).reshape(-1, 3)
        rvec, _ = cv2.Rodrigues(np.asarray(rotation, dtype=np.float64))
        projected, _ = cv2.projectPoints(
            points,
            rvec,
            np.asarray(translation, dtype=np.float64).reshape(3),
            self.camera_params.camera_matrix,
            self.camera_params.distortion_coeffs,
        )
        return projected.reshape(-1, 2)


class SimulatedTarget:
    """Target moving along a named trajectory about 1 m in front of the camera."""

    def __init__(self, seed: int = 0, trajectory: str = "static", fps: float = 60.0):
        if fps <= 0.0:
            raise ValueError("fps must be > 0")
        if trajectory not in TRAJECTORIES:
            raise ValueError(
                f"Unknown trajectory {trajectory!r}; expected one of: {', '.join(TRAJECTORIES)}"
            )
        self.fps = float(fps)
        self._motion = TRAJECTORIES[trajectory]

        # Each seed starts from a slightly different pose.
        rng = np.random.default_rng(int(seed))
        self._origin = np.array([0.0, 0.0, 1.0]) + rng.uniform(-0.04, 0.04, size=3)
        self._heading = float(rng.uniform(-0.25, 0.25))

    def pose(self, frame_index: int) -> tuple[np.ndarray, np.ndarray]:
        """Rotation matrix and position of the target at a frame."""
        offset, yaw = self._motion(frame_index / self.fps)
        # Turning about the camera's y axis keeps the beacons in view.
        rot = Rotation.from_euler("y", self._heading + yaw).as_matrix()
        return rot, self._origin + offset


def generate_log(
    path,
    frames: int,
    fps: float = 60.0,
    noise_px: float = 0.0,
    outlier_rate: float = 0.0,
    trajectory: str = "static",
    seed: int = 0,
    camera_params: CameraParameters | None = None,
    beacons: np.ndarray | None = None,
    start_seconds: int = 1_000,
) -> int:
    """Write a synthetic measurement log.

    Returns the number of rows written.
    """
    if frames <= 0:
        raise ValueError("frames must be > 0")
    if noise_px < 0.0:
        raise ValueError("noise_px must be >= 0")
    if not (0.0 <= outlier_rate <= 1.0):
        raise ValueError("outlier_rate must be in [0, 1]")

    if camera_params is None:
        camera_params = nominal_camera_parameters().create_undistorted_variant()
    if beacons is None:
        beacons = DEFAULT_BEACON_LAYOUT

    rng = np.random.default_rng(int(seed))
    camera = VirtualCamera(camera_params)
    target = SimulatedTarget(seed=seed, trajectory=trajectory, fps=fps)
    width, height = camera_params.image_size
    dt_us = int(round(1_000_000.0 / float(fps)))

    rows: list[MeasurementRow] = []
    for i in range(int(frames)):
        total_us = i * dt_us
        timestamp = TimeValue(start_seconds + total_us // 1_000_000, total_us % 1_000_000)
        rot, pos = target.pose(i)
        projected = camera.project_points(beacons, rot, pos)

        measurements = []
        for x, y in projected:
            if outlier_rate > 0.0 and float(rng.random()) < outlier_rate:
                x, y = rng.uniform(0.0, width), rng.uniform(0.0, height)
            elif noise_px > 0.0:
                dx, dy = rng.normal(0.0, noise_px, size=2)
                x, y = x + dx, y + dy
            measurements.append(BeaconMeasurement(float(x), float(y), 4.0))

        rows.append(MeasurementRow(
            timestamp=timestamp,
            translation=pos,
            rotation=rotation_to_quaternion(Rotation.from_matrix(rot)),
            measurements=measurements,
            valid=True,
        ))

    return write_measurement_log(Path(path), rows)
