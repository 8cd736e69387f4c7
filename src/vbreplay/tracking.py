"""
Tracking system driven by replayed beacon measurements.

Provides:
- The interfaces the replay strategies rely on (TrackingSystemApi,
  TrackedBodyApi, TrackedTargetApi)
- A reference in-process implementation: a system owning bodies, each body
  owning beacon targets
- RANSAC pose-from-points for a target (OpenCV solvePnPRansac)
- A per-axis variance filter that fuses target poses into the body state

Measurement i of a frame is matched to beacon i of the target; extra
measurements beyond the beacon count are ignored.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .camera import CameraParameters
from .config import TrackerConfig
from .geo import (
    IDENTITY_QUATERNION, make_isometry, quaternion_to_rotation,
    rotation_to_quaternion
)
from .measurements import BeaconMeasurement, TimeValue

logger = logging.getLogger(__name__)


# Beacon positions in the body frame, meters. Front plate at z=0 with
# side beacons set back so the layout is not planar.
DEFAULT_BEACON_LAYOUT = np.array([
    [-0.080, 0.040, 0.000],
    [0.080, 0.040, 0.000],
    [-0.080, -0.040, 0.000],
    [0.080, -0.040, 0.000],
    [0.000, 0.045, -0.010],
    [0.000, -0.045, -0.010],
    [-0.030, 0.000, 0.005],
    [0.030, 0.010, 0.005],
    [-0.095, 0.000, -0.040],
    [0.095, 0.000, -0.040],
], dtype=np.float64)


@dataclass
class ImageOutputData:
    """Everything one camera frame contributes to a tracking update."""
    timestamp: TimeValue
    measurements: List[BeaconMeasurement]
    camera_params: CameraParameters


@dataclass
class BodyState:
    """Fused pose of a body."""
    position: np.ndarray
    quaternion: np.ndarray  # [w, x, y, z]
    timestamp: TimeValue
    position_variance: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation_variance: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def get_isometry(self) -> np.ndarray:
        return make_isometry(self.position, self.quaternion)


@dataclass
class RansacResult:
    """Outcome of a RANSAC pose solve for one target."""
    success: bool
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    quaternion: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    inliers: int = 0
    rms_error_px: float = float('inf')


class TrackedBodyApi(Protocol):
    def has_pose_estimate(self) -> bool: ...

    def get_state(self) -> BodyState: ...


class TrackedTargetApi(Protocol):
    def get_body(self) -> TrackedBodyApi: ...

    def estimate_pose(
        self,
        camera_params: CameraParameters,
        measurements: Sequence[BeaconMeasurement],
    ) -> Tuple[bool, np.ndarray, np.ndarray]: ...


class TrackingSystemApi(Protocol):
    def update_bodies_from_video_data(self, data: ImageOutputData) -> List[int]: ...


class TrackedTarget:
    """A rigid arrangement of beacons attached to a body."""

    def __init__(
        self,
        body: "TrackedBody",
        target_id: int,
        beacon_positions: np.ndarray,
        config: TrackerConfig
    ):
        positions = np.asarray(beacon_positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError("beacon_positions must be shape (N, 3)")

        self._body = body
        self.target_id = target_id
        self.beacon_positions = positions
        self.config = config

    @property
    def num_beacons(self) -> int:
        return len(self.beacon_positions)

    def get_body(self) -> "TrackedBody":
        return self._body

    def solve(
        self,
        camera_params: CameraParameters,
        measurements: Sequence[BeaconMeasurement]
    ) -> RansacResult:
        """
        Estimate the target pose in the camera frame with RANSAC PnP.

        Args:
            camera_params: Intrinsics the measurements refer to
            measurements: Beacon blobs, in beacon order

        Returns:
            RansacResult; ``success`` is False when too few beacons or
            inliers were available or the solver failed
        """
        cfg = self.config
        n = min(len(measurements), self.num_beacons)
        if n < cfg.ransac_min_beacons:
            return RansacResult(success=False)

        object_points = np.ascontiguousarray(self.beacon_positions[:n].reshape(-1, 1, 3))
        image_points = np.ascontiguousarray(
            np.array([m.location for m in measurements[:n]], dtype=np.float64).reshape(-1, 1, 2)
        )
        K = camera_params.camera_matrix
        dist = camera_params.distortion_coeffs

        try:
            success, rvec, tvec, inliers = cv2.solvePnPRansac(
                object_points,
                image_points,
                K,
                dist,
                iterationsCount=int(cfg.ransac_iterations),
                reprojectionError=float(cfg.ransac_reprojection_error_px),
                confidence=float(cfg.ransac_confidence)
            )
        except cv2.error as e:
            logger.debug("solvePnPRansac failed: %s", e)
            return RansacResult(success=False)

        if not success or inliers is None or len(inliers) < cfg.ransac_min_beacons:
            return RansacResult(success=False)

        idx = inliers.flatten()
        projected, _ = cv2.projectPoints(object_points[idx], rvec, tvec, K, dist)
        errors = np.linalg.norm(
            image_points[idx].reshape(-1, 2) - projected.reshape(-1, 2), axis=1
        )
        rms_error = float(np.sqrt(np.mean(errors ** 2)))

        R, _ = cv2.Rodrigues(rvec)
        return RansacResult(
            success=True,
            position=np.asarray(tvec, dtype=np.float64).reshape(3),
            quaternion=rotation_to_quaternion(Rotation.from_matrix(R)),
            inliers=int(len(idx)),
            rms_error_px=rms_error
        )

    def estimate_pose(
        self,
        camera_params: CameraParameters,
        measurements: Sequence[BeaconMeasurement]
    ) -> Tuple[bool, np.ndarray, np.ndarray]:
        """RANSAC pose without beacon autocalibration: (success, position, quaternion)."""
        result = self.solve(camera_params, measurements)
        return result.success, result.position, result.quaternion


def _blend_gain(predicted_variance: np.ndarray, measurement_variance: float) -> np.ndarray:
    total = predicted_variance + measurement_variance
    safe_total = np.where(total > 0.0, total, 1.0)
    return np.where(total > 0.0, predicted_variance / safe_total, 1.0)


class TrackedBody:
    """
    A tracked rigid body and its fused pose.

    Each successful target solve is blended into the state with a gain
    derived from the predicted state variance (grown by the configured
    process noise over the elapsed time) and the measurement variance.
    """

    def __init__(self, body_id: int, config: TrackerConfig):
        self.body_id = body_id
        self.config = config
        self._targets: Dict[int, TrackedTarget] = {}
        self._state: Optional[BodyState] = None

    def create_target(self, beacon_positions: np.ndarray) -> TrackedTarget:
        target = TrackedTarget(self, len(self._targets), beacon_positions, self.config)
        self._targets[target.target_id] = target
        return target

    def get_target(self, target_id: int) -> Optional[TrackedTarget]:
        return self._targets.get(target_id)

    @property
    def targets(self) -> List[TrackedTarget]:
        return list(self._targets.values())

    def has_pose_estimate(self) -> bool:
        return self._state is not None

    def get_state(self) -> BodyState:
        if self._state is None:
            raise RuntimeError(f"Body {self.body_id} has no pose estimate")
        return self._state

    def incorporate(self, timestamp: TimeValue, result: RansacResult) -> None:
        """Blend a successful target solve into the body state."""
        cfg = self.config
        measurement_variance = (
            cfg.measurement_variance_scale_factor * result.rms_error_px ** 2
            + cfg.beacon_process_noise
        )

        if self._state is None:
            self._state = BodyState(
                position=result.position.copy(),
                quaternion=result.quaternion.copy(),
                timestamp=timestamp,
                position_variance=np.full(3, cfg.initial_position_variance),
                rotation_variance=np.full(3, cfg.initial_rotation_variance)
            )
            return

        state = self._state
        dt = max(0.0, timestamp.seconds_since(state.timestamp))

        position_variance = state.position_variance + cfg.positional_noise * dt
        rotation_variance = state.rotation_variance + cfg.rotational_noise * dt
        position_gain = _blend_gain(position_variance, measurement_variance)
        rotation_gain = _blend_gain(rotation_variance, measurement_variance)

        position = state.position + position_gain * (result.position - state.position)

        measured = result.quaternion
        if float(np.dot(measured, state.quaternion)) < 0.0:
            measured = -measured
        current = quaternion_to_rotation(state.quaternion)
        delta = (quaternion_to_rotation(measured) * current.inv()).as_rotvec()
        quaternion = rotation_to_quaternion(
            Rotation.from_rotvec(float(np.mean(rotation_gain)) * delta) * current
        )

        self._state = BodyState(
            position=position,
            quaternion=quaternion,
            timestamp=timestamp,
            position_variance=(1.0 - position_gain) * position_variance,
            rotation_variance=(1.0 - rotation_gain) * rotation_variance
        )


class TrackingSystem:
    """
    Owns the tracked bodies and routes camera frames to them.

    Usage:
        system = build_tracking_system(config)
        target = system.get_body(0).get_target(0)
        system.update_bodies_from_video_data(frame_data)
    """

    def __init__(self, config: TrackerConfig):
        self.config = config
        self._bodies: Dict[int, TrackedBody] = {}

    def create_body(self) -> TrackedBody:
        body = TrackedBody(len(self._bodies), self.config)
        self._bodies[body.body_id] = body
        return body

    def get_body(self, body_id: int) -> TrackedBody:
        return self._bodies[body_id]

    @property
    def num_bodies(self) -> int:
        return len(self._bodies)

    def update_bodies_from_video_data(self, data: ImageOutputData) -> List[int]:
        """
        Update every body with one camera frame.

        Args:
            data: Timestamp, beacon measurements and camera parameters

        Returns:
            IDs of the bodies whose state changed
        """
        updated = []
        for body_id, body in self._bodies.items():
            for target in body.targets:
                result = target.solve(data.camera_params, data.measurements)
                if result.success:
                    body.incorporate(data.timestamp, result)
                    updated.append(body_id)
                    break
        return updated


def build_tracking_system(
    config: Optional[TrackerConfig] = None,
    beacons: Optional[np.ndarray] = None
) -> TrackingSystem:
    """
    Build a tracking system with one body carrying one beacon target.

    Args:
        config: Tracker configuration (defaults if None)
        beacons: Nx3 beacon positions (DEFAULT_BEACON_LAYOUT if None)

    Returns:
        TrackingSystem; body 0 owns target 0
    """
    system = TrackingSystem(config or TrackerConfig())
    body = system.create_body()
    body.create_target(DEFAULT_BEACON_LAYOUT if beacons is None else beacons)
    return system
