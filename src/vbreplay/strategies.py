"""
Pose estimation strategies compared by the replay tool.

Each strategy is called once per measurement row and returns a
PoseEstimate. Two strategies are provided:
- FullSystemStrategy: runs the tracking system's own frame update and
  reports the body state
- RansacFilterStrategy: solves the target pose with RANSAC directly and
  smooths it with its own PoseFilter
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import numpy as np

from .camera import CameraParameters
from .geo import IDENTITY_QUATERNION, make_isometry
from .measurements import MeasurementRow, TimeValue
from .posefilter import PoseFilter
from .tracking import ImageOutputData, TrackedTargetApi, TrackingSystemApi


@dataclass
class PoseEstimate:
    """Pose reported by a strategy for one row."""
    available: bool = False
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())  # [w, x, y, z]

    @classmethod
    def unavailable(cls) -> "PoseEstimate":
        return cls(available=False)

    def isometry(self) -> Optional[np.ndarray]:
        if not self.available:
            return None
        return make_isometry(self.translation, self.rotation)

    def to_dict(self):
        if not self.available:
            return {"available": False}
        return {
            "available": True,
            "position": self.translation.tolist(),
            "quaternion": self.rotation.tolist(),
        }


class EstimationStrategy(Protocol):
    name: str

    def estimate(
        self,
        camera_params: CameraParameters,
        system: TrackingSystemApi,
        target: TrackedTargetApi,
        row: MeasurementRow,
    ) -> PoseEstimate: ...

    def reset(self) -> None: ...


class FullSystemStrategy:
    """Report whatever the tracking system's body state is after each frame."""

    name = "full"

    def estimate(
        self,
        camera_params: CameraParameters,
        system: TrackingSystemApi,
        target: TrackedTargetApi,
        row: MeasurementRow
    ) -> PoseEstimate:
        system.update_bodies_from_video_data(ImageOutputData(
            timestamp=row.timestamp,
            measurements=list(row.measurements),
            camera_params=camera_params
        ))

        body = target.get_body()
        if not body.has_pose_estimate():
            return PoseEstimate.unavailable()

        state = body.get_state()
        return PoseEstimate(
            available=True,
            translation=np.array(state.position, dtype=np.float64),
            rotation=np.array(state.quaternion, dtype=np.float64)
        )

    def reset(self) -> None:
        return


class RansacFilterStrategy:
    """
    RANSAC pose per row, smoothed by a one-euro PoseFilter.

    The filter time step is measured between successful rows only; a row
    where RANSAC fails yields no estimate and leaves the timing state alone.
    """

    name = "ransac"

    def __init__(self, filter_factory: Callable[[], PoseFilter] = PoseFilter):
        self._filter_factory = filter_factory
        self.reset()

    def reset(self) -> None:
        self.pose_filter = self._filter_factory()
        self.last_timestamp: Optional[TimeValue] = None
        self.is_first = True

    def estimate(
        self,
        camera_params: CameraParameters,
        system: TrackingSystemApi,
        target: TrackedTargetApi,
        row: MeasurementRow
    ) -> PoseEstimate:
        success, position, orientation = target.estimate_pose(camera_params, row.measurements)
        if not success:
            return PoseEstimate.unavailable()

        dt = 1.0
        if self.is_first:
            self.is_first = False
        else:
            dt = row.timestamp.seconds_since(self.last_timestamp)

        self.pose_filter.filter(dt, position, orientation)
        self.last_timestamp = row.timestamp

        return PoseEstimate(
            available=True,
            translation=np.array(self.pose_filter.get_position(), dtype=np.float64),
            rotation=np.array(self.pose_filter.get_orientation(), dtype=np.float64)
        )


STRATEGIES = {
    FullSystemStrategy.name: FullSystemStrategy,
    RansacFilterStrategy.name: RansacFilterStrategy,
}


def create_strategy(name: str) -> EstimationStrategy:
    """Instantiate a strategy by its name ("full" or "ransac")."""
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown strategy {name!r}; expected one of: {', '.join(sorted(STRATEGIES))}"
        ) from None
