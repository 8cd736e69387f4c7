"""
Replay module for running recorded measurement rows through estimation
strategies.

Provides functionality to:
- Feed every row of a MeasurementLog to every strategy, in order
- Hand each frame's estimates to a callback (console printing by default)
- Compare each strategy's estimates against the rows' reference poses
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .camera import CameraParameters
from .geo import rotation_error_deg
from .measurements import MeasurementLog, MeasurementRow
from .strategies import EstimationStrategy, PoseEstimate
from .tracking import TrackedTargetApi, TrackingSystemApi

# Below this norm a logged reference quaternion is treated as absent.
REFERENCE_QUATERNION_EPS = 1e-9


@dataclass
class ReplayFrame:
    """Estimates of every strategy for one row."""
    index: int
    row: MeasurementRow
    estimates: Dict[str, PoseEstimate]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "timestamp": self.row.timestamp.to_seconds(),
            "beacons": self.row.beacon_count,
            "estimates": {name: est.to_dict() for name, est in self.estimates.items()},
        }


@dataclass
class ReplayResult:
    """All frames produced by one replay run."""
    strategy_names: List[str]
    frames: List[ReplayFrame] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    def summary(self) -> Dict[str, Dict[str, Any]]:
        """
        Per-strategy comparison against the reference poses in the log.

        Returns:
            Dict mapping strategy name to frames_with_pose, drop_rate and
            mean/max position error and mean rotation error (degrees).
            Rows whose reference quaternion is zero carry no reference
            orientation; they are left out of the rotation error and counted
            in frames_without_reference_rotation. Errors are NaN when there is
            nothing to average.
        """
        result: Dict[str, Dict[str, Any]] = {}
        total = len(self.frames)

        for name in self.strategy_names:
            pos_errors: List[float] = []
            rot_errors: List[float] = []
            no_reference = 0
            for frame in self.frames:
                est = frame.estimates[name]
                if not est.available:
                    continue
                pos_errors.append(float(np.linalg.norm(est.translation - frame.row.translation)))
                if np.linalg.norm(frame.row.rotation) < REFERENCE_QUATERNION_EPS:
                    no_reference += 1
                    continue
                rot_errors.append(rotation_error_deg(est.rotation, frame.row.rotation))

            result[name] = {
                "frames_with_pose": len(pos_errors),
                "total_frames": total,
                "drop_rate": (total - len(pos_errors)) / total if total else 0.0,
                "mean_position_error_m": float(np.mean(pos_errors)) if pos_errors else float("nan"),
                "max_position_error_m": float(np.max(pos_errors)) if pos_errors else float("nan"),
                "mean_rotation_error_deg": float(np.mean(rot_errors)) if rot_errors else float("nan"),
                "frames_without_reference_rotation": no_reference,
            }

        return result


def replay(
    log: MeasurementLog,
    camera_params: CameraParameters,
    system: TrackingSystemApi,
    target: TrackedTargetApi,
    strategies: Sequence[EstimationStrategy],
    on_frame: Optional[Callable[[ReplayFrame], None]] = None
) -> ReplayResult:
    """
    Run every strategy over every row of the log, once, in stored order.

    Args:
        log: Loaded measurement log (not modified)
        camera_params: Camera parameters passed through to the strategies
        system: Tracking system shared by the strategies
        target: Target handle of the body being evaluated
        strategies: Strategies, called in this order for each row
        on_frame: Optional callback receiving each ReplayFrame

    Returns:
        ReplayResult with one frame per row

    Raises:
        ValueError: If two strategies share a name
    """
    names = [s.name for s in strategies]
    if len(set(names)) != len(names):
        raise ValueError(f"Strategy names must be unique: {names}")

    result = ReplayResult(strategy_names=names)

    for index, row in enumerate(log):
        estimates: Dict[str, PoseEstimate] = {}
        for strategy in strategies:
            estimates[strategy.name] = strategy.estimate(camera_params, system, target, row)

        frame = ReplayFrame(index=index, row=row, estimates=estimates)
        result.frames.append(frame)
        if on_frame is not None:
            on_frame(frame)

    return result


def print_frame(frame: ReplayFrame) -> None:
    """Console output of one frame's estimates."""
    ts = frame.row.timestamp
    print(f"\n[{ts.seconds}.{ts.microseconds:06d}] Row {frame.index} ({frame.row.beacon_count} beacons)")
    for name, est in frame.estimates.items():
        if est.available:
            pos = est.translation
            quat = est.rotation
            print(f"  {name}:")
            print(f"    pos: ({pos[0]:7.4f}, {pos[1]:7.4f}, {pos[2]:7.4f}) m")
            print(f"    quat: ({quat[0]:.3f}, {quat[1]:.3f}, {quat[2]:.3f}, {quat[3]:.3f})")
        else:
            print(f"  {name}: [NO POSE]")


def print_summary(summary: Dict[str, Dict[str, Any]]) -> None:
    print("\nSummary")
    print("-" * 50)
    for name, stats in summary.items():
        print(f"  {name}:")
        print(f"    frames with pose: {stats['frames_with_pose']}/{stats['total_frames']}")
        print(f"    mean position error: {stats['mean_position_error_m']:.6f} m")
        print(f"    max position error: {stats['max_position_error_m']:.6f} m")
        print(f"    mean rotation error: {stats['mean_rotation_error_deg']:.3f} deg")
        if stats.get("frames_without_reference_rotation"):
            print(f"    frames without reference rotation: {stats['frames_without_reference_rotation']}")
