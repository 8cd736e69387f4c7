"""
Offline replay and tuning harness for a beacon pose tracker.

Modules:
- measurements: Measurement log loading and writing
- posefilter: One-euro pose smoothing
- config: Tracker configuration and the tuned parameter vector
- camera: Camera parameters
- tracking: Tracking system, bodies and beacon targets
- strategies: Pose estimation strategies under comparison
- replay: Log replay through the strategies
- optimizer: Derivative-free parameter search
- sim: Synthetic log generation
"""

from .measurements import (
    TimeValue, BeaconMeasurement, MeasurementRow, MeasurementLog,
    load_measurement_log, write_measurement_log, IMAGE_SIZE
)
from .posefilter import OneEuroParams, PoseFilter
from .config import (
    ParameterVector, TrackerConfig, DEFAULT_PARAMETERS,
    update_config_from_vector, load_tracker_config
)
from .camera import CameraParameters, nominal_camera_parameters, load_camera_parameters
from .tracking import (
    ImageOutputData, TrackingSystem, TrackedBody, TrackedTarget,
    build_tracking_system, DEFAULT_BEACON_LAYOUT
)
from .strategies import PoseEstimate, FullSystemStrategy, RansacFilterStrategy
from .replay import ReplayFrame, ReplayResult, replay
from .optimizer import optimize, run_optimizer, minimize, placeholder_objective

__all__ = [
    # Measurements
    "TimeValue",
    "BeaconMeasurement",
    "MeasurementRow",
    "MeasurementLog",
    "load_measurement_log",
    "write_measurement_log",
    "IMAGE_SIZE",
    # Filtering
    "OneEuroParams",
    "PoseFilter",
    # Config
    "ParameterVector",
    "TrackerConfig",
    "DEFAULT_PARAMETERS",
    "update_config_from_vector",
    "load_tracker_config",
    # Camera
    "CameraParameters",
    "nominal_camera_parameters",
    "load_camera_parameters",
    # Tracking
    "ImageOutputData",
    "TrackingSystem",
    "TrackedBody",
    "TrackedTarget",
    "build_tracking_system",
    "DEFAULT_BEACON_LAYOUT",
    # Strategies
    "PoseEstimate",
    "FullSystemStrategy",
    "RansacFilterStrategy",
    # Replay
    "ReplayFrame",
    "ReplayResult",
    "replay",
    # Optimizer
    "optimize",
    "run_optimizer",
    "minimize",
    "placeholder_objective",
]
