"""
Tracker configuration and the tunable parameter vector.

The optimizer works on a 4-element vector; the tracking system is built
from the expanded TrackerConfig. update_config_from_vector maps one onto
the other without touching its inputs.
"""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np


PARAMETER_COUNT = 4


@dataclass(frozen=True)
class ParameterVector:
    """The tuned subset of the tracker configuration."""
    positional_noise: float
    rotational_noise: float
    beacon_process_noise: float
    measurement_variance_scale: float

    @classmethod
    def from_array(cls, values) -> "ParameterVector":
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        if arr.shape[0] != PARAMETER_COUNT:
            raise ValueError(
                f"Parameter vector needs {PARAMETER_COUNT} values, got {arr.shape[0]}"
            )
        return cls(*(float(v) for v in arr))

    def as_array(self) -> np.ndarray:
        return np.array([
            self.positional_noise,
            self.rotational_noise,
            self.beacon_process_noise,
            self.measurement_variance_scale,
        ], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return {
            "positional_noise": self.positional_noise,
            "rotational_noise": self.rotational_noise,
            "beacon_process_noise": self.beacon_process_noise,
            "measurement_variance_scale": self.measurement_variance_scale,
        }


DEFAULT_PARAMETERS = ParameterVector(4.14e-6, 1e-2, 0.0, 5e-2)


def _default_process_noise() -> List[float]:
    return [DEFAULT_PARAMETERS.positional_noise] * 3 + \
        [DEFAULT_PARAMETERS.rotational_noise] * 3


@dataclass(frozen=True)
class TrackerConfig:
    """Parameters consumed by build_tracking_system."""
    # Indices 0-2: translation axes, 3-5: rotation axes.
    process_noise_autocorrelation: List[float] = field(default_factory=_default_process_noise)
    beacon_process_noise: float = DEFAULT_PARAMETERS.beacon_process_noise
    measurement_variance_scale_factor: float = DEFAULT_PARAMETERS.measurement_variance_scale

    initial_position_variance: float = 1e-2
    initial_rotation_variance: float = 1e-1

    ransac_reprojection_error_px: float = 4.0
    ransac_min_beacons: int = 4
    ransac_iterations: int = 100
    ransac_confidence: float = 0.99

    def __post_init__(self):
        if len(self.process_noise_autocorrelation) != 6:
            raise ValueError("process_noise_autocorrelation needs 6 values")

    @property
    def positional_noise(self) -> np.ndarray:
        return np.asarray(self.process_noise_autocorrelation[0:3], dtype=np.float64)

    @property
    def rotational_noise(self) -> np.ndarray:
        return np.asarray(self.process_noise_autocorrelation[3:6], dtype=np.float64)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def update_config_from_vector(
    vec,
    base: Optional[TrackerConfig] = None
) -> TrackerConfig:
    """
    Expand a parameter vector into a tracker configuration.

    Args:
        vec: ParameterVector or any 4-element sequence
        base: Configuration supplying every field the vector does not set

    Returns:
        New TrackerConfig; ``base`` is left unchanged
    """
    if not isinstance(vec, ParameterVector):
        vec = ParameterVector.from_array(vec)
    if base is None:
        base = TrackerConfig()

    return replace(
        base,
        process_noise_autocorrelation=[vec.positional_noise] * 3 + [vec.rotational_noise] * 3,
        beacon_process_noise=vec.beacon_process_noise,
        measurement_variance_scale_factor=vec.measurement_variance_scale,
    )


def load_tracker_config(filepath) -> TrackerConfig:
    """
    Load tracker configuration overrides from a JSON object.

    Args:
        filepath: Path to a JSON file whose keys are TrackerConfig fields

    Returns:
        TrackerConfig with the overrides applied to the defaults

    Raises:
        ValueError: If the file holds unknown keys or is not an object
    """
    with open(Path(filepath), 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Tracker config must be a JSON object: {filepath}")

    known = {f.name for f in fields(TrackerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown tracker config keys: {', '.join(unknown)}")

    if "process_noise_autocorrelation" in data:
        data["process_noise_autocorrelation"] = [
            float(v) for v in data["process_noise_autocorrelation"]
        ]
    return TrackerConfig(**data)
