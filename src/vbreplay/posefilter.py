"""
Low-pass filtering of poses.

Provides:
- One-euro filters for 3D vectors and [w, x, y, z] quaternions
- PoseFilter, which runs one filter per track (position, orientation)

The one-euro filter adapts its cutoff frequency to the speed of the signal:
slow motion is smoothed heavily, fast motion passes with little lag.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.spatial.transform import Rotation

from .geo import (
    IDENTITY_QUATERNION, make_isometry, normalize_quaternion,
    quaternion_to_rotation, rotation_to_quaternion
)


@dataclass
class OneEuroParams:
    """Tuning for a one-euro filter."""
    min_cutoff: float = 1.0
    beta: float = 0.5
    derivative_cutoff: float = 1.0


def smoothing_alpha(dt: float, cutoff: float) -> float:
    """Exponential smoothing factor for a sample period and cutoff frequency."""
    tau = 1.0 / (2.0 * math.pi * cutoff)
    return 1.0 / (1.0 + tau / dt)


class OneEuroVectorFilter:
    """One-euro filter over a fixed-size vector."""

    def __init__(self, params: Optional[OneEuroParams] = None, size: int = 3):
        self.params = params or OneEuroParams()
        self._state = np.zeros(size)
        self._derivative = np.zeros(size)
        self._first = True

    @property
    def has_state(self) -> bool:
        return not self._first

    def filter(self, dt: float, value) -> np.ndarray:
        x = np.asarray(value, dtype=np.float64).reshape(self._state.shape)

        if self._first:
            self._state = x.copy()
            self._derivative = np.zeros_like(x)
            self._first = False
            return self._state

        dx = (x - self._state) / dt
        a_d = smoothing_alpha(dt, self.params.derivative_cutoff)
        self._derivative = a_d * dx + (1.0 - a_d) * self._derivative

        cutoff = self.params.min_cutoff + self.params.beta * float(np.linalg.norm(self._derivative))
        a = smoothing_alpha(dt, cutoff)
        self._state = a * x + (1.0 - a) * self._state
        return self._state

    def get_state(self) -> np.ndarray:
        return self._state


class OneEuroQuaternionFilter:
    """
    One-euro filter over orientations.

    The derivative is the angular velocity (rotation vector of the change
    from the current state to the sample, per second). The state moves toward
    the sample along the shortest arc by the smoothing factor.
    """

    def __init__(self, params: Optional[OneEuroParams] = None):
        self.params = params or OneEuroParams()
        self._state = IDENTITY_QUATERNION.copy()
        self._derivative = np.zeros(3)
        self._first = True

    @property
    def has_state(self) -> bool:
        return not self._first

    def filter(self, dt: float, value) -> np.ndarray:
        q = normalize_quaternion(value)

        if self._first:
            self._state = q
            self._derivative = np.zeros(3)
            self._first = False
            return self._state

        # Same hemisphere as the state so the shortest arc is used.
        if float(np.dot(q, self._state)) < 0.0:
            q = -q

        current = quaternion_to_rotation(self._state)
        delta = (quaternion_to_rotation(q) * current.inv()).as_rotvec()

        a_d = smoothing_alpha(dt, self.params.derivative_cutoff)
        self._derivative = a_d * (delta / dt) + (1.0 - a_d) * self._derivative

        cutoff = self.params.min_cutoff + self.params.beta * float(np.linalg.norm(self._derivative))
        a = smoothing_alpha(dt, cutoff)
        self._state = rotation_to_quaternion(Rotation.from_rotvec(a * delta) * current)
        return self._state

    def get_state(self) -> np.ndarray:
        return self._state


class PoseFilter:
    """
    Smooth a stream of poses with independent position and orientation tracks.

    Usage:
        pose_filter = PoseFilter()
        pose_filter.filter(dt, position, quaternion_wxyz)
        T = pose_filter.get_isometry()
    """

    def __init__(
        self,
        position_params: Optional[OneEuroParams] = None,
        orientation_params: Optional[OneEuroParams] = None
    ):
        self._position_filter = OneEuroVectorFilter(position_params)
        self._orientation_filter = OneEuroQuaternionFilter(orientation_params)

    @property
    def has_state(self) -> bool:
        return self._position_filter.has_state

    def filter(self, dt: float, position, orientation) -> None:
        """
        Feed one pose sample.

        Args:
            dt: Seconds since the previous sample; values <= 0 are treated as 1
            position: 3D position
            orientation: [w, x, y, z] quaternion
        """
        if dt <= 0:
            # Avoid div by 0
            dt = 1.0
        self._position_filter.filter(dt, position)
        self._orientation_filter.filter(dt, orientation)

    def get_position(self) -> np.ndarray:
        return self._position_filter.get_state()

    def get_orientation(self) -> np.ndarray:
        return self._orientation_filter.get_state()

    def get_isometry(self) -> np.ndarray:
        """Translation and rotation of the two tracks as one 4x4 transform."""
        return make_isometry(self.get_position(), self.get_orientation())
