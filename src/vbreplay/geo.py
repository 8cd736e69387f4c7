"""
Small geometry helpers shared by the filters, the tracking system and the
replay comparison.

Quaternions are stored as [w, x, y, z] throughout the package; scipy uses
[x, y, z, w], so conversions go through the helpers below.
"""

import numpy as np
from scipy.spatial.transform import Rotation


IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])


def normalize_quaternion(quaternion) -> np.ndarray:
    q = np.asarray(quaternion, dtype=np.float64).reshape(4)
    norm = np.linalg.norm(q)
    if norm <= 0.0:
        raise ValueError("Quaternion must be non-zero")
    return q / norm


def quaternion_to_rotation(quaternion) -> Rotation:
    """Build a scipy Rotation from a [w, x, y, z] quaternion."""
    q = normalize_quaternion(quaternion)
    return Rotation.from_quat([q[1], q[2], q[3], q[0]])


def rotation_to_quaternion(rotation: Rotation) -> np.ndarray:
    """Convert a scipy Rotation to a [w, x, y, z] quaternion."""
    quat = rotation.as_quat()  # [x, y, z, w]
    return np.array([quat[3], quat[0], quat[1], quat[2]])


def make_isometry(position, quaternion) -> np.ndarray:
    """
    Compose a translation and a rotation into a 4x4 rigid transform.

    The result is Translation(position) * Rotation(quaternion).
    """
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = quaternion_to_rotation(quaternion).as_matrix()
    T[:3, 3] = np.asarray(position, dtype=np.float64).reshape(3)
    return T


def rotation_error_deg(q_pred, q_ref) -> float:
    """Angle in degrees between two [w, x, y, z] orientations."""
    r_pred = quaternion_to_rotation(q_pred).as_matrix()
    r_ref = quaternion_to_rotation(q_ref).as_matrix()
    cos = (np.trace(r_pred @ r_ref.T) - 1.0) / 2.0
    cos = float(np.clip(cos, -1.0, 1.0))
    return float(np.degrees(np.arccos(cos)))
