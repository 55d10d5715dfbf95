"""Rigid transform helpers for 4x4 homogeneous poses.

Convention: ``T_a_b`` maps points expressed in frame ``b`` into frame ``a``.
A world offset therefore maps recorded map space into the live tracking frame.
"""

import math
from typing import List

import numpy as np

from breadcrumbs.config import FLOOR_HEIGHT_M


def identity() -> np.ndarray:
    """Return a fresh 4x4 identity transform."""
    return np.eye(4)


def rt_to_T(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Build a homogeneous transform from rotation and translation.

    Args:
        R: 3x3 rotation matrix.
        t: Translation, any shape with 3 elements.

    Returns:
        4x4 transform.
    """
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def translation_T(x: float, y: float, z: float) -> np.ndarray:
    """Pure translation transform."""
    return rt_to_T(np.eye(3), np.array([x, y, z]))


def inv_T(T: np.ndarray) -> np.ndarray:
    """Invert a rigid transform using the rotation transpose."""
    R = T[:3, :3]
    t = T[:3, 3]
    Ti = np.eye(4)
    Ti[:3, :3] = R.T
    Ti[:3, 3] = -R.T @ t
    return Ti


def as_pose(matrix) -> np.ndarray:
    """Validate and copy a 4x4 rigid transform.

    Args:
        matrix: Array-like 4x4 homogeneous transform.

    Returns:
        float64 copy of the matrix.

    Raises:
        ValueError: If the matrix is not 4x4 or is not a rigid transform.
    """
    T = np.array(matrix, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"pose must be 4x4, got shape {T.shape}")
    if not np.allclose(T[3], [0.0, 0.0, 0.0, 1.0], atol=1e-6):
        raise ValueError("pose bottom row must be [0, 0, 0, 1]")
    R = T[:3, :3]
    if not np.allclose(R.T @ R, np.eye(3), atol=1e-4):
        raise ValueError("pose rotation block is not orthonormal")
    return T


def position_of(T: np.ndarray) -> np.ndarray:
    """Translation column of a transform as a (3,) array."""
    return np.array(T[:3, 3], dtype=np.float64)


def distance_between(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two positions."""
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def floor_for_height(y: float) -> int:
    """Bucket a vertical coordinate into a floor number.

    Rounds half away from zero, so 1.5 m is floor 1 and -1.5 m is floor -1.

    Args:
        y: Vertical coordinate in meters.

    Returns:
        Floor number relative to the session origin.
    """
    value = y / FLOOR_HEIGHT_M
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def pose_to_list(T: np.ndarray) -> List[float]:
    """Flatten a transform to 16 floats, column-major."""
    return [float(v) for v in np.asarray(T, dtype=np.float64).flatten(order="F")]


def pose_from_list(values: List[float]) -> np.ndarray:
    """Rebuild a transform from 16 column-major floats."""
    if len(values) != 16:
        raise ValueError(f"pose matrix needs 16 values, got {len(values)}")
    return as_pose(np.array(values, dtype=np.float64).reshape((4, 4), order="F"))
