"""World offset correction strategies.

A strategy decides how a newly measured offset replaces the current one.
Snapping is the default. Blending the raw 4x4 matrices is not a rigid
transform, so the smoothing strategy decomposes the offset and slerps the
rotation instead.
"""

from typing import Protocol

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from breadcrumbs.transforms import rt_to_T


class CorrectionStrategy(Protocol):
    """Combines the current and measured world offsets."""

    name: str

    def correct(self, current: np.ndarray, measured: np.ndarray) -> np.ndarray: ...


class SnapCorrection:
    """Replace the current offset with the measured one."""

    name = "snap"

    def correct(self, current: np.ndarray, measured: np.ndarray) -> np.ndarray:
        return np.array(measured, dtype=np.float64)


class SlerpCorrection:
    """Move part of the way toward the measured offset.

    Rotation is interpolated on SO(3) with spherical linear interpolation,
    translation linearly. ``alpha=1`` behaves like snapping.
    """

    name = "slerp"

    def __init__(self, alpha: float = 0.5) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        self.alpha = alpha

    def correct(self, current: np.ndarray, measured: np.ndarray) -> np.ndarray:
        if self.alpha == 1.0:
            return np.array(measured, dtype=np.float64)

        rotations = Rotation.from_matrix(np.stack([current[:3, :3], measured[:3, :3]]))
        slerp = Slerp([0.0, 1.0], rotations)
        R = slerp([self.alpha]).as_matrix()[0]

        t = (1.0 - self.alpha) * current[:3, 3] + self.alpha * measured[:3, 3]
        return rt_to_T(R, t)
