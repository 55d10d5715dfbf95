"""Collaborator interfaces for the live tracking source."""

from enum import Enum
from typing import Any, Optional, Protocol

import numpy as np


class TrackingQuality(str, Enum):
    NOT_AVAILABLE = "notAvailable"
    LIMITED = "limited"
    NORMAL = "normal"


class LimitedReason(str, Enum):
    INITIALIZING = "initializing"
    EXCESSIVE_MOTION = "excessiveMotion"
    INSUFFICIENT_FEATURES = "insufficientFeatures"
    RELOCALIZING = "relocalizing"


_LIMITED_MESSAGES = {
    LimitedReason.INITIALIZING: "Initializing AR...",
    LimitedReason.EXCESSIVE_MOTION: "Too much motion. Slow down.",
    LimitedReason.INSUFFICIENT_FEATURES: "Not enough light or details.",
    LimitedReason.RELOCALIZING: "Relocalizing...",
}


def tracking_status_message(
    quality: TrackingQuality,
    reason: Optional[LimitedReason] = None
) -> str:
    """User-facing status line for a tracking state.

    Args:
        quality: Tracking quality reported by the provider.
        reason: Why tracking is limited, if it is.

    Returns:
        Status message string.
    """
    quality = TrackingQuality(quality)
    if quality == TrackingQuality.NOT_AVAILABLE:
        return "Tracking unavailable."
    if quality == TrackingQuality.NORMAL:
        return "Tracking Normal."
    if reason is None:
        return "Limited tracking."
    return _LIMITED_MESSAGES.get(LimitedReason(reason), "Limited tracking.")


class TrackingProvider(Protocol):
    """Source of the live pose and camera frame."""

    def current_pose(self) -> Optional[np.ndarray]: ...

    def current_frame_image(self) -> Optional[Any]: ...

    def tracking_quality(self) -> TrackingQuality: ...
