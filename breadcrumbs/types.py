"""Core types for breadcrumb path representation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np

from breadcrumbs.transforms import as_pose, floor_for_height, position_of


class LandmarkSource(str, Enum):
    """How a landmark node came to exist."""
    MANUAL = "manual"
    AI_PROMPT = "aiPrompt"


@dataclass(frozen=True, eq=False)
class PathNode:
    """One recorded waypoint.

    The sensor snapshot is fixed at construction. Recognition results that
    arrive later are kept in an ``AnnotationTable`` and merged into a new
    node when the recording is finalized.

    Attributes:
        node_id: Unique identifier (UUID string).
        timestamp: Capture time in seconds.
        pose: 4x4 rigid transform in the recording session's tracking frame.
        step_count: Pedometer reading at capture time.
        heading: Compass heading in degrees.
        floor_level: Barometric relative altitude in meters.
        image_reference: Asset name of the stored snapshot, if any.
        ai_label: Recognized text attached to the node.
        detected_object: Recognized object label attached to the node.
        is_manual_landmark: True for deliberate points of interest.
        landmark_source: Origin of a landmark node, None for breadcrumbs.
    """
    node_id: str
    timestamp: float
    pose: np.ndarray
    step_count: int = 0
    heading: float = 0.0
    floor_level: float = 0.0
    image_reference: Optional[str] = None
    ai_label: Optional[str] = None
    detected_object: Optional[str] = None
    is_manual_landmark: bool = False
    landmark_source: Optional[LandmarkSource] = None

    def __post_init__(self) -> None:
        pose = as_pose(self.pose)
        pose.flags.writeable = False
        object.__setattr__(self, "pose", pose)
        if self.is_manual_landmark and self.ai_label is None:
            raise ValueError("landmark nodes require an ai_label")

    @property
    def position(self) -> np.ndarray:
        """Translation column of the pose."""
        return position_of(self.pose)

    @property
    def floor(self) -> int:
        """Floor bucket derived from the vertical position."""
        return floor_for_height(float(self.pose[1, 3]))

    @property
    def is_landmark(self) -> bool:
        return self.is_manual_landmark and self.ai_label is not None


@dataclass(frozen=True, eq=False)
class WallGeometry:
    """A detected planar surface.

    Attributes:
        plane_id: Identifier assigned by the tracking provider.
        center: Plane center (3,) in the plane's local frame.
        extent: (width, height) in meters.
        transform: 4x4 placement of the plane in the tracking frame.
    """
    plane_id: str
    center: np.ndarray
    extent: Tuple[float, float]
    transform: np.ndarray

    def __post_init__(self) -> None:
        center = np.array(self.center, dtype=np.float64).reshape(3)
        center.flags.writeable = False
        object.__setattr__(self, "center", center)
        transform = as_pose(self.transform)
        transform.flags.writeable = False
        object.__setattr__(self, "transform", transform)
        object.__setattr__(self, "extent", (float(self.extent[0]), float(self.extent[1])))


@dataclass(frozen=True, eq=False)
class FinalizedPath:
    """Frozen output of a recording session.

    Attributes:
        nodes: Ordered node sequence with annotations merged in.
        obstacle_points: (N, 3) accumulated obstacle point cloud.
        walls: Plane geometry captured during the session.
        checkpoint_count: Number of routinely sampled nodes.
        started_at: Session start time in seconds.
        stopped_at: Session stop time in seconds.
        images: Captured snapshots keyed by node id.
    """
    nodes: Tuple[PathNode, ...] = ()
    obstacle_points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    walls: Tuple[WallGeometry, ...] = ()
    checkpoint_count: int = 0
    started_at: float = 0.0
    stopped_at: float = 0.0
    images: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.stopped_at - self.started_at)

    @property
    def is_empty(self) -> bool:
        return len(self.nodes) == 0
