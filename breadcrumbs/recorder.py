"""Distance-gated path recording."""

import dataclasses
import uuid
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from breadcrumbs.annotations import AnnotationTable
from breadcrumbs.config import (
    MAX_OBSTACLE_POINTS_PER_SAMPLE,
    OBSTACLE_MIN_INTERVAL_S,
    SAMPLING_DISTANCE_M,
)
from breadcrumbs.transforms import as_pose, distance_between, position_of
from breadcrumbs.types import FinalizedPath, LandmarkSource, PathNode, WallGeometry
from runtime.logger import EventLogger


def image_reference_for(node_id: str) -> str:
    """Asset name for a node's stored snapshot."""
    return f"{node_id}.jpg"


def _new_node_id() -> str:
    return str(uuid.uuid4())


class PathRecorder:
    """Turns a live pose stream into a sparse, ordered node sequence.

    Node density follows physical movement, not time: a node is emitted only
    once the device has moved more than ``sampling_distance_m`` from the last
    node. The sequence is append-only while recording.
    """

    def __init__(
        self,
        sampling_distance_m: float = SAMPLING_DISTANCE_M,
        obstacle_min_interval_s: float = OBSTACLE_MIN_INTERVAL_S,
        max_obstacle_points: int = MAX_OBSTACLE_POINTS_PER_SAMPLE,
        logger: Optional[EventLogger] = None,
        id_factory: Callable[[], str] = _new_node_id
    ) -> None:
        """Initialize recorder.

        Args:
            sampling_distance_m: Distance gate between nodes in meters.
            obstacle_min_interval_s: Minimum spacing of obstacle samples.
            max_obstacle_points: Point cap per accepted obstacle sample.
            logger: Event logger; a memory-only logger is created if None.
            id_factory: Produces node ids.
        """
        if sampling_distance_m <= 0.0:
            raise ValueError("sampling_distance_m must be positive")

        self.sampling_distance_m = sampling_distance_m
        self.obstacle_min_interval_s = obstacle_min_interval_s
        self.max_obstacle_points = max_obstacle_points
        self._logger = logger if logger is not None else EventLogger()
        self._id_factory = id_factory

        self._active = False
        self._nodes: List[PathNode] = []
        self._last_emitted_position: Optional[np.ndarray] = None
        self._annotations = AnnotationTable()
        self._obstacle_chunks: List[np.ndarray] = []
        self._last_obstacle_time: Optional[float] = None
        self._planes: Dict[str, WallGeometry] = {}
        self._images: Dict[str, np.ndarray] = {}
        self._checkpoint_count = 0
        self._started_at = 0.0
        self._last_timestamp = 0.0
        self._anchor_image: Optional[np.ndarray] = None
        self._anchor_node_id: Optional[str] = None
        self._finalized: Optional[FinalizedPath] = None

        # Latest auxiliary scalars, used for landmark nodes
        self._steps = 0
        self._heading = 0.0
        self._altitude = 0.0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def nodes(self) -> Tuple[PathNode, ...]:
        """Read-only view of the nodes appended so far."""
        return tuple(self._nodes)

    @property
    def checkpoint_count(self) -> int:
        return self._checkpoint_count

    @property
    def annotations(self) -> AnnotationTable:
        return self._annotations

    @property
    def anchor_node_id(self) -> Optional[str]:
        return self._anchor_node_id

    def start(self, session_start: float, anchor_image: Optional[np.ndarray] = None) -> None:
        """Reset all accumulators and begin recording.

        Args:
            session_start: Session start time in seconds.
            anchor_image: Optional start frame. When given, the first emitted
                node becomes the session anchor and keeps this image.
        """
        self._nodes = []
        self._last_emitted_position = None
        self._annotations = AnnotationTable()
        self._obstacle_chunks = []
        self._last_obstacle_time = None
        self._planes = {}
        self._images = {}
        self._checkpoint_count = 0
        self._started_at = float(session_start)
        self._last_timestamp = float(session_start)
        self._anchor_image = anchor_image
        self._anchor_node_id = None
        self._finalized = None
        self._active = True

        self._logger.log_event("RECORDING_STARTED", session_start=self._started_at)

    def on_pose_sample(
        self,
        pose: Optional[np.ndarray],
        steps: int,
        heading: float,
        altitude: float,
        timestamp: float
    ) -> Optional[PathNode]:
        """Feed one pose sample through the distance gate.

        Args:
            pose: 4x4 camera pose, or None when tracking has no pose this tick.
            steps: Pedometer step count.
            heading: Compass heading in degrees.
            altitude: Barometric relative altitude in meters.
            timestamp: Sample time in seconds.

        Returns:
            The emitted node, or None if nothing was emitted.
        """
        if not self._active:
            return None

        self._steps = int(steps)
        self._heading = float(heading)
        self._altitude = float(altitude)
        self._last_timestamp = max(self._last_timestamp, float(timestamp))

        if pose is None:
            return None

        pose = as_pose(pose)
        position = position_of(pose)
        # Gated against the last routine node; landmarks never move it
        if self._last_emitted_position is not None:
            moved = distance_between(position, self._last_emitted_position)
            if moved <= self.sampling_distance_m:
                return None

        node_id = self._id_factory()
        image_reference = None
        if self._anchor_image is not None and self._anchor_node_id is None:
            # First node of the session doubles as the relocalization anchor
            self._anchor_node_id = node_id
            self._images[node_id] = self._anchor_image
            image_reference = image_reference_for(node_id)

        node = PathNode(
            node_id=node_id,
            timestamp=float(timestamp),
            pose=pose,
            step_count=self._steps,
            heading=self._heading,
            floor_level=self._altitude,
            image_reference=image_reference
        )
        self._nodes.append(node)
        self._checkpoint_count += 1
        self._last_emitted_position = position

        self._logger.log_event(
            "NODE_EMITTED",
            node_id=node_id,
            index=len(self._nodes) - 1,
            position=node.position,
            checkpoint=self._checkpoint_count
        )
        return node

    def append_landmark(
        self,
        pose: np.ndarray,
        label: str,
        source: LandmarkSource,
        snapshot: Optional[np.ndarray],
        timestamp: float
    ) -> Optional[PathNode]:
        """Insert a landmark node at a captured pose.

        Landmarks bypass the distance gate and leave its reference point
        unchanged. They do not count as checkpoints.

        Args:
            pose: Pose captured when the landmark was observed.
            label: Landmark name, stored as the node's ai_label.
            source: Manual mark or confirmed AI prompt.
            snapshot: Frame to store with the node, if any.
            timestamp: Insertion time in seconds.

        Returns:
            The new node, or None when not recording.
        """
        if not self._active:
            return None

        node_id = self._id_factory()
        image_reference = None
        if snapshot is not None:
            self._images[node_id] = snapshot
            image_reference = image_reference_for(node_id)

        node = PathNode(
            node_id=node_id,
            timestamp=float(timestamp),
            pose=pose,
            step_count=self._steps,
            heading=self._heading,
            floor_level=self._altitude,
            image_reference=image_reference,
            ai_label=label,
            is_manual_landmark=True,
            landmark_source=LandmarkSource(source)
        )
        self._nodes.append(node)
        self._last_timestamp = max(self._last_timestamp, float(timestamp))

        self._logger.log_event(
            "LANDMARK_ADDED",
            node_id=node_id,
            index=len(self._nodes) - 1,
            label=label,
            source=node.landmark_source
        )
        return node

    def on_feature_frame(self, node_id: str, image: Optional[np.ndarray]) -> Optional[str]:
        """Store a frame for a landmark or anchor node.

        Routine breadcrumbs never carry images, which bounds storage.

        Args:
            node_id: Node to attach the frame to.
            image: Pixel buffer.

        Returns:
            Image reference for the node, or None if the node does not take
            images or the frame is missing.
        """
        if image is None:
            return None

        node = next((n for n in self._nodes if n.node_id == node_id), None)
        if node is None:
            return None
        if not (node.is_manual_landmark or node_id == self._anchor_node_id):
            return None

        self._images[node_id] = image
        return image_reference_for(node_id)

    def update_ai_context(
        self,
        text: Optional[str] = None,
        detected_object: Optional[str] = None,
        node_id: Optional[str] = None
    ) -> Optional[str]:
        """Attach recognition results to a node.

        With no explicit node_id the results go to the most recently
        appended node at the time of this call, never to an earlier one.

        Args:
            text: Recognized text.
            detected_object: Recognized object label.
            node_id: Node the caller captured together with the frame.

        Returns:
            Id of the annotated node, or None if nothing was recorded.
        """
        if not self._nodes:
            return None

        if node_id is None:
            node_id = self._nodes[-1].node_id
        elif not any(n.node_id == node_id for n in self._nodes):
            return None

        annotation = self._annotations.record(node_id, ai_label=text, detected_object=detected_object)
        if annotation is None:
            return None
        return node_id

    def on_obstacle_sample(self, points: np.ndarray, timestamp: float) -> bool:
        """Accumulate a down-sampled obstacle point cloud.

        Args:
            points: (N, 3) raw points in the tracking frame.
            timestamp: Sample time in seconds.

        Returns:
            True if the sample was accepted.
        """
        if not self._active:
            return False

        if self._last_obstacle_time is not None:
            if timestamp - self._last_obstacle_time < self.obstacle_min_interval_s:
                return False

        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if points.shape[0] > self.max_obstacle_points:
            stride = int(np.ceil(points.shape[0] / self.max_obstacle_points))
            points = points[::stride]

        self._obstacle_chunks.append(points.copy())
        self._last_obstacle_time = float(timestamp)
        return True

    def on_plane_update(
        self,
        plane_id: str,
        center: np.ndarray,
        extent: Tuple[float, float],
        transform: np.ndarray
    ) -> None:
        """Keep the latest geometry for a detected plane."""
        if not self._active:
            return
        self._planes[plane_id] = WallGeometry(
            plane_id=plane_id,
            center=center,
            extent=extent,
            transform=transform
        )

    def stop(self, timestamp: Optional[float] = None) -> FinalizedPath:
        """Freeze the session and return the recorded path.

        Args:
            timestamp: Stop time in seconds; defaults to the latest sample time.

        Returns:
            The finalized path. An empty session yields an empty path.
        """
        if not self._active:
            if self._finalized is not None:
                return self._finalized
            return FinalizedPath()

        stopped_at = self._last_timestamp if timestamp is None else float(timestamp)
        if self._obstacle_chunks:
            obstacle_points = np.vstack(self._obstacle_chunks)
        else:
            obstacle_points = np.zeros((0, 3))

        nodes = []
        for node in self._nodes:
            node = self._annotations.apply(node)
            if node.image_reference is None and node.node_id in self._images:
                # Frame arrived after the node was appended
                node = dataclasses.replace(node, image_reference=image_reference_for(node.node_id))
            nodes.append(node)
        nodes = tuple(nodes)

        self._finalized = FinalizedPath(
            nodes=nodes,
            obstacle_points=obstacle_points,
            walls=tuple(self._planes.values()),
            checkpoint_count=self._checkpoint_count,
            started_at=self._started_at,
            stopped_at=stopped_at,
            images=dict(self._images)
        )
        self._active = False

        self._logger.log_event(
            "RECORDING_STOPPED",
            node_count=len(nodes),
            checkpoints=self._checkpoint_count,
            duration_seconds=self._finalized.duration_seconds
        )
        return self._finalized
