"""Saved map records and their JSON document shape.

The core never touches the file system. This module defines the durable
snapshot, converts it to and from the JSON document shape validated by
``schema/saved_map.schema.json``, and specifies the ``MapStore`` contract
the host application implements.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

import numpy as np
from jsonschema import Draft7Validator

from breadcrumbs.transforms import pose_from_list, pose_to_list
from breadcrumbs.types import FinalizedPath, LandmarkSource, PathNode, WallGeometry
from runtime.schema_loader import load_saved_map_validator, validate_or_error


class WorldMappingStatus(str, Enum):
    """Quality of the tracking provider's environment map at save time."""
    MAPPED = "Mapped"
    EXTENDING = "Extending"
    LIMITED = "Limited"
    NOT_AVAILABLE = "NotAvailable"


class MapFormatError(ValueError):
    """Raised when a saved map document does not match the schema."""

    def __init__(self, error_info: Dict[str, Any]) -> None:
        self.error_info = error_info
        super().__init__(f"invalid saved map at {error_info.get('path')}: {error_info.get('message')}")


@dataclass(frozen=True, eq=False)
class SavedMap:
    """Named, timestamped snapshot of a completed recording.

    Attributes:
        map_id: UUID string.
        name: User-facing name.
        created_at: Save time (UTC).
        nodes: Ordered node sequence.
        total_checkpoints: Number of routinely sampled nodes.
        duration_seconds: Recording duration.
        walls: Plane geometry, if captured.
        obstacle_points: (N, 3) obstacle cloud, if captured.
        world_mapping_status: Mapping quality tag.
        landmark_map: Node id -> label for every labelled node.
    """
    map_id: str
    name: str
    created_at: datetime
    nodes: Tuple[PathNode, ...]
    total_checkpoints: int
    duration_seconds: float
    walls: Optional[Tuple[WallGeometry, ...]] = None
    obstacle_points: Optional[np.ndarray] = None
    world_mapping_status: WorldMappingStatus = WorldMappingStatus.LIMITED
    landmark_map: Dict[str, str] = field(default_factory=dict)

    def node_index(self, node_id: str) -> Optional[int]:
        for index, node in enumerate(self.nodes):
            if node.node_id == node_id:
                return index
        return None


def build_landmark_map(nodes: Tuple[PathNode, ...]) -> Dict[str, str]:
    """Map node ids to their labels for every node with an ai_label."""
    return {node.node_id: node.ai_label for node in nodes if node.ai_label is not None}


def build_saved_map(
    name: str,
    path: FinalizedPath,
    world_mapping_status: WorldMappingStatus = WorldMappingStatus.LIMITED,
    map_id: Optional[str] = None,
    created_at: Optional[datetime] = None
) -> SavedMap:
    """Create the durable snapshot of a finished recording.

    Args:
        name: Map name.
        path: Output of ``PathRecorder.stop``.
        world_mapping_status: Mapping quality reported by the tracking provider.
        map_id: Explicit id; a new UUID is generated if None.
        created_at: Explicit save time; now (UTC) if None.

    Returns:
        SavedMap ready to hand to a MapStore.
    """
    obstacle_points = None
    if path.obstacle_points.size:
        obstacle_points = np.array(path.obstacle_points, dtype=np.float64).reshape(-1, 3)

    return SavedMap(
        map_id=map_id or str(uuid.uuid4()),
        name=name,
        created_at=created_at or datetime.now(timezone.utc),
        nodes=tuple(path.nodes),
        total_checkpoints=path.checkpoint_count,
        duration_seconds=path.duration_seconds,
        walls=tuple(path.walls) if path.walls else None,
        obstacle_points=obstacle_points,
        world_mapping_status=WorldMappingStatus(world_mapping_status),
        landmark_map=build_landmark_map(path.nodes)
    )


def node_to_dict(node: PathNode) -> Dict[str, Any]:
    """Serialize a node to its JSON document shape."""
    return {
        "id": node.node_id,
        "timestamp": float(node.timestamp),
        "stepCount": int(node.step_count),
        "heading": float(node.heading),
        "floorLevel": float(node.floor_level),
        "poseMatrix": pose_to_list(node.pose),
        "imageReference": node.image_reference,
        "aiLabel": node.ai_label,
        "detectedObject": node.detected_object,
        "isManualLandmark": bool(node.is_manual_landmark),
        "landmarkSource": None if node.landmark_source is None else node.landmark_source.value
    }


def node_from_dict(data: Dict[str, Any]) -> PathNode:
    """Rebuild a node from its JSON document shape."""
    source = data.get("landmarkSource")
    return PathNode(
        node_id=data["id"],
        timestamp=float(data["timestamp"]),
        pose=pose_from_list(data["poseMatrix"]),
        step_count=int(data["stepCount"]),
        heading=float(data["heading"]),
        floor_level=float(data["floorLevel"]),
        image_reference=data.get("imageReference"),
        ai_label=data.get("aiLabel"),
        detected_object=data.get("detectedObject"),
        is_manual_landmark=bool(data["isManualLandmark"]),
        landmark_source=None if source is None else LandmarkSource(source)
    )


def _wall_to_dict(wall: WallGeometry) -> Dict[str, Any]:
    return {
        "id": wall.plane_id,
        "center": [float(v) for v in wall.center],
        "width": wall.extent[0],
        "height": wall.extent[1],
        "transform": pose_to_list(wall.transform)
    }


def _wall_from_dict(data: Dict[str, Any]) -> WallGeometry:
    return WallGeometry(
        plane_id=data["id"],
        center=np.array(data["center"], dtype=np.float64),
        extent=(data["width"], data["height"]),
        transform=pose_from_list(data["transform"])
    )


def saved_map_to_dict(saved_map: SavedMap) -> Dict[str, Any]:
    """Serialize a saved map to a JSON-ready document.

    Obstacle points are flattened to x, y, z triples.
    """
    walls = None
    if saved_map.walls is not None:
        walls = [_wall_to_dict(wall) for wall in saved_map.walls]

    obstacle_points = None
    if saved_map.obstacle_points is not None:
        obstacle_points = [float(v) for v in np.asarray(saved_map.obstacle_points).reshape(-1)]

    return {
        "id": saved_map.map_id,
        "name": saved_map.name,
        "createdAt": saved_map.created_at.isoformat(),
        "nodes": [node_to_dict(node) for node in saved_map.nodes],
        "totalCheckpoints": int(saved_map.total_checkpoints),
        "durationSeconds": float(saved_map.duration_seconds),
        "walls": walls,
        "obstaclePoints": obstacle_points,
        "landmarkMap": dict(saved_map.landmark_map),
        "worldMappingStatus": saved_map.world_mapping_status.value
    }


def saved_map_from_dict(
    data: Dict[str, Any],
    validator: Optional[Draft7Validator] = None
) -> SavedMap:
    """Validate and rebuild a saved map from its document shape.

    Args:
        data: Parsed JSON document.
        validator: Saved map validator; loaded from schema/ if None.

    Returns:
        The rebuilt SavedMap.

    Raises:
        MapFormatError: If the document does not match the schema.
    """
    if validator is None:
        validator = load_saved_map_validator()

    is_valid, error_info = validate_or_error(validator, data)
    if not is_valid:
        raise MapFormatError(error_info)

    nodes = tuple(node_from_dict(item) for item in data["nodes"])

    walls = None
    if data.get("walls") is not None:
        walls = tuple(_wall_from_dict(item) for item in data["walls"])

    obstacle_points = None
    flat = data.get("obstaclePoints")
    if flat is not None:
        if len(flat) % 3 != 0:
            raise MapFormatError({
                "message": f"obstaclePoints length {len(flat)} is not a multiple of 3",
                "path": ["obstaclePoints"],
                "schema_path": [],
                "type": "shape"
            })
        obstacle_points = np.array(flat, dtype=np.float64).reshape(-1, 3)

    landmark_map = data.get("landmarkMap")
    if landmark_map is None:
        landmark_map = build_landmark_map(nodes)

    created_at = datetime.fromisoformat(data["createdAt"].replace("Z", "+00:00"))

    return SavedMap(
        map_id=data["id"],
        name=data["name"],
        created_at=created_at,
        nodes=nodes,
        total_checkpoints=int(data["totalCheckpoints"]),
        duration_seconds=float(data["durationSeconds"]),
        walls=walls,
        obstacle_points=obstacle_points,
        world_mapping_status=WorldMappingStatus(data["worldMappingStatus"]),
        landmark_map=dict(landmark_map)
    )


class MapStore(Protocol):
    """Persistence collaborator contract. Implemented by the host app."""

    def save(self, saved_map: SavedMap, images: Optional[Dict[str, np.ndarray]] = None) -> None: ...
    def list_maps(self) -> List[SavedMap]: ...
    def get(self, map_id: str) -> Optional[SavedMap]: ...
    def delete(self, map_id: str) -> bool: ...
    def save_world_map(self, map_id: str, data: bytes) -> None: ...
    def load_world_map(self, map_id: str) -> Optional[bytes]: ...
    def load_image(self, image_reference: str) -> Optional[np.ndarray]: ...


class InMemoryMapStore:
    """Reference MapStore that keeps everything in process memory.

    Newest maps are listed first.
    """

    def __init__(self) -> None:
        self._maps: List[SavedMap] = []
        self._world_maps: Dict[str, bytes] = {}
        self._images: Dict[str, np.ndarray] = {}

    def save(self, saved_map: SavedMap, images: Optional[Dict[str, np.ndarray]] = None) -> None:
        """Store a map and the snapshots its nodes reference.

        Args:
            saved_map: Map to store.
            images: Snapshots keyed by node id, as in ``FinalizedPath.images``.
        """
        self._maps.insert(0, saved_map)
        for node in saved_map.nodes:
            if node.image_reference is None or images is None:
                continue
            image = images.get(node.node_id)
            if image is not None:
                self._images[node.image_reference] = image

    def list_maps(self) -> List[SavedMap]:
        return list(self._maps)

    def get(self, map_id: str) -> Optional[SavedMap]:
        return next((m for m in self._maps if m.map_id == map_id), None)

    def delete(self, map_id: str) -> bool:
        removed = [m for m in self._maps if m.map_id == map_id]
        if not removed:
            return False

        self._maps = [m for m in self._maps if m.map_id != map_id]
        self._world_maps.pop(map_id, None)
        for saved_map in removed:
            for node in saved_map.nodes:
                if node.image_reference is not None:
                    self._images.pop(node.image_reference, None)
        return True

    def save_world_map(self, map_id: str, data: bytes) -> None:
        self._world_maps[map_id] = bytes(data)

    def load_world_map(self, map_id: str) -> Optional[bytes]:
        return self._world_maps.get(map_id)

    def load_image(self, image_reference: str) -> Optional[np.ndarray]:
        return self._images.get(image_reference)


def node_images(saved_map: SavedMap, store: MapStore) -> Dict[str, np.ndarray]:
    """Collect a map's stored snapshots keyed by node id.

    The store keys snapshots by image reference; relocalization keys them
    by node id.

    Args:
        saved_map: Map whose snapshots to load.
        store: Store the map was saved to.

    Returns:
        Snapshots keyed by node id, for nodes whose image is available.
    """
    images = {}
    for node in saved_map.nodes:
        if node.image_reference is None:
            continue
        image = store.load_image(node.image_reference)
        if image is not None:
            images[node.node_id] = image
    return images
