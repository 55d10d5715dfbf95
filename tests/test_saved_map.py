"""Tests for saved map documents, schema validation and the reference store."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from breadcrumbs.saved_map import (
    InMemoryMapStore,
    MapFormatError,
    WorldMappingStatus,
    build_saved_map,
    node_images,
    node_to_dict,
    saved_map_from_dict,
    saved_map_to_dict,
)
from breadcrumbs.transforms import translation_T
from breadcrumbs.types import FinalizedPath, LandmarkSource, PathNode, WallGeometry
from runtime.schema_loader import load_schemas, validate_or_error


def _finalized_path() -> FinalizedPath:
    nodes = (
        PathNode(node_id="a", timestamp=0.0, pose=translation_T(0.0, 0.0, 0.0), step_count=0),
        PathNode(
            node_id="b",
            timestamp=1.0,
            pose=translation_T(1.0, 0.0, 0.0),
            step_count=2,
            detected_object="chair",
            ai_label="Wet floor"
        ),
        PathNode(
            node_id="c",
            timestamp=2.0,
            pose=translation_T(1.5, 0.0, 0.0),
            step_count=3,
            image_reference="c.jpg",
            ai_label="Room 302",
            is_manual_landmark=True,
            landmark_source=LandmarkSource.AI_PROMPT
        ),
    )
    wall = WallGeometry(plane_id="w1", center=np.zeros(3), extent=(2.0, 2.5), transform=np.eye(4))
    return FinalizedPath(
        nodes=nodes,
        obstacle_points=np.arange(6, dtype=float).reshape(2, 3),
        walls=(wall,),
        checkpoint_count=2,
        started_at=100.0,
        stopped_at=130.0,
        images={"c": np.ones((4, 4))}
    )


def _saved_map(**kwargs):
    return build_saved_map(
        "Office to lobby",
        _finalized_path(),
        created_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        **kwargs
    )


def test_build_saved_map():
    """Test that the snapshot carries counters and the landmark map."""
    saved_map = _saved_map(map_id="m1")

    assert saved_map.map_id == "m1"
    assert saved_map.total_checkpoints == 2
    assert saved_map.duration_seconds == 30.0
    assert saved_map.landmark_map == {"b": "Wet floor", "c": "Room 302"}
    assert saved_map.world_mapping_status == WorldMappingStatus.LIMITED
    assert saved_map.node_index("c") == 2
    assert saved_map.node_index("zzz") is None


def test_empty_recording_has_no_obstacles():
    """Test that an empty obstacle cloud is stored as absent."""
    saved_map = build_saved_map("Empty", FinalizedPath())

    assert saved_map.obstacle_points is None
    assert saved_map.walls is None
    assert saved_map.nodes == ()


def test_document_matches_schema():
    """Test that serialized maps validate against the saved map schema."""
    saved_map_validator, path_node_validator = load_schemas()
    document = saved_map_to_dict(_saved_map())

    is_valid, error = validate_or_error(saved_map_validator, document)

    assert is_valid, f"Document should be valid: {error}"
    assert document["obstaclePoints"] == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0]
    assert document["nodes"][2]["landmarkSource"] == "aiPrompt"
    is_valid, error = validate_or_error(path_node_validator, document["nodes"][0])
    assert is_valid, f"Node should be valid: {error}"


def test_pose_matrix_is_column_major():
    """Test that the node translation is stored in elements 12..14."""
    node = _finalized_path().nodes[1]

    assert node_to_dict(node)["poseMatrix"][12:15] == [1.0, 0.0, 0.0]


def test_document_rebuilds_map():
    """Test that a validated document rebuilds an equivalent map."""
    original = _saved_map(world_mapping_status=WorldMappingStatus.MAPPED)

    rebuilt = saved_map_from_dict(saved_map_to_dict(original))

    assert [n.node_id for n in rebuilt.nodes] == ["a", "b", "c"]
    assert np.allclose(rebuilt.nodes[1].pose, original.nodes[1].pose)
    assert rebuilt.nodes[2].landmark_source == LandmarkSource.AI_PROMPT
    assert rebuilt.nodes[2].image_reference == "c.jpg"
    assert rebuilt.obstacle_points.shape == (2, 3)
    assert rebuilt.walls[0].extent == (2.0, 2.5)
    assert rebuilt.created_at == original.created_at
    assert rebuilt.world_mapping_status == WorldMappingStatus.MAPPED


def test_missing_field_raises_format_error():
    """Test that schema violations raise MapFormatError with details."""
    document = saved_map_to_dict(_saved_map())
    del document["nodes"]

    with pytest.raises(MapFormatError) as excinfo:
        saved_map_from_dict(document)

    assert excinfo.value.error_info["type"] == "schema"
    assert isinstance(excinfo.value, ValueError)


def test_landmark_without_label_is_invalid():
    """Test that the schema enforces a label on landmark nodes."""
    document = saved_map_to_dict(_saved_map())
    document["nodes"][2]["aiLabel"] = None

    with pytest.raises(MapFormatError):
        saved_map_from_dict(document)


def test_obstacle_points_must_be_triples():
    """Test that a flattened cloud with a partial point is rejected."""
    document = saved_map_to_dict(_saved_map())
    document["obstaclePoints"] = [0.0, 1.0, 2.0, 3.0]

    with pytest.raises(MapFormatError) as excinfo:
        saved_map_from_dict(document)

    assert excinfo.value.error_info["path"] == ["obstaclePoints"]


def test_store_lists_newest_first():
    """Test that the in-memory store inserts new maps at the front."""
    store = InMemoryMapStore()
    older = _saved_map(map_id="old")
    newer = build_saved_map(
        "Second",
        _finalized_path(),
        map_id="new",
        created_at=older.created_at + timedelta(days=1)
    )

    store.save(older)
    store.save(newer)

    assert [m.map_id for m in store.list_maps()] == ["new", "old"]
    assert store.get("old") is older
    assert store.delete("old")
    assert not store.delete("old")
    assert store.get("old") is None


def test_store_keeps_images_and_world_map():
    """Test image lookup by reference and opaque world map blobs."""
    store = InMemoryMapStore()
    path = _finalized_path()
    saved_map = build_saved_map("With images", path, map_id="m1")

    store.save(saved_map, images=path.images)
    store.save_world_map("m1", b"\x00\x01")

    assert store.load_image("c.jpg") is path.images["c"]
    assert store.load_image("a.jpg") is None
    assert store.load_world_map("m1") == b"\x00\x01"
    assert store.load_world_map("other") is None


def test_delete_drops_map_images():
    """Test that deleting a map also forgets its stored snapshots."""
    store = InMemoryMapStore()
    path = _finalized_path()
    store.save(build_saved_map("With images", path, map_id="m1"), images=path.images)
    store.save_world_map("m1", b"\x01")

    assert store.delete("m1")

    assert store.load_image("c.jpg") is None, "Snapshots of a deleted map should be removed"
    assert store.load_world_map("m1") is None
    assert store._images == {}


def test_node_images_keys_by_node_id():
    """Test that stored snapshots are returned keyed by node id."""
    store = InMemoryMapStore()
    path = _finalized_path()
    saved_map = build_saved_map("With images", path, map_id="m1")
    store.save(saved_map, images=path.images)

    assert node_images(saved_map, store) == {"c": path.images["c"]}
    assert node_images(saved_map, InMemoryMapStore()) == {}
