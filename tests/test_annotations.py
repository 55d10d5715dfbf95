"""Tests for the annotation side-table."""

import pytest

from breadcrumbs.annotations import AnnotationTable
from breadcrumbs.transforms import translation_T
from breadcrumbs.types import LandmarkSource, PathNode


def _node(node_id: str = "a", **kwargs) -> PathNode:
    return PathNode(node_id=node_id, timestamp=0.0, pose=translation_T(0.0, 0.0, 0.0), **kwargs)


def test_empty_record_is_ignored():
    """Test that an annotation with no labels is not stored."""
    table = AnnotationTable()

    assert table.record("a") is None
    assert len(table) == 0
    assert "a" not in table


def test_latest_takes_last_value_per_field():
    """Test that each field keeps its most recent non-empty value."""
    table = AnnotationTable()
    table.record("a", ai_label="Room 1")
    table.record("a", detected_object="door")
    table.record("a", ai_label="Room 2")

    latest = table.latest("a")

    assert latest.ai_label == "Room 2"
    assert latest.detected_object == "door"
    assert len(table.history("a")) == 3


def test_apply_returns_new_node():
    """Test that merging creates a copy and leaves the original untouched."""
    table = AnnotationTable()
    node = _node()
    table.record("a", ai_label="Exit")

    merged = table.apply(node)

    assert merged is not node
    assert merged.ai_label == "Exit"
    assert node.ai_label is None, "Original node must not change"


def test_apply_without_entries_is_identity():
    """Test that nodes without annotations pass through unchanged."""
    table = AnnotationTable()
    node = _node()

    assert table.apply(node) is node


def test_landmark_label_wins():
    """Test that a confirmed landmark name is not overwritten by later text."""
    table = AnnotationTable()
    node = _node(ai_label="Room 302", is_manual_landmark=True, landmark_source=LandmarkSource.AI_PROMPT)
    table.record("a", ai_label="Wet floor", detected_object="sign")

    merged = table.apply(node)

    assert merged.ai_label == "Room 302"
    assert merged.detected_object == "sign"


def test_landmark_requires_label():
    """Test that a landmark node without a label cannot be built."""
    with pytest.raises(ValueError):
        _node(is_manual_landmark=True)
