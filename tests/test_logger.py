"""Tests for the structured event logger."""

import json
from enum import Enum

import numpy as np

from runtime.logger import EventLogger


class Color(Enum):
    RED = "red"


def test_event_has_utc_timestamp():
    """Test that entries carry a type and a UTC timestamp."""
    logger = EventLogger()

    entry = logger.log_event("NODE_EMITTED", node_id="a")

    assert entry["event_type"] == "NODE_EMITTED"
    assert entry["timestamp"].endswith("Z")
    assert logger.events == [entry]


def test_values_are_serialized():
    """Test that numpy values and enums become plain JSON types."""
    logger = EventLogger()

    entry = logger.log_event(
        "RELOC_ACCEPTED",
        position=np.array([1.0, 2.0, 3.0]),
        score=np.float64(0.7),
        color=Color.RED,
        nested={"pair": (1, 2)}
    )

    assert entry["position"] == [1.0, 2.0, 3.0]
    assert isinstance(entry["score"], float)
    assert entry["color"] == "red"
    assert entry["nested"] == {"pair": [1, 2]}
    json.dumps(entry)


def test_buffer_is_bounded():
    """Test that the in-memory buffer keeps only the newest events."""
    logger = EventLogger(max_events=3)

    for i in range(5):
        logger.log_event("GUIDANCE", index=i)

    assert [e["index"] for e in logger.events] == [2, 3, 4]


def test_events_of_filters_by_type():
    """Test filtering buffered events by type."""
    logger = EventLogger()
    logger.log_event("A")
    logger.log_event("B")
    logger.log_event("A")

    assert len(logger.events_of("A")) == 2
    assert logger.events_of("C") == []


def test_jsonl_file_output(tmp_path):
    """Test that events are appended to the JSONL file, one per line."""
    log_path = tmp_path / "logs" / "session.jsonl"
    logger = EventLogger(log_path=log_path)

    logger.log_event("RECORDING_STARTED", session_start=0.0)
    logger.log_event("RECORDING_STOPPED", node_count=3)
    logger.close()

    lines = log_path.read_text(encoding="utf-8").strip().split("\n")
    assert len(lines) == 2
    assert json.loads(lines[1])["node_count"] == 3
