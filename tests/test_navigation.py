"""Tests for navigation guidance state transitions."""

import pytest

from breadcrumbs.transforms import translation_T
from breadcrumbs.types import LandmarkSource, PathNode
from runtime.logger import EventLogger
from runtime.navigation import GuidanceKind, NavigationGuide, step_toward
from runtime.session import SessionContext, SessionMode


def _path(xs, y: float = 0.0):
    return [
        PathNode(node_id=f"n{i}", timestamp=float(i), pose=translation_T(x, y, 0.0))
        for i, x in enumerate(xs)
    ]


def _guide(nodes, logger=None):
    context = SessionContext()
    guide = NavigationGuide(context, logger=logger)
    assert guide.begin(nodes)
    return context, guide


def test_begin_enters_starting_navigation():
    """Test that begin moves idle to startingNavigation with target 0."""
    context, guide = _guide(_path([0.0, 2.0]))

    assert context.mode == SessionMode.STARTING_NAVIGATION
    assert guide.target_index == 0


def test_begin_rejected_while_active():
    """Test that a second session cannot start while one is active."""
    context = SessionContext()
    context.transition(SessionMode.RECORDING)
    guide = NavigationGuide(context)

    assert not guide.begin(_path([0.0]))
    assert context.mode == SessionMode.RECORDING


def test_arrival_advances_target():
    """Test that reaching the target moves to the next node."""
    _, guide = _guide(_path([0.0, 2.0, 4.0]))

    update = guide.update(translation_T(0.3, 0.0, 0.0))

    assert update.advanced
    assert update.target_index == 1
    assert update.kind == GuidanceKind.PROGRESS
    assert update.distance_m == pytest.approx(1.7), "Distance should be measured to the new target"


def test_no_arrival_outside_radius():
    """Test that the target holds until within 1 m."""
    context, guide = _guide(_path([0.0, 2.0]))

    update = guide.update(translation_T(-1.0, 0.0, 0.0))

    assert not update.advanced
    assert update.target_index == 0
    assert context.navigation.distance_to_target == 1.0
    assert update.message == "Walk 1.0 m to checkpoint 1 of 2"


def test_arrival_idempotence_at_last_node():
    """Test that repeated arrivals at the last node keep reporting completion."""
    _, guide = _guide(_path([0.0, 2.0, 4.0]))
    guide.update(translation_T(0.0, 0.0, 0.0))
    guide.update(translation_T(2.0, 0.0, 0.0))

    first = guide.update(translation_T(4.0, 0.0, 0.0))
    second = guide.update(translation_T(4.1, 0.0, 0.0))

    assert first.kind == GuidanceKind.PATH_COMPLETE
    assert second.kind == GuidanceKind.PATH_COMPLETE
    assert guide.target_index == 2, "Target should not move past the last node"


def test_path_complete_holds_after_walking_away():
    """Test that completion is kept when the pose drifts off the last node."""
    context, guide = _guide(_path([0.0, 2.0]))
    guide.update(translation_T(0.0, 0.0, 0.0))
    guide.update(translation_T(2.0, 0.0, 0.0))

    drifted = guide.update(translation_T(5.0, 0.0, 0.0))

    assert drifted.kind == GuidanceKind.PATH_COMPLETE, "Completion should not fall back to progress"
    assert drifted.target_index == 1
    assert drifted.distance_m == 3.0

    assert guide.set_destination("n0", translation_T(2.0, 0.0, 0.0))
    routed = guide.update(translation_T(5.0, 0.0, 0.0))

    assert routed.kind == GuidanceKind.PROGRESS, "A new destination should resume guidance"
    assert routed.target_index == 0

    guide.stop()
    assert guide.begin(_path([0.0, 2.0]))
    assert not context.navigation.path_complete


def test_destination_routes_backwards():
    """Test that a destination behind the user walks the target back one node at a time."""
    logger = EventLogger()
    context, guide = _guide(_path([0.0, 2.0, 4.0, 6.0, 8.0]), logger)
    live = translation_T(8.0, 0.0, 0.0)

    assert guide.set_destination("n1", live)
    assert guide.target_index == 3, "Target should be one step from the nearest node"

    targets = []
    for x in (6.0, 4.0):
        update = guide.update(translation_T(x, 0.0, 0.0))
        targets.append(update.target_index)
    assert targets == [2, 1], "Target should decrement on each arrival"

    arrived = guide.update(translation_T(2.0, 0.0, 0.0))

    assert arrived.kind == GuidanceKind.ARRIVED
    assert arrived.target_index == 1
    assert context.navigation.destination_node_id is None, "Arrival should clear the destination"


def test_destination_at_nearest_node():
    """Test that a destination at the current position arrives on the next update."""
    _, guide = _guide(_path([0.0, 2.0, 4.0]))

    guide.set_destination("n1", translation_T(2.2, 0.0, 0.0))
    update = guide.update(translation_T(2.2, 0.0, 0.0))

    assert update.kind == GuidanceKind.ARRIVED


def test_unknown_destination_rejected():
    """Test that an id outside the loaded path is refused and logged."""
    logger = EventLogger()
    context, guide = _guide(_path([0.0, 2.0]), logger)

    assert not guide.set_destination("missing", translation_T(0.0, 0.0, 0.0))
    assert context.navigation.destination_node_id is None
    assert logger.events_of("DESTINATION_REJECTED")[0]["node_id"] == "missing"


def test_floor_guidance():
    """Test up and down messages when the target is on another floor."""
    nodes = [
        PathNode(node_id="up", timestamp=0.0, pose=translation_T(0.0, 3.0, 0.0)),
        PathNode(node_id="down", timestamp=1.0, pose=translation_T(0.0, -3.0, 0.0)),
    ]
    context, guide = _guide(nodes)

    up = guide.update(translation_T(0.0, 0.0, 0.0))
    assert up.kind == GuidanceKind.GO_UP
    assert up.message == "Go up to level 1"
    assert context.navigation.current_floor == 0

    guide.on_match(0)
    down = guide.update(translation_T(0.0, 0.0, 0.0))
    assert down.kind == GuidanceKind.GO_DOWN
    assert down.message == "Go down to level -1"


def test_landmark_target_message():
    """Test that landmark targets are announced by name."""
    nodes = [
        PathNode(
            node_id="lm",
            timestamp=0.0,
            pose=translation_T(5.0, 0.0, 0.0),
            ai_label="Room 302",
            is_manual_landmark=True,
            landmark_source=LandmarkSource.MANUAL
        )
    ]
    _, guide = _guide(nodes)

    update = guide.update(translation_T(0.0, 0.0, 0.0))

    assert update.message == "Walk 5.0 m to Room 302"


def test_on_match_promotes_and_resyncs():
    """Test that the first match switches to navigating and targets the next node."""
    context, guide = _guide(_path([0.0, 2.0, 4.0]))

    assert guide.on_match(0)
    assert context.mode == SessionMode.NAVIGATING
    assert guide.target_index == 1

    guide.on_match(2)
    assert guide.target_index == 2, "Target should clamp to the last index"


def test_on_match_with_destination_steps_toward_it():
    """Test that re-synchronization respects a destination behind the match."""
    _, guide = _guide(_path([0.0, 2.0, 4.0, 6.0]))
    guide.set_destination("n0")

    guide.on_match(3)

    assert guide.target_index == 2


def test_update_uses_world_offset():
    """Test that distances are measured in the corrected map frame."""
    _, guide = _guide(_path([0.0, 2.0, 4.0]))
    guide.on_match(0)

    update = guide.update(translation_T(12.0, 0.0, 0.0), translation_T(10.0, 0.0, 0.0))

    assert update.advanced, "Live x=12 with a 10 m offset is node 1"
    assert update.target_index == 2


def test_empty_path_is_noop():
    """Test that guidance does nothing without nodes."""
    context, guide = _guide([])
    context.navigation.distance_to_target = 3.5

    assert guide.update(translation_T(0.0, 0.0, 0.0)) is None
    assert context.navigation.distance_to_target == 3.5
    assert not guide.on_match(0)


def test_update_outside_navigation():
    """Test that guidance is inactive when idle."""
    guide = NavigationGuide(SessionContext())

    assert guide.update(translation_T(0.0, 0.0, 0.0)) is None


def test_stop_returns_to_idle():
    """Test that stopping ends the session and clears the destination."""
    context, guide = _guide(_path([0.0, 2.0]))
    guide.set_destination("n1")

    assert guide.stop()
    assert context.mode == SessionMode.IDLE
    assert context.navigation.destination_node_id is None
    assert not guide.stop()


def test_step_toward():
    """Test single index steps in both directions."""
    assert step_toward(2, 5) == 3
    assert step_toward(2, 0) == 1
    assert step_toward(2, 2) == 2
