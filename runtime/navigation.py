"""Guidance along a recorded path."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from breadcrumbs.transforms import as_pose, distance_between, floor_for_height, inv_T, position_of
from breadcrumbs.types import PathNode
from runtime.logger import EventLogger
from runtime.session import SessionContext, SessionMode

# Distance at which a target node counts as reached (meters).
ARRIVAL_RADIUS_M: float = 1.0

_GUIDED_MODES = (SessionMode.STARTING_NAVIGATION, SessionMode.NAVIGATING)


class GuidanceKind(str, Enum):
    """Kind of message produced by a guidance update."""
    PROGRESS = "progress"
    GO_UP = "goUp"
    GO_DOWN = "goDown"
    ARRIVED = "arrived"
    PATH_COMPLETE = "pathComplete"


@dataclass(frozen=True)
class GuidanceUpdate:
    """User-facing result of one guidance update.

    Attributes:
        kind: Message category.
        message: Text to show or speak.
        target_index: Target index after the update.
        distance_m: Distance to that target in meters.
        current_floor: Floor of the corrected live position.
        target_floor: Floor of the target node.
        advanced: True if the target index moved during this update.
    """
    kind: GuidanceKind
    message: str
    target_index: int
    distance_m: float
    current_floor: int
    target_floor: int
    advanced: bool = False


def step_toward(index: int, destination_index: int) -> int:
    """Move one index toward the destination; stays put when already there."""
    if destination_index > index:
        return index + 1
    if destination_index < index:
        return index - 1
    return index


class NavigationGuide:
    """Drives target advancement, arrival and floor guidance.

    Transition rules:
    - idle -> startingNavigation on ``begin``
    - startingNavigation -> navigating on the first accepted match
    - either navigation mode -> idle on ``stop``

    Guidance runs in both navigation modes, so a path that never
    relocalizes can still be followed on raw pose alone.
    """

    def __init__(
        self,
        context: SessionContext,
        arrival_radius_m: float = ARRIVAL_RADIUS_M,
        logger: Optional[EventLogger] = None
    ) -> None:
        self._context = context
        self.arrival_radius_m = arrival_radius_m
        self._logger = logger if logger is not None else EventLogger()
        self._nodes: Tuple[PathNode, ...] = ()
        self._index_by_id: Dict[str, int] = {}

    @property
    def nodes(self) -> Tuple[PathNode, ...]:
        return self._nodes

    @property
    def target_index(self) -> int:
        return self._context.navigation.target_node_index

    @property
    def is_guiding(self) -> bool:
        return self._context.mode in _GUIDED_MODES

    def begin(self, nodes: Sequence[PathNode]) -> bool:
        """Start a navigation session over a loaded path.

        Args:
            nodes: Read-only node sequence of the loaded map.

        Returns:
            False if another session is active, True otherwise.
        """
        if not self._context.transition(SessionMode.STARTING_NAVIGATION):
            self._logger.log_event("NAVIGATION_REJECTED", mode=self._context.mode)
            return False

        self._nodes = tuple(nodes)
        self._index_by_id = {node.node_id: index for index, node in enumerate(self._nodes)}
        self._context.reset_navigation()

        self._logger.log_event("NAVIGATION_STARTED", node_count=len(self._nodes))
        return True

    def stop(self) -> bool:
        """End the navigation session.

        Returns:
            True if a navigation session was active.
        """
        if not self.is_guiding:
            return False

        self._context.navigation.destination_node_id = None
        self._context.transition(SessionMode.IDLE)
        self._context.navigation.path_complete = False
        self._logger.log_event("NAVIGATION_STOPPED")
        return True

    def index_of(self, node_id: str) -> Optional[int]:
        return self._index_by_id.get(node_id)

    def _map_position(self, live_pose: np.ndarray, world_offset: Optional[np.ndarray]) -> np.ndarray:
        pose = as_pose(live_pose)
        if world_offset is not None:
            pose = inv_T(world_offset) @ pose
        return position_of(pose)

    def on_match(self, node_index: int) -> bool:
        """Re-synchronize the target after an accepted visual match.

        The first match of a session switches to navigating. The target
        becomes the node after the matched one, clamped to the last index;
        with a destination set it becomes one step toward the destination.

        Returns:
            True if the target was updated.
        """
        if not self.is_guiding or not self._nodes:
            return False
        if not 0 <= node_index < len(self._nodes):
            return False

        if self._context.mode == SessionMode.STARTING_NAVIGATION:
            self._context.transition(SessionMode.NAVIGATING)

        navigation = self._context.navigation
        destination_index = None
        if navigation.destination_node_id is not None:
            destination_index = self.index_of(navigation.destination_node_id)

        if destination_index is not None:
            navigation.target_node_index = step_toward(node_index, destination_index)
        else:
            navigation.target_node_index = min(node_index + 1, len(self._nodes) - 1)

        self._logger.log_event(
            "TARGET_SYNCED",
            matched_index=node_index,
            target_index=navigation.target_node_index
        )
        return True

    def set_destination(
        self,
        node_id: str,
        live_pose: Optional[np.ndarray] = None,
        world_offset: Optional[np.ndarray] = None
    ) -> bool:
        """Route toward a specific node.

        The nearest node to the live position sets the starting point and the
        target becomes one step from it toward the destination. Without a
        live pose the current target is used as the starting point.

        Args:
            node_id: Destination node id.
            live_pose: Current live pose.
            world_offset: Current map-to-live offset.

        Returns:
            False if the id is not in the loaded path or no session is active.
        """
        destination_index = self.index_of(node_id)
        if not self.is_guiding or destination_index is None:
            self._logger.log_event("DESTINATION_REJECTED", node_id=node_id, mode=self._context.mode)
            return False

        navigation = self._context.navigation
        if live_pose is None:
            nearest_index = navigation.target_node_index
        else:
            position = self._map_position(live_pose, world_offset)
            distances = [distance_between(node.position, position) for node in self._nodes]
            nearest_index = int(np.argmin(distances))

        navigation.destination_node_id = node_id
        navigation.path_complete = False
        navigation.target_node_index = step_toward(nearest_index, destination_index)

        self._logger.log_event(
            "DESTINATION_SET",
            node_id=node_id,
            destination_index=destination_index,
            nearest_index=nearest_index,
            target_index=navigation.target_node_index
        )
        return True

    def clear_destination(self) -> None:
        self._context.navigation.destination_node_id = None

    def _describe(self, index: int) -> str:
        node = self._nodes[index]
        if node.is_landmark:
            return node.ai_label
        return f"checkpoint {index + 1} of {len(self._nodes)}"

    def update(
        self,
        live_pose: Optional[np.ndarray],
        world_offset: Optional[np.ndarray] = None
    ) -> Optional[GuidanceUpdate]:
        """Advance progress and produce guidance for the live pose.

        Args:
            live_pose: Current pose in the live tracking frame.
            world_offset: Current map-to-live offset; identity if None.

        Returns:
            The guidance update, or None when there is nothing to guide
            (not navigating, empty path or no pose this tick).
        """
        if not self.is_guiding or not self._nodes or live_pose is None:
            return None

        navigation = self._context.navigation
        position = self._map_position(live_pose, world_offset)
        current_floor = floor_for_height(float(position[1]))
        navigation.current_floor = current_floor

        last_index = len(self._nodes) - 1
        index = min(navigation.target_node_index, last_index)
        distance_m = distance_between(self._nodes[index].position, position)
        navigation.distance_to_target = distance_m
        advanced = False

        if navigation.path_complete and navigation.destination_node_id is None:
            # Completion holds until a new destination or session
            distance_m = distance_between(self._nodes[last_index].position, position)
            navigation.distance_to_target = distance_m
            return self._emit(
                GuidanceKind.PATH_COMPLETE,
                "Path complete",
                last_index, distance_m, current_floor
            )

        if distance_m < self.arrival_radius_m:
            destination_index = None
            if navigation.destination_node_id is not None:
                destination_index = self.index_of(navigation.destination_node_id)

            if destination_index is not None:
                if index == destination_index:
                    navigation.destination_node_id = None
                    return self._emit(
                        GuidanceKind.ARRIVED,
                        f"Arrived at {self._describe(index)}",
                        index, distance_m, current_floor
                    )
                index = step_toward(index, destination_index)
                advanced = True
            elif index < last_index:
                index += 1
                advanced = True
            else:
                navigation.path_complete = True
                return self._emit(
                    GuidanceKind.PATH_COMPLETE,
                    "Path complete",
                    index, distance_m, current_floor
                )

        if advanced:
            navigation.target_node_index = index
            distance_m = distance_between(self._nodes[index].position, position)
            navigation.distance_to_target = distance_m

        target_floor = self._nodes[index].floor
        if target_floor > current_floor:
            kind = GuidanceKind.GO_UP
            message = f"Go up to level {target_floor}"
        elif target_floor < current_floor:
            kind = GuidanceKind.GO_DOWN
            message = f"Go down to level {target_floor}"
        else:
            kind = GuidanceKind.PROGRESS
            message = f"Walk {distance_m:.1f} m to {self._describe(index)}"

        return self._emit(kind, message, index, distance_m, current_floor, advanced)

    def _emit(
        self,
        kind: GuidanceKind,
        message: str,
        index: int,
        distance_m: float,
        current_floor: int,
        advanced: bool = False
    ) -> GuidanceUpdate:
        update = GuidanceUpdate(
            kind=kind,
            message=message,
            target_index=index,
            distance_m=distance_m,
            current_floor=current_floor,
            target_floor=self._nodes[index].floor,
            advanced=advanced
        )
        if advanced or kind in (GuidanceKind.ARRIVED, GuidanceKind.PATH_COMPLETE):
            self._logger.log_event(
                "GUIDANCE",
                kind=kind,
                target_index=index,
                distance_m=distance_m
            )
        return update
