"""Session context shared by the recording and navigation components."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional


class SessionMode(str, Enum):
    """Top-level session state."""
    IDLE = "idle"
    RECORDING = "recording"
    STARTING_NAVIGATION = "startingNavigation"
    NAVIGATING = "navigating"


# Allowed transitions. Recording and navigation are mutually exclusive and
# every session returns to idle before another one starts.
_TRANSITIONS: Dict[SessionMode, FrozenSet[SessionMode]] = {
    SessionMode.IDLE: frozenset({SessionMode.RECORDING, SessionMode.STARTING_NAVIGATION}),
    SessionMode.RECORDING: frozenset({SessionMode.IDLE}),
    SessionMode.STARTING_NAVIGATION: frozenset({SessionMode.NAVIGATING, SessionMode.IDLE}),
    SessionMode.NAVIGATING: frozenset({SessionMode.IDLE}),
}


@dataclass
class NavigationState:
    """Session-scoped guidance state.

    Attributes:
        mode: Current session mode.
        target_node_index: Index into the loaded node sequence.
        destination_node_id: Optional node to route toward.
        distance_to_target: Last computed distance in meters.
        current_floor: Floor of the last corrected live position.
        path_complete: Set once the last node is reached without a
            destination; cleared by a new destination or session.
    """
    mode: SessionMode = SessionMode.IDLE
    target_node_index: int = 0
    destination_node_id: Optional[str] = None
    distance_to_target: float = 0.0
    current_floor: int = 0
    path_complete: bool = False


@dataclass
class SessionContext:
    """Explicit session object handed to every component.

    Attributes:
        session_id: Identifier of the current session.
        navigation: Guidance state, including the session mode.
    """
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    navigation: NavigationState = field(default_factory=NavigationState)

    @property
    def mode(self) -> SessionMode:
        return self.navigation.mode

    def can_transition(self, new_mode: SessionMode) -> bool:
        return new_mode in _TRANSITIONS[self.navigation.mode]

    def transition(self, new_mode: SessionMode) -> bool:
        """Move to a new mode if the transition is allowed.

        Args:
            new_mode: Target mode.

        Returns:
            True if the mode changed, False if the transition is not allowed.
        """
        if not self.can_transition(new_mode):
            return False

        self.navigation.mode = new_mode
        if new_mode in (SessionMode.RECORDING, SessionMode.STARTING_NAVIGATION):
            # A new session gets a fresh identity
            self.session_id = str(uuid.uuid4())
        return True

    def reset_navigation(self) -> None:
        """Clear guidance fields, keeping the mode."""
        self.navigation.target_node_index = 0
        self.navigation.destination_node_id = None
        self.navigation.distance_to_target = 0.0
        self.navigation.current_floor = 0
        self.navigation.path_complete = False
