"""Landmark confirmation workflow for recognized text."""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from breadcrumbs.config import LANDMARK_PROMPT_TIMEOUT_S, get_landmark_lexicon
from breadcrumbs.recorder import PathRecorder
from breadcrumbs.transforms import as_pose
from breadcrumbs.types import LandmarkSource, PathNode
from breadcrumbs.utils import match_lexicon
from runtime.logger import EventLogger
from runtime.session import SessionContext, SessionMode


@dataclass(frozen=True, eq=False)
class PendingLandmark:
    """A text detection waiting for user confirmation.

    Attributes:
        text: Full recognized text, used as the landmark label.
        keyword: Lexicon word that triggered the prompt.
        pose: Pose captured at detection time.
        snapshot: Frame captured at detection time.
        detected_at: Detection time in seconds.
        expires_at: Auto-dismiss deadline in seconds.
    """
    text: str
    keyword: str
    pose: np.ndarray
    snapshot: Optional[np.ndarray]
    detected_at: float
    expires_at: float


class LandmarkAnnotator:
    """Turns noisy recognized text into user-confirmed landmark nodes.

    Only one prompt is pending at a time; detections arriving while one is
    pending are dropped, not queued. The prompt dismisses itself after
    ``timeout_s`` unless confirmed.
    """

    def __init__(
        self,
        context: SessionContext,
        recorder: PathRecorder,
        lexicon: Optional[List[str]] = None,
        timeout_s: float = LANDMARK_PROMPT_TIMEOUT_S,
        logger: Optional[EventLogger] = None
    ) -> None:
        self._context = context
        self._recorder = recorder
        self._lexicon = lexicon if lexicon is not None else get_landmark_lexicon()
        self._timeout_s = timeout_s
        self._logger = logger if logger is not None else EventLogger()
        self._pending: Optional[PendingLandmark] = None

    @property
    def pending(self) -> Optional[PendingLandmark]:
        return self._pending

    def on_recognized_text(
        self,
        text: str,
        live_pose: Optional[np.ndarray],
        snapshot: Optional[np.ndarray],
        now: float
    ) -> Optional[PendingLandmark]:
        """Open a confirmation prompt for location-indicative text.

        Args:
            text: Recognized text.
            live_pose: Current pose; the detection is ignored without one.
            snapshot: Current frame.
            now: Detection time in seconds.

        Returns:
            The new pending landmark, or None if the text was ignored.
        """
        if self._context.mode != SessionMode.RECORDING:
            return None
        if self._pending is not None:
            return None
        if live_pose is None or not text:
            return None

        keyword = match_lexicon(text, self._lexicon)
        if keyword is None:
            return None

        self._pending = PendingLandmark(
            text=text.strip(),
            keyword=keyword,
            pose=as_pose(live_pose),
            snapshot=snapshot,
            detected_at=float(now),
            expires_at=float(now) + self._timeout_s
        )
        self._logger.log_event("LANDMARK_PENDING", text=self._pending.text, keyword=keyword)
        return self._pending

    def confirm(self, now: float) -> Optional[PathNode]:
        """Turn the pending prompt into a landmark node.

        Returns:
            The inserted node, or None if nothing was pending.
        """
        pending = self._pending
        if pending is None:
            return None

        self._pending = None
        node = self._recorder.append_landmark(
            pose=pending.pose,
            label=pending.text,
            source=LandmarkSource.AI_PROMPT,
            snapshot=pending.snapshot,
            timestamp=now
        )
        self._logger.log_event(
            "LANDMARK_CONFIRMED",
            text=pending.text,
            node_id=None if node is None else node.node_id
        )
        return node

    def dismiss(self, reason: str = "user") -> bool:
        """Drop the pending prompt without creating a node.

        Returns:
            True if a prompt was pending.
        """
        if self._pending is None:
            return False

        self._logger.log_event("LANDMARK_DISMISSED", text=self._pending.text, reason=reason)
        self._pending = None
        return True

    def expire(self, now: float) -> bool:
        """Fire the auto-dismiss timer if its deadline has passed.

        Returns:
            True if the pending prompt was dismissed.
        """
        if self._pending is None or now < self._pending.expires_at:
            return False
        return self.dismiss(reason="timeout")

    def cancel(self) -> None:
        """Drop any pending prompt and its timer, silently."""
        self._pending = None

    def add_manual(
        self,
        name: str,
        live_pose: Optional[np.ndarray],
        snapshot: Optional[np.ndarray],
        now: float
    ) -> Optional[PathNode]:
        """Insert a user-marked landmark, bypassing the prompt workflow.

        Returns:
            The inserted node, or None when not recording or without a pose.
        """
        if self._context.mode != SessionMode.RECORDING:
            return None
        if live_pose is None or not name or not name.strip():
            return None

        return self._recorder.append_landmark(
            pose=live_pose,
            label=name.strip(),
            source=LandmarkSource.MANUAL,
            snapshot=snapshot,
            timestamp=now
        )
