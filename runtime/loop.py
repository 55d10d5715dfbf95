"""Session loop: the single ingestion point for sensor and recognition events."""

import queue
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

import numpy as np

from breadcrumbs.config import MIN_OBJECT_CONFIDENCE, MIN_TEXT_LENGTH
from breadcrumbs.landmarks import LandmarkAnnotator, PendingLandmark
from breadcrumbs.recorder import PathRecorder
from breadcrumbs.saved_map import SavedMap
from breadcrumbs.types import FinalizedPath, PathNode
from localization.engine import MatchResult, RelocalizationEngine
from localization.signatures import ThumbnailSignatureExtractor
from runtime.logger import EventLogger
from runtime.navigation import GuidanceUpdate, NavigationGuide
from runtime.providers import LimitedReason, TrackingProvider, TrackingQuality, tracking_status_message
from runtime.session import SessionContext, SessionMode


@dataclass(frozen=True, eq=False)
class PoseSample:
    """One tick of the tracking stream.

    Attributes:
        timestamp: Sample time in seconds.
        pose: 4x4 camera pose, or None when tracking has no pose.
        steps: Pedometer step count.
        heading: Compass heading in degrees.
        altitude: Barometric relative altitude in meters.
        frame: Camera frame, if one was captured this tick.
        quality: Tracking quality reported with the sample.
        limited_reason: Why tracking is limited, if it is.
    """
    timestamp: float
    pose: Optional[np.ndarray]
    steps: int = 0
    heading: float = 0.0
    altitude: float = 0.0
    frame: Optional[Any] = None
    quality: TrackingQuality = TrackingQuality.NORMAL
    limited_reason: Optional[LimitedReason] = None


@dataclass(frozen=True, eq=False)
class RecognizedText:
    """Text read from a camera frame.

    ``node_id`` pins the annotation to the node captured with the frame;
    without it the annotation goes to the last node at ingestion time.
    """
    text: str
    timestamp: float
    node_id: Optional[str] = None
    pose: Optional[np.ndarray] = None
    snapshot: Optional[Any] = None


@dataclass(frozen=True)
class DetectedObject:
    label: str
    confidence: float
    timestamp: float
    node_id: Optional[str] = None


@dataclass(frozen=True, eq=False)
class ObstacleSample:
    points: np.ndarray
    timestamp: float


@dataclass(frozen=True, eq=False)
class PlaneUpdate:
    plane_id: str
    center: np.ndarray
    extent: Tuple[float, float]
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))


SessionEvent = Union[PoseSample, RecognizedText, DetectedObject, ObstacleSample, PlaneUpdate]


class SessionLoop:
    """Owns the components of one device session and drives them.

    Collaborators ``post`` events from any thread. Relocalization results
    computed on a worker come back through a second queue. All component
    state changes happen inside ``tick`` or a command method, both called
    from the session thread.
    """

    def __init__(
        self,
        context: Optional[SessionContext] = None,
        recorder: Optional[PathRecorder] = None,
        engine: Optional[RelocalizationEngine] = None,
        guide: Optional[NavigationGuide] = None,
        annotator: Optional[LandmarkAnnotator] = None,
        logger: Optional[EventLogger] = None
    ) -> None:
        """Initialize loop, creating default components where none are given.

        Args:
            context: Session context shared by all components.
            recorder: Path recorder.
            engine: Relocalization engine; uses the thumbnail extractor and
                runs inline by default.
            guide: Navigation guide bound to ``context``.
            annotator: Landmark annotator bound to ``context`` and ``recorder``.
            logger: Event logger shared by default components.
        """
        self.logger = logger if logger is not None else EventLogger()
        self.context = context if context is not None else SessionContext()
        self.recorder = recorder if recorder is not None else PathRecorder(logger=self.logger)
        self.engine = engine if engine is not None else RelocalizationEngine(
            ThumbnailSignatureExtractor(), logger=self.logger
        )
        self.guide = guide if guide is not None else NavigationGuide(self.context, logger=self.logger)
        self.annotator = annotator if annotator is not None else LandmarkAnnotator(
            self.context, self.recorder, logger=self.logger
        )

        self._events: "queue.Queue[SessionEvent]" = queue.Queue()
        self._results: "queue.Queue[MatchResult]" = queue.Queue()

        self.last_pose: Optional[np.ndarray] = None
        self.last_frame: Optional[Any] = None
        self.last_guidance: Optional[GuidanceUpdate] = None
        self.status_message = "Initializing AR..."
        self._map: Optional[SavedMap] = None

    @property
    def mode(self) -> SessionMode:
        return self.context.mode

    @property
    def pending_landmark(self) -> Optional[PendingLandmark]:
        return self.annotator.pending

    @property
    def saved_map(self) -> Optional[SavedMap]:
        return self._map

    def post(self, event: SessionEvent) -> None:
        """Queue an event for the next tick. Safe from any thread."""
        self._events.put(event)

    def poll(self, provider: TrackingProvider, timestamp: float, **scalars: Any) -> PoseSample:
        """Read the provider's current state and queue it as a pose sample.

        Args:
            provider: Live tracking source.
            timestamp: Sample time in seconds.
            **scalars: ``steps``, ``heading`` and ``altitude`` readings.

        Returns:
            The queued sample.
        """
        sample = PoseSample(
            timestamp=timestamp,
            pose=provider.current_pose(),
            frame=provider.current_frame_image(),
            quality=provider.tracking_quality(),
            **scalars
        )
        self.post(sample)
        return sample

    def tick(self, now: float) -> Optional[GuidanceUpdate]:
        """Run one step of the session.

        Applies finished relocalization results, fires the landmark prompt
        timer, then drains and dispatches queued events. Results delivered
        while dispatching (inline attempts) are applied before returning.

        Args:
            now: Current time in seconds.

        Returns:
            The latest guidance update produced during this tick, if any.
        """
        self._apply_results()
        self.annotator.expire(now)

        guidance = None
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            update = self._dispatch(event)
            if update is not None:
                guidance = update

        self._apply_results()
        if guidance is not None:
            self.last_guidance = guidance
        return guidance

    def _apply_results(self) -> None:
        while True:
            try:
                result = self._results.get_nowait()
            except queue.Empty:
                return
            if self.engine.apply(result) and result.best_index is not None:
                self.guide.on_match(result.best_index)

    def _dispatch(self, event: SessionEvent) -> Optional[GuidanceUpdate]:
        if isinstance(event, PoseSample):
            return self._on_pose(event)

        if self.mode != SessionMode.RECORDING:
            return None

        if isinstance(event, RecognizedText):
            text = event.text.strip() if event.text else ""
            if len(text) < MIN_TEXT_LENGTH:
                return None
            self.recorder.update_ai_context(text=text, node_id=event.node_id)
            self.annotator.on_recognized_text(
                text,
                event.pose if event.pose is not None else self.last_pose,
                event.snapshot if event.snapshot is not None else self.last_frame,
                event.timestamp
            )
        elif isinstance(event, DetectedObject):
            if event.confidence <= MIN_OBJECT_CONFIDENCE:
                return None
            self.recorder.update_ai_context(detected_object=event.label, node_id=event.node_id)
        elif isinstance(event, ObstacleSample):
            self.recorder.on_obstacle_sample(event.points, event.timestamp)
        elif isinstance(event, PlaneUpdate):
            self.recorder.on_plane_update(event.plane_id, event.center, event.extent, event.transform)
        return None

    def _on_pose(self, sample: PoseSample) -> Optional[GuidanceUpdate]:
        message = tracking_status_message(sample.quality, sample.limited_reason)
        if message != self.status_message:
            self.status_message = message
            self.logger.log_event("TRACKING_STATUS", quality=sample.quality, message=message)

        if sample.quality == TrackingQuality.NOT_AVAILABLE or sample.pose is None:
            return None

        self.last_pose = sample.pose
        if sample.frame is not None:
            self.last_frame = sample.frame

        if self.mode == SessionMode.RECORDING:
            self.recorder.on_pose_sample(
                sample.pose, sample.steps, sample.heading, sample.altitude, sample.timestamp
            )
            return None

        if not self.guide.is_guiding:
            return None

        update = self.guide.update(sample.pose, self.engine.state.world_offset)
        if sample.frame is not None:
            self.engine.request(sample.pose, sample.frame, sample.timestamp, self._results.put)
        return update

    # Recording commands

    def start_recording(self, now: float, anchor_image: Optional[Any] = None) -> bool:
        """Begin a recording session.

        Returns:
            False if another session is active.
        """
        if not self.context.transition(SessionMode.RECORDING):
            self.logger.log_event("RECORDING_REJECTED", mode=self.mode)
            return False

        self.annotator.cancel()
        self.recorder.start(now, anchor_image=anchor_image)
        return True

    def stop_recording(self, now: Optional[float] = None) -> Optional[FinalizedPath]:
        """End the recording session and return the finalized path.

        Returns:
            The finalized path, or None if not recording.
        """
        if self.mode != SessionMode.RECORDING:
            return None

        self.annotator.cancel()
        path = self.recorder.stop(now)
        self.context.transition(SessionMode.IDLE)
        return path

    def confirm_landmark(self, now: float) -> Optional[PathNode]:
        return self.annotator.confirm(now)

    def dismiss_landmark(self) -> bool:
        return self.annotator.dismiss()

    def add_manual_landmark(self, name: str, now: float) -> Optional[PathNode]:
        """Mark the current position as a named landmark."""
        return self.annotator.add_manual(name, self.last_pose, self.last_frame, now)

    # Navigation commands

    def start_navigation(self, saved_map: SavedMap, images: Optional[dict] = None) -> bool:
        """Begin navigating a saved map.

        Args:
            saved_map: Map to follow.
            images: Stored snapshots keyed by node id, used to pre-compute
                node signatures.

        Returns:
            False if another session is active.
        """
        if not self.guide.begin(saved_map.nodes):
            return False

        self._map = saved_map
        self.engine.load_path(saved_map.nodes)
        self._drain_results()
        if images:
            self.engine.preload(images)
        self.last_guidance = None
        return True

    def stop_navigation(self) -> bool:
        """End navigation and discard in-flight relocalization work."""
        if not self.guide.is_guiding:
            return False

        self.engine.cancel()
        self._drain_results()
        self.guide.stop()
        self._map = None
        return True

    def set_destination(self, node_id: str) -> bool:
        return self.guide.set_destination(node_id, self.last_pose, self.engine.state.world_offset)

    def clear_destination(self) -> None:
        self.guide.clear_destination()

    def _drain_results(self) -> None:
        while True:
            try:
                self._results.get_nowait()
            except queue.Empty:
                return
