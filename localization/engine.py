"""Visual relocalization against a recorded path."""

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from breadcrumbs.transforms import as_pose, identity, inv_T, position_of
from breadcrumbs.types import PathNode
from localization.candidates import select_candidates
from localization.config import get_relocalization_config
from localization.correction import CorrectionStrategy, SnapCorrection
from localization.signatures import FeatureExtractor, SignatureCache, similarity_from_distance
from runtime.logger import EventLogger


@dataclass
class RelocalizationState:
    """Session-scoped alignment state.

    Attributes:
        world_offset: Transform from recorded map space to the live frame.
        alignment_score: Similarity of the last attempt's best candidate.
        best_match_node_id: Node of the last accepted match.
        best_match_index: Sequence index of the last accepted match.
        locked: True once any match has been accepted.
    """
    world_offset: np.ndarray = field(default_factory=identity)
    alignment_score: float = 0.0
    best_match_node_id: Optional[str] = None
    best_match_index: Optional[int] = None
    locked: bool = False


@dataclass(frozen=True, eq=False)
class MatchResult:
    """Outcome of one relocalization attempt.

    Attributes:
        generation: Engine generation the attempt belongs to.
        attempted_at: Attempt time in seconds.
        search: "local" or "global".
        candidate_count: Number of candidates selected.
        scored_count: Candidates that had a usable signature.
        best_score: Highest similarity, or None when nothing was scored.
        best_node_id: Node with the highest similarity.
        best_index: Sequence index of that node.
        accepted: True if best_score reached the acceptance threshold.
        measured_offset: Offset implied by the match, when accepted.
    """
    generation: int
    attempted_at: float
    search: str
    candidate_count: int
    scored_count: int
    best_score: Optional[float] = None
    best_node_id: Optional[str] = None
    best_index: Optional[int] = None
    accepted: bool = False
    measured_offset: Optional[np.ndarray] = None


class RelocalizationEngine:
    """Finds where the live view is on a recorded path.

    Attempts are rate-limited and at most one runs at a time. An attempt
    only computes a ``MatchResult``; ``apply`` commits it to the state, so
    results computed on a worker thread can be handed back to the session
    loop and applied there.
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        config: Optional[Dict[str, Any]] = None,
        correction: Optional[CorrectionStrategy] = None,
        scorer: Optional[Callable[[Any, Any], float]] = None,
        image_source: Optional[Callable[[PathNode], Any]] = None,
        executor: Optional[Executor] = None,
        logger: Optional[EventLogger] = None
    ) -> None:
        """Initialize engine.

        Args:
            extractor: Feature signature collaborator.
            config: Overrides for ``localization.config`` settings.
            correction: Offset update strategy; snaps by default.
            scorer: Similarity of two signatures in [0, 1]; defaults to the
                extractor distance mapped with ``similarity_from_distance``.
            image_source: Loads a node's stored snapshot for lazy signature
                generation when it is not cached.
            executor: Runs attempts off the calling thread when given.
            logger: Event logger.
        """
        self.config = get_relocalization_config(config)
        self._extractor = extractor
        self._correction = correction if correction is not None else SnapCorrection()
        self._scorer = scorer if scorer is not None else self._distance_score
        self._image_source = image_source
        self._executor = executor
        self._logger = logger if logger is not None else EventLogger()

        self.state = RelocalizationState()
        self.cache = SignatureCache()
        self._nodes: Tuple[PathNode, ...] = ()
        self._generation = 0
        self._busy = False
        self._last_attempt_at: Optional[float] = None
        self._gate = threading.Lock()

    @property
    def nodes(self) -> Tuple[PathNode, ...]:
        return self._nodes

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def generation(self) -> int:
        return self._generation

    def _distance_score(self, a: Any, b: Any) -> float:
        distance = self._extractor.distance(a, b)
        return similarity_from_distance(distance, self.config["signature_distance_scale"])

    def load_path(self, nodes: Sequence[PathNode]) -> None:
        """Load a path for a new navigation session.

        Clears the signature cache and returns to the unlocalized state.
        """
        self.cancel()
        self._nodes = tuple(nodes)
        self.cache.clear()
        self.reset()

    def reset(self) -> None:
        """Forget the current alignment."""
        self.state = RelocalizationState()
        self._last_attempt_at = None

    def cancel(self) -> None:
        """Discard the effect of any attempt still in flight."""
        self._generation += 1

    def preload(self, images: Dict[str, Any]) -> int:
        """Compute signatures for the loaded nodes that have snapshots.

        Args:
            images: Snapshots keyed by node id.

        Returns:
            Number of signatures stored.
        """
        stored = 0
        for node in self._nodes:
            if node.image_reference is None or node.node_id in self.cache:
                continue
            image = images.get(node.node_id)
            if image is None:
                continue
            if self.cache.put(node.node_id, self._extractor.signature(image)):
                stored += 1

        self._logger.log_event("SIGNATURES_PRELOADED", count=stored, nodes=len(self._nodes))
        return stored

    def to_map_frame(self, live_pose: np.ndarray) -> np.ndarray:
        """Express a live pose in the current map-space estimate."""
        return inv_T(self.state.world_offset) @ as_pose(live_pose)

    def should_attempt(self, now: float) -> bool:
        """True if an attempt is allowed at this time."""
        if self._busy:
            return False
        if self._last_attempt_at is None:
            return True
        return now - self._last_attempt_at >= self.config["attempt_interval_s"]

    def _signature_for(self, node: PathNode) -> Optional[Any]:
        signature = self.cache.get(node.node_id)
        if signature is not None or self._image_source is None:
            return signature

        image = self._image_source(node)
        if image is None:
            return None
        signature = self._extractor.signature(image)
        self.cache.put(node.node_id, signature)
        return signature

    def attempt(
        self,
        live_pose: np.ndarray,
        frame: Any,
        now: float,
        world_offset: Optional[np.ndarray] = None,
        alignment_score: Optional[float] = None,
        generation: Optional[int] = None
    ) -> MatchResult:
        """Score the live frame against nearby recorded nodes.

        Does not change the alignment state; see ``apply``.

        Args:
            live_pose: Current pose in the live tracking frame.
            frame: Current camera frame.
            now: Attempt time in seconds.
            world_offset: Offset snapshot; the current state if None.
            alignment_score: Score snapshot; the current state if None.
            generation: Generation tag; the current generation if None.

        Returns:
            The attempt's MatchResult.
        """
        live_pose = as_pose(live_pose)
        if world_offset is None:
            world_offset = self.state.world_offset
        if alignment_score is None:
            alignment_score = self.state.alignment_score
        if generation is None:
            generation = self._generation

        map_pose = inv_T(world_offset) @ live_pose
        search = "local" if alignment_score > self.config["local_search_min_score"] else "global"
        candidates = select_candidates(
            self._nodes,
            position_of(map_pose),
            alignment_score,
            local_search_min_score=self.config["local_search_min_score"],
            radius_m=self.config["local_search_radius_m"],
            k=self.config["max_candidates"]
        )

        live_signature = self._extractor.signature(frame) if candidates else None
        if live_signature is None:
            return MatchResult(
                generation=generation,
                attempted_at=now,
                search=search,
                candidate_count=len(candidates),
                scored_count=0
            )

        best_score: Optional[float] = None
        best = None
        scored = 0
        for candidate in candidates:
            signature = self._signature_for(candidate.node)
            if signature is None:
                continue
            scored += 1

            score = float(self._scorer(live_signature, signature))
            if best_score is None or score > best_score:
                best_score = score
                best = candidate

        if best is None:
            return MatchResult(
                generation=generation,
                attempted_at=now,
                search=search,
                candidate_count=len(candidates),
                scored_count=0
            )

        accepted = best_score >= self.config["accept_threshold"]
        measured_offset = None
        if accepted:
            # Maps the matched node's recorded pose onto the live pose
            measured_offset = live_pose @ inv_T(best.node.pose)

        return MatchResult(
            generation=generation,
            attempted_at=now,
            search=search,
            candidate_count=len(candidates),
            scored_count=scored,
            best_score=best_score,
            best_node_id=best.node.node_id,
            best_index=best.index,
            accepted=accepted,
            measured_offset=measured_offset
        )

    def apply(self, result: MatchResult) -> bool:
        """Commit an attempt's result to the alignment state.

        Results from a cancelled generation are discarded. A result with no
        scored candidate leaves the score unchanged; a rejected one reports
        its best score; an accepted one also updates the offset.

        Returns:
            True if the result was an accepted match and was applied.
        """
        if result.generation != self._generation:
            self._logger.log_event("RELOC_DISCARDED", generation=result.generation)
            return False

        if result.best_score is None:
            self._logger.log_event(
                "RELOC_NO_SCORE",
                search=result.search,
                candidates=result.candidate_count
            )
            return False

        self.state.alignment_score = result.best_score
        if not result.accepted:
            self._logger.log_event(
                "RELOC_REJECTED",
                search=result.search,
                score=result.best_score,
                node_id=result.best_node_id
            )
            return False

        self.state.world_offset = self._correction.correct(
            self.state.world_offset,
            result.measured_offset
        )
        self.state.best_match_node_id = result.best_node_id
        self.state.best_match_index = result.best_index
        self.state.locked = True

        self._logger.log_event(
            "RELOC_ACCEPTED",
            search=result.search,
            score=result.best_score,
            node_id=result.best_node_id,
            index=result.best_index,
            correction=self._correction.name
        )
        return True

    def request(
        self,
        live_pose: np.ndarray,
        frame: Any,
        now: float,
        deliver: Callable[[MatchResult], None]
    ) -> bool:
        """Start an attempt if the rate limit and busy flag allow it.

        The result is passed to ``deliver``, inline or from the executor's
        worker thread. Callers apply it with ``apply``.

        Returns:
            True if an attempt was started, False if it was dropped.
        """
        if live_pose is None or frame is None:
            return False

        with self._gate:
            if not self.should_attempt(now):
                return False
            self._busy = True
            self._last_attempt_at = now

        # Snapshot so a worker never reads state the session loop is writing
        world_offset = self.state.world_offset.copy()
        alignment_score = self.state.alignment_score
        generation = self._generation

        self._logger.log_event("RELOC_ATTEMPT", generation=generation, score=alignment_score)

        if self._executor is None:
            try:
                result = self.attempt(live_pose, frame, now, world_offset, alignment_score, generation)
            finally:
                self._busy = False
            deliver(result)
            return True

        future = self._executor.submit(
            self.attempt, live_pose, frame, now, world_offset, alignment_score, generation
        )

        def _done(f: Future) -> None:
            self._busy = False
            if f.cancelled():
                return
            error = f.exception()
            if error is not None:
                self._logger.log_event("RELOC_FAILED", error=str(error), exception_type=type(error).__name__)
                return
            deliver(f.result())

        future.add_done_callback(_done)
        return True
