"""Candidate selection for relocalization."""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from breadcrumbs.transforms import distance_between
from breadcrumbs.types import PathNode
from localization.config import LOCAL_SEARCH_MIN_SCORE, LOCAL_SEARCH_RADIUS_M, MAX_CANDIDATES


@dataclass(frozen=True)
class Candidate:
    """A node considered for matching.

    Attributes:
        index: Position of the node in the loaded sequence.
        node: The node itself.
        distance_m: Distance from the map-space estimate.
    """
    index: int
    node: PathNode
    distance_m: float


def select_candidates(
    nodes: Sequence[PathNode],
    map_position: np.ndarray,
    alignment_score: float,
    local_search_min_score: float = LOCAL_SEARCH_MIN_SCORE,
    radius_m: float = LOCAL_SEARCH_RADIUS_M,
    k: int = MAX_CANDIDATES
) -> List[Candidate]:
    """Pick the nodes to score against the live frame.

    Only nodes with an image reference can be matched. When the current
    alignment is confident the search is local (within ``radius_m``),
    otherwise it covers the whole path. Results are ordered closest first
    with explicit tie-breaking by sequence index, then capped to ``k``.

    Args:
        nodes: Loaded node sequence.
        map_position: Live position in the current map-space estimate.
        alignment_score: Current alignment score.
        local_search_min_score: Score above which the search is local.
        radius_m: Local search radius in meters.
        k: Maximum number of candidates to return.

    Returns:
        List of candidates sorted by distance (ascending).
    """
    local = alignment_score > local_search_min_score

    candidates = []
    for index, node in enumerate(nodes):
        if node.image_reference is None:
            continue

        distance_m = distance_between(node.position, map_position)
        if local and distance_m > radius_m:
            continue

        candidates.append(Candidate(index=index, node=node, distance_m=distance_m))

    # Sort by distance (ascending) with tie-break by index (ascending)
    candidates_sorted = sorted(candidates, key=lambda c: (c.distance_m, c.index))

    return candidates_sorted[:k]
