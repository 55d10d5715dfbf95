"""Configuration for visual relocalization.

These defaults define the relocalization policy. ``get_relocalization_config``
returns a copy so tests and callers can override values per engine without
mutating module state.
"""

from typing import Any, Dict

# Minimum spacing between relocalization attempts (seconds).
ATTEMPT_INTERVAL_S: float = 1.0

# Similarity required to accept a match. A score equal to it is accepted.
ACCEPT_THRESHOLD: float = 0.65

# Above this alignment score the search is restricted to nearby nodes.
LOCAL_SEARCH_MIN_SCORE: float = 0.4

# Radius of the localized search around the map-space estimate (meters).
LOCAL_SEARCH_RADIUS_M: float = 10.0

# Maximum number of candidates scored per attempt.
MAX_CANDIDATES: int = 20

# Feature distance that maps to a similarity of zero.
SIGNATURE_DISTANCE_SCALE: float = 20.0

# Grid size of the reference thumbnail signature (cells per side).
THUMBNAIL_GRID: int = 16

RELOCALIZATION_CONFIG: Dict[str, Any] = {
    "attempt_interval_s": ATTEMPT_INTERVAL_S,
    "accept_threshold": ACCEPT_THRESHOLD,
    "local_search_min_score": LOCAL_SEARCH_MIN_SCORE,
    "local_search_radius_m": LOCAL_SEARCH_RADIUS_M,
    "max_candidates": MAX_CANDIDATES,
    "signature_distance_scale": SIGNATURE_DISTANCE_SCALE,
}


def get_relocalization_config(overrides: Dict[str, Any] = None) -> Dict[str, Any]:
    """Get a copy of the relocalization config with optional overrides.

    Args:
        overrides: Keys to replace. Unknown keys are rejected.

    Returns:
        New config dictionary.

    Raises:
        KeyError: If an override key is not a known setting.
    """
    config = RELOCALIZATION_CONFIG.copy()
    for key, value in (overrides or {}).items():
        if key not in config:
            raise KeyError(f"unknown relocalization setting: {key}")
        config[key] = value
    return config
