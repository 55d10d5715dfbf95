"""Configuration for path recording and landmark annotation.

Module-level defaults for the recording side of the engine. Components take
keyword overrides at construction time; these values are only the defaults.
"""

from typing import List

# Distance gate between consecutive breadcrumbs (meters).
# Tightened from 1.2 m to give relocalization a denser set of nodes.
SAMPLING_DISTANCE_M: float = 0.8

# Obstacle point clouds are accepted at most every 0.2 s (5 Hz).
OBSTACLE_MIN_INTERVAL_S: float = 0.2

# Upper bound on points kept from a single obstacle sample after striding.
MAX_OBSTACLE_POINTS_PER_SAMPLE: int = 500

# Meters per building floor. Fixed assumption, not a tuning knob.
FLOOR_HEIGHT_M: float = 3.0

# Seconds before an unanswered landmark prompt dismisses itself.
LANDMARK_PROMPT_TIMEOUT_S: float = 8.0

# Recognized text shorter than this is OCR noise.
MIN_TEXT_LENGTH: int = 3

# Detected objects at or below this confidence are dropped.
MIN_OBJECT_CONFIDENCE: float = 0.4

# Location-indicative words. Order matters: the first entry found wins.
LANDMARK_LEXICON: List[str] = [
    "Room",
    "Exit",
    "Stairs",
    "Stairway",
    "Elevator",
    "Lift",
    "Restroom",
    "Toilet",
    "Washroom",
    "Office",
    "Lobby",
    "Entrance",
    "Reception",
    "Hall",
    "Corridor",
    "Floor",
    "Level",
    "Suite",
    "Lab",
    "Library",
    "Cafeteria",
    "Gate",
    "Door",
]


def get_landmark_lexicon() -> List[str]:
    """Get a copy of the landmark lexicon.

    Returns a copy so callers cannot mutate the module default.

    Returns:
        List of lexicon words in priority order.
    """
    return list(LANDMARK_LEXICON)
