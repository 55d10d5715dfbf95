"""Structured event logger for recording and navigation sessions."""

import json
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

import numpy as np


class EventLogger:
    """Logger that keeps session events in memory and optionally as JSONL.

    Events are plain dicts with a UTC timestamp, an event type and arbitrary
    JSON-serializable fields. The in-memory buffer is bounded so a long
    navigation session cannot grow it without limit.
    """

    def __init__(
        self,
        log_path: Optional[Union[str, Path]] = None,
        max_events: int = 1000
    ) -> None:
        """Initialize logger.

        Args:
            log_path: Optional JSONL file to append events to. Its parent
                directory is created if needed.
            max_events: Size of the in-memory event buffer.
        """
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self._file = None
        self._log_file: Optional[Path] = None

        if log_path is not None:
            self._log_file = Path(log_path)
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._log_file, "a", encoding="utf-8")

    @property
    def events(self) -> List[Dict[str, Any]]:
        """Snapshot of buffered events, oldest first."""
        return list(self._events)

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        """Buffered events with the given type."""
        return [event for event in self._events if event["event_type"] == event_type]

    def log_event(self, event_type: str, **fields: Any) -> Dict[str, Any]:
        """Log a single event.

        Args:
            event_type: Upper-case event name, e.g. "NODE_EMITTED".
            **fields: Event payload.

        Returns:
            The serialized log entry.
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event_type": event_type,
        }
        log_entry.update(self._serialize(fields))
        self._events.append(log_entry)

        if self._file is not None:
            json_line = json.dumps(log_entry, ensure_ascii=False)
            self._file.write(json_line + "\n")
            self._file.flush()

        return log_entry

    def _serialize(self, obj: Any) -> Any:
        """Serialize object to JSON-serializable format.

        Converts numpy arrays and scalars, enums, Path objects and datetime
        objects.

        Args:
            obj: Object to serialize.

        Returns:
            JSON-serializable representation of the object.
        """
        if isinstance(obj, (Path, datetime)):
            return str(obj)
        elif isinstance(obj, Enum):
            return obj.value
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.generic):
            return obj.item()
        elif isinstance(obj, dict):
            return {k: self._serialize(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._serialize(item) for item in obj]
        else:
            return obj

    def close(self) -> None:
        """Close the JSONL file if one is open."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __del__(self) -> None:
        """Close file on deletion."""
        if getattr(self, "_file", None):
            self._file.close()
