"""Append-only side-table for recognition results.

Nodes never change after creation. Text and object labels that arrive
after a node was appended are recorded here, keyed by node id, and merged
into fresh node copies when the recording is finalized.
"""

import dataclasses
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from breadcrumbs.types import PathNode


@dataclass(frozen=True)
class NodeAnnotation:
    """One recognition event attached to a node.

    Attributes:
        node_id: Target node.
        ai_label: Recognized text, if any.
        detected_object: Recognized object label, if any.
    """
    node_id: str
    ai_label: Optional[str] = None
    detected_object: Optional[str] = None


class AnnotationTable:
    """Append-only annotation log keyed by node id."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[NodeAnnotation]] = {}
        self._lock = threading.Lock()

    def record(
        self,
        node_id: str,
        ai_label: Optional[str] = None,
        detected_object: Optional[str] = None
    ) -> Optional[NodeAnnotation]:
        """Append an annotation for a node.

        Args:
            node_id: Target node id.
            ai_label: Recognized text.
            detected_object: Recognized object label.

        Returns:
            The stored annotation, or None when both labels are empty.
        """
        if ai_label is None and detected_object is None:
            return None

        annotation = NodeAnnotation(
            node_id=node_id,
            ai_label=ai_label,
            detected_object=detected_object
        )
        with self._lock:
            self._entries.setdefault(node_id, []).append(annotation)
        return annotation

    def history(self, node_id: str) -> List[NodeAnnotation]:
        """All annotations recorded for a node, oldest first."""
        with self._lock:
            return list(self._entries.get(node_id, []))

    def latest(self, node_id: str) -> NodeAnnotation:
        """Collapse a node's history into its most recent labels.

        Each field takes the last non-empty value recorded for it.
        """
        ai_label: Optional[str] = None
        detected_object: Optional[str] = None
        for entry in self.history(node_id):
            if entry.ai_label is not None:
                ai_label = entry.ai_label
            if entry.detected_object is not None:
                detected_object = entry.detected_object
        return NodeAnnotation(node_id=node_id, ai_label=ai_label, detected_object=detected_object)

    def apply(self, node: PathNode) -> PathNode:
        """Return a copy of node with its recorded annotations merged.

        Labels set at creation win for landmark nodes, whose ai_label is the
        confirmed landmark name.
        """
        merged = self.latest(node.node_id)
        if merged.ai_label is None and merged.detected_object is None:
            return node

        ai_label = node.ai_label
        if ai_label is None or not node.is_manual_landmark:
            ai_label = merged.ai_label if merged.ai_label is not None else node.ai_label

        detected_object = merged.detected_object
        if detected_object is None:
            detected_object = node.detected_object

        return dataclasses.replace(node, ai_label=ai_label, detected_object=detected_object)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())

    def __contains__(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._entries
