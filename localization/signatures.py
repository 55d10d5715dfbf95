"""Visual feature signatures and their similarity.

Real deployments plug in the platform's image feature-print extractor.
``ThumbnailSignatureExtractor`` is a deterministic numpy stand-in that
produces distances on the same 0..20 scale, so the scoring policy is the
same for both.
"""

import threading
from typing import Any, Dict, Optional, Protocol

import numpy as np

from localization.config import SIGNATURE_DISTANCE_SCALE, THUMBNAIL_GRID


class FeatureExtractor(Protocol):
    """Collaborator that turns frames into comparable signatures."""

    def signature(self, image: Any) -> Optional[Any]: ...

    def distance(self, a: Any, b: Any) -> float: ...


def similarity_from_distance(distance: float, scale: float = SIGNATURE_DISTANCE_SCALE) -> float:
    """Map a feature distance to a similarity in [0, 1].

    Distance 0 is identical (1.0); ``scale`` and beyond is no match (0.0).

    Args:
        distance: Non-negative feature distance.
        scale: Distance that maps to zero similarity.

    Returns:
        Similarity score as a Python float.
    """
    score = 1.0 - (float(distance) / scale)
    return float(max(0.0, min(1.0, score)))


def normalize(vec: np.ndarray) -> np.ndarray:
    """Normalize a vector to unit length.

    Args:
        vec: Input vector.

    Returns:
        Normalized vector; a zero vector is returned unchanged.
    """
    magnitude = float(np.linalg.norm(vec))
    if magnitude == 0.0:
        return vec
    return vec / magnitude


class ThumbnailSignatureExtractor:
    """Deterministic signature from a block-averaged grayscale thumbnail.

    The image is reduced to a ``grid`` x ``grid`` grid of mean intensities,
    centered and normalized to unit length. Two unit vectors are at most 2
    apart, so the distance is scaled by 10 to land on the 0..20 range.
    """

    def __init__(self, grid: int = THUMBNAIL_GRID) -> None:
        """Initialize extractor with the thumbnail grid size.

        Args:
            grid: Cells per side (default 16).
        """
        self.grid = grid

    def signature(self, image: Any) -> Optional[np.ndarray]:
        """Compute the signature of an image.

        Args:
            image: HxW or HxWxC pixel array.

        Returns:
            Unit-length float vector, or None for missing, too small or
            featureless (uniform) images.
        """
        if image is None:
            return None

        pixels = np.asarray(image, dtype=np.float64)
        if pixels.ndim == 3:
            pixels = pixels.mean(axis=2)
        if pixels.ndim != 2 or min(pixels.shape) < self.grid:
            return None

        # Block means over an even split of rows and columns
        cells = np.empty((self.grid, self.grid))
        for i, rows in enumerate(np.array_split(pixels, self.grid, axis=0)):
            for j, block in enumerate(np.array_split(rows, self.grid, axis=1)):
                cells[i, j] = block.mean()

        vec = cells.reshape(-1)
        vec = vec - vec.mean()
        if float(np.linalg.norm(vec)) < 1e-9:
            return None
        return normalize(vec)

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Distance between two signatures on the 0..20 scale."""
        if a.shape != b.shape:
            return float("inf")
        return float(np.linalg.norm(a - b) * 10.0)


class SignatureCache:
    """Per-node signature cache, write-once per key.

    Safe to read while a background worker populates it.
    """

    def __init__(self) -> None:
        self._signatures: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, node_id: str) -> Optional[Any]:
        with self._lock:
            return self._signatures.get(node_id)

    def put(self, node_id: str, signature: Any) -> bool:
        """Store a signature unless the key already has one.

        Returns:
            True if the signature was stored.
        """
        if signature is None:
            return False
        with self._lock:
            if node_id in self._signatures:
                return False
            self._signatures[node_id] = signature
            return True

    def clear(self) -> None:
        with self._lock:
            self._signatures.clear()

    def __contains__(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._signatures

    def __len__(self) -> int:
        with self._lock:
            return len(self._signatures)
