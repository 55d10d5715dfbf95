"""Tests for feature signatures and the signature cache."""

import numpy as np
import pytest

from localization.signatures import (
    SignatureCache,
    ThumbnailSignatureExtractor,
    normalize,
    similarity_from_distance,
)


def test_similarity_mapping():
    """Test the distance to similarity mapping and its clamping."""
    assert similarity_from_distance(0.0) == 1.0
    assert similarity_from_distance(20.0) == 0.0
    assert similarity_from_distance(35.0) == 0.0, "Large distances clamp to zero"
    assert similarity_from_distance(7.0) == pytest.approx(0.65)
    assert isinstance(similarity_from_distance(np.float32(5.0)), float)


def test_normalize_zero_vector():
    """Test that normalizing a zero vector returns it unchanged."""
    vec = np.zeros(4)

    assert np.array_equal(normalize(vec), vec)
    assert np.linalg.norm(normalize(np.array([3.0, 4.0]))) == pytest.approx(1.0)


def test_identical_images_have_zero_distance():
    """Test that an image matches itself perfectly."""
    extractor = ThumbnailSignatureExtractor()
    image = np.random.default_rng(0).random((64, 48))

    a = extractor.signature(image)
    b = extractor.signature(image.copy())

    assert extractor.distance(a, b) == pytest.approx(0.0)


def test_distance_range():
    """Test that distances between different images stay on the 0..20 scale."""
    extractor = ThumbnailSignatureExtractor()
    rng = np.random.default_rng(1)
    a = extractor.signature(rng.random((64, 64)))
    b = extractor.signature(rng.random((64, 64)))

    distance = extractor.distance(a, b)

    assert 0.0 < distance <= 20.0
    assert extractor.distance(a, -a) == pytest.approx(20.0), "Opposite signatures are the farthest"


def test_color_images_are_supported():
    """Test that HxWxC frames are reduced to grayscale."""
    extractor = ThumbnailSignatureExtractor(grid=8)
    image = np.random.default_rng(2).random((32, 32, 3))

    signature = extractor.signature(image)

    assert signature.shape == (64,)
    assert np.linalg.norm(signature) == pytest.approx(1.0)


def test_unusable_images_have_no_signature():
    """Test that missing, tiny and featureless frames fail extraction."""
    extractor = ThumbnailSignatureExtractor()

    assert extractor.signature(None) is None
    assert extractor.signature(np.random.default_rng(3).random((8, 8))) is None
    assert extractor.signature(np.full((64, 64), 0.5)) is None


def test_mismatched_signatures_are_infinitely_far():
    """Test that signatures from different grids never match."""
    coarse = ThumbnailSignatureExtractor(grid=4)
    fine = ThumbnailSignatureExtractor(grid=8)
    image = np.random.default_rng(4).random((32, 32))

    assert coarse.distance(coarse.signature(image), fine.signature(image)) == float("inf")


def test_cache_is_write_once():
    """Test that the first stored signature for a node is kept."""
    cache = SignatureCache()
    first = np.ones(3)

    assert cache.put("a", first)
    assert not cache.put("a", np.zeros(3)), "Second write should be refused"
    assert cache.get("a") is first
    assert not cache.put("b", None), "Failed extractions are not cached"
    assert len(cache) == 1

    cache.clear()
    assert "a" not in cache
