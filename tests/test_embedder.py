"""Tests for the Embedder and its fallback."""

import threading

import numpy as np
import pytest

from conftest import FailingEmbeddingSource, TableEmbeddingSource
from hive_router.embedder import Embedder, EmbeddingSource, HashingEmbeddingSource
from hive_router.errors import EmbeddingDegraded
from hive_router.similarity import cosine_similarity


class SlowSource(EmbeddingSource):
    """Source that blocks until released."""

    def __init__(self):
        self.release = threading.Event()

    def encode(self, text):
        self.release.wait(5)
        return [1.0, 0.0, 0.0, 0.0]


class TestFallback:
    """Tests for degraded-mode embedding."""

    def test_unavailable_source_falls_back_deterministically(self):
        """Test that a failing source yields identical fallback vectors and a degraded flag."""
        embedder = Embedder(dimension=32, source=FailingEmbeddingSource())

        first = embedder.embed_with_status("frontend development")
        second = embedder.embed_with_status("frontend development")

        assert first.degraded is True
        assert embedder.degraded is True
        assert isinstance(embedder.last_error, EmbeddingDegraded)
        assert first.vector == second.vector
        assert len(first.vector) == 32
        embedder.close()

    def test_no_source_is_degraded(self):
        """Test that an embedder without a source always uses the fallback."""
        embedder = Embedder(dimension=16)

        result = embedder.embed_with_status("hello world")

        assert result.degraded is True
        assert embedder.last_error is None
        assert result.vector == embedder.embed("hello world")

    def test_wrong_dimension_falls_back(self):
        """Test that a source returning the wrong length is treated as failed."""
        source = TableEmbeddingSource({"text": [1.0, 2.0]}, dimension=2)
        embedder = Embedder(dimension=8, source=source)

        result = embedder.embed_with_status("text")

        assert result.degraded is True
        assert len(result.vector) == 8
        embedder.close()

    def test_slow_source_times_out(self):
        """Test that a source slower than the timeout is abandoned."""
        source = SlowSource()
        embedder = Embedder(dimension=4, source=source, timeout_seconds=0.05)

        result = embedder.embed_with_status("slow text")
        source.release.set()

        assert result.degraded is True
        assert "did not answer" in str(embedder.last_error)
        embedder.close()


class TestRealSource:
    """Tests for the semantic path."""

    def test_source_vector_is_used(self):
        """Test that a healthy source's vector is returned unchanged."""
        source = TableEmbeddingSource({"hello": [0.6, 0.8, 0.0]}, dimension=3)
        embedder = Embedder(dimension=3, source=source)

        result = embedder.embed_with_status("hello")

        assert result.degraded is False
        assert result.vector == (0.6, 0.8, 0.0)
        assert embedder.degraded is False
        embedder.close()

    def test_recovery_clears_degraded_flag(self):
        """Test that a successful call after a failure clears the flag."""
        source = TableEmbeddingSource({"ok": [1.0, 0.0]}, dimension=2)
        embedder = Embedder(dimension=2, source=source)

        embedder.embed("bad text that maps to zero")  # zero vector is still a valid answer
        assert embedder.degraded is False

        source.table["broken"] = [1.0]
        embedder.embed("broken")
        assert embedder.degraded is True

        embedder.embed("ok")
        assert embedder.degraded is False
        assert embedder.last_error is None
        embedder.close()


class TestHashingSource:
    """Tests for the hashing fallback."""

    def test_vectors_are_normalized(self):
        """Test that fallback vectors have unit length."""
        vector = HashingEmbeddingSource(128).encode("build a react frontend component")

        assert len(vector) == 128
        assert float(np.linalg.norm(vector)) == pytest.approx(1.0)

    def test_empty_text_is_zero_vector(self):
        """Test that empty text hashes to the zero vector."""
        assert HashingEmbeddingSource(8).encode("") == [0.0] * 8

    def test_shared_words_are_closer(self):
        """Test that texts sharing words are more similar than unrelated ones."""
        source = HashingEmbeddingSource(384)
        a = source.encode("react frontend component")
        b = source.encode("react frontend")
        c = source.encode("database migration")

        assert cosine_similarity(a, b) > cosine_similarity(a, c)

    def test_stable_across_instances(self):
        """Test that output depends only on text and dimension."""
        assert HashingEmbeddingSource(64).encode("same text") == HashingEmbeddingSource(64).encode("same text")
