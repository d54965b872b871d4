"""Text embedding with a deterministic hashing fallback."""

import hashlib
import logging
import re
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Optional

import numpy as np

from hive_router.errors import EmbeddingDegraded

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9#+.\-]+")


@dataclass(frozen=True)
class EmbeddingResult:
    """A vector together with the mode that produced it."""
    vector: tuple[float, ...]
    degraded: bool


class EmbeddingSource(ABC):
    """A source of semantic embeddings, typically backed by a model."""

    @abstractmethod
    def encode(self, text: str) -> list[float]:
        pass


class SentenceTransformerSource(EmbeddingSource):
    """Embedding source using sentence-transformers."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2", device: str = "cpu"):
        self.model_name = model_name
        self.device = device
        self._model = None
        self._load_lock = threading.Lock()

    def _get_model(self):
        with self._load_lock:
            if self._model is None:
                # Import here to make the dependency optional
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as e:
                    raise ImportError(
                        "sentence-transformers is not installed. Run: pip install hive-router[embeddings]"
                    ) from e
                self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def encode(self, text: str) -> list[float]:
        embedding = self._get_model().encode(text, normalize_embeddings=True)
        return embedding.tolist()


class HashingEmbeddingSource(EmbeddingSource):
    """Deterministic signed feature-hashing embedding.

    Each token is hashed with SHA-256 into a bucket and a sign, so texts that
    share words land near each other. Output depends only on the text and
    the dimension, never on process state or hash randomization.
    """

    def __init__(self, dimension: int):
        self.dimension = dimension

    def encode(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:8], "big") % self.dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


class Embedder:
    """Converts text into fixed-length vectors and never fails the caller.

    When the real source is missing, slow, or broken, the text is embedded by
    :class:`HashingEmbeddingSource` instead and the result is flagged as
    degraded. ``degraded`` and ``last_error`` report the most recent call.
    """

    def __init__(
        self,
        dimension: int = 384,
        source: Optional[EmbeddingSource] = None,
        timeout_seconds: float = 10.0,
    ):
        self.dimension = dimension
        self.source = source
        self.timeout_seconds = timeout_seconds
        self.fallback = HashingEmbeddingSource(dimension)
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="embedder") if source else None
        self._state_lock = threading.Lock()
        self._degraded = source is None
        self._last_error: Optional[EmbeddingDegraded] = None

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def last_error(self) -> Optional[EmbeddingDegraded]:
        return self._last_error

    def embed(self, text: str) -> tuple[float, ...]:
        """Embed text, returning only the vector."""
        return self.embed_with_status(text).vector

    def embed_with_status(self, text: str) -> EmbeddingResult:
        """Embed text and report whether the fallback was used."""
        if self.source is None:
            return self._fallback(text, None)

        try:
            vector = self._encode_with_timeout(text)
        except Exception as e:
            return self._fallback(text, e)

        with self._state_lock:
            self._degraded = False
            self._last_error = None
        return EmbeddingResult(vector=vector, degraded=False)

    def _encode_with_timeout(self, text: str) -> tuple[float, ...]:
        future = self._pool.submit(self.source.encode, text)
        try:
            raw = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            raise TimeoutError(f"embedding source did not answer within {self.timeout_seconds}s") from None

        vector = tuple(float(x) for x in raw)
        if len(vector) != self.dimension:
            raise ValueError(f"embedding source returned {len(vector)} dimensions, expected {self.dimension}")
        return vector

    def _fallback(self, text: str, cause: Optional[Exception]) -> EmbeddingResult:
        error = None
        if cause is not None:
            error = EmbeddingDegraded(f"embedding source failed, using hashed fallback: {cause}")
            logger.warning("%s", error)

        with self._state_lock:
            self._degraded = True
            self._last_error = error
        return EmbeddingResult(vector=tuple(self.fallback.encode(text)), degraded=True)

    def close(self) -> None:
        """Release the worker pool."""
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
