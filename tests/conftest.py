"""Shared fixtures for Hive Router tests."""

import math

import pytest

from hive_router.config import ClassifierConfig, Config, EmbeddingConfig, PersistenceConfig, RouterConfig
from hive_router.embedder import Embedder, EmbeddingSource
from hive_router.memory_store import MemoryStore
from hive_router.persistence import InMemoryBackend, PersistenceBackend
from hive_router.errors import PersistenceError
from hive_router.registry import Registry


AGENT_ENTRIES = [
    {
        "id": "frontend-developer",
        "name": "frontend-developer",
        "category": "development",
        "capabilities": ["code-generation"],
        "description": "Builds React user interfaces",
        "complexity": "medium",
        "system_prompt": "You are a frontend developer.",
    },
    {
        "id": "reference-builder",
        "name": "reference-builder",
        "category": "development",
        "capabilities": ["code-generation"],
        "description": "Produces reference material",
        "complexity": "medium",
    },
    {
        "id": "security-auditor",
        "name": "security-auditor",
        "category": "security",
        "capabilities": ["code-analysis", "testing-debugging"],
        "description": "Audits code for vulnerabilities",
        "complexity": "high",
    },
    {
        "id": "seo-specialist",
        "name": "seo-specialist",
        "category": "marketing",
        "capabilities": ["code-generation", "writing"],
        "description": "Improves search rankings",
        "complexity": "low",
    },
]


class TableEmbeddingSource(EmbeddingSource):
    """Embedding source returning fixed vectors for known texts."""

    def __init__(self, table, dimension):
        self.table = table
        self.dimension = dimension
        self.calls = 0

    def encode(self, text):
        self.calls += 1
        return list(self.table.get(text, [0.0] * self.dimension))


class FailingEmbeddingSource(EmbeddingSource):
    """Embedding source that is always unavailable."""

    def encode(self, text):
        raise ConnectionError("embedding service unreachable")


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose first ``failures`` writes fail."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def write(self, key, record):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise PersistenceError("disk full")
        super().write(key, record)


class UnpluggedBackend(InMemoryBackend):
    """In-memory backend whose writes fail with a raw OSError."""

    def __init__(self):
        super().__init__()
        self.attempts = 0

    def write(self, key, record):
        self.attempts += 1
        raise OSError("disk unplugged")


class BrokenBackend(PersistenceBackend):
    """Backend that can never write."""

    def __init__(self):
        self.attempts = 0

    def write(self, key, record):
        self.attempts += 1
        raise PersistenceError("storage offline")

    def read_all(self):
        return iter(())

    def delete(self, key):
        raise PersistenceError("storage offline")


def unit_vector(*components, dimension=4):
    """Build a normalized vector padded with zeros."""
    values = list(components) + [0.0] * (dimension - len(components))
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


@pytest.fixture
def agent_entries():
    return [dict(entry) for entry in AGENT_ENTRIES]


@pytest.fixture
def registry(agent_entries):
    return Registry.from_source(agent_entries)


@pytest.fixture
def embedder():
    return Embedder(dimension=64)


@pytest.fixture
def memory_store(embedder):
    return MemoryStore(embedder, InMemoryBackend())


@pytest.fixture
def hive_config(tmp_path):
    """Configuration with in-memory storage, hashed embeddings and no simulated failures."""
    return Config(
        embedding=EmbeddingConfig(enabled=False, dimension=64),
        persistence=PersistenceConfig(backend="memory", data_directory=str(tmp_path)),
        classifier=ClassifierConfig(simulated_failure_probability={"low": 0.0, "medium": 0.0, "high": 0.0}),
        router=RouterConfig(dispatch_timeout_seconds=5.0, memory_min_similarity=0.0),
    )
