"""Durable key-value backends for memory records and outcome facts."""

import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterator, Optional

from hive_router.errors import PersistenceError

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,200}$")


class PersistenceBackend(ABC):
    """Contract every storage backend satisfies.

    ``write`` must be atomic per key: after a crash a reader sees either the
    previous value or the new one, never a partial document.
    """

    @abstractmethod
    def write(self, key: str, record: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def read_all(self) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield every readable (key, record) pair, skipping unreadable ones."""

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def close(self) -> None:
        """Release resources. Override in subclasses that hold connections."""


class InMemoryBackend(PersistenceBackend):
    """Non-durable backend keeping JSON copies in a dict."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def write(self, key: str, record: dict[str, Any]) -> None:
        payload = json.dumps(record)
        with self._lock:
            self._data[key] = payload

    def read_all(self) -> Iterator[tuple[str, dict[str, Any]]]:
        with self._lock:
            items = list(self._data.items())
        for key, payload in items:
            yield key, json.loads(payload)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileSystemBackend(PersistenceBackend):
    """One JSON document per key inside a directory.

    Documents are written to a temporary file in the same directory, synced,
    then renamed over the target, so a crash mid-write leaves only a stray
    ``.tmp`` file that :meth:`read_all` ignores.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise PersistenceError(f"unsafe storage key: {key!r}")
        return self.directory / f"{key}{self.SUFFIX}"

    def write(self, key: str, record: dict[str, Any]) -> None:
        target = self._path_for(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(record, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"failed to write {key}: {e}") from e

    def read_all(self) -> Iterator[tuple[str, dict[str, Any]]]:
        for path in sorted(self.directory.glob(f"*{self.SUFFIX}")):
            key = path.name[: -len(self.SUFFIX)]
            try:
                with open(path, encoding="utf-8") as f:
                    record = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable record %s: %s", path.name, e)
                continue
            if not isinstance(record, dict):
                logger.warning("Skipping record %s: not a JSON object", path.name)
                continue
            yield key, record

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"failed to delete {key}: {e}") from e


class ChromaBackend(PersistenceBackend):
    """Backend storing records in a ChromaDB collection.

    The full record is kept as the document; its ``embedding`` field, when
    present, is also handed to Chroma so the collection stays queryable from
    outside this process.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "agent_memories",
        embedding_field: str = "embedding",
        client: Optional[Any] = None,
    ):
        self.persist_directory = persist_directory
        self.collection_name = collection_name
        self.embedding_field = embedding_field
        self._client = client
        self._collection = None
        self._lock = threading.Lock()

    def _get_collection(self):
        with self._lock:
            if self._collection is None:
                if self._client is None:
                    # Import here to make the dependency optional
                    try:
                        import chromadb
                    except ImportError as e:
                        raise ImportError(
                            "chromadb is not installed. Run: pip install hive-router[chroma]"
                        ) from e
                    Path(self.persist_directory).mkdir(parents=True, exist_ok=True)
                    self._client = chromadb.PersistentClient(path=self.persist_directory)
                self._collection = self._client.get_or_create_collection(
                    name=self.collection_name,
                    metadata={"hnsw:space": "cosine"},
                )
        return self._collection

    def write(self, key: str, record: dict[str, Any]) -> None:
        embedding = record.get(self.embedding_field)
        if not embedding:
            raise PersistenceError(f"record {key} has no '{self.embedding_field}' to index")
        try:
            self._get_collection().upsert(
                ids=[key],
                embeddings=[list(embedding)],
                documents=[json.dumps(record)],
                metadatas=[{"agent_id": str(record.get("agent_id", "")), "category": str(record.get("category", ""))}],
            )
        except ImportError:
            raise
        except Exception as e:
            raise PersistenceError(f"failed to write {key} to chromadb: {e}") from e

    def read_all(self) -> Iterator[tuple[str, dict[str, Any]]]:
        try:
            results = self._get_collection().get(include=["documents"])
        except ImportError:
            raise
        except Exception as e:
            raise PersistenceError(f"failed to read chromadb collection: {e}") from e

        for key, document in zip(results.get("ids") or [], results.get("documents") or []):
            try:
                record = json.loads(document)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable record %s: %s", key, e)
                continue
            yield key, record

    def delete(self, key: str) -> None:
        try:
            self._get_collection().delete(ids=[key])
        except Exception as e:
            raise PersistenceError(f"failed to delete {key} from chromadb: {e}") from e


def create_backend(kind: str, data_directory: str | Path, collection_name: str = "agent_memories") -> PersistenceBackend:
    """Create a backend by name: filesystem, chromadb or memory."""
    if kind == "filesystem":
        return FileSystemBackend(data_directory)
    if kind == "chromadb":
        return ChromaBackend(persist_directory=str(data_directory), collection_name=collection_name)
    if kind == "memory":
        return InMemoryBackend()
    raise ValueError(f"unknown persistence backend: {kind}")
