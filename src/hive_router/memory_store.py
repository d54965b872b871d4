"""Memory store: durable, semantically searchable interaction records."""

import json
import logging
import threading
import uuid
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hive_router.categorizer import categorize
from hive_router.config import MemoryConfig
from hive_router.embedder import Embedder
from hive_router.errors import NotFound, PersistenceError
from hive_router.persistence import PersistenceBackend
from hive_router.similarity import cosine_similarity, cosine_similarity_batch

logger = logging.getLogger(__name__)

RECORD_NAMESPACE = uuid.UUID("6f1c3e0a-8d4b-4a51-9a5e-2b7d9c1e4f30")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def record_id_for(agent_id: str, user_id: str, task_signature: str = "") -> str:
    """Derive the stable record id for an (agent, user, task signature) triple."""
    return str(uuid.uuid5(RECORD_NAMESPACE, f"{agent_id}\x1f{user_id}\x1f{task_signature}"))


class Interaction(BaseModel):
    """One exchange recorded in a memory."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    input_summary: str
    output_summary: str = ""
    quality: Optional[float] = None
    success: Optional[bool] = None


class PerformanceStats(BaseModel):
    """Aggregated execution quality for one memory record."""
    model_config = ConfigDict(frozen=True)

    success_count: int = 0
    total_count: int = 0
    average_quality: float = 0.0

    def with_outcome(self, quality: float, success: bool) -> "PerformanceStats":
        total = self.total_count + 1
        return PerformanceStats(
            success_count=self.success_count + (1 if success else 0),
            total_count=total,
            average_quality=self.average_quality + (quality - self.average_quality) / total,
        )

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_count if self.total_count else 0.0


class MemoryRecord(BaseModel):
    """The durable unit of agent memory.

    Records are immutable; every change produces a new version that replaces
    the old one in the index as a whole.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    agent_id: str
    user_id: str
    session_id: Optional[str] = None
    task_signature: str = ""
    interactions: tuple[Interaction, ...] = ()
    knowledge: dict[str, Any] = Field(default_factory=dict)
    embedding: tuple[float, ...]
    embedding_degraded: bool = False
    category: str
    performance: PerformanceStats = Field(default_factory=PerformanceStats)
    created_at: datetime
    updated_at: datetime

    def interaction_text(self) -> str:
        """All interaction summaries joined, the input to categorization."""
        parts = []
        for interaction in self.interactions:
            parts.append(interaction.input_summary)
            if interaction.output_summary:
                parts.append(interaction.output_summary)
        return " ".join(parts)

    def content_text(self, recent: int = 3) -> str:
        """Knowledge plus the most recent interactions, the input to embedding."""
        parts = []
        if self.knowledge:
            parts.append(json.dumps(self.knowledge, sort_keys=True, default=str))
        for interaction in self.interactions[-recent:] if recent > 0 else ():
            parts.append(interaction.input_summary)
            if interaction.output_summary:
                parts.append(interaction.output_summary)
        return " ".join(parts)


class MemoryDraft(BaseModel):
    """Input to :meth:`MemoryStore.add`."""
    agent_id: str
    user_id: str
    input_summary: str
    output_summary: str = ""
    session_id: Optional[str] = None
    task_signature: str = ""
    knowledge: dict[str, Any] = Field(default_factory=dict)
    quality: Optional[float] = None
    success: Optional[bool] = None
    timestamp: Optional[datetime] = None

    @property
    def record_id(self) -> str:
        return record_id_for(self.agent_id, self.user_id, self.task_signature)


class SearchFilters(BaseModel):
    """Filters accepted by :meth:`MemoryStore.search`."""
    agent_id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[str] = None
    limit: int = 10
    min_similarity: float = 0.0
    include_related: bool = False


@dataclass(frozen=True)
class MemoryHit:
    """A search result.

    Hits added by related-memory expansion carry the id of the direct hit
    they were found through and the kind of relationship.
    """
    record: MemoryRecord
    similarity: float
    related_to: Optional[str] = None
    relationship: Optional[str] = None


@dataclass(frozen=True)
class RelatedMemory:
    """A record related to another by embedding similarity."""
    record: MemoryRecord
    similarity: float
    relationship: str


class KeyedLock:
    """Per-key mutual exclusion.

    Writers for the same key are serialized while writers for different keys
    proceed in parallel. Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


class MemoryStore:
    """In-memory index over durably persisted memory records.

    ``search`` is an exhaustive O(n) cosine scan over every in-scope record.
    That is adequate for thousands of records but degrades past roughly 10^4;
    beyond that an approximate nearest-neighbour index is needed.

    Concurrency: ``add`` calls on the same record id are serialized by a
    per-id lock; calls on different ids run in parallel. Searches read an
    immutable snapshot of the index and never observe a half-built record.
    """

    def __init__(
        self,
        embedder: Embedder,
        backend: PersistenceBackend,
        config: Optional[MemoryConfig] = None,
        write_retries: int = 1,
    ):
        self.embedder = embedder
        self.backend = backend
        self.config = config or MemoryConfig()
        self.write_retries = write_retries

        self._records: dict[str, MemoryRecord] = {}
        self._index_lock = threading.Lock()
        self._record_locks = KeyedLock()

    # ============ Loading ============

    def load(self) -> int:
        """Rebuild the index from durable storage, skipping corrupt records."""
        loaded: dict[str, MemoryRecord] = {}
        skipped = 0

        for key, data in self.backend.read_all():
            try:
                record = MemoryRecord.model_validate(data)
            except ValidationError as e:
                logger.warning("Skipping corrupt memory record %s: %s", key, e.errors()[0].get("msg", e))
                skipped += 1
                continue

            if len(record.embedding) != self.embedder.dimension:
                logger.warning(
                    "Skipping memory record %s: embedding has %d dimensions, store uses %d",
                    key, len(record.embedding), self.embedder.dimension,
                )
                skipped += 1
                continue

            # Category is derived state; recompute it against the current rules
            loaded[record.id] = record.model_copy(update={"category": self.categorize(record)})

        with self._index_lock:
            self._records = loaded

        logger.info("Loaded %d memory records (%d skipped)", len(loaded), skipped)
        return len(loaded)

    # ============ Writing ============

    def categorize(self, record: MemoryRecord) -> str:
        """Derive a record's category from its interaction text."""
        return categorize(record.interaction_text(), self.config.category_rules, self.config.default_category)

    def add(self, draft: MemoryDraft) -> MemoryRecord:
        """Create a record or append the draft's interaction to the existing one.

        Raises PersistenceError when the durable write fails after retrying;
        the index is left unchanged in that case.
        """
        record_id = draft.record_id

        with self._record_locks.hold(record_id):
            with self._index_lock:
                existing = self._records.get(record_id)
            record = self._build_record(record_id, draft, existing)
            self._persist(record)

            with self._index_lock:
                self._records[record_id] = record

        logger.debug(
            "Stored memory %s for agent %s (%d interactions, category=%s)",
            record.id, record.agent_id, len(record.interactions), record.category,
        )
        return record

    def _build_record(self, record_id: str, draft: MemoryDraft, existing: Optional[MemoryRecord]) -> MemoryRecord:
        now = draft.timestamp or _utcnow()
        limit = self.config.summary_length
        interaction = Interaction(
            timestamp=now,
            input_summary=draft.input_summary[:limit],
            output_summary=draft.output_summary[:limit],
            quality=draft.quality,
            success=draft.success,
        )

        if existing is None:
            interactions: tuple[Interaction, ...] = (interaction,)
            knowledge = dict(draft.knowledge)
            performance = PerformanceStats()
            created_at = now
        else:
            interactions = (*existing.interactions, interaction)[-self.config.max_interactions:]
            knowledge = {**existing.knowledge, **draft.knowledge}
            performance = existing.performance
            created_at = existing.created_at

        if draft.quality is not None:
            success = draft.success if draft.success is not None else False
            performance = performance.with_outcome(draft.quality, success)

        # Placeholder vector and category; both are filled in from the content below
        record = MemoryRecord(
            id=record_id,
            agent_id=draft.agent_id,
            user_id=draft.user_id,
            session_id=draft.session_id or (existing.session_id if existing else None),
            task_signature=draft.task_signature,
            interactions=interactions,
            knowledge=knowledge,
            embedding=(),
            category=self.config.default_category,
            performance=performance,
            created_at=created_at,
            updated_at=now,
        )

        result = self.embedder.embed_with_status(record.content_text(self.config.content_interactions))
        return record.model_copy(update={
            "embedding": result.vector,
            "embedding_degraded": result.degraded,
            "category": self.categorize(record),
        })

    def _persist(self, record: MemoryRecord) -> None:
        payload = record.model_dump(mode="json")
        last_error: Optional[PersistenceError] = None

        for attempt in range(self.write_retries + 1):
            try:
                self.backend.write(record.id, payload)
                return
            except PersistenceError as e:
                last_error = e
            except Exception as e:
                # Anything a backend raises counts as a failed write
                last_error = PersistenceError(f"failed to write memory {record.id}: {e}")
                last_error.__cause__ = e
            logger.warning("Write of memory %s failed (attempt %d): %s", record.id, attempt + 1, last_error)

        raise last_error

    def delete(self, record_id: str) -> None:
        """Remove a record from storage and the index."""
        with self._record_locks.hold(record_id):
            with self._index_lock:
                present = record_id in self._records
            if not present:
                raise NotFound("memory", record_id)
            self.backend.delete(record_id)
            with self._index_lock:
                del self._records[record_id]

    # ============ Reading ============

    def _snapshot(self) -> list[MemoryRecord]:
        with self._index_lock:
            return list(self._records.values())

    def get(self, record_id: str) -> MemoryRecord:
        """Get a record by id."""
        with self._index_lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFound("memory", record_id)
        return record

    def record_ids(self) -> list[str]:
        """List ids of all indexed records."""
        return sorted(r.id for r in self._snapshot())

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._records)

    def search(self, query: str, filters: Optional[SearchFilters] = None, **kwargs: Any) -> list[MemoryHit]:
        """Rank in-scope records by cosine similarity to *query*.

        Results are ordered by similarity descending, ties going to the most
        recently updated record. Filters can be given as a SearchFilters or
        as keyword arguments.
        """
        if filters is None:
            filters = SearchFilters(**kwargs)
        elif kwargs:
            filters = filters.model_copy(update=kwargs)

        if filters.limit <= 0:
            return []

        candidates = [
            r for r in self._snapshot()
            if (filters.agent_id is None or r.agent_id == filters.agent_id)
            and (filters.user_id is None or r.user_id == filters.user_id)
            and (filters.category is None or r.category == filters.category)
        ]
        if not candidates:
            return []

        query_vector = self.embedder.embed(query)
        matrix = np.array([r.embedding for r in candidates], dtype=np.float64)
        similarities = cosine_similarity_batch(query_vector, matrix)

        hits = [
            MemoryHit(record=record, similarity=float(similarity))
            for record, similarity in zip(candidates, similarities)
            if similarity >= filters.min_similarity
        ]
        hits.sort(key=lambda h: (-h.similarity, -h.record.updated_at.timestamp(), h.record.id))
        hits = hits[:filters.limit]

        if filters.include_related:
            hits = self._expand_with_related(hits, candidates, filters.limit)
        return hits

    def _expand_with_related(self, hits: list[MemoryHit], pool: list[MemoryRecord], limit: int) -> list[MemoryHit]:
        """Append records related to the direct hits until *limit* is reached.

        Only records from *pool* are considered, so expansion honours the
        same agent, user and category filters as the search itself.
        """
        expanded = list(hits)
        seen = {h.record.id for h in hits}

        for hit in hits:
            added = 0
            for rel in self._related_in(hit.record, pool, len(pool)):
                if len(expanded) >= limit or added >= self.config.related_per_hit:
                    break
                if rel.record.id in seen:
                    continue
                expanded.append(MemoryHit(
                    record=rel.record,
                    similarity=rel.similarity,
                    related_to=hit.record.id,
                    relationship=rel.relationship,
                ))
                seen.add(rel.record.id)
                added += 1

        return expanded

    def related(self, record_id: str, limit: int = 5) -> list[RelatedMemory]:
        """Find records whose embeddings are close to the given record's."""
        return self._related_in(self.get(record_id), self._snapshot(), limit)

    def _related_in(self, source: MemoryRecord, pool: list[MemoryRecord], limit: int) -> list[RelatedMemory]:
        threshold = self.config.related_threshold
        related = []

        for other in pool:
            if other.id == source.id:
                continue
            similarity = cosine_similarity(source.embedding, other.embedding)
            if similarity >= threshold:
                related.append(RelatedMemory(
                    record=other,
                    similarity=similarity,
                    relationship=self._relationship(source, other, similarity),
                ))

        related.sort(key=lambda r: (-r.similarity, r.record.id))
        return related[:limit]

    @staticmethod
    def _relationship(a: MemoryRecord, b: MemoryRecord, similarity: float) -> str:
        if a.agent_id == b.agent_id:
            return "same-agent"
        if a.user_id == b.user_id:
            return "same-user"
        if similarity > 0.8:
            return "highly-similar"
        if similarity > 0.6:
            return "similar"
        return "related"

    def analytics(self) -> dict[str, Any]:
        """Summarize the indexed records."""
        records = self._snapshot()
        return {
            "total_records": len(records),
            "total_interactions": sum(len(r.interactions) for r in records),
            "by_category": dict(Counter(r.category for r in records)),
            "by_agent": dict(Counter(r.agent_id for r in records)),
            "degraded_embeddings": sum(1 for r in records if r.embedding_degraded),
            "category_rules_version": self.config.category_rules_version,
        }
