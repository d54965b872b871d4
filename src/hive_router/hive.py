"""AgentHive facade wiring every component from configuration."""

import logging
import random
from pathlib import Path
from typing import Any, Optional

from hive_router.config import Config
from hive_router.embedder import Embedder, EmbeddingSource, SentenceTransformerSource
from hive_router.executor import AgentExecutor
from hive_router.matcher import BatchAssignment, CapabilityMatcher, MatchResult, ScoreBreakdown
from hive_router.memory_store import MemoryHit, MemoryStore, SearchFilters
from hive_router.outcome import OutcomeClassifier, OutcomeLog, Verdict
from hive_router.persistence import FileSystemBackend, InMemoryBackend, PersistenceBackend, create_backend
from hive_router.registry import AgentDescriptor, ComplexityClass, Registry
from hive_router.router import RouteOptions, RouteResult, Router
from hive_router.task_analyzer import Requirement, TaskAnalyzer

logger = logging.getLogger(__name__)


class AgentHive:
    """
    Main entry point for routing requests to specialist agents.

    Integrates:
    - Registry of agent descriptors
    - Embedder and Memory Store for interaction memory
    - Outcome Classifier and Outcome Log for execution feedback
    - Task Analyzer and Capability Matcher for selection
    - Router for the end-to-end request flow

    Every collaborator can be injected; anything not injected is built from
    the configuration on :meth:`initialize`.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[Registry] = None,
        executor: Optional[AgentExecutor] = None,
        embedding_source: Optional[EmbeddingSource] = None,
        memory_backend: Optional[PersistenceBackend] = None,
        outcome_backend: Optional[PersistenceBackend] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or Config.from_default_locations()
        self.registry = registry
        self.executor = executor
        self._embedding_source = embedding_source
        self._memory_backend = memory_backend
        self._outcome_backend = outcome_backend
        self._rng = rng

        self.embedder: Optional[Embedder] = None
        self.memory: Optional[MemoryStore] = None
        self.outcomes: Optional[OutcomeLog] = None
        self.classifier: Optional[OutcomeClassifier] = None
        self.analyzer: Optional[TaskAnalyzer] = None
        self.matcher: Optional[CapabilityMatcher] = None
        self.router: Optional[Router] = None

        self._initialized = False

    def initialize(self) -> None:
        """Build all components and load durable state."""
        cfg = self.config

        if self.registry is None:
            self.registry = Registry.from_source(cfg.registry.source) if cfg.registry.source else Registry()

        source = self._embedding_source
        if source is None and cfg.embedding.enabled:
            source = SentenceTransformerSource(model_name=cfg.embedding.model_name, device=cfg.embedding.device)
        self.embedder = Embedder(
            dimension=cfg.embedding.dimension,
            source=source,
            timeout_seconds=cfg.embedding.timeout_seconds,
        )

        memory_backend, outcome_backend = self._build_backends()
        self.memory = MemoryStore(
            self.embedder,
            memory_backend,
            config=cfg.memory,
            write_retries=cfg.persistence.write_retries,
        )
        self.outcomes = OutcomeLog(
            outcome_backend,
            window=cfg.matching.history_window,
            write_retries=cfg.persistence.write_retries,
        )
        self.memory.load()
        self.outcomes.load()

        self.classifier = OutcomeClassifier(cfg.classifier, rng=self._rng)
        self.analyzer = TaskAnalyzer(cfg.taxonomy)
        self.matcher = CapabilityMatcher(self.registry, self.outcomes, cfg.matching, cfg.taxonomy)
        self.router = Router(
            self.analyzer,
            self.matcher,
            self.memory,
            self.classifier,
            self.outcomes,
            executor=self.executor,
            config=cfg.router,
        )

        self._initialized = True
        logger.info(
            "Hive initialized with %d agents, %d memories (strategy=%s)",
            len(self.registry), len(self.memory), cfg.matching.default_strategy,
        )

    def _build_backends(self) -> tuple[PersistenceBackend, PersistenceBackend]:
        persistence = self.config.persistence
        data_directory = Path(persistence.data_directory)

        memory_backend = self._memory_backend
        if memory_backend is None:
            location = data_directory / ("chromadb" if persistence.backend == "chromadb" else "memories")
            memory_backend = create_backend(persistence.backend, location, persistence.collection_name)

        outcome_backend = self._outcome_backend
        if outcome_backend is None:
            if persistence.backend == "memory":
                outcome_backend = InMemoryBackend()
            else:
                # Outcomes carry no embedding, so they always go to plain files
                outcome_backend = FileSystemBackend(data_directory / "outcomes")

        return memory_backend, outcome_backend

    def is_initialized(self) -> bool:
        """Check if the hive is initialized."""
        return self._initialized

    def ensure_initialized(self) -> None:
        """Ensure the hive is initialized."""
        if not self._initialized:
            self.initialize()

    # ============ Registry Methods ============

    def list_agents(self, category: Optional[str] = None) -> list[AgentDescriptor]:
        """List registered agents, optionally within one category."""
        self.ensure_initialized()
        if category:
            return list(self.registry.by_category(category))
        return self.registry.list_all()

    def get_agent(self, agent_id: str) -> AgentDescriptor:
        """Get an agent descriptor, raising NotFound for unknown ids."""
        self.ensure_initialized()
        return self.registry.lookup(agent_id)

    # ============ Selection Methods ============

    def analyze(self, text: str, capabilities: Optional[list[str]] = None, category: Optional[str] = None) -> Requirement:
        """Parse request text into a Requirement."""
        self.ensure_initialized()
        return self.analyzer.analyze(text, capabilities, category)

    def rank(self, text: str, strategy: Optional[str] = None) -> list[ScoreBreakdown]:
        """Rank every agent for a request without dispatching it."""
        self.ensure_initialized()
        return self.matcher.rank(self.analyzer.analyze(text), strategy)

    def select(self, text: str, strategy: Optional[str] = None) -> MatchResult:
        """Select the best agent for a request, raising NoCandidate if none fits."""
        self.ensure_initialized()
        return self.matcher.best_match(self.analyzer.analyze(text), strategy)

    def assign(
        self,
        texts: list[str],
        strategy: Optional[str] = None,
        allow_duplicates: bool = True,
        max_per_agent: int = 3,
    ) -> BatchAssignment:
        """Assign several requests at once without dispatching them."""
        self.ensure_initialized()
        requirements = [self.analyzer.analyze(text) for text in texts]
        return self.matcher.match_many(requirements, strategy, allow_duplicates, max_per_agent)

    # ============ Routing Methods ============

    async def route(self, text: str, options: Optional[RouteOptions] = None, **kwargs: Any) -> RouteResult:
        """Route a request end to end. Never raises for request-level failures."""
        self.ensure_initialized()
        if options is None:
            options = RouteOptions(**kwargs)
        return await self.router.route(text, options)

    async def search_memory(self, query: str, filters: Optional[SearchFilters] = None, **kwargs: Any) -> list[MemoryHit]:
        """Search interaction memory."""
        self.ensure_initialized()
        return await self.router.search_memory(query, filters, **kwargs)

    def classify(
        self,
        duration_ms: float,
        response_text: str,
        provider_error: bool = False,
        complexity: str = "medium",
    ) -> Verdict:
        """Classify raw execution telemetry."""
        self.ensure_initialized()
        return self.classifier.classify(duration_ms, response_text, provider_error, ComplexityClass.parse(complexity))

    def get_stats(self) -> dict[str, Any]:
        """Get hive statistics."""
        self.ensure_initialized()

        return {
            "registered_agents": self.registry.count(),
            "memory": self.memory.analytics(),
            "outcomes": {
                agent_id: self.outcomes.summary(agent_id).model_dump()
                for agent_id in self.outcomes.agents()
            },
            "embedding_degraded": self.embedder.degraded,
            "config": {
                "strategy": self.config.matching.default_strategy,
                "embedding_model": self.config.embedding.model_name,
                "taxonomy_version": self.config.taxonomy.version,
            },
        }

    # ============ Cleanup Methods ============

    def shutdown(self) -> None:
        """Shutdown the hive and release resources."""
        if self.embedder:
            self.embedder.close()
        if self.memory:
            self.memory.backend.close()
        if self.outcomes and self.outcomes.backend:
            self.outcomes.backend.close()

        self._initialized = False
