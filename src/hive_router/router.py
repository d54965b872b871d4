"""Request router: requirement parsing, selection, dispatch and feedback."""

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from hive_router.config import RouterConfig
from hive_router.errors import ConfigError, DispatchTimeout, HiveRouterError, NoCandidate, PersistenceError
from hive_router.executor import AgentExecutor, AugmentedPrompt, ExecutionResult
from hive_router.matcher import CapabilityMatcher, MatchResult
from hive_router.memory_store import MemoryDraft, MemoryHit, MemoryStore, SearchFilters
from hive_router.outcome import ExecutionOutcome, OutcomeClassifier, OutcomeLog
from hive_router.task_analyzer import Requirement, TaskAnalyzer

logger = logging.getLogger(__name__)


class RouteState(str, Enum):
    """States of one routed request."""
    RECEIVED = "received"
    REQUIREMENT_PARSED = "requirement_parsed"
    SCORED = "scored"
    SELECTED = "selected"
    MEMORY_CONSULTED = "memory_consulted"
    DISPATCHED = "dispatched"
    OUTCOME_RECORDED = "outcome_recorded"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT_STATE = {
    RouteState.RECEIVED: RouteState.REQUIREMENT_PARSED,
    RouteState.REQUIREMENT_PARSED: RouteState.SCORED,
    RouteState.SCORED: RouteState.SELECTED,
    RouteState.SELECTED: RouteState.MEMORY_CONSULTED,
    RouteState.MEMORY_CONSULTED: RouteState.DISPATCHED,
    RouteState.DISPATCHED: RouteState.OUTCOME_RECORDED,
    RouteState.OUTCOME_RECORDED: RouteState.COMPLETED,
}

TERMINAL_STATES = frozenset({RouteState.COMPLETED, RouteState.FAILED})


class RouteOptions(BaseModel):
    """Per-request routing options."""
    strategy: Optional[str] = None
    user_id: str = "anonymous"
    session_id: Optional[str] = None
    capabilities: Optional[list[str]] = None
    category: Optional[str] = None
    budget: Optional[int] = None
    timeout_seconds: Optional[float] = None
    memory_scope: Optional[str] = None


class RouteResult(BaseModel):
    """Typed result of one routed request, successful or not."""
    request_id: str
    state: RouteState
    history: list[RouteState] = Field(default_factory=list)
    selected_agent_id: Optional[str] = None
    confidence: float = 0.0
    reasoning: str = ""
    alternatives: list[str] = Field(default_factory=list)
    requirement: Optional[Requirement] = None
    outcome: Optional[ExecutionOutcome] = None
    response_text: Optional[str] = None
    memory_ids: list[str] = Field(default_factory=list)
    memory_record_id: Optional[str] = None
    failure: Optional[str] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state is RouteState.COMPLETED


class _RouteRun:
    """Tracks the state machine of one request."""

    def __init__(self):
        self.request_id = str(uuid.uuid4())
        self.state = RouteState.RECEIVED
        self.history = [RouteState.RECEIVED]

    def advance(self, state: RouteState) -> None:
        if state is not RouteState.FAILED and _NEXT_STATE.get(self.state) is not state:
            raise RuntimeError(f"invalid route transition {self.state.value} -> {state.value}")
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"route {self.request_id} already finished in {self.state.value}")
        logger.debug("Route %s: %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)


class Router:
    """Routes requests to the best agent and feeds results back into memory.

    The router never calls a model itself. It prepares the augmented prompt,
    hands it to the executor, and waits for a result or the dispatch timeout.
    Request-level failures end in ``RouteState.FAILED``; persistence and
    embedding problems are logged and do not fail the request.
    """

    def __init__(
        self,
        analyzer: TaskAnalyzer,
        matcher: CapabilityMatcher,
        memory: MemoryStore,
        classifier: OutcomeClassifier,
        outcomes: OutcomeLog,
        executor: Optional[AgentExecutor] = None,
        config: Optional[RouterConfig] = None,
    ):
        self.analyzer = analyzer
        self.matcher = matcher
        self.memory = memory
        self.classifier = classifier
        self.outcomes = outcomes
        self.executor = executor
        self.config = config or RouterConfig()

    async def route(self, request_text: str, options: Optional[RouteOptions] = None) -> RouteResult:
        """Route one request through selection, dispatch and outcome recording."""
        options = options or RouteOptions()
        run = _RouteRun()
        result = RouteResult(request_id=run.request_id, state=run.state)

        if not request_text or not request_text.strip():
            return self._fail(run, result, "InvalidRequest", "request text is empty")
        if self.executor is None:
            return self._fail(run, result, "NoExecutor", "no agent executor is configured")

        # Requirement
        try:
            requirement = self.analyzer.analyze(request_text, options.capabilities, options.category)
        except ValueError as e:
            return self._fail(run, result, "InvalidRequest", str(e))
        result.requirement = requirement
        run.advance(RouteState.REQUIREMENT_PARSED)

        # Scoring and selection
        try:
            ranking = self.matcher.rank(requirement, options.strategy)
        except ConfigError as e:
            return self._fail(run, result, "ConfigError", str(e))
        run.advance(RouteState.SCORED)

        try:
            match = self.matcher.select(ranking)
        except NoCandidate as e:
            return self._fail(run, result, "NoCandidate", str(e))
        self._apply_match(result, match)
        run.advance(RouteState.SELECTED)

        # Memory
        hits = await self._consult_memory(request_text, match, options)
        result.memory_ids = [h.record.id for h in hits]
        run.advance(RouteState.MEMORY_CONSULTED)

        # Dispatch
        prompt = self.build_prompt(request_text, match, hits, options)
        budget = options.budget or self.config.budget_tokens
        timeout = options.timeout_seconds or self.config.dispatch_timeout_seconds
        run.advance(RouteState.DISPATCHED)
        outcome, response_text = await self._dispatch(match, prompt, budget, timeout, options)
        result.outcome = outcome
        result.response_text = response_text

        # Feedback
        try:
            await asyncio.to_thread(self.outcomes.record, outcome)
        except PersistenceError as e:
            logger.warning("Outcome %s was not persisted: %s", outcome.id, e)
        run.advance(RouteState.OUTCOME_RECORDED)

        result.memory_record_id = await self._remember(request_text, response_text, requirement, outcome, options)
        run.advance(RouteState.COMPLETED)

        result.state = run.state
        result.history = list(run.history)
        logger.info(
            "Routed request %s to %s (confidence %.2f, quality %.2f, %s)",
            run.request_id, match.agent_id, match.confidence, outcome.quality,
            "success" if outcome.success else outcome.failure_reason.value,
        )
        return result

    async def search_memory(self, query: str, filters: Optional[SearchFilters] = None, **kwargs: Any) -> list[MemoryHit]:
        """Search the memory store without blocking the event loop."""
        return await asyncio.to_thread(self.memory.search, query, filters, **kwargs)

    def build_prompt(
        self,
        request_text: str,
        match: MatchResult,
        hits: list[MemoryHit],
        options: RouteOptions,
    ) -> AugmentedPrompt:
        """Combine the agent's system behavior with relevant prior interactions."""
        memories = []
        for hit in hits:
            if not hit.record.interactions:
                continue
            last = hit.record.interactions[-1]
            summary = last.input_summary
            if last.output_summary:
                summary = f"{summary} -> {last.output_summary}"
            memories.append(summary)

        descriptor = match.descriptor
        return AugmentedPrompt(
            agent_id=descriptor.id,
            system_prompt=descriptor.system_prompt or f"You are {descriptor.name}. {descriptor.description}".strip(),
            request=request_text,
            memories=memories,
            user_id=options.user_id,
            session_id=options.session_id,
        )

    # ============ Steps ============

    @staticmethod
    def _apply_match(result: RouteResult, match: MatchResult) -> None:
        result.selected_agent_id = match.agent_id
        result.confidence = match.confidence
        result.reasoning = match.reasoning
        result.alternatives = [s.agent_id for s in match.alternatives]

    async def _consult_memory(self, request_text: str, match: MatchResult, options: RouteOptions) -> list[MemoryHit]:
        scope = options.memory_scope or self.config.memory_scope
        filters = SearchFilters(
            agent_id=match.agent_id if scope == "agent" else None,
            limit=self.config.memory_top_k,
            min_similarity=self.config.memory_min_similarity,
        )
        try:
            return await self.search_memory(request_text, filters)
        except HiveRouterError as e:
            logger.warning("Memory lookup failed, continuing without context: %s", e)
            return []

    async def _dispatch(
        self,
        match: MatchResult,
        prompt: AugmentedPrompt,
        budget: int,
        timeout: float,
        options: RouteOptions,
    ) -> tuple[ExecutionOutcome, str]:
        descriptor = match.descriptor
        started = time.perf_counter()

        try:
            execution = await asyncio.wait_for(self.executor.execute(descriptor, prompt, budget), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s", DispatchTimeout(descriptor.id, timeout))
            outcome = ExecutionOutcome.from_verdict(
                self.classifier.timeout(),
                agent_id=descriptor.id,
                duration_ms=timeout * 1000,
                response_length=0,
                session_id=options.session_id,
            )
            return outcome, ""
        except Exception as e:
            # Any executor failure is a provider error for classification
            logger.warning("Executor failed for %s: %s", descriptor.id, e)
            execution = ExecutionResult(provider_error=True, error=str(e))

        duration_ms = execution.duration_ms
        if duration_ms is None:
            duration_ms = (time.perf_counter() - started) * 1000

        verdict = self.classifier.classify(
            duration_ms,
            execution.response_text,
            provider_error=execution.provider_error,
            complexity=descriptor.complexity,
        )
        outcome = ExecutionOutcome.from_verdict(
            verdict,
            agent_id=descriptor.id,
            duration_ms=duration_ms,
            response_length=len(execution.response_text),
            session_id=options.session_id,
        )
        return outcome, execution.response_text

    async def _remember(
        self,
        request_text: str,
        response_text: str,
        requirement: Requirement,
        outcome: ExecutionOutcome,
        options: RouteOptions,
    ) -> Optional[str]:
        draft = MemoryDraft(
            agent_id=outcome.agent_id,
            user_id=options.user_id,
            session_id=options.session_id,
            task_signature=requirement.signature(),
            input_summary=request_text,
            output_summary=response_text,
            knowledge={
                "category": requirement.category.value,
                "capabilities": sorted(requirement.capabilities),
                "last_quality": outcome.quality,
            },
            quality=outcome.quality,
            success=outcome.success,
        )
        try:
            record = await asyncio.to_thread(self.memory.add, draft)
        except PersistenceError as e:
            logger.warning("Memory for %s was not persisted: %s", outcome.agent_id, e)
            return None
        return record.id

    @staticmethod
    def _fail(run: _RouteRun, result: RouteResult, failure: str, message: str) -> RouteResult:
        run.advance(RouteState.FAILED)
        logger.warning("Route %s failed (%s): %s", run.request_id, failure, message)
        result.state = run.state
        result.history = list(run.history)
        result.failure = failure
        result.error = message
        return result
