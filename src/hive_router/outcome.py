"""Execution outcome classification and the per-agent outcome history."""

import logging
import random
import re
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hive_router.config import ClassifierConfig
from hive_router.errors import PersistenceError
from hive_router.persistence import PersistenceBackend
from hive_router.registry import ComplexityClass

logger = logging.getLogger(__name__)


class FailureReason(str, Enum):
    """Why an execution was judged a failure."""
    NONE = "none"
    TIMEOUT = "timeout"
    INCOMPLETE_RESPONSE = "incomplete-response"
    ERROR_PATTERN = "error-pattern"
    SIMULATED_DEGRADATION = "simulated-degradation"


class Verdict(BaseModel):
    """Result of classifying one execution's telemetry."""
    model_config = ConfigDict(frozen=True)

    success: bool
    quality: float
    failure_reason: FailureReason = FailureReason.NONE


class ExecutionOutcome(BaseModel):
    """The classified result of one dispatched execution. Never mutated."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    session_id: Optional[str] = None
    duration_ms: float
    response_length: int
    success: bool
    quality: float
    failure_reason: FailureReason = FailureReason.NONE
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_verdict(
        cls,
        verdict: Verdict,
        agent_id: str,
        duration_ms: float,
        response_length: int,
        session_id: Optional[str] = None,
    ) -> "ExecutionOutcome":
        return cls(
            agent_id=agent_id,
            session_id=session_id,
            duration_ms=duration_ms,
            response_length=response_length,
            success=verdict.success,
            quality=verdict.quality,
            failure_reason=verdict.failure_reason,
        )


class OutcomeClassifier:
    """Turns raw execution telemetry into a success verdict and quality score.

    Rules are applied in order and the first match wins:

    1. provider error flag, or a configured error pattern in the response
    2. duration above ``timeout_ms``
    3. duration above ``degraded_ms``: quality falls linearly across the
       degraded band as the duration approaches the timeout
    4. response shorter than ``min_response_length``
    5. success, with a small per-complexity chance of simulated degradation

    ``success`` is always ``quality >= success_threshold``.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or ClassifierConfig()
        self.rng = rng or random.Random(self.config.seed)
        self._error_patterns = [re.compile(p, re.IGNORECASE) for p in self.config.error_patterns]

    def classify(
        self,
        duration_ms: float,
        response_text: str,
        provider_error: bool = False,
        complexity: ComplexityClass = ComplexityClass.MEDIUM,
    ) -> Verdict:
        cfg = self.config
        response_text = response_text or ""

        if provider_error or any(p.search(response_text) for p in self._error_patterns):
            return self._verdict(cfg.error_quality, FailureReason.ERROR_PATTERN)

        if duration_ms > cfg.timeout_ms:
            return self._verdict(cfg.timeout_quality, FailureReason.TIMEOUT)

        if duration_ms > cfg.degraded_ms:
            fraction = (duration_ms - cfg.degraded_ms) / (cfg.timeout_ms - cfg.degraded_ms)
            span = cfg.degraded_quality_max - cfg.degraded_quality_min
            return self._verdict(cfg.degraded_quality_max - fraction * span)

        if len(response_text) < cfg.min_response_length:
            return self._verdict(cfg.incomplete_quality, FailureReason.INCOMPLETE_RESPONSE)

        probability = cfg.simulated_failure_probability.get(ComplexityClass.parse(complexity).value, 0.0)
        if self.rng.random() < probability:
            quality = self.rng.uniform(cfg.simulated_failure_quality_min, cfg.simulated_failure_quality_max)
            return self._verdict(quality, FailureReason.SIMULATED_DEGRADATION)

        return self._verdict(self.rng.uniform(cfg.success_quality_min, cfg.success_quality_max))

    def timeout(self) -> Verdict:
        """Verdict for an execution abandoned at the dispatch timeout."""
        return self._verdict(self.config.timeout_quality, FailureReason.TIMEOUT)

    def _verdict(self, quality: float, reason: FailureReason = FailureReason.NONE) -> Verdict:
        quality = round(min(1.0, max(0.0, quality)), 2)
        return Verdict(success=quality >= self.config.success_threshold, quality=quality, failure_reason=reason)


class OutcomeSummary(BaseModel):
    """Aggregated view of one agent's recent outcomes."""
    agent_id: str
    total: int
    successes: int
    success_rate: float
    average_quality: Optional[float]
    trend: str


class OutcomeLog:
    """Rolling per-agent outcome history, persisted one fact per outcome.

    The window bounds how far back ``average_quality`` looks; the durable
    backend keeps every outcome.
    """

    TREND_MARGIN = 0.05

    def __init__(self, backend: Optional[PersistenceBackend] = None, window: int = 50, write_retries: int = 1):
        self.backend = backend
        self.window = window
        self.write_retries = write_retries
        self._history: dict[str, deque[ExecutionOutcome]] = {}
        self._lock = threading.Lock()

    def _append(self, outcome: ExecutionOutcome) -> None:
        with self._lock:
            history = self._history.get(outcome.agent_id)
            if history is None:
                history = deque(maxlen=self.window)
                self._history[outcome.agent_id] = history
            history.append(outcome)

    def record(self, outcome: ExecutionOutcome) -> None:
        """Add an outcome to the history and persist it.

        The outcome counts towards history even when the durable write fails;
        the PersistenceError is raised afterwards.
        """
        self._append(outcome)
        if self.backend is None:
            return

        payload = outcome.model_dump(mode="json")
        last_error: Optional[PersistenceError] = None
        for attempt in range(self.write_retries + 1):
            try:
                self.backend.write(outcome.id, payload)
                return
            except PersistenceError as e:
                last_error = e
            except Exception as e:
                last_error = PersistenceError(f"failed to write outcome {outcome.id}: {e}")
                last_error.__cause__ = e
            logger.warning("Write of outcome %s failed (attempt %d): %s", outcome.id, attempt + 1, last_error)
        raise last_error

    def load(self) -> int:
        """Rebuild the rolling history from the backend."""
        if self.backend is None:
            return 0

        outcomes = []
        for key, data in self.backend.read_all():
            try:
                outcomes.append(ExecutionOutcome.model_validate(data))
            except ValidationError as e:
                logger.warning("Skipping corrupt outcome %s: %s", key, e.errors()[0].get("msg", e))

        with self._lock:
            self._history = {}
        for outcome in sorted(outcomes, key=lambda o: (o.timestamp, o.id)):
            self._append(outcome)

        logger.info("Loaded %d execution outcomes", len(outcomes))
        return len(outcomes)

    def history(self, agent_id: str) -> list[ExecutionOutcome]:
        with self._lock:
            return list(self._history.get(agent_id, ()))

    def agents(self) -> list[str]:
        with self._lock:
            return sorted(self._history)

    def average_quality(self, agent_id: str) -> Optional[float]:
        """Rolling average quality, or None for an agent with no history."""
        outcomes = self.history(agent_id)
        if not outcomes:
            return None
        return sum(o.quality for o in outcomes) / len(outcomes)

    def summary(self, agent_id: str) -> OutcomeSummary:
        outcomes = self.history(agent_id)
        successes = sum(1 for o in outcomes if o.success)
        return OutcomeSummary(
            agent_id=agent_id,
            total=len(outcomes),
            successes=successes,
            success_rate=successes / len(outcomes) if outcomes else 0.0,
            average_quality=self.average_quality(agent_id),
            trend=self._trend([o.quality for o in outcomes]),
        )

    def _trend(self, qualities: list[float]) -> str:
        if len(qualities) < 4:
            return "stable"
        half = len(qualities) // 2
        older = sum(qualities[:half]) / half
        recent = sum(qualities[half:]) / (len(qualities) - half)
        if recent - older > self.TREND_MARGIN:
            return "improving"
        if older - recent > self.TREND_MARGIN:
            return "declining"
        return "stable"
