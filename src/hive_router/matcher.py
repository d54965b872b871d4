"""Capability matcher scoring agents against parsed requirements."""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from hive_router.config import MatchingConfig, StrategyWeights, TaxonomyConfig
from hive_router.errors import ConfigError, NoCandidate
from hive_router.outcome import OutcomeLog
from hive_router.registry import AgentDescriptor, Registry
from hive_router.task_analyzer import Requirement

logger = logging.getLogger(__name__)

_NAME_SPLIT = re.compile(r"[^a-z0-9#+.]+")

# Lower sorts first; unknown urgencies rank with "normal"
URGENCY_ORDER = {"critical": 0, "high": 1, "normal": 2, "low": 3}


@dataclass(frozen=True)
class StrategyProfile:
    """Named weighting over capability, specialization and history."""
    name: str
    capability: float
    specialization: float
    history: float

    @classmethod
    def from_weights(cls, name: str, weights: StrategyWeights) -> "StrategyProfile":
        return cls(name, weights.capability, weights.specialization, weights.history)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-factor scores of one descriptor against one requirement."""
    agent_id: str
    capability: float
    specialization: float
    history: float
    final: float
    strategy: str
    cold_start: bool = False
    matched_capabilities: tuple[str, ...] = ()


@dataclass
class MatchResult:
    """The selected agent with its confidence and runners-up."""
    descriptor: AgentDescriptor
    breakdown: ScoreBreakdown
    confidence: float
    alternatives: list[ScoreBreakdown] = field(default_factory=list)
    reasoning: str = ""

    @property
    def agent_id(self) -> str:
        return self.descriptor.id


@dataclass
class Assignment:
    """Outcome of one requirement in a batch; ``index`` is its input position."""
    index: int
    requirement: Requirement
    match: Optional[MatchResult] = None
    error: str = ""

    @property
    def agent_id(self) -> Optional[str]:
        return self.match.agent_id if self.match else None


@dataclass(frozen=True)
class AssignmentStatistics:
    total: int
    assigned: int
    unassigned: int
    average_score: float
    average_confidence: float
    agent_distribution: dict[str, int]

    @classmethod
    def collect(cls, assignments: list[Assignment], usage: Counter) -> "AssignmentStatistics":
        matched = [a.match for a in assignments if a.match is not None]
        return cls(
            total=len(assignments),
            assigned=len(matched),
            unassigned=len(assignments) - len(matched),
            average_score=sum(m.breakdown.final for m in matched) / len(matched) if matched else 0.0,
            average_confidence=sum(m.confidence for m in matched) / len(matched) if matched else 0.0,
            agent_distribution=dict(usage),
        )


@dataclass
class BatchAssignment:
    """Assignments in the order they were made, most urgent first."""
    assignments: list[Assignment]
    statistics: AssignmentStatistics

    @property
    def unassigned(self) -> list[Assignment]:
        return [a for a in self.assignments if a.match is None]

    def for_index(self, index: int) -> Assignment:
        return next(a for a in self.assignments if a.index == index)


def name_tokens(descriptor: AgentDescriptor) -> frozenset[str]:
    """Word tokens of a descriptor's id, name and specialization hints."""
    text = " ".join((descriptor.id, descriptor.name, *descriptor.specializations)).lower()
    return frozenset(t for t in _NAME_SPLIT.split(text) if t)


class CapabilityMatcher:
    """Scores and ranks agent descriptors for a requirement.

    The final score is a weighted sum of three factors in [0, 1], so it is
    itself in [0, 1]. Ranking is fully deterministic: descending final score,
    then higher history, then lower complexity, then id.
    """

    def __init__(
        self,
        registry: Registry,
        outcomes: Optional[OutcomeLog] = None,
        config: Optional[MatchingConfig] = None,
        taxonomy: Optional[TaxonomyConfig] = None,
    ):
        self.registry = registry
        self.outcomes = outcomes
        self.config = config or MatchingConfig()
        self.taxonomy = taxonomy or TaxonomyConfig()

    def profile(self, strategy: Optional[str] = None) -> StrategyProfile:
        """Resolve a strategy name to its weight profile."""
        name = strategy or self.config.default_strategy
        weights = self.config.profiles.get(name)
        if weights is None:
            raise ConfigError(f"unknown strategy '{name}', expected one of {sorted(self.config.profiles)}")
        return StrategyProfile.from_weights(name, weights)

    # ============ Factors ============

    def capability_score(self, requirement: Requirement, descriptor: AgentDescriptor) -> tuple[float, tuple[str, ...]]:
        """Fraction of the required capabilities the descriptor declares."""
        if not requirement.capabilities:
            return (1.0 if descriptor.category == requirement.category else 0.0), ()

        required = {self.taxonomy.canonical(c) for c in requirement.capabilities}
        declared = {self.taxonomy.canonical(c) for c in descriptor.capabilities}
        matched = required & declared
        return len(matched) / len(required), tuple(sorted(matched))

    def specialization_score(self, requirement: Requirement, descriptor: AgentDescriptor) -> float:
        """How well the descriptor's name and hints fit the request wording.

        Tokens are compared whole, never as substrings, so "builder" does
        not count as a "ui" match.
        """
        cfg = self.config.specialization
        agent_words = name_tokens(descriptor)
        keywords = set(requirement.keywords)
        category = requirement.category.value

        score = cfg.base

        for pattern, words in cfg.patterns.items():
            if pattern in agent_words and keywords & set(words):
                score += cfg.pattern_bonus
                break

        if category in agent_words:
            score += cfg.category_bonus

        if keywords & agent_words:
            score += cfg.direct_match_bonus

        if category == cfg.role_category and agent_words & set(cfg.role_terms):
            score += cfg.role_bonus

        for domain, words in cfg.penalized.items():
            domain_words = {domain, *words}
            if agent_words & domain_words and not keywords & domain_words:
                score -= cfg.off_domain_penalty

        if category not in cfg.off_category_exempt and agent_words & set(cfg.off_category_terms):
            score -= cfg.off_category_penalty

        return min(1.0, max(0.0, score))

    def history_score(self, descriptor: AgentDescriptor) -> tuple[float, bool]:
        """Rolling average quality, or the cold-start prior without history."""
        average = self.outcomes.average_quality(descriptor.id) if self.outcomes else None
        if average is None:
            return self.config.cold_start_prior, True
        return min(1.0, max(0.0, average)), False

    # ============ Scoring ============

    def score(
        self,
        requirement: Requirement,
        descriptor: AgentDescriptor,
        strategy: Optional[str | StrategyProfile] = None,
    ) -> ScoreBreakdown:
        profile = strategy if isinstance(strategy, StrategyProfile) else self.profile(strategy)

        capability, matched = self.capability_score(requirement, descriptor)
        specialization = self.specialization_score(requirement, descriptor)
        history, cold_start = self.history_score(descriptor)

        final = (
            profile.capability * capability
            + profile.specialization * specialization
            + profile.history * history
        )
        return ScoreBreakdown(
            agent_id=descriptor.id,
            capability=capability,
            specialization=specialization,
            history=history,
            final=min(1.0, max(0.0, final)),
            strategy=profile.name,
            cold_start=cold_start,
            matched_capabilities=matched,
        )

    def rank(
        self,
        requirement: Requirement,
        strategy: Optional[str] = None,
        candidates: Optional[Iterable[AgentDescriptor]] = None,
    ) -> list[ScoreBreakdown]:
        """Score every candidate and order them best first."""
        profile = self.profile(strategy)
        descriptors = {d.id: d for d in (candidates if candidates is not None else self.registry.list_all())}
        scores = [self.score(requirement, d, profile) for d in descriptors.values()]

        def sort_key(s: ScoreBreakdown):
            # Rounded so float noise in the weighted sum cannot reorder ties
            return (-round(s.final, 9), -round(s.history, 9), descriptors[s.agent_id].complexity.rank, s.agent_id)

        return sorted(scores, key=sort_key)

    def best_match(
        self,
        requirement: Requirement,
        strategy: Optional[str] = None,
        candidates: Optional[Iterable[AgentDescriptor]] = None,
    ) -> MatchResult:
        """Rank the candidates and select the top one."""
        pool = list(candidates) if candidates is not None else self.registry.list_all()
        return self.select(self.rank(requirement, strategy, pool), pool)

    def select(self, ranking: list[ScoreBreakdown], candidates: Optional[Iterable[AgentDescriptor]] = None) -> MatchResult:
        """Select the head of an existing ranking.

        Raises NoCandidate when the ranking is empty or its best score is
        below ``min_score``.
        """
        threshold = self.config.min_score

        if not ranking:
            raise NoCandidate(threshold)

        top = ranking[0]
        if top.final < threshold:
            logger.warning("No candidate cleared %.2f (best %s at %.3f)", threshold, top.agent_id, top.final)
            raise NoCandidate(threshold, top.final, top.agent_id)

        gap = top.final - ranking[1].final if len(ranking) > 1 else 0.0
        confidence = round(min(1.0, top.final * (1 + gap)), 2)
        if candidates is None:
            descriptor = self.registry.lookup(top.agent_id)
        else:
            descriptor = next(d for d in candidates if d.id == top.agent_id)

        return MatchResult(
            descriptor=descriptor,
            breakdown=top,
            confidence=confidence,
            alternatives=ranking[1:1 + self.config.alternatives],
            reasoning=self.explain(descriptor, top),
        )

    def match_many(
        self,
        requirements: Sequence[Requirement],
        strategy: Optional[str] = None,
        allow_duplicates: bool = True,
        max_per_agent: int = 3,
        candidates: Optional[Iterable[AgentDescriptor]] = None,
    ) -> BatchAssignment:
        """Assign a batch of requirements, most urgent first.

        Requirements of equal urgency keep their input order. With
        ``allow_duplicates`` off, an agent stops being offered once it holds
        ``max_per_agent`` assignments. A requirement nobody can take is
        reported as unassigned instead of raising NoCandidate.
        """
        self.profile(strategy)
        requirements = list(requirements)
        pool = list(candidates) if candidates is not None else self.registry.list_all()
        order = sorted(range(len(requirements)), key=lambda i: URGENCY_ORDER.get(requirements[i].urgency, 2))

        usage: Counter = Counter()
        assignments = []
        for index in order:
            requirement = requirements[index]
            available = pool if allow_duplicates else [d for d in pool if usage[d.id] < max_per_agent]
            if pool and not available:
                assignments.append(Assignment(index, requirement, error="every agent is at its assignment limit"))
                continue

            try:
                match = self.best_match(requirement, strategy, available)
            except NoCandidate as e:
                assignments.append(Assignment(index, requirement, error=str(e)))
                continue

            usage[match.agent_id] += 1
            assignments.append(Assignment(index, requirement, match=match))

        result = BatchAssignment(assignments, AssignmentStatistics.collect(assignments, usage))
        logger.info(
            "Assigned %d of %d requirements across %d agents",
            result.statistics.assigned, result.statistics.total, len(usage),
        )
        return result

    @staticmethod
    def explain(descriptor: AgentDescriptor, breakdown: ScoreBreakdown) -> str:
        """Human-readable account of one breakdown."""
        history = f"{breakdown.history:.2f}" + (" (no history)" if breakdown.cold_start else "")
        matched = ", ".join(breakdown.matched_capabilities) or "none"
        return (
            f"Selected {descriptor.name} ({descriptor.category.value}) under '{breakdown.strategy}' "
            f"with score {breakdown.final:.3f}: capability {breakdown.capability:.2f} "
            f"[matched: {matched}], specialization {breakdown.specialization:.2f}, history {history}"
        )
