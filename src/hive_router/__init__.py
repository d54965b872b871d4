"""
Hive Router - Capability-Aware Agent Routing with Semantic Memory

Routes incoming task requests to the best-fitting specialist agent from a
registry, keeps a persistent vector-searchable memory of past interactions,
and feeds classified execution outcomes back into future selection.
"""

from hive_router.hive import AgentHive
from hive_router.config import Config
from hive_router.errors import (
    ConfigError,
    DispatchTimeout,
    EmbeddingDegraded,
    HiveRouterError,
    LoadError,
    NoCandidate,
    NotFound,
    PersistenceError,
)
from hive_router.registry import AgentCategory, AgentDescriptor, ComplexityClass, Registry
from hive_router.embedder import Embedder, EmbeddingResult, EmbeddingSource, HashingEmbeddingSource
from hive_router.memory_store import MemoryDraft, MemoryHit, MemoryRecord, MemoryStore, SearchFilters
from hive_router.outcome import ExecutionOutcome, FailureReason, OutcomeClassifier, OutcomeLog, Verdict
from hive_router.task_analyzer import Requirement, TaskAnalyzer
from hive_router.matcher import (
    Assignment,
    AssignmentStatistics,
    BatchAssignment,
    CapabilityMatcher,
    MatchResult,
    ScoreBreakdown,
    StrategyProfile,
)
from hive_router.executor import AgentExecutor, AugmentedPrompt, CallableExecutor, ExecutionResult
from hive_router.router import RouteOptions, RouteResult, RouteState, Router

__version__ = "0.1.0"

__all__ = [
    "AgentHive",
    "Config",
    "ConfigError",
    "DispatchTimeout",
    "EmbeddingDegraded",
    "HiveRouterError",
    "LoadError",
    "NoCandidate",
    "NotFound",
    "PersistenceError",
    "AgentCategory",
    "AgentDescriptor",
    "ComplexityClass",
    "Registry",
    "Embedder",
    "EmbeddingResult",
    "EmbeddingSource",
    "HashingEmbeddingSource",
    "MemoryDraft",
    "MemoryHit",
    "MemoryRecord",
    "MemoryStore",
    "SearchFilters",
    "ExecutionOutcome",
    "FailureReason",
    "OutcomeClassifier",
    "OutcomeLog",
    "Verdict",
    "Requirement",
    "TaskAnalyzer",
    "Assignment",
    "AssignmentStatistics",
    "BatchAssignment",
    "CapabilityMatcher",
    "MatchResult",
    "ScoreBreakdown",
    "StrategyProfile",
    "AgentExecutor",
    "AugmentedPrompt",
    "CallableExecutor",
    "ExecutionResult",
    "RouteOptions",
    "RouteResult",
    "RouteState",
    "Router",
]
