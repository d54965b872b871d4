"""Error types raised by Hive Router components."""

from typing import Optional


class HiveRouterError(Exception):
    """Base class for all Hive Router errors."""


class ConfigError(HiveRouterError):
    """Invalid configuration, such as an unknown strategy profile."""


class LoadError(HiveRouterError):
    """Malformed agent registry data. Fatal at startup."""


class NotFound(HiveRouterError, KeyError):
    """Unknown agent or record id."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")

    def __str__(self) -> str:
        return self.args[0]


class NoCandidate(HiveRouterError):
    """No descriptor cleared the minimum acceptable score."""

    def __init__(self, threshold: float, best_score: Optional[float] = None, best_agent_id: Optional[str] = None):
        self.threshold = threshold
        self.best_score = best_score
        self.best_agent_id = best_agent_id
        if best_score is None:
            message = "no agents are registered"
        else:
            message = (
                f"best candidate {best_agent_id} scored {best_score:.3f}, "
                f"below the minimum of {threshold:.3f}"
            )
        super().__init__(message)


class EmbeddingDegraded(HiveRouterError):
    """The real embedding source failed and a fallback vector was produced."""


class PersistenceError(HiveRouterError):
    """A durable write or delete failed."""


class DispatchTimeout(HiveRouterError):
    """The execution collaborator did not answer within its budget."""

    def __init__(self, agent_id: str, timeout_seconds: float):
        self.agent_id = agent_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"dispatch to {agent_id} timed out after {timeout_seconds}s")
