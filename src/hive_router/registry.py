"""Agent registry module holding immutable agent descriptors."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hive_router.errors import LoadError, NotFound

logger = logging.getLogger(__name__)


class AgentCategory(str, Enum):
    """Fixed set of agent categories."""
    DEVELOPMENT = "development"
    ARCHITECTURE = "architecture"
    DATABASE = "database"
    DATA = "data"
    DEVOPS = "devops"
    SECURITY = "security"
    TESTING = "testing"
    DESIGN = "design"
    PERFORMANCE = "performance"
    AI_ML = "ai-ml"
    CONTENT = "content"
    MARKETING = "marketing"
    BUSINESS = "business"
    SPECIALIZED = "specialized"
    GENERAL = "general"


class ComplexityClass(str, Enum):
    """Execution cost class of an agent or a task."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _COMPLEXITY_RANK[self]

    @classmethod
    def parse(cls, value: Union[str, "ComplexityClass"]) -> "ComplexityClass":
        """Parse a complexity name, accepting simple/complex as aliases."""
        if isinstance(value, ComplexityClass):
            return value
        name = str(value).strip().lower()
        return cls(_COMPLEXITY_ALIASES.get(name, name))


_COMPLEXITY_RANK = {ComplexityClass.LOW: 0, ComplexityClass.MEDIUM: 1, ComplexityClass.HIGH: 2}
_COMPLEXITY_ALIASES = {"simple": "low", "complex": "high"}

COMPLEXITY_HINTS = {
    ComplexityClass.HIGH: ("architect", "design", "advanced", "enterprise", "complex", "comprehensive", "sophisticated"),
    ComplexityClass.LOW: ("simple", "basic", "quick", "straightforward", "minimal", "helper"),
}


def infer_complexity(description: str) -> ComplexityClass:
    """Infer a complexity class from free-text description."""
    text = description.lower()
    for complexity in (ComplexityClass.HIGH, ComplexityClass.LOW):
        if any(hint in text for hint in COMPLEXITY_HINTS[complexity]):
            return complexity
    return ComplexityClass.MEDIUM


class AgentDescriptor(BaseModel):
    """Immutable description of one routable specialist agent."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: AgentCategory = AgentCategory.GENERAL
    capabilities: frozenset[str]
    description: str = ""
    specializations: tuple[str, ...] = ()
    complexity: ComplexityClass = ComplexityClass.MEDIUM
    system_prompt: str = ""
    metadata: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _non_empty_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("descriptor id must not be empty")
        return value

    @field_validator("capabilities", mode="before")
    @classmethod
    def _normalize_capabilities(cls, value: Any) -> frozenset[str]:
        if isinstance(value, str):
            value = [value]
        names = frozenset(str(c).strip().lower() for c in value or () if str(c).strip())
        if not names:
            raise ValueError("descriptor must declare at least one capability")
        return names

    @field_validator("complexity", mode="before")
    @classmethod
    def _parse_complexity(cls, value: Any) -> ComplexityClass:
        return ComplexityClass.parse(value)

    def __hash__(self) -> int:
        return hash(self.id)

    def to_search_text(self) -> str:
        """Convert descriptor to searchable text."""
        parts = [self.id, self.name, self.category.value, self.description, *sorted(self.capabilities), *self.specializations]
        return " ".join(p for p in parts if p)


RegistrySource = Union[str, Path, Iterable[Mapping[str, Any]]]


class Registry:
    """Read-only catalog of agent descriptors.

    The registry is filled once by :meth:`load` and never mutated afterwards,
    so concurrent readers need no locking.
    """

    def __init__(self, descriptors: Optional[Iterable[AgentDescriptor]] = None):
        self._descriptors: dict[str, AgentDescriptor] = {}
        self._category_index: dict[AgentCategory, tuple[AgentDescriptor, ...]] = {}
        self._capability_index: dict[str, tuple[str, ...]] = {}
        if descriptors is not None:
            self._install(list(descriptors))

    @classmethod
    def from_source(cls, source: RegistrySource) -> "Registry":
        """Build a registry from a file path or a sequence of mappings."""
        registry = cls()
        registry.load(source)
        return registry

    def load(self, source: RegistrySource) -> frozenset[AgentDescriptor]:
        """Load descriptors, replacing nothing if any entry is malformed."""
        if self._descriptors:
            raise LoadError("registry is already loaded")

        entries = self._read_entries(source)
        descriptors = []
        for position, entry in enumerate(entries):
            descriptors.append(self._parse_entry(position, entry))

        self._install(descriptors)
        logger.info("Loaded %d agent descriptors", len(descriptors))
        return frozenset(descriptors)

    def _read_entries(self, source: RegistrySource) -> list[Mapping[str, Any]]:
        if isinstance(source, (str, Path)):
            path = Path(source)
            try:
                with open(path, encoding="utf-8") as f:
                    if path.suffix.lower() in (".yaml", ".yml"):
                        data = yaml.safe_load(f)
                    else:
                        data = json.load(f)
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise LoadError(f"cannot read registry source {path}: {e}") from e
        else:
            data = list(source)

        # Accept either a bare list or {"agents": [...]}
        if isinstance(data, Mapping):
            data = data.get("agents")
        if not isinstance(data, list):
            raise LoadError("registry source must contain a list of agent descriptors")
        return data

    def _parse_entry(self, position: int, entry: Mapping[str, Any]) -> AgentDescriptor:
        if not isinstance(entry, Mapping):
            raise LoadError(f"descriptor #{position} is not a mapping")

        data = dict(entry)
        if not data.get("id"):
            raise LoadError(f"descriptor #{position} is missing an id")
        data.setdefault("name", data["id"])
        if "complexity" not in data or data["complexity"] is None:
            data["complexity"] = infer_complexity(data.get("description", ""))
        if isinstance(data.get("specializations"), str):
            data["specializations"] = [data["specializations"]]

        try:
            return AgentDescriptor(**data)
        except ValidationError as e:
            raise LoadError(f"descriptor '{data['id']}' is malformed: {e}") from e

    def _install(self, descriptors: list[AgentDescriptor]) -> None:
        by_id: dict[str, AgentDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in by_id:
                raise LoadError(f"duplicate descriptor id: {descriptor.id}")
            by_id[descriptor.id] = descriptor

        categories: dict[AgentCategory, list[AgentDescriptor]] = {}
        capabilities: dict[str, list[str]] = {}
        for descriptor in sorted(by_id.values(), key=lambda d: d.id):
            categories.setdefault(descriptor.category, []).append(descriptor)
            for capability in descriptor.capabilities:
                capabilities.setdefault(capability, []).append(descriptor.id)

        self._descriptors = by_id
        self._category_index = {k: tuple(v) for k, v in categories.items()}
        self._capability_index = {k: tuple(v) for k, v in capabilities.items()}

    def lookup(self, agent_id: str) -> AgentDescriptor:
        """Get a descriptor by id."""
        try:
            return self._descriptors[agent_id]
        except KeyError:
            raise NotFound("agent", agent_id) from None

    def get(self, agent_id: str) -> Optional[AgentDescriptor]:
        """Get a descriptor by id, or None."""
        return self._descriptors.get(agent_id)

    def by_category(self, category: Union[AgentCategory, str]) -> tuple[AgentDescriptor, ...]:
        """List descriptors in a category, ordered by id."""
        try:
            category = AgentCategory(category)
        except ValueError:
            return ()
        return self._category_index.get(category, ())

    def by_capability(self, capability: str) -> tuple[str, ...]:
        """List ids of descriptors declaring a capability."""
        return self._capability_index.get(capability.strip().lower(), ())

    def list_all(self) -> list[AgentDescriptor]:
        """List all descriptors, ordered by id."""
        return [self._descriptors[k] for k in sorted(self._descriptors)]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def count(self) -> int:
        """Get total number of registered descriptors."""
        return len(self._descriptors)
