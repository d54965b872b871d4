"""Task analyzer turning free-text requests into scoring requirements."""

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hive_router.categorizer import tokenize
from hive_router.config import TaxonomyConfig
from hive_router.registry import AgentCategory, ComplexityClass


class Requirement(BaseModel):
    """Parsed intent of one incoming request."""
    model_config = ConfigDict(frozen=True)

    text: str = ""
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    category: AgentCategory = AgentCategory.GENERAL
    complexity: ComplexityClass = ComplexityClass.MEDIUM
    keywords: tuple[str, ...] = ()
    urgency: str = "normal"

    @field_validator("capabilities", mode="before")
    @classmethod
    def _normalize_capabilities(cls, value):
        if isinstance(value, str):
            value = [value]
        return frozenset(str(c).strip().lower() for c in value or () if str(c).strip())

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, value):
        if isinstance(value, str):
            value = [value]
        return tuple(str(k).strip().lower() for k in value or () if str(k).strip())

    def signature(self) -> str:
        """Stable task signature used to group memories of similar tasks."""
        return f"{self.category.value}:{','.join(sorted(self.capabilities))}"


class TaskAnalyzer:
    """Derives a Requirement from request text using the capability taxonomy."""

    def __init__(self, taxonomy: Optional[TaxonomyConfig] = None):
        self.taxonomy = taxonomy or TaxonomyConfig()
        self._stopwords = frozenset(self.taxonomy.stopwords)

    def analyze(
        self,
        text: str,
        capabilities: Optional[Iterable[str]] = None,
        category: Optional[str] = None,
    ) -> Requirement:
        """Analyze a request.

        Explicit ``capabilities`` and ``category`` override what would be
        inferred from the text.
        """
        tokens = tokenize(text)
        keywords = self.extract_keywords(tokens)

        if category is not None:
            resolved_category = AgentCategory(category)
        else:
            resolved_category = self.identify_category(tokens)

        if capabilities is not None:
            required = {self.taxonomy.canonical(c) for c in capabilities}
        else:
            required = self.infer_capabilities(tokens, resolved_category)

        return Requirement(
            text=text,
            capabilities=frozenset(required),
            category=resolved_category,
            complexity=self.estimate_complexity(tokens),
            keywords=keywords,
            urgency=self.detect_urgency(tokens),
        )

    def extract_keywords(self, tokens: list[str]) -> tuple[str, ...]:
        """Unique non-stopword tokens, in order of first appearance."""
        seen: dict[str, None] = {}
        for token in tokens:
            if len(token) < 2 or token in self._stopwords or token.isdigit():
                continue
            seen.setdefault(token, None)
            if len(seen) >= self.taxonomy.max_keywords:
                break
        return tuple(seen)

    def identify_category(self, tokens: list[str]) -> AgentCategory:
        """Pick the domain whose trigger words occur most often."""
        best, best_hits = AgentCategory.GENERAL, 0
        for domain, words in self.taxonomy.domain_patterns.items():
            vocabulary = set(words)
            hits = sum(1 for t in tokens if t in vocabulary)
            if hits > best_hits:
                try:
                    best, best_hits = AgentCategory(domain), hits
                except ValueError:
                    continue
        return best

    def infer_capabilities(self, tokens: list[str], category: AgentCategory) -> set[str]:
        required = {self.taxonomy.canonical(c) for c in self.taxonomy.domain_capabilities.get(category.value, ())}
        for keyword, capabilities in self.taxonomy.keyword_capabilities.items():
            # Prefix match so "test" also covers "tests" and "testing"
            if any(t.startswith(keyword) for t in tokens):
                required.update(self.taxonomy.canonical(c) for c in capabilities)
        return required

    def estimate_complexity(self, tokens: list[str]) -> ComplexityClass:
        token_set = set(tokens)
        for level in (ComplexityClass.HIGH, ComplexityClass.MEDIUM, ComplexityClass.LOW):
            if token_set & set(self.taxonomy.complexity_indicators.get(level.value, ())):
                return level
        return ComplexityClass.MEDIUM

    def detect_urgency(self, tokens: list[str]) -> str:
        return "high" if set(tokens) & set(self.taxonomy.urgency_keywords) else "normal"
