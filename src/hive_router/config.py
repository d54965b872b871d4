"""Configuration module for Hive Router."""

import logging
import math
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class RegistryConfig(BaseModel):
    """Agent registry configuration."""
    source: Optional[str] = None


class EmbeddingConfig(BaseModel):
    """Embedding model configuration."""
    enabled: bool = True
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"
    dimension: int = 384
    timeout_seconds: float = 10.0

    @field_validator("dimension")
    @classmethod
    def _positive_dimension(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("embedding dimension must be positive")
        return value


class PersistenceConfig(BaseModel):
    """Persistence configuration."""
    backend: str = "filesystem"
    data_directory: str = "./data"
    collection_name: str = "agent_memories"
    write_retries: int = 1


DEFAULT_CATEGORY_RULES: dict[str, list[str]] = {
    "development": [
        "code", "function", "programming", "javascript", "python", "react", "vue",
        "angular", "frontend", "backend", "api", "component", "typescript", "node",
        "development", "build", "compile", "refactor", "implement",
    ],
    "security": ["security", "vulnerability", "audit", "penetration", "authentication", "authorization", "oauth", "jwt"],
    "devops": ["deployment", "deploy", "docker", "kubernetes", "infrastructure", "ci/cd", "pipeline", "terraform"],
    "data": ["data", "sql", "database", "analysis", "query", "analytics", "reporting", "etl"],
    "design": ["ui", "ux", "design", "interface", "layout", "responsive", "accessibility"],
    "testing": ["test", "testing", "unit", "integration", "e2e", "qa", "quality"],
    "performance": ["performance", "latency", "profiling", "bottleneck", "caching", "throughput"],
    "content": ["content", "blog", "article", "copywriting", "documentation"],
    "marketing": ["seo", "marketing", "campaign", "sitemap", "ranking"],
}


class MemoryConfig(BaseModel):
    """Memory store configuration."""
    max_interactions: int = 100
    summary_length: int = 500
    content_interactions: int = 3
    related_threshold: float = 0.4
    related_per_hit: int = 2
    category_rules_version: str = "1"
    category_rules: dict[str, list[str]] = Field(default_factory=lambda: dict(DEFAULT_CATEGORY_RULES))
    default_category: str = "general"


class StrategyWeights(BaseModel):
    """Weights over the three scoring factors of one strategy profile."""
    capability: float
    specialization: float
    history: float

    @model_validator(mode="after")
    def _check_weights(self) -> "StrategyWeights":
        weights = (self.capability, self.specialization, self.history)
        if any(w < 0 for w in weights):
            raise ValueError("strategy weights must be non-negative")
        if not math.isclose(sum(weights), 1.0, abs_tol=1e-9):
            raise ValueError(f"strategy weights must sum to 1.0, got {sum(weights)}")
        return self


def _default_profiles() -> dict[str, StrategyWeights]:
    return {
        "balanced": StrategyWeights(capability=0.35, specialization=0.40, history=0.25),
        "performance": StrategyWeights(capability=0.25, specialization=0.25, history=0.50),
        "speed": StrategyWeights(capability=0.50, specialization=0.35, history=0.15),
        "accuracy": StrategyWeights(capability=0.40, specialization=0.40, history=0.20),
    }


class SpecializationConfig(BaseModel):
    """Tables and bonuses used by the specialization score."""
    base: float = 0.5
    pattern_bonus: float = 0.4
    category_bonus: float = 0.2
    direct_match_bonus: float = 0.2
    role_bonus: float = 0.3
    role_category: str = "development"
    off_domain_penalty: float = 0.6
    off_category_penalty: float = 0.3
    patterns: dict[str, list[str]] = Field(default_factory=lambda: {
        "frontend": ["frontend", "react", "vue", "angular", "ui", "web", "css", "javascript", "typescript"],
        "backend": ["backend", "api", "server", "node", "express", "fastify", "database"],
        "database": ["database", "sql", "mysql", "postgres", "mongodb", "redis", "query"],
        "mobile": ["mobile", "ios", "android", "react-native", "flutter", "swift", "kotlin"],
        "devops": ["devops", "docker", "kubernetes", "aws", "azure", "gcp", "terraform", "ci-cd"],
        "testing": ["test", "testing", "qa", "unit", "integration", "e2e", "selenium"],
        "security": ["security", "auth", "oauth", "jwt", "encryption", "vulnerability", "audit"],
        "python": ["python", "django", "flask", "fastapi", "pandas", "numpy"],
        "javascript": ["javascript", "js", "node", "npm", "yarn", "webpack"],
        "typescript": ["typescript", "ts"],
        "java": ["java", "spring", "maven", "gradle", "jvm"],
        "rust": ["rust", "cargo", "wasm"],
        "golang": ["go", "golang", "goroutine"],
        "csharp": ["c#", "csharp", "dotnet", ".net", "aspnet"],
        "php": ["php", "laravel", "symfony", "composer"],
    })
    # Domains whose agents are pushed down unless the task asks for them
    penalized: dict[str, list[str]] = Field(default_factory=lambda: {
        "seo": ["seo", "search-engine", "keyword", "ranking", "sitemap"],
    })
    role_terms: list[str] = Field(default_factory=lambda: [
        "developer", "engineer", "programmer", "coder", "architect", "specialist", "pro", "expert",
    ])
    off_category_terms: list[str] = Field(default_factory=lambda: ["seo", "content", "marketing"])
    off_category_exempt: list[str] = Field(default_factory=lambda: ["marketing", "content"])


class MatchingConfig(BaseModel):
    """Capability matcher configuration."""
    profiles: dict[str, StrategyWeights] = Field(default_factory=_default_profiles)
    default_strategy: str = "balanced"
    min_score: float = 0.3
    cold_start_prior: float = 0.5
    history_window: int = 50
    alternatives: int = 3
    specialization: SpecializationConfig = Field(default_factory=SpecializationConfig)

    @model_validator(mode="after")
    def _default_profile_exists(self) -> "MatchingConfig":
        if self.default_strategy not in self.profiles:
            raise ValueError(f"default strategy '{self.default_strategy}' has no profile")
        return self


class TaxonomyConfig(BaseModel):
    """Versioned capability taxonomy used to turn request text into requirements."""
    version: str = "1"
    aliases: dict[str, str] = Field(default_factory=lambda: {
        "code generation": "code-generation",
        "codegen": "code-generation",
        "architecture": "architecture-design",
        "testing": "testing-debugging",
        "debugging": "testing-debugging",
        "analysis": "code-analysis",
    })
    domain_patterns: dict[str, list[str]] = Field(default_factory=lambda: {
        "development": [
            "code", "function", "debug", "programming", "javascript", "python", "react", "vue",
            "angular", "frontend", "backend", "api", "component", "typescript", "node", "npm",
            "development", "build", "compile",
        ],
        "security": ["security", "vulnerability", "audit", "penetration", "authentication", "authorization"],
        "devops": ["deployment", "docker", "kubernetes", "infrastructure", "ci/cd", "pipeline", "server"],
        "data": ["data", "sql", "database", "analysis", "query", "analytics", "reporting"],
        "design": ["ui", "ux", "design", "interface", "layout", "responsive", "accessibility"],
        "testing": ["test", "testing", "unit", "integration", "e2e", "qa", "quality"],
    })
    domain_capabilities: dict[str, list[str]] = Field(default_factory=lambda: {
        "development": ["code-generation"],
        "security": ["code-analysis", "testing-debugging"],
        "devops": ["deployment", "integration"],
        "data": ["code-analysis", "optimization"],
        "design": ["architecture-design", "code-generation"],
        "testing": ["testing-debugging", "code-analysis"],
        "ai-ml": ["code-generation", "integration"],
        "business": ["general-purpose"],
        "content": ["writing"],
    })
    keyword_capabilities: dict[str, list[str]] = Field(default_factory=lambda: {
        "api": ["integration"],
        "database": ["optimization"],
        "security": ["code-analysis"],
        "test": ["testing-debugging"],
        "deploy": ["deployment"],
        "optimize": ["optimization"],
        "debug": ["testing-debugging"],
        "architecture": ["architecture-design"],
    })
    complexity_indicators: dict[str, list[str]] = Field(default_factory=lambda: {
        "high": ["architect", "design", "refactor", "implement", "enterprise", "comprehensive", "distributed"],
        "medium": ["analyze", "review", "optimize", "debug", "build", "create"],
        "low": ["help", "what", "show", "quick", "simple", "explain"],
    })
    urgency_keywords: list[str] = Field(default_factory=lambda: [
        "urgent", "asap", "immediately", "critical", "emergency", "priority", "rush",
    ])
    stopwords: list[str] = Field(default_factory=lambda: [
        "the", "and", "for", "with", "that", "this", "from", "into", "please", "can", "you",
        "our", "your", "are", "was", "will", "have", "has", "not", "but", "all", "any", "its",
        "a", "an", "to", "of", "in", "on", "is", "it", "me", "my", "we", "be", "by", "or", "as",
    ])
    max_keywords: int = 12

    def canonical(self, capability: str) -> str:
        """Map a capability name onto its canonical taxonomy name."""
        name = capability.strip().lower()
        return self.aliases.get(name, name)


class ClassifierConfig(BaseModel):
    """Execution outcome classifier thresholds."""
    timeout_ms: float = 30000
    degraded_ms: float = 20000
    min_response_length: int = 50
    success_threshold: float = 0.5
    error_quality: float = 0.0
    timeout_quality: float = 0.1
    incomplete_quality: float = 0.3
    degraded_quality_min: float = 0.5
    degraded_quality_max: float = 0.9
    success_quality_min: float = 0.85
    success_quality_max: float = 1.0
    simulated_failure_quality_min: float = 0.2
    simulated_failure_quality_max: float = 0.45
    simulated_failure_probability: dict[str, float] = Field(default_factory=lambda: {
        "low": 0.05,
        "medium": 0.05,
        "high": 0.12,
    })
    error_patterns: list[str] = Field(default_factory=list)
    seed: Optional[int] = None

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ClassifierConfig":
        if self.degraded_ms >= self.timeout_ms:
            raise ValueError("degraded_ms must be lower than timeout_ms")
        return self


class RouterConfig(BaseModel):
    """Router configuration."""
    dispatch_timeout_seconds: float = 30.0
    memory_top_k: int = 3
    memory_min_similarity: float = 0.3
    memory_scope: str = "agent"
    budget_tokens: int = 4000


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def configure(self) -> None:
        """Apply this configuration to the root logger."""
        logging.basicConfig(level=self.level.upper(), format=self.format)


class Config(BaseModel):
    """Main configuration for Hive Router."""
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    taxonomy: TaxonomyConfig = Field(default_factory=TaxonomyConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_default_locations(cls) -> "Config":
        """Load configuration from default locations."""
        env_path = os.environ.get("HIVE_ROUTER_CONFIG")
        if env_path:
            return cls.from_yaml(env_path)

        for path in (Path("config.yaml"), Path("config.yml")):
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split(".")
        value = self.model_dump()

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k, default)
            else:
                return default

        return value
