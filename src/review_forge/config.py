"""Configuration management for Review Forge.

Service-level settings come from the environment; per-repository review
settings come from the repository's config file and are validated by
``RepoConfig``.
"""

import os
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from review_forge.models import Severity


@dataclass
class ServiceConfig:
    """Process-wide service configuration."""

    # Model provider
    anthropic_api_key: str | None = None
    default_model: str = "claude-sonnet-4-20250514"

    # Knowledge backend
    knowledge_backend: str = "external"  # "external" (Qdrant + Neo4j) | "memory"

    # Qdrant configuration
    qdrant_url: str | None = None
    qdrant_api_key: str | None = None
    qdrant_collection: str = "review_interactions"

    # Neo4j configuration
    neo4j_uri: str | None = None
    neo4j_user: str = "neo4j"
    neo4j_password: str = "neo4j"
    neo4j_database: str = "neo4j"

    # Embeddings
    embedding_backend: str = "hash"  # "hash" | "ollama"
    ollama_url: str = "http://localhost:11434"
    embedding_model: str = "mxbai-embed-large"
    embedding_dimension: int = 1024

    # Gate and metrics
    db_path: str = "review_forge.db"

    # Background interaction writes
    background_concurrency: int = 4

    @property
    def learning_enabled(self) -> bool:
        """The memory backend, or both external stores, enables the learning loop."""
        if self.knowledge_backend == "memory":
            return True
        return bool(self.qdrant_url and self.neo4j_uri)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("REVIEW_FORGE_MODEL", "claude-sonnet-4-20250514"),
            knowledge_backend=os.getenv("KNOWLEDGE_BACKEND", "external"),
            qdrant_url=os.getenv("QDRANT_URL"),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            qdrant_collection=os.getenv("QDRANT_COLLECTION", "review_interactions"),
            neo4j_uri=os.getenv("NEO4J_URI"),
            neo4j_user=os.getenv("NEO4J_USER", "neo4j"),
            neo4j_password=os.getenv("NEO4J_PASSWORD", "neo4j"),
            neo4j_database=os.getenv("NEO4J_DATABASE", "neo4j"),
            embedding_backend=os.getenv("EMBEDDING_BACKEND", "hash"),
            ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "mxbai-embed-large"),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "1024")),
            db_path=os.getenv("REVIEW_FORGE_DB_PATH", "review_forge.db"),
            background_concurrency=int(os.getenv("REVIEW_FORGE_BACKGROUND_CONCURRENCY", "4")),
        )


# =============================================================================
# Per-repository configuration
# =============================================================================


class RuleConfig(BaseModel):
    """Settings for one static rule."""

    enabled: bool = True
    severity: Severity = Severity.WARNING
    max_lines: int | None = None
    patterns: list[str] | None = None


class LLMConfig(BaseModel):
    """Settings for the model review pass."""

    enabled: bool = True
    model: str = "claude-sonnet-4-20250514"
    max_token_budget: int = 80000
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    focus_areas: list[str] = Field(
        default_factory=lambda: ["bugs", "security", "performance", "readability", "maintainability"]
    )
    custom_instructions: str | None = None
    max_tool_iterations: int = 10


class FilterConfig(BaseModel):
    """Which files are eligible for review."""

    exclude_paths: list[str] = Field(
        default_factory=lambda: [
            "package-lock.json",
            "yarn.lock",
            "pnpm-lock.yaml",
            "*.min.js",
            "*.min.css",
            "dist/**",
            "build/**",
            "node_modules/**",
        ]
    )
    include_paths: list[str] | None = None
    max_files: int = 50
    max_file_size_kb: int = 200


class ReviewSettings(BaseModel):
    """How findings are published."""

    post_summary: bool = True
    dismiss_on_update: bool = True
    inline_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_inline_comments: int = 5


class LearningSettings(BaseModel):
    """Learning loop switches."""

    enabled: bool = True
    feedback_from_resolved: bool = True


def _default_rules() -> dict[str, RuleConfig]:
    return {
        "no-console-log": RuleConfig(severity=Severity.WARNING),
        "max-file-size": RuleConfig(severity=Severity.WARNING, max_lines=500),
        "no-secrets": RuleConfig(severity=Severity.ERROR),
        "require-tests": RuleConfig(severity=Severity.WARNING),
        "no-todo": RuleConfig(severity=Severity.INFO),
    }


class RepoConfig(BaseModel):
    """Per-repository review configuration."""

    enabled: bool = True
    rules: dict[str, RuleConfig] = Field(default_factory=_default_rules)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "RepoConfig":
        """Validate a raw mapping (e.g. a loaded YAML file) into a config.

        Rules named in the mapping override the built-in rule defaults
        one by one; unnamed rules keep their defaults.
        """
        parsed = cls.model_validate(raw or {})
        if raw and "rules" in raw:
            parsed.rules = {**_default_rules(), **parsed.rules}
        return parsed


# Global config instance
config = ServiceConfig.from_env()
