"""
Runtime configuration for the impact engine.

Every component takes an ``ImpactConfig`` in its constructor; nothing reads
API keys or thresholds from module globals. ``ImpactConfig.from_env()`` loads a
``.env`` file and maps environment variables onto the model.

Environment variables:
    OPENAI_API_KEY, GEMINI_API_KEY, ANTHROPIC_API_KEY
    NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD
    LAWIMPACT_EMBEDDING_PROVIDER   openai | gemini
    LAWIMPACT_ANALYSIS_PROVIDER    anthropic | openai | gemini
    LAWIMPACT_LINK_THRESHOLD       e.g. 0.65
    LAWIMPACT_SEARCH_THRESHOLD     e.g. 0.8
    LAWIMPACT_TOP_N                e.g. 5
    LAWIMPACT_ANALYSIS_DELAY       seconds between analysis calls
    LAWIMPACT_EMBEDDING_DELAY      seconds between embedding calls/batches
    LAWIMPACT_REQUEST_TIMEOUT      seconds per provider call
    LAWIMPACT_MAX_RETRIES          attempts for transient provider errors
"""
from __future__ import annotations

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError

# =============================================================================
# Defaults
# =============================================================================

CANONICAL_DIMENSION = 1536
DEFAULT_EMBEDDING_BATCH_SIZE = 100
DEFAULT_MAX_CHUNK_TOKENS = 8000

DEFAULT_LINK_THRESHOLD = 0.65
DEFAULT_SEARCH_THRESHOLD = 0.8
DEFAULT_TOP_N = 5

DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_GEMINI_EMBEDDING_MODEL = "text-embedding-004"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_OPENAI_ANALYSIS_MODEL = "gpt-4o-mini"
DEFAULT_GEMINI_ANALYSIS_MODEL = "gemini-2.0-flash"

# Keyword classes used by the heuristic pre-filter. Korean terms come from
# statute drafting conventions; English equivalents cover translated corpora.
DEFAULT_KEYWORD_CLASSES: dict[str, list[str]] = {
    "obligation": ["의무", "하여야 한다", "shall", "must", "obligation"],
    "prohibition": ["금지", "아니 된다", "prohibit", "shall not", "must not"],
    "penalty": ["벌칙", "과태료", "처벌", "벌금", "penalty", "fine", "imprisonment"],
    "deadline": ["기한", "기간", "이내", "deadline", "within"],
    "procedure": ["절차", "신고", "신청", "procedure", "report", "notify"],
    "approval": ["승인", "허가", "인가", "approval", "permit", "license"],
    "scope": ["범위", "대상", "제외", "포함", "scope", "exclude", "include"],
}


EmbeddingProviderName = Literal["openai", "gemini"]
AnalysisProviderName = Literal["anthropic", "openai", "gemini"]


class ImpactConfig(BaseModel):
    """
    All tunable settings of the engine.

    Attributes:
        canonical_dimension: Length every stored embedding is normalized to
        embedding_batch_size: Texts per upstream embedding request
        embedding_delay_seconds: Pause between embedding batches / backfill items
        max_chunk_tokens: Chunk budget for long-text embedding
        link_threshold: Minimum similarity for a persisted Link
        search_threshold: Default similarity floor for related-article lookups
        top_n: Candidate statute articles requested per regulation
        keyword_classes: Legally significant terms for the pre-filter
        analysis_delay_seconds: Pause between sequential analysis calls
        request_timeout_seconds: Bound on every provider HTTP call
        max_retries: Attempts for transient provider errors (1 = no retry)
    """

    canonical_dimension: int = Field(default=CANONICAL_DIMENSION, gt=0)
    embedding_batch_size: int = Field(default=DEFAULT_EMBEDDING_BATCH_SIZE, gt=0)
    embedding_delay_seconds: float = Field(default=0.1, ge=0)
    max_chunk_tokens: int = Field(default=DEFAULT_MAX_CHUNK_TOKENS, gt=0)

    link_threshold: float = Field(default=DEFAULT_LINK_THRESHOLD, ge=0, le=1)
    search_threshold: float = Field(default=DEFAULT_SEARCH_THRESHOLD, ge=-1, le=1)
    top_n: int = Field(default=DEFAULT_TOP_N, gt=0)
    deleted_article_markers: list[str] = Field(default_factory=lambda: ["삭제"])

    keyword_classes: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_KEYWORD_CLASSES.items()}
    )

    embedding_provider: EmbeddingProviderName = "openai"
    analysis_provider: AnalysisProviderName = "anthropic"
    openai_embedding_model: str = DEFAULT_OPENAI_EMBEDDING_MODEL
    gemini_embedding_model: str = DEFAULT_GEMINI_EMBEDDING_MODEL
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    openai_analysis_model: str = DEFAULT_OPENAI_ANALYSIS_MODEL
    gemini_analysis_model: str = DEFAULT_GEMINI_ANALYSIS_MODEL
    analysis_temperature: float = Field(default=0.3, ge=0, le=2)
    analysis_max_tokens: int = Field(default=1500, gt=0)

    analysis_delay_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    gemini_api_key: str | None = None
    anthropic_api_key: str | None = None

    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"

    model_config = {"validate_assignment": True}

    @field_validator("keyword_classes")
    @classmethod
    def _drop_blank_keywords(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            name: [kw for kw in keywords if kw and kw.strip()]
            for name, keywords in value.items()
        }

    @property
    def all_keywords(self) -> list[str]:
        """Flattened keyword list, de-duplicated, in class order."""
        seen: dict[str, None] = {}
        for keywords in self.keyword_classes.values():
            for kw in keywords:
                seen.setdefault(kw, None)
        return list(seen)

    def require_key(self, provider: str) -> str:
        """Return the API key for a provider or raise ConfigurationError."""
        key = {
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(provider)
        if not key:
            raise ConfigurationError(
                f"{provider} API key required. "
                f"Set {provider.upper()}_API_KEY or pass it in ImpactConfig."
            )
        return key

    @classmethod
    def from_env(cls, **overrides) -> ImpactConfig:
        """Build a config from environment variables (and a .env file)."""
        load_dotenv()

        values: dict = {
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "openai_base_url": os.getenv("OPENAI_BASE_URL"),
            "gemini_api_key": os.getenv("GEMINI_API_KEY"),
            "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
            "neo4j_uri": os.getenv("NEO4J_URI", "bolt://localhost:7687"),
            "neo4j_user": os.getenv("NEO4J_USER", "neo4j"),
            "neo4j_password": os.getenv("NEO4J_PASSWORD", "password"),
        }

        env_map = {
            "LAWIMPACT_EMBEDDING_PROVIDER": "embedding_provider",
            "LAWIMPACT_ANALYSIS_PROVIDER": "analysis_provider",
            "LAWIMPACT_LINK_THRESHOLD": "link_threshold",
            "LAWIMPACT_SEARCH_THRESHOLD": "search_threshold",
            "LAWIMPACT_TOP_N": "top_n",
            "LAWIMPACT_ANALYSIS_DELAY": "analysis_delay_seconds",
            "LAWIMPACT_EMBEDDING_DELAY": "embedding_delay_seconds",
            "LAWIMPACT_REQUEST_TIMEOUT": "request_timeout_seconds",
            "LAWIMPACT_MAX_RETRIES": "max_retries",
            "LAWIMPACT_CANONICAL_DIMENSION": "canonical_dimension",
        }
        for env_name, field_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()

        values.update(overrides)
        return cls.model_validate(values)
