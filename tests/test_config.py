"""Tests for ImpactConfig."""

import pydantic
import pytest

from lawimpact.config import CANONICAL_DIMENSION, ImpactConfig
from lawimpact.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "GEMINI_API_KEY", "ANTHROPIC_API_KEY",
                 "LAWIMPACT_TOP_N", "LAWIMPACT_LINK_THRESHOLD", "LAWIMPACT_ANALYSIS_PROVIDER",
                 "LAWIMPACT_CANONICAL_DIMENSION", "LAWIMPACT_MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Out-of-the-box values."""

    def test_defaults(self):
        config = ImpactConfig()
        assert config.canonical_dimension == CANONICAL_DIMENSION == 1536
        assert config.link_threshold == 0.65
        assert config.top_n == 5
        assert config.embedding_delay_seconds == 0.1
        assert config.analysis_provider == "anthropic"
        assert config.deleted_article_markers == ["삭제"]
        assert "과태료" in config.all_keywords


class TestFromEnv:
    """Environment mapping."""

    def test_reads_variables(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-env")
        clean_env.setenv("LAWIMPACT_TOP_N", "7")
        clean_env.setenv("LAWIMPACT_LINK_THRESHOLD", "0.7")
        clean_env.setenv("LAWIMPACT_ANALYSIS_PROVIDER", "openai")

        config = ImpactConfig.from_env()

        assert config.openai_api_key == "sk-env"
        assert config.top_n == 7
        assert config.link_threshold == 0.7
        assert config.analysis_provider == "openai"

    def test_overrides_win(self, clean_env):
        clean_env.setenv("LAWIMPACT_TOP_N", "7")
        assert ImpactConfig.from_env(top_n=3).top_n == 3

    def test_invalid_value(self, clean_env):
        clean_env.setenv("LAWIMPACT_ANALYSIS_PROVIDER", "someone-else")
        with pytest.raises(pydantic.ValidationError):
            ImpactConfig.from_env()


class TestValidation:
    """Field constraints."""

    @pytest.mark.parametrize("kwargs", [
        {"link_threshold": 1.5},
        {"top_n": 0},
        {"canonical_dimension": 0},
        {"max_retries": 0},
        {"embedding_provider": "anthropic"},
    ])
    def test_rejected(self, kwargs):
        with pytest.raises(pydantic.ValidationError):
            ImpactConfig(**kwargs)

    def test_assignment_is_validated(self):
        config = ImpactConfig()
        with pytest.raises(pydantic.ValidationError):
            config.link_threshold = -0.1

    def test_require_key(self):
        config = ImpactConfig(openai_api_key="sk-test")
        assert config.require_key("openai") == "sk-test"
        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
            config.require_key("gemini")

    def test_keywords_deduplicated_and_blank_dropped(self):
        config = ImpactConfig(keyword_classes={"a": ["허가", " ", ""], "b": ["허가", "신고"]})
        assert config.all_keywords == ["허가", "신고"]
