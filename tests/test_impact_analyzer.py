"""
Tests for the generative-model impact analyzer.

Provider SDK clients are mocked and the Gemini REST endpoint is served by
httpx.MockTransport; no API calls are made.
"""

import json
import threading
from types import SimpleNamespace
from unittest.mock import Mock

import anthropic
import httpx
import pydantic
import pytest

from lawimpact.analysis.impact_analyzer import (
    DELETED_ARTICLE_NOTE,
    NEW_ARTICLE_NOTE,
    SYSTEM_PROMPT,
    AnthropicImpactAnalyzer,
    GeminiImpactAnalyzer,
    OpenAIImpactAnalyzer,
    build_user_prompt,
    create_impact_analyzer,
    parse_impact_response,
)
from lawimpact.config import ImpactConfig
from lawimpact.embeddings.providers import GEMINI_BASE_URL
from lawimpact.errors import AnalysisParseError, AnalysisProviderError, ConfigurationError
from lawimpact.models import AnalysisRequest, ImpactLevel, ImpactType


# =============================================================================
# Test Fixtures
# =============================================================================


VALID_PAYLOAD = {
    "impact_level": "HIGH",
    "impact_type": "required-amendment",
    "change_summary": "과태료 상한이 50만원에서 100만원으로 상향되었습니다.",
    "ai_recommendation": "조례 별표 3의 과태료 부과기준을 상향 조정하십시오.",
    "confidence_score": 0.9,
    "reasoning": "조례가 법 제5조의 과태료 금액을 직접 인용합니다.",
}


def anthropic_message(text):
    return SimpleNamespace(content=[SimpleNamespace(text=text)])


@pytest.fixture
def request_(statute, revision, old_articles, new_articles, regulation, regulation_articles):
    return AnalysisRequest(
        revision_id=revision.id,
        statute_name=statute.name,
        revision_date=revision.revision_date,
        old_article=old_articles[0],
        new_article=new_articles[0],
        regulation_id=regulation.id,
        regulation_name=regulation.name,
        regulation_article=regulation_articles[0],
    )


@pytest.fixture
def mock_anthropic_client():
    client = Mock()
    client.messages.create.return_value = anthropic_message(json.dumps(VALID_PAYLOAD))
    return client


# =============================================================================
# Response Parsing
# =============================================================================


class TestParseImpactResponse:
    """JSON contract enforcement."""

    def test_valid(self):
        assessment = parse_impact_response(json.dumps(VALID_PAYLOAD))
        assert assessment.impact_level == ImpactLevel.HIGH
        assert assessment.impact_type == ImpactType.REQUIRED_AMENDMENT
        assert assessment.confidence_score == 0.9

    def test_code_fences_are_stripped(self):
        text = "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"
        assert parse_impact_response(text).impact_level == ImpactLevel.HIGH

    def test_korean_labels_and_lowercase_level(self):
        payload = dict(VALID_PAYLOAD, impact_level="medium", impact_type="권고개정")
        assessment = parse_impact_response(json.dumps(payload, ensure_ascii=False))
        assert assessment.impact_level == ImpactLevel.MEDIUM
        assert assessment.impact_type == ImpactType.RECOMMENDED_AMENDMENT

    def test_underscored_type(self):
        payload = dict(VALID_PAYLOAD, impact_type="REVIEW_NEEDED")
        assert parse_impact_response(json.dumps(payload)).impact_type == ImpactType.REVIEW_NEEDED

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "not json at all",
        '{"impact_level": "HIGH"',
        "[1, 2, 3]",
    ])
    def test_malformed(self, text):
        with pytest.raises(AnalysisParseError):
            parse_impact_response(text)

    @pytest.mark.parametrize("text", [5, None, {"impact_level": "HIGH"}, ["HIGH"]])
    def test_non_string_response(self, text):
        with pytest.raises(AnalysisParseError):
            parse_impact_response(text)

    @pytest.mark.parametrize("field", list(VALID_PAYLOAD))
    def test_missing_field_is_never_defaulted(self, field):
        payload = {k: v for k, v in VALID_PAYLOAD.items() if k != field}
        with pytest.raises(AnalysisParseError) as exc_info:
            parse_impact_response(json.dumps(payload))
        assert field in str(exc_info.value)

    @pytest.mark.parametrize("override", [
        {"confidence_score": 1.5},
        {"confidence_score": -0.1},
        {"impact_level": "CRITICAL"},
        {"impact_type": "rewrite-everything"},
        {"change_summary": ""},
    ])
    def test_invalid_values(self, override):
        with pytest.raises(AnalysisParseError) as exc_info:
            parse_impact_response(json.dumps(dict(VALID_PAYLOAD, **override)))
        assert exc_info.value.raw_response is not None


# =============================================================================
# Prompt
# =============================================================================


class TestPrompt:
    """User prompt rendering."""

    def test_contains_both_versions_and_regulation(self, request_):
        prompt = build_user_prompt(request_)
        assert "주차장법" in prompt
        assert "2024-03-01" in prompt
        assert "50만원" in prompt
        assert "100만원" in prompt
        assert "서울특별시 주차장 설치 및 관리 조례" in prompt
        assert "제12조 (과태료의 부과)" in prompt

    def test_new_article_note(self, request_):
        prompt = build_user_prompt(request_.model_copy(update={"old_article": None}))
        assert NEW_ARTICLE_NOTE in prompt

    def test_deleted_article_note(self, request_):
        prompt = build_user_prompt(request_.model_copy(update={"new_article": None}))
        assert DELETED_ARTICLE_NOTE in prompt
        assert "50만원" in prompt

    def test_request_needs_a_statute_version(self, request_):
        data = request_.model_dump()
        data.update(old_article=None, new_article=None)
        with pytest.raises(pydantic.ValidationError):
            AnalysisRequest.model_validate(data)

    def test_system_prompt_fixes_contract(self):
        for field in VALID_PAYLOAD:
            assert field in SYSTEM_PROMPT
        for level in ("HIGH", "MEDIUM", "LOW"):
            assert level in SYSTEM_PROMPT


# =============================================================================
# Anthropic Analyzer
# =============================================================================


class TestAnthropicImpactAnalyzer:
    """Claude messages API integration."""

    def test_analyze(self, config, request_, mock_anthropic_client):
        analyzer = AnthropicImpactAnalyzer(config, client=mock_anthropic_client)

        result = analyzer.analyze(request_)

        assert result.impact_level == ImpactLevel.HIGH
        assert result.revision_id == "law-1-r2"
        assert result.regulation_id == "reg-1"
        assert result.statute_article_id == "law-1:5@r2"
        assert result.regulation_article_id == "ra-1"
        assert result.provider == "anthropic"
        assert result.model == config.anthropic_model
        assert analyzer.stats["total_analyzed"] == 1
        assert analyzer.stats["high_impact"] == 1

        kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1500
        assert kwargs["messages"][0]["role"] == "user"

    def test_result_is_immutable(self, config, request_, mock_anthropic_client):
        result = AnthropicImpactAnalyzer(config, client=mock_anthropic_client).analyze(request_)
        with pytest.raises(pydantic.ValidationError):
            result.impact_level = ImpactLevel.LOW

    def test_connection_error(self, config, request_):
        client = Mock()
        client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        analyzer = AnthropicImpactAnalyzer(config, client=client)

        with pytest.raises(AnalysisProviderError) as exc_info:
            analyzer.analyze(request_)
        assert exc_info.value.transient

    def test_unparseable_response(self, config, request_):
        client = Mock()
        client.messages.create.return_value = anthropic_message("I think it is HIGH impact.")
        with pytest.raises(AnalysisParseError):
            AnthropicImpactAnalyzer(config, client=client).analyze(request_)


class TestBatchAnalyze:
    """Sequential batches with per-item failure."""

    def test_partial_failure(self, config, request_):
        client = Mock()
        client.messages.create.side_effect = [
            anthropic_message(json.dumps(VALID_PAYLOAD)),
            anthropic_message("not json"),
            anthropic_message(json.dumps(dict(VALID_PAYLOAD, impact_level="LOW"))),
        ]
        analyzer = AnthropicImpactAnalyzer(config, client=client)
        progress = []

        report = analyzer.batch_analyze(
            [request_, request_, request_],
            on_progress=lambda done, total: progress.append((done, total)),
        )

        assert len(report.items) == 3
        assert report.succeeded == 2
        assert report.failed == 1
        assert report.items[0].result.impact_level == ImpactLevel.HIGH
        assert report.items[1].result is None
        assert report.items[1].error
        assert report.items[2].result.impact_level == ImpactLevel.LOW
        assert len(report.results) == 2
        assert progress == [(1, 3), (2, 3), (3, 3)]
        assert analyzer.stats["errors"] == 1

    def test_cancel(self, config, request_, mock_anthropic_client):
        cancel = threading.Event()
        cancel.set()

        report = AnthropicImpactAnalyzer(config, client=mock_anthropic_client).batch_analyze(
            [request_, request_], cancel_event=cancel
        )

        assert report.cancelled
        assert report.items == []
        mock_anthropic_client.messages.create.assert_not_called()

    def test_paces_calls(self, config, request_, mock_anthropic_client):
        analyzer = AnthropicImpactAnalyzer(config, client=mock_anthropic_client)
        waits = []
        analyzer.rate_limiter.wait = lambda: waits.append(1)

        analyzer.batch_analyze([request_, request_, request_])

        assert len(waits) == 3


# =============================================================================
# OpenAI and Gemini Analyzers
# =============================================================================


class TestOpenAIImpactAnalyzer:
    """Chat completions in JSON mode."""

    def test_analyze(self, config, request_):
        client = Mock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(VALID_PAYLOAD)))]
        )
        result = OpenAIImpactAnalyzer(config, client=client).analyze(request_)

        assert result.provider == "openai"
        assert result.model == "gpt-4o-mini"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}


class TestGeminiImpactAnalyzer:
    """generateContent over httpx."""

    def test_analyze(self, config, request_):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": json.dumps(VALID_PAYLOAD)}]}}]
            })

        http = httpx.Client(base_url=GEMINI_BASE_URL, transport=httpx.MockTransport(handler))
        result = GeminiImpactAnalyzer(config, http_client=http).analyze(request_)

        assert result.provider == "gemini"
        assert seen["path"].endswith(":generateContent")
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == SYSTEM_PROMPT

    def test_server_error(self, config, request_):
        http = httpx.Client(
            base_url=GEMINI_BASE_URL,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(500, json={"error": {"message": "internal"}})
            ),
        )
        with pytest.raises(AnalysisProviderError) as exc_info:
            GeminiImpactAnalyzer(config, http_client=http).analyze(request_)

        assert exc_info.value.status_code == 500
        assert exc_info.value.transient
        assert "internal" in str(exc_info.value)

    def test_non_string_text_fails_only_that_item(self, config, request_):
        texts = iter([json.dumps(VALID_PAYLOAD), 5, json.dumps(VALID_PAYLOAD)])

        def handler(request):
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": next(texts)}]}}]
            })

        http = httpx.Client(base_url=GEMINI_BASE_URL, transport=httpx.MockTransport(handler))
        report = GeminiImpactAnalyzer(config, http_client=http).batch_analyze(
            [request_, request_, request_]
        )

        assert len(report.items) == 3
        assert report.succeeded == 2
        assert report.items[1].result is None
        assert "not a string" in report.items[1].error

    def test_no_candidates(self, config, request_):
        http = httpx.Client(
            base_url=GEMINI_BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []})),
        )
        with pytest.raises(AnalysisParseError):
            GeminiImpactAnalyzer(config, http_client=http).analyze(request_)


class TestFactory:
    """Analyzer selection by config."""

    def test_default_is_anthropic(self, config, mock_anthropic_client):
        analyzer = create_impact_analyzer(config, client=mock_anthropic_client)
        assert isinstance(analyzer, AnthropicImpactAnalyzer)

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            create_impact_analyzer(ImpactConfig(analysis_provider="gemini"))
