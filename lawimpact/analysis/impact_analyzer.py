"""
Generative-model impact analysis of statute revisions on local regulations.

For one (old statute article, new statute article, regulation article) triple
the analyzer asks a model whether the regulation must change, and parses the
answer into a typed ``ImpactAssessment``. A response that is not valid JSON or
misses a required field is an error; nothing is defaulted.

Usage:
    from lawimpact.analysis import create_impact_analyzer
    from lawimpact.config import ImpactConfig

    analyzer = create_impact_analyzer(ImpactConfig.from_env())
    result = analyzer.analyze(request)
    print(result.impact_level, result.ai_recommendation)

    report = analyzer.batch_analyze(requests)
    print(f"{report.succeeded} ok, {report.failed} failed")
"""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from ..config import ImpactConfig
from ..embeddings.providers import GEMINI_BASE_URL, upstream_message
from ..errors import AnalysisParseError, AnalysisProviderError, ConfigurationError, LawImpactError
from ..models import AnalysisRequest, ImpactAnalysisResult, ImpactAssessment, StatuteArticle
from ..ratelimit import RateLimiter, call_with_retries, status_is_transient

logger = logging.getLogger(__name__)


# =============================================================================
# Prompts
# =============================================================================

SYSTEM_PROMPT = """You are an expert in Korean administrative law reviewing how a
revision of a superior statute (법률, 시행령, 시행규칙) affects a local regulation
(조례, 규칙) enacted under it.

Compare the statute article before and after the revision with the regulation
article, and judge whether the regulation must be amended.

Impact levels:
- HIGH: the regulation now contradicts or exceeds the revised statute and must be
  amended immediately (changed obligations, prohibitions, penalties, deadlines,
  delegated authority, or a deleted legal basis)
- MEDIUM: the regulation is not unlawful but should be amended for consistency
  (changed terminology, procedures, scope, or cited article numbers)
- LOW: minor or informational change with no practical effect on the regulation

Impact types:
- "required-amendment": the regulation must be amended
- "recommended-amendment": amendment is advisable
- "review-needed": a person should review the regulation before deciding
- "no-impact": the regulation is unaffected

Respond ONLY with a single JSON object with exactly these fields:
- impact_level: "HIGH", "MEDIUM", or "LOW"
- impact_type: one of the impact types above
- change_summary: what changed in the statute, in one or two sentences
- ai_recommendation: the concrete amendment or review action for the regulation
- confidence_score: number between 0.0 and 1.0
- reasoning: why this level and type were chosen

Answer in the language of the source material."""

USER_PROMPT_TEMPLATE = """Analyze the impact of this statute revision.

SUPERIOR STATUTE:
- Name: {statute_name}
- Revision date: {revision_date}

BEFORE THE REVISION:
{old_section}

AFTER THE REVISION:
{new_section}

LOCAL REGULATION:
- Name: {regulation_name}

REGULATION ARTICLE ({regulation_heading}):
{regulation_content}

Respond ONLY with valid JSON, no other text."""

NEW_ARTICLE_NOTE = "(new article; it did not exist before this revision)"
DELETED_ARTICLE_NOTE = "(deleted; the article no longer exists after this revision)"


def _article_section(article: StatuteArticle | None, missing_note: str) -> str:
    if article is None:
        return missing_note
    return f"{article.heading}\n{article.content}"


def build_user_prompt(request: AnalysisRequest) -> str:
    """Render the user prompt for one analysis request."""
    return USER_PROMPT_TEMPLATE.format(
        statute_name=request.statute_name,
        revision_date=request.revision_date,
        old_section=_article_section(request.old_article, NEW_ARTICLE_NOTE),
        new_section=_article_section(request.new_article, DELETED_ARTICLE_NOTE),
        regulation_name=request.regulation_name,
        regulation_heading=request.regulation_article.heading,
        regulation_content=request.regulation_article.content,
    )


# =============================================================================
# Response parsing
# =============================================================================


def strip_code_fences(text: str) -> str:
    """Drop markdown ``` fence lines some models wrap JSON in."""
    response_text = text.strip()
    if response_text.startswith("```"):
        lines = response_text.split("\n")
        response_text = "\n".join(line for line in lines if not line.startswith("```"))
    return response_text.strip()


def parse_impact_response(text: Any) -> ImpactAssessment:
    """
    Parse a model response into an ImpactAssessment.

    Raises:
        AnalysisParseError: If the response is empty, not a JSON object, or
            fails schema validation
    """
    if text is not None and not isinstance(text, str):
        raise AnalysisParseError(
            f"Response text is {type(text).__name__}, not a string", raw_response=repr(text)
        )
    if not text or not text.strip():
        raise AnalysisParseError("Empty model response", raw_response=text)

    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(f"Response is not valid JSON: {exc}", raw_response=text) from exc

    if not isinstance(data, dict):
        raise AnalysisParseError("Response JSON is not an object", raw_response=text)

    try:
        return ImpactAssessment.model_validate(data)
    except SchemaValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors())
        raise AnalysisParseError(
            f"Response failed schema validation ({fields})", raw_response=text
        ) from exc


# =============================================================================
# Batch report
# =============================================================================


class BatchItem(BaseModel):
    """Outcome for one request of a batch, in request order."""

    index: int
    regulation_id: str
    regulation_article_id: str
    statute_article_id: str
    result: ImpactAnalysisResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class BatchAnalysisReport(BaseModel):
    """Results of a sequential batch; one item per submitted request."""

    items: list[BatchItem] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.ok)

    @property
    def results(self) -> list[ImpactAnalysisResult]:
        return [item.result for item in self.items if item.result is not None]


ProgressCallback = Callable[[int, int], None]


# =============================================================================
# Analyzer interface
# =============================================================================


class ImpactAnalyzer(ABC):
    """
    Base class for provider-specific analyzers.

    Subclasses implement :meth:`_complete`, one upstream call returning the
    raw response text; prompting, retries, parsing and batching live here.
    """

    name: str = "analyzer"

    def __init__(self, config: ImpactConfig):
        self.config = config
        self.rate_limiter = RateLimiter(config.analysis_delay_seconds)

        # Track statistics
        self.stats = {
            "total_analyzed": 0,
            "high_impact": 0,
            "medium_impact": 0,
            "low_impact": 0,
            "errors": 0,
        }

    @property
    @abstractmethod
    def model(self) -> str:
        """Upstream model identifier."""

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        """Make one upstream call. Must raise AnalysisProviderError on failure."""

    def analyze(self, request: AnalysisRequest) -> ImpactAnalysisResult:
        """
        Analyze one statute/regulation article pair.

        Args:
            request: The statute versions and regulation article to compare

        Returns:
            ImpactAnalysisResult tagged with the request's identifiers

        Raises:
            AnalysisProviderError: If the upstream call fails
            AnalysisParseError: If the response violates the JSON contract
        """
        user_prompt = build_user_prompt(request)
        raw = call_with_retries(
            lambda: self._complete(SYSTEM_PROMPT, user_prompt),
            self.config.max_retries,
        )
        assessment = parse_impact_response(raw)
        result = ImpactAnalysisResult.from_assessment(
            assessment, request, provider=self.name, model=self.model
        )

        self.stats["total_analyzed"] += 1
        self.stats[f"{result.impact_level.value.lower()}_impact"] += 1
        return result

    def batch_analyze(
        self,
        requests: Sequence[AnalysisRequest],
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BatchAnalysisReport:
        """
        Analyze requests one at a time, pausing between calls.

        A failing item is recorded with its error and the batch continues.
        ``cancel_event`` is checked between items; cancelled items are not
        added to the report.
        """
        report = BatchAnalysisReport()
        total = len(requests)

        for index, request in enumerate(requests):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Batch analysis cancelled after {index}/{total} requests")
                report.cancelled = True
                break

            self.rate_limiter.wait()
            item = BatchItem(
                index=index,
                regulation_id=request.regulation_id,
                regulation_article_id=request.regulation_article.id,
                statute_article_id=request.statute_article.id,
            )
            try:
                item.result = self.analyze(request)
            except LawImpactError as e:
                logger.error(
                    f"Error analyzing {request.statute_article.heading} against "
                    f"{request.regulation_name} {request.regulation_article.heading}: {e}"
                )
                self.stats["errors"] += 1
                item.error = str(e)
            report.items.append(item)

            if on_progress is not None:
                on_progress(index + 1, total)

        logger.info(f"Batch analysis: {report.succeeded} succeeded, {report.failed} failed")
        return report


# =============================================================================
# Anthropic
# =============================================================================


class AnthropicImpactAnalyzer(ImpactAnalyzer):
    """Analysis via Claude's messages API."""

    name = "anthropic"

    def __init__(self, config: ImpactConfig, client: Any | None = None):
        super().__init__(config)
        if client is None:
            import anthropic

            client = anthropic.Anthropic(
                api_key=config.require_key("anthropic"),
                timeout=config.request_timeout_seconds,
                max_retries=0,
            )
        self.client = client

    @property
    def model(self) -> str:
        return self.config.anthropic_model

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        import anthropic

        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.config.analysis_max_tokens,
                temperature=self.config.analysis_temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ],
            )
        except (anthropic.RateLimitError, anthropic.APIConnectionError) as exc:
            raise AnalysisProviderError(str(exc), provider=self.name, transient=True) from exc
        except anthropic.APIStatusError as exc:
            raise AnalysisProviderError(
                str(exc),
                provider=self.name,
                status_code=exc.status_code,
                transient=status_is_transient(exc.status_code),
            ) from exc
        except anthropic.AnthropicError as exc:
            raise AnalysisProviderError(str(exc), provider=self.name) from exc

        try:
            return message.content[0].text
        except (AttributeError, IndexError, TypeError) as exc:
            raise AnalysisParseError("Response has no text content") from exc


# =============================================================================
# OpenAI
# =============================================================================


class OpenAIImpactAnalyzer(ImpactAnalyzer):
    """Analysis via OpenAI chat completions in JSON mode."""

    name = "openai"

    def __init__(self, config: ImpactConfig, client: Any | None = None):
        super().__init__(config)
        if client is None:
            from openai import OpenAI

            client = OpenAI(
                api_key=config.require_key("openai"),
                base_url=config.openai_base_url or None,
                timeout=config.request_timeout_seconds,
                max_retries=0,
            )
        self.client = client

    @property
    def model(self) -> str:
        return self.config.openai_analysis_model

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        import openai

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self.config.analysis_temperature,
                max_tokens=self.config.analysis_max_tokens,
            )
        except (openai.RateLimitError, openai.APIConnectionError) as exc:
            raise AnalysisProviderError(str(exc), provider=self.name, transient=True) from exc
        except openai.APIStatusError as exc:
            raise AnalysisProviderError(
                str(exc),
                provider=self.name,
                status_code=exc.status_code,
                transient=status_is_transient(exc.status_code),
            ) from exc
        except openai.OpenAIError as exc:
            raise AnalysisProviderError(str(exc), provider=self.name) from exc

        try:
            return response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise AnalysisParseError("Response has no message content") from exc


# =============================================================================
# Gemini
# =============================================================================


class GeminiImpactAnalyzer(ImpactAnalyzer):
    """Analysis via the Gemini generateContent REST endpoint."""

    name = "gemini"

    def __init__(self, config: ImpactConfig, http_client: httpx.Client | None = None):
        super().__init__(config)
        self.api_key = config.require_key("gemini")
        self.http = http_client or httpx.Client(
            base_url=GEMINI_BASE_URL,
            timeout=config.request_timeout_seconds,
        )

    @property
    def model(self) -> str:
        return self.config.gemini_analysis_model

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.config.analysis_temperature,
                "maxOutputTokens": self.config.analysis_max_tokens,
                "responseMimeType": "application/json",
            },
        }
        try:
            response = self.http.post(
                f"/models/{self.model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TransportError as exc:
            raise AnalysisProviderError(
                f"Gemini request failed: {exc}", provider=self.name, transient=True
            ) from exc

        if response.is_error:
            raise AnalysisProviderError(
                upstream_message(response),
                provider=self.name,
                status_code=response.status_code,
                transient=status_is_transient(response.status_code),
            )

        try:
            data = response.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except ValueError as exc:
            raise AnalysisProviderError(
                "Gemini returned a non-JSON response", provider=self.name
            ) from exc
        except (KeyError, IndexError, TypeError) as exc:
            raise AnalysisParseError(
                f"Gemini response has no candidate text: missing {exc}",
                raw_response=response.text,
            ) from exc


# =============================================================================
# Factory
# =============================================================================


def create_impact_analyzer(config: ImpactConfig, **kwargs) -> ImpactAnalyzer:
    """Instantiate the analyzer named by ``config.analysis_provider``."""
    analyzers: dict[str, type[ImpactAnalyzer]] = {
        "anthropic": AnthropicImpactAnalyzer,
        "openai": OpenAIImpactAnalyzer,
        "gemini": GeminiImpactAnalyzer,
    }
    try:
        analyzer_cls = analyzers[config.analysis_provider]
    except KeyError:
        raise ConfigurationError(
            f"Unknown analysis provider: {config.analysis_provider}"
        ) from None
    return analyzer_cls(config, **kwargs)
