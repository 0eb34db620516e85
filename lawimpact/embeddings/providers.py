"""
Embedding providers.

Every provider returns vectors of ``config.canonical_dimension`` floats: the
native vector is truncated when it is longer and zero-padded when it is
shorter (Gemini's text-embedding-004 produces 768 dimensions while the vector
store is sized for OpenAI's 1536).

Usage:
    from lawimpact.config import ImpactConfig
    from lawimpact.embeddings import create_embedding_provider

    provider = create_embedding_provider(ImpactConfig.from_env())
    vector = provider.embed_long_text(article.text_for_embedding())
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx
import numpy as np

from ..config import ImpactConfig
from ..errors import ConfigurationError, EmbeddingProviderError, ValidationError
from ..ratelimit import call_with_retries, status_is_transient
from .chunking import chunk, normalize

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


# =============================================================================
# Vector helpers
# =============================================================================


def fit_dimension(vector: Sequence[float], dimension: int) -> list[float]:
    """Truncate or zero-pad a vector to exactly ``dimension`` floats."""
    values = [float(v) for v in vector]
    if len(values) >= dimension:
        return values[:dimension]
    return values + [0.0] * (dimension - len(values))


def average_embeddings(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise arithmetic mean of equal-length vectors."""
    if not vectors:
        return []
    matrix = np.asarray(vectors, dtype=np.float64)
    return matrix.mean(axis=0).tolist()


def _require_text(text: str) -> None:
    if text is None or not str(text).strip():
        raise ValidationError("Text cannot be empty")


# =============================================================================
# Provider interface
# =============================================================================


class EmbeddingProvider(ABC):
    """
    Turns text into canonical-dimension vectors.

    Subclasses implement :meth:`_request`, a single upstream call for a list
    of texts returning native-dimension vectors in input order.
    """

    name: str = "embedding"

    def __init__(self, config: ImpactConfig):
        self.config = config

    @property
    @abstractmethod
    def model(self) -> str:
        """Upstream model identifier."""

    @abstractmethod
    def _request(self, texts: list[str]) -> list[list[float]]:
        """Make one upstream call. Must raise EmbeddingProviderError on failure."""

    def _call(self, texts: list[str]) -> list[list[float]]:
        vectors = call_with_retries(lambda: self._request(texts), self.config.max_retries)
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Expected {len(texts)} embeddings, received {len(vectors)}",
                provider=self.name,
            )
        return [fit_dimension(v, self.config.canonical_dimension) for v in vectors]

    def embed(self, text: str) -> list[float]:
        """Embed one text. Blank text raises ValidationError without a network call."""
        _require_text(text)
        return self._call([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed many texts in bounded batches.

        Any failed batch fails the whole call; retry smaller groups if needed.
        """
        items = list(texts)
        if not items:
            raise ValidationError("Texts cannot be empty")
        for text in items:
            _require_text(text)

        size = self.config.embedding_batch_size
        vectors: list[list[float]] = []
        for start in range(0, len(items), size):
            if start and self.config.embedding_delay_seconds:
                time.sleep(self.config.embedding_delay_seconds)
            batch = items[start : start + size]
            logger.debug(f"Embedding batch of {len(batch)} texts with {self.name}/{self.model}")
            vectors.extend(self._call(batch))
        return vectors

    def embed_long_text(self, text: str) -> list[float]:
        """
        Embed arbitrarily long text.

        The text is chunked on paragraph/sentence boundaries; with several
        chunks the result is the mean of the chunk vectors.
        """
        _require_text(text)
        chunks = [normalize(c) for c in chunk(text, self.config.max_chunk_tokens)]
        chunks = [c for c in chunks if c]
        if len(chunks) == 1:
            return self.embed(chunks[0])
        return average_embeddings(self.embed_batch(chunks))


# =============================================================================
# OpenAI
# =============================================================================


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings via the OpenAI SDK (text-embedding-3-small, 1536 dims)."""

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
        return self.config.openai_embedding_model

    def _request(self, texts: list[str]) -> list[list[float]]:
        import openai

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=texts,
                encoding_format="float",
            )
        except (openai.RateLimitError, openai.APIConnectionError) as exc:
            raise EmbeddingProviderError(str(exc), provider=self.name, transient=True) from exc
        except openai.APIStatusError as exc:
            raise EmbeddingProviderError(
                str(exc),
                provider=self.name,
                status_code=exc.status_code,
                transient=status_is_transient(exc.status_code),
            ) from exc
        except openai.OpenAIError as exc:
            raise EmbeddingProviderError(str(exc), provider=self.name) from exc

        try:
            ordered = sorted(response.data, key=lambda item: item.index)
            return [list(item.embedding) for item in ordered]
        except (AttributeError, TypeError) as exc:
            raise EmbeddingProviderError(
                f"Malformed embedding response: {exc}", provider=self.name
            ) from exc


# =============================================================================
# Gemini
# =============================================================================


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Embeddings via the Gemini REST API (text-embedding-004, 768 dims)."""

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
        return self.config.gemini_embedding_model

    def _content(self, text: str) -> dict:
        return {"model": f"models/{self.model}", "content": {"parts": [{"text": text}]}}

    def _post(self, action: str, payload: dict) -> dict:
        try:
            response = self.http.post(
                f"/models/{self.model}:{action}",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TransportError as exc:
            raise EmbeddingProviderError(
                f"Gemini request failed: {exc}", provider=self.name, transient=True
            ) from exc

        if response.is_error:
            raise EmbeddingProviderError(
                upstream_message(response),
                provider=self.name,
                status_code=response.status_code,
                transient=status_is_transient(response.status_code),
            )
        try:
            return response.json()
        except ValueError as exc:
            raise EmbeddingProviderError(
                "Gemini returned a non-JSON response", provider=self.name
            ) from exc

    def _request(self, texts: list[str]) -> list[list[float]]:
        try:
            if len(texts) == 1:
                data = self._post("embedContent", self._content(texts[0]))
                return [data["embedding"]["values"]]
            data = self._post(
                "batchEmbedContents",
                {"requests": [self._content(t) for t in texts]},
            )
            return [item["values"] for item in data["embeddings"]]
        except (KeyError, TypeError) as exc:
            raise EmbeddingProviderError(
                f"Malformed Gemini embedding response: missing {exc}", provider=self.name
            ) from exc


def upstream_message(response: httpx.Response) -> str:
    """Extract ``error.message`` from a Google-style error body."""
    try:
        body = response.json()
        message = body.get("error", {}).get("message")
        if message:
            return message
    except (ValueError, AttributeError):
        pass
    return f"HTTP {response.status_code}: {response.text[:200]}"


# =============================================================================
# Factory
# =============================================================================


def create_embedding_provider(config: ImpactConfig, **kwargs) -> EmbeddingProvider:
    """Instantiate the provider named by ``config.embedding_provider``."""
    providers: dict[str, type[EmbeddingProvider]] = {
        "openai": OpenAIEmbeddingProvider,
        "gemini": GeminiEmbeddingProvider,
    }
    try:
        provider_cls = providers[config.embedding_provider]
    except KeyError:
        raise ConfigurationError(
            f"Unknown embedding provider: {config.embedding_provider}"
        ) from None
    return provider_cls(config, **kwargs)
