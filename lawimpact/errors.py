"""
Exception hierarchy for the impact engine.

Pure components (matcher, diff detector, heuristic filter) never raise for
well-formed input. I/O-touching components (embedding providers, impact
analyzers) raise the typed errors below, and batch callers catch them per item.
"""
from __future__ import annotations


class LawImpactError(Exception):
    """Base class for all errors raised by lawimpact."""


class ConfigurationError(LawImpactError):
    """Missing credentials, unknown provider names, or invalid settings."""


class ValidationError(LawImpactError, ValueError):
    """Bad input supplied by the caller (e.g. empty text). Never retried."""


class DimensionMismatchError(LawImpactError, ValueError):
    """Two vectors expected to be comparable have different lengths."""

    def __init__(self, left: int, right: int):
        super().__init__(
            f"Vector dimensions differ ({left} != {right}); "
            "check the canonical embedding dimension of stored vectors"
        )
        self.left = left
        self.right = right


class ProviderError(LawImpactError):
    """An upstream AI provider call failed or violated its contract."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        # rate limits, timeouts and 5xx responses may succeed on a later attempt
        self.transient = transient


class EmbeddingProviderError(ProviderError):
    """The embedding service failed or returned a malformed response."""


class AnalysisProviderError(ProviderError):
    """The generative-analysis service call failed."""


class AnalysisParseError(LawImpactError):
    """The generative model's response is not valid impact-analysis JSON."""

    def __init__(self, message: str, raw_response: str | None = None):
        super().__init__(message)
        self.raw_response = raw_response
