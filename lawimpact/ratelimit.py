"""
Pacing and retry helpers shared by the embedding and analysis providers.

Provider calls run one at a time; ``RateLimiter`` enforces a minimum gap
between them and ``retrying`` re-attempts only transient failures.
"""
from __future__ import annotations

import time
from typing import Callable, TypeVar

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ProviderError

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0


class RateLimiter:
    """Minimum-interval limiter for sequential API calls."""

    def __init__(self, min_interval: float = 0.0, sleep: Callable[[float], None] = time.sleep):
        self.min_interval = max(0.0, min_interval)
        self.last_request_time = 0.0
        self._sleep = sleep

    @classmethod
    def per_minute(cls, requests_per_minute: float) -> RateLimiter:
        return cls(60.0 / requests_per_minute)

    def wait(self) -> None:
        """Block until min_interval has passed since the previous call."""
        now = time.monotonic()
        elapsed = now - self.last_request_time
        if self.last_request_time and elapsed < self.min_interval:
            self._sleep(self.min_interval - elapsed)
        self.last_request_time = time.monotonic()


def status_is_transient(status_code: int | None) -> bool:
    return status_code in RETRYABLE_STATUS


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.transient


def retrying(max_retries: int) -> Retrying:
    """A tenacity controller that retries transient ProviderErrors."""
    return Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=BASE_DELAY_SECONDS, max=MAX_DELAY_SECONDS),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )


def call_with_retries(fn: Callable[[], T], max_retries: int) -> T:
    """Run ``fn`` under :func:`retrying`, re-raising the last error."""
    for attempt in retrying(max_retries):
        with attempt:
            return fn()
    raise AssertionError("unreachable")  # pragma: no cover
