# core/retry.py
"""Retry/backoff policy shared by every call to the generative-text service.

Only rate-limit style failures are retried. Anything else (bad request,
auth failure, malformed schema) is treated as non-transient and re-raised
on the spot.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import structlog

from config import settings
from core.exceptions import ServiceOverloadedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS_CODES = frozenset({429})
RATE_LIMIT_ERROR_CODES = frozenset({"429", "resource_exhausted", "rate_limit_exceeded"})
RATE_LIMIT_MESSAGE_PATTERNS = (
    "429",
    "quota",
    "resource_exhausted",
    "rate limit",
    "rate_limit",
    "too many requests",
)


def _message_signals_rate_limit(message: str) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in RATE_LIMIT_MESSAGE_PATTERNS)


def _code_signals_rate_limit(code: Any) -> bool:
    if code is None:
        return False
    if isinstance(code, int):
        return code in RATE_LIMIT_STATUS_CODES
    return str(code).strip().lower() in RATE_LIMIT_ERROR_CODES


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return ``True`` if ``exc`` looks like a quota / rate-limit rejection."""
    if isinstance(exc, httpx.TimeoutException):
        return settings.TREAT_TIMEOUT_AS_RATE_LIMIT
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in RATE_LIMIT_STATUS_CODES:
            return True
        try:
            body = exc.response.text
        except httpx.ResponseNotRead:
            body = ""
        return _message_signals_rate_limit(body)

    for attr in ("status", "code", "status_code"):
        if _code_signals_rate_limit(getattr(exc, attr, None)):
            return True
    nested = getattr(exc, "error", None)
    if isinstance(nested, dict) and any(
        _code_signals_rate_limit(nested.get(key)) for key in ("code", "status")
    ):
        return True
    return _message_signals_rate_limit(str(exc))


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter for rate-limited service calls.

    Attempt ``n`` (zero based) that fails with a rate-limit error waits
    ``base_delay * 2**n + uniform(0, max_jitter)`` before the next try.
    """

    max_attempts: int = 5
    base_delay: float = 5.0
    max_jitter: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_rate_limit_error
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_attempts=settings.LLM_RETRY_ATTEMPTS,
            base_delay=settings.LLM_RETRY_BASE_DELAY_SECONDS,
            max_jitter=settings.LLM_RETRY_JITTER_SECONDS,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after zero-based ``attempt`` failed."""
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return self.base_delay * (2**attempt) + jitter

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "service call",
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Run ``operation`` under this policy and return its result.

        Raises:
            ServiceOverloadedError: every attempt was rate limited.
            Exception: the first non-retryable failure, unchanged.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as exc:
                if not self.is_retryable(exc):
                    logger.warning(
                        "%s failed with a non-retryable error: %s",
                        description,
                        exc,
                        attempt=attempt + 1,
                    )
                    raise
                if attempt == self.max_attempts - 1:
                    logger.error(
                        "%s still rate limited after %d attempts.",
                        description,
                        self.max_attempts,
                    )
                    raise ServiceOverloadedError(self.max_attempts, exc) from exc
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "%s rate limited (attempt %d/%d); retrying in %.2fs.",
                    description,
                    attempt + 1,
                    self.max_attempts,
                    delay,
                )
                if on_retry is not None:
                    on_retry(attempt, exc)
                await self.sleep(delay)
        # max_attempts < 1 never enters the loop
        raise ServiceOverloadedError(self.max_attempts)
