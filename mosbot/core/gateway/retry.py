"""Retry helper: classify remote failures and retry with exponential backoff."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from mosbot.core.errors import NotConfigured, ServiceUnavailable

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

_TIMEOUT_ERRORS = (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)
# OSError covers refused, unreachable and unresolvable hosts (ConnectionError, gaierror).
_CONNECTION_ERRORS = (httpx.TransportError, OSError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: ``base_delay_s * 2**attempt``."""

    max_retries: int = 3
    base_delay_s: float = 0.5

    @classmethod
    def from_config(cls, config) -> RetryPolicy:
        return cls(
            max_retries=config.retry.max_retries,
            base_delay_s=config.retry.base_delay_ms / 1000,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is 0-based)."""
        return self.base_delay_s * (2 ** attempt)


def is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, _TIMEOUT_ERRORS)


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, transport failures (refused, unreachable, dropped) and transient 5xx are retryable.

    An explicit not-configured signal is never retryable.
    """
    if isinstance(exc, NotConfigured):
        return False
    if isinstance(exc, ServiceUnavailable):
        return True
    return isinstance(exc, _TIMEOUT_ERRORS + _CONNECTION_ERRORS)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds or the retry budget is spent.

    Non-retryable errors propagate immediately. Exhaustion raises
    ServiceUnavailable (code SERVICE_TIMEOUT when the last failure was a timeout).
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= policy.max_retries:
                logger.error(f"{label} failed after {attempt + 1} attempts: {e!r}")
                if isinstance(e, ServiceUnavailable):
                    raise
                code = "SERVICE_TIMEOUT" if is_timeout(e) else "SERVICE_UNAVAILABLE"
                raise ServiceUnavailable(f"{label} unavailable: {e}", code=code) from e
            delay = policy.delay_for(attempt)
            attempt += 1
            logger.warning(
                f"{label} failed, retrying ({attempt}/{policy.max_retries}) in {delay:.2f}s: {e!r}"
            )
            await sleep(delay)
