"""Tests for the retry helper."""

import asyncio
import errno
from unittest.mock import AsyncMock, call

import httpx
import pytest

from mosbot.core.errors import GatewayError, NotConfigured, ServiceUnavailable, ValidationError
from mosbot.core.gateway.retry import RetryPolicy, call_with_retry, is_retryable


def _flaky(failures: list[BaseException], result="ok"):
    attempts = {"n": 0}

    async def fn():
        attempts["n"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return fn, attempts


def test_backoff_doubles():
    policy = RetryPolicy(max_retries=3, base_delay_s=0.5)
    assert [policy.delay_for(i) for i in range(3)] == [0.5, 1.0, 2.0]


def test_classification():
    assert is_retryable(httpx.ConnectError("refused"))
    assert is_retryable(httpx.ReadTimeout("slow"))
    assert is_retryable(asyncio.TimeoutError())
    assert is_retryable(ConnectionRefusedError())
    assert is_retryable(OSError(errno.ENETUNREACH, "Network is unreachable"))
    assert is_retryable(httpx.RemoteProtocolError("Server disconnected without sending a response."))
    assert is_retryable(ServiceUnavailable("503"))
    assert not is_retryable(NotConfigured("no url"))
    assert not is_retryable(ValidationError("bad"))
    assert not is_retryable(GatewayError("rejected"))
    assert not is_retryable(KeyError("x"))


async def test_succeeds_after_transient_failures():
    sleep = AsyncMock()
    fn, attempts = _flaky([httpx.ConnectError("refused"), ServiceUnavailable("503")])
    result = await call_with_retry(fn, RetryPolicy(), label="test", sleep=sleep)
    assert result == "ok"
    assert attempts["n"] == 3
    assert sleep.await_args_list == [call(0.5), call(1.0)]


async def test_exhaustion_raises_service_unavailable():
    sleep = AsyncMock()
    fn, attempts = _flaky([httpx.ConnectError("refused")] * 10)
    with pytest.raises(ServiceUnavailable) as exc:
        await call_with_retry(fn, RetryPolicy(max_retries=3), label="test", sleep=sleep)
    assert exc.value.code == "SERVICE_UNAVAILABLE"
    assert attempts["n"] == 4
    assert sleep.await_args_list == [call(0.5), call(1.0), call(2.0)]


async def test_exhausted_timeouts_are_reported_as_timeouts():
    fn, _ = _flaky([httpx.ReadTimeout("slow")] * 10)
    with pytest.raises(ServiceUnavailable) as exc:
        await call_with_retry(fn, RetryPolicy(max_retries=1), label="test", sleep=AsyncMock())
    assert exc.value.code == "SERVICE_TIMEOUT"


async def test_non_retryable_propagates_immediately():
    sleep = AsyncMock()
    fn, attempts = _flaky([NotConfigured("no url")])
    with pytest.raises(NotConfigured):
        await call_with_retry(fn, RetryPolicy(), label="test", sleep=sleep)
    assert attempts["n"] == 1
    sleep.assert_not_awaited()
