"""Gateway HTTP client: tier 1 request/response tool invocation."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from mosbot.core.config.schema import Config
from mosbot.core.errors import (
    GatewayError,
    NotConfigured,
    ServiceUnavailable,
    ToolNotAvailable,
)
from mosbot.core.gateway.retry import RetryPolicy, Sleep, call_with_retry

_TRANSIENT_STATUS = frozenset({502, 503, 504})


class GatewayHttpClient:
    """Async client for the gateway ``/tools/invoke`` endpoint.

    Parameters
    ----------
    config : Config
        Root configuration (gateway URL, token, timeout, retry policy).
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = config.gateway_url
        self.token = config.gateway.token
        self.session_key = config.gateway.session_key
        self.timeout = config.gateway.timeout_ms / 1000
        self.policy = RetryPolicy.from_config(config)
        self._transport = transport
        self._sleep = sleep

    async def invoke(
        self,
        tool: str,
        args: dict[str, Any] | None = None,
        *,
        session_key: str | None = None,
        action: str = "json",
        dry_run: bool = False,
    ) -> Any:
        """Invoke a gateway tool and return its ``result``.

        Raises
        ------
        NotConfigured
            No gateway URL is configured.
        ToolNotAvailable
            The gateway does not expose ``tool`` (HTTP 404) or refuses the token (401).
        GatewayError
            The tool ran and reported an application error.
        ServiceUnavailable
            Retries exhausted on timeouts / connection failures / transient 5xx.
        """
        if not self.base_url:
            raise NotConfigured(
                "Gateway is not configured. Set MOSBOT_GATEWAY__URL to enable."
            )
        body = {
            "tool": tool,
            "action": action,
            "args": args or {},
            "sessionKey": session_key or self.session_key,
            "dryRun": dry_run,
        }
        data = await call_with_retry(
            lambda: self._post("/tools/invoke", body),
            self.policy,
            label=f"gateway tool {tool}",
            sleep=self._sleep,
        )
        if not isinstance(data, dict):
            return data
        if data.get("ok") is False:
            error = data.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise GatewayError(message or f"Tool {tool} failed", code="TOOL_INVOCATION_ERROR")
        return data.get("result", data)

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            try:
                resp = await client.post(path, json=body)
            except httpx.TransportError:
                raise
            except httpx.HTTPError as e:
                raise GatewayError(f"Gateway request failed: {e!r}", code="TRANSPORT_ERROR") from e

        if resp.status_code in (401, 404):
            logger.debug(f"Gateway {path} answered {resp.status_code} for {body['tool']}")
            raise ToolNotAvailable(
                f"Tool {body['tool']} not available ({resp.status_code})"
            )
        if resp.status_code in _TRANSIENT_STATUS:
            raise ServiceUnavailable(
                f"Gateway error: {resp.status_code} {resp.text[:200]}"
            )
        if resp.status_code >= 400:
            raise GatewayError(f"Gateway error: {resp.status_code} {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(
                f"Gateway returned a non-JSON body: {resp.text[:200]!r}", code="INVALID_RESPONSE"
            ) from e

    def _headers(self) -> dict[str, str]:
        """Build request headers with optional bearer token."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
