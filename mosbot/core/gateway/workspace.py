"""Workspace file service client: GET/PUT by path over the shared documents."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from mosbot.core.config.schema import Config
from mosbot.core.errors import GatewayError, NotConfigured, ServiceUnavailable
from mosbot.core.gateway.retry import RetryPolicy, Sleep, call_with_retry

_TRANSIENT_STATUS = frozenset({502, 503, 504})


class _FileMissing(Exception):
    pass


class WorkspaceClient:
    """Async client for the workspace file service.

    ``GET /files/content?path=...`` returns ``{"content": "..."}``;
    ``PUT /files`` takes ``{"path", "content", "encoding"}``.
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = config.workspace_url
        self.token = config.workspace.token
        self.timeout = config.workspace.timeout_ms / 1000
        self.policy = RetryPolicy.from_config(config)
        self._transport = transport
        self._sleep = sleep

    async def get_file(self, path: str) -> str | None:
        """Return the file's text content, or None when it does not exist."""
        try:
            data = await self._request("GET", "/files/content", params={"path": path})
        except _FileMissing:
            logger.debug(f"Workspace file not found: {path}")
            return None
        if isinstance(data, dict):
            return data.get("content")
        return data

    async def put_file(self, path: str, content: str, encoding: str = "utf8") -> Any:
        """Overwrite ``path`` with ``content``."""
        return await self._request(
            "PUT", "/files", json={"path": path, "content": content, "encoding": encoding}
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        if not self.base_url:
            raise NotConfigured(
                "Workspace service is not configured. Set MOSBOT_WORKSPACE__URL to enable."
            )
        return await call_with_retry(
            lambda: self._send(method, url, **kwargs),
            self.policy,
            label=f"workspace {method} {kwargs.get('params', {}).get('path', url)}",
            sleep=self._sleep,
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.TransportError:
                raise
            except httpx.HTTPError as e:
                raise GatewayError(
                    f"Workspace request failed: {e!r}", code="WORKSPACE_ERROR"
                ) from e

        if resp.status_code == 404:
            raise _FileMissing()
        if resp.status_code in _TRANSIENT_STATUS:
            raise ServiceUnavailable(
                f"Workspace service error: {resp.status_code} {resp.text[:200]}"
            )
        if resp.status_code >= 400:
            raise GatewayError(
                f"Workspace service error: {resp.status_code} {resp.text[:200]}",
                code="WORKSPACE_ERROR",
            )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(
                f"Workspace service returned a non-JSON body: {resp.text[:200]!r}",
                code="WORKSPACE_ERROR",
            ) from e

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
