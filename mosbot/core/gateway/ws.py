"""Gateway socket client: tier 2 duplex channel (handshake + correlated call)."""

from __future__ import annotations

import asyncio
import json
import platform
import uuid
from typing import Any, Callable

import websockets
from loguru import logger

from mosbot import __version__
from mosbot.core.config.schema import Config
from mosbot.core.errors import GatewayError, NotConfigured, ServiceUnavailable
from mosbot.core.gateway.retry import RetryPolicy, Sleep, call_with_retry


class GatewayWsClient:
    """Opens a socket per call: ``connect`` handshake, then one ``req``/``res`` pair.

    Unsolicited ``{"type": "event"}`` frames are skipped while waiting for
    the response that carries our request id.
    """

    def __init__(
        self,
        config: Config,
        connect: Callable[..., Any] = websockets.connect,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.url = config.gateway_ws_url
        self.token = config.gateway.token
        self.timeout = config.gateway.timeout_ms / 1000
        self.protocol_version = config.gateway.protocol_version
        self.client_id = config.gateway.client_id
        self.client_mode = config.gateway.client_mode
        self.role = config.gateway.role
        self.scopes = list(config.gateway.scopes)
        self.policy = RetryPolicy.from_config(config)
        self._connect = connect
        self._sleep = sleep

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call ``method`` over a fresh connection and return the response payload."""
        if not self.url:
            raise NotConfigured(
                "Gateway socket is not configured. Set MOSBOT_GATEWAY__URL to enable."
            )
        return await call_with_retry(
            lambda: self._call_once(method, params or {}),
            self.policy,
            label=f"gateway socket {method}",
            sleep=self._sleep,
        )

    def connect_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "minProtocol": self.protocol_version,
            "maxProtocol": self.protocol_version,
            "client": {
                "id": self.client_id,
                "version": __version__,
                "platform": platform.system().lower(),
                "mode": self.client_mode,
            },
            "role": self.role,
            "scopes": self.scopes,
        }
        if self.token:
            params["auth"] = {"token": self.token}
        return params

    async def _call_once(self, method: str, params: dict[str, Any]) -> Any:
        try:
            async with self._connect(self.url, open_timeout=self.timeout) as ws:
                try:
                    await self._request(ws, "connect", self.connect_params())
                except GatewayError as e:
                    raise GatewayError(
                        f"Gateway handshake rejected: {e.detail}", code="HANDSHAKE_FAILED"
                    ) from e
                return await self._request(ws, method, params)
        except websockets.exceptions.ConnectionClosed as e:
            raise ServiceUnavailable(f"Gateway socket closed: {e}") from e
        except websockets.exceptions.WebSocketException as e:
            raise GatewayError(f"Gateway socket error: {e}", code="SOCKET_ERROR") from e

    async def _request(self, ws: Any, method: str, params: dict[str, Any]) -> Any:
        req_id = str(uuid.uuid4())
        await ws.send(json.dumps({
            "type": "req",
            "id": req_id,
            "method": method,
            "params": params,
        }))
        while True:
            raw = await asyncio.wait_for(ws.recv(), timeout=self.timeout)
            try:
                msg = json.loads(raw)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-JSON socket frame: {str(raw)[:100]}")
                continue
            if not isinstance(msg, dict) or msg.get("type") != "res":
                logger.debug(f"Ignoring socket frame while awaiting {method}: {msg!r:.100}")
                continue
            if msg.get("id") != req_id:
                continue
            if msg.get("ok"):
                return msg.get("payload")
            error = msg.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise GatewayError(message or f"{method} failed", code="GATEWAY_CALL_ERROR")
