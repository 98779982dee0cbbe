"""Best-effort reload notification sent after a direct document write."""

from __future__ import annotations

from loguru import logger

from mosbot.core.gateway.http import GatewayHttpClient


class ReloadNotifier:
    """Asks the gateway to re-read a document it owns.

    Failure is logged and reported through the return value only; it never
    raises, so a successful write is never failed or rolled back by it.
    """

    def __init__(self, http: GatewayHttpClient, tool: str = "cron.reload") -> None:
        self.http = http
        self.tool = tool

    async def notify(self, reason: str) -> bool:
        try:
            await self.http.invoke(self.tool, {})
        except Exception as e:
            logger.warning(f"{self.tool} after {reason} not available or failed (this is OK): {e}")
            return False
        logger.info(f"Triggered {self.tool} after {reason}")
        return True
