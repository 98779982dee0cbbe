"""Gateway transports: HTTP tool invocation, socket calls, workspace files."""

from mosbot.core.gateway.http import GatewayHttpClient
from mosbot.core.gateway.reload import ReloadNotifier
from mosbot.core.gateway.retry import RetryPolicy, call_with_retry, is_retryable
from mosbot.core.gateway.workspace import WorkspaceClient
from mosbot.core.gateway.ws import GatewayWsClient

__all__ = [
    "GatewayHttpClient",
    "GatewayWsClient",
    "ReloadNotifier",
    "RetryPolicy",
    "WorkspaceClient",
    "call_with_retry",
    "is_retryable",
]
