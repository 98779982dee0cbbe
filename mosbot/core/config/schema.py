"""mosbot configuration schema: YAML + Pydantic + env override."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# In-cluster addresses used when running in production without explicit URLs.
DEFAULT_GATEWAY_URL = "http://openclaw.agents.svc.cluster.local:18789"
DEFAULT_WORKSPACE_URL = "http://openclaw-workspace.agents.svc.cluster.local:8080"


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class GatewayConfig(BaseModel):
    """Agent gateway (tier 1 HTTP + tier 2 socket)."""

    url: str = ""
    ws_url: str = ""  # empty → derived from url (http→ws)
    token: str = ""
    timeout_ms: int = 15_000
    session_key: str = "main"
    protocol_version: int = 3
    client_id: str = "gateway-client"
    client_mode: str = "backend"
    role: str = "operator"
    scopes: list[str] = Field(default_factory=lambda: ["operator.admin"])


class WorkspaceConfig(BaseModel):
    """File read/write service holding the shared documents (tier 3)."""

    url: str = ""
    token: str = ""
    timeout_ms: int = 10_000
    jobs_path: str = "/cron/jobs.json"
    config_path: str = "/openclaw.json"


class RetryConfig(BaseModel):
    max_retries: int = 3
    base_delay_ms: int = 500


class CronConfig(BaseModel):
    timezone: str = "UTC"
    create_settle_ms: int = 2_000
    trigger_lead_ms: int = 5_000
    agent_ids: list[str] = Field(
        default_factory=lambda: ["main", "coo", "cto", "cmo", "cpo"]
    )


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origin: str = "http://localhost:5173"


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings: env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        MOSBOT_GATEWAY__URL=http://localhost:18789
        MOSBOT_WORKSPACE__TOKEN=...
        MOSBOT_CRON__TIMEZONE=Europe/Istanbul
    """

    model_config = SettingsConfigDict(
        env_prefix="MOSBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    server: ServerConfig = Field(default_factory=ServerConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cron: CronConfig = Field(default_factory=CronConfig)

    # ── Computed properties ─────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def gateway_url(self) -> str | None:
        """Gateway base URL, or None when the gateway is not configured."""
        url = self.gateway.url or (DEFAULT_GATEWAY_URL if self.is_production else "")
        return url.rstrip("/") or None

    @property
    def gateway_ws_url(self) -> str | None:
        """Socket URL: explicit ws_url, else the gateway URL with a ws scheme."""
        if self.gateway.ws_url:
            return self.gateway.ws_url
        base = self.gateway_url
        if not base:
            return None
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):]
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):]
        return base

    @property
    def workspace_url(self) -> str | None:
        url = self.workspace.url or (DEFAULT_WORKSPACE_URL if self.is_production else "")
        return url.rstrip("/") or None
