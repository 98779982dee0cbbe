"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from mosbot import __version__
from mosbot.api.errors import register_error_handlers
from mosbot.api.routes import router
from mosbot.core.config.loader import load_config
from mosbot.core.config.schema import Config
from mosbot.core.cron.sync import CronSyncClient
from mosbot.core.gateway.http import GatewayHttpClient
from mosbot.core.gateway.workspace import WorkspaceClient
from mosbot.core.gateway.ws import GatewayWsClient
from mosbot.core.heartbeat.patcher import HeartbeatPatcher


def build_services(config: Config) -> tuple[CronSyncClient, HeartbeatPatcher]:
    """One set of tier clients shared by the cron and heartbeat services."""
    http = GatewayHttpClient(config)
    ws = GatewayWsClient(config)
    workspace = WorkspaceClient(config)
    cron = CronSyncClient(config, http=http, ws=ws, workspace=workspace)
    heartbeats = HeartbeatPatcher(config, ws=ws, workspace=workspace, http=http)
    return cron, heartbeats


def create_app(config: Config | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    cfg = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cron, heartbeats = build_services(cfg)
        app.state.config = cfg
        app.state.cron = cron
        app.state.heartbeats = heartbeats

        logger.info(
            f"mosbot API started, gateway: {cfg.gateway_url or 'not configured'}, "
            f"workspace: {cfg.workspace_url or 'not configured'}"
        )
        yield
        logger.info("mosbot API shutting down")

    app = FastAPI(
        title="mosbot API",
        description="Gateway cron job and heartbeat management",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.server.cors_origin or "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(router)
    return app
