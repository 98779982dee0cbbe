"""FastAPI dependency injection: pull singletons from app.state."""

from __future__ import annotations

from fastapi import Request

from mosbot.core.config.schema import Config
from mosbot.core.cron.sync import CronSyncClient
from mosbot.core.heartbeat.patcher import HeartbeatPatcher


def get_config(request: Request) -> Config:
    """Get Config singleton from app state."""
    return request.app.state.config


def get_cron(request: Request) -> CronSyncClient:
    """Get CronSyncClient singleton from app state."""
    return request.app.state.cron


def get_heartbeats(request: Request) -> HeartbeatPatcher:
    return request.app.state.heartbeats
