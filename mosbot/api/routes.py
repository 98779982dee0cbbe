"""Cron job and heartbeat routes.

Callers are authenticated upstream; these handlers only translate HTTP into
sync-client calls. Errors surface through the SyncError handler.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Response
from loguru import logger
from pydantic import BaseModel

from mosbot import __version__
from mosbot.api.deps import get_config, get_cron, get_heartbeats
from mosbot.core.config.schema import Config
from mosbot.core.cron.sync import CronSyncClient
from mosbot.core.cron.types import HEARTBEAT_PREFIX
from mosbot.core.errors import NotFound, SyncError
from mosbot.core.heartbeat.patcher import HeartbeatPatcher

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    gateway_configured: bool
    workspace_configured: bool


class EnabledRequest(BaseModel):
    enabled: bool


@router.get("/health", response_model=HealthResponse)
async def health(config: Config = Depends(get_config)):
    """Health check."""
    return HealthResponse(
        status="ok",
        version=__version__,
        environment=config.environment,
        gateway_configured=config.gateway_url is not None,
        workspace_configured=config.workspace_url is not None,
    )


# ── Cron jobs ────────────────────────────────────────────────


@router.get("/cron-jobs")
async def list_cron_jobs(
    cron: CronSyncClient = Depends(get_cron),
    heartbeats: HeartbeatPatcher = Depends(get_heartbeats),
):
    """Gateway jobs followed by read-only heartbeat views."""
    jobs = await cron.list_jobs()
    try:
        jobs += await heartbeats.list_heartbeat_jobs()
    except SyncError as e:
        logger.warning(f"Heartbeat jobs unavailable: [{e.code}] {e.detail}")
    return {"jobs": [job.to_dict() for job in jobs]}


@router.get("/cron-jobs/{job_id}")
async def get_cron_job(
    job_id: str,
    cron: CronSyncClient = Depends(get_cron),
    heartbeats: HeartbeatPatcher = Depends(get_heartbeats),
):
    if job_id.startswith(HEARTBEAT_PREFIX):
        for job in await heartbeats.list_heartbeat_jobs():
            if job.id == job_id:
                return job.to_dict()
        raise NotFound(f"Cron job not found: {job_id}")
    return (await cron.get_job(job_id)).to_dict()


@router.post("/cron-jobs", status_code=201)
async def create_cron_job(
    body: dict[str, Any] = Body(...),
    cron: CronSyncClient = Depends(get_cron),
):
    job = await cron.create_job(body)
    return job.to_dict()


@router.put("/cron-jobs/{job_id}")
async def update_cron_job(
    job_id: str,
    body: dict[str, Any] = Body(...),
    cron: CronSyncClient = Depends(get_cron),
    heartbeats: HeartbeatPatcher = Depends(get_heartbeats),
):
    """Partial update; heartbeat ids are edited through the agent configuration."""
    if job_id.startswith(HEARTBEAT_PREFIX):
        job = await heartbeats.update_heartbeat_job(job_id, body)
    else:
        job = await cron.update_job(job_id, body)
    return job.to_dict()


@router.patch("/cron-jobs/{job_id}/enabled")
async def set_cron_job_enabled(
    job_id: str,
    body: EnabledRequest,
    cron: CronSyncClient = Depends(get_cron),
):
    job = await cron.set_enabled(job_id, body.enabled)
    return job.to_dict()


@router.post("/cron-jobs/{job_id}/trigger")
async def trigger_cron_job(job_id: str, cron: CronSyncClient = Depends(get_cron)):
    """Schedule the job to run within a few seconds."""
    job = await cron.trigger_job(job_id)
    return job.to_dict()


@router.delete("/cron-jobs/{job_id}", status_code=204)
async def delete_cron_job(job_id: str, cron: CronSyncClient = Depends(get_cron)):
    await cron.delete_job(job_id)
    return Response(status_code=204)


# ── Heartbeats ───────────────────────────────────────────────


@router.patch("/agents/{agent_id}/heartbeat")
async def patch_agent_heartbeat(
    agent_id: str,
    body: dict[str, Any] = Body(...),
    heartbeats: HeartbeatPatcher = Depends(get_heartbeats),
):
    """Field-level heartbeat patch; ``null`` removes a key."""
    heartbeat = await heartbeats.patch_heartbeat(agent_id, body)
    return {"agentId": agent_id, "heartbeat": heartbeat}
