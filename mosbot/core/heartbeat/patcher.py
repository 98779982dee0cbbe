"""HeartbeatPatcher: field-level patches to per-agent heartbeat config.

Heartbeats live in the agent configuration document (``agents.list[]``),
not in the jobs document. Reads prefer the gateway's ``config.get`` (which
returns a content hash); writes go through ``config.apply`` with that hash
as ``baseHash`` so concurrent edits are detected. When the gateway socket
is unreachable the document is read and overwritten directly through the
workspace service, without conflict detection.
"""

from __future__ import annotations

import copy
import json
from typing import Any

from loguru import logger

from mosbot.core.config.schema import Config
from mosbot.core.cron.repair import parse_lenient
from mosbot.core.cron.translator import HOUR_MS, MINUTE_MS, parse_duration_ms
from mosbot.core.cron.types import HEARTBEAT_PREFIX, ScheduledJob, to_view
from mosbot.core.cron.validator import validate_heartbeat_patch
from mosbot.core.errors import (
    Conflict,
    CorruptedDocument,
    DecodeError,
    GatewayError,
    NotConfigured,
    NotFound,
    ServiceUnavailable,
    SyncError,
    ValidationError,
)
from mosbot.core.gateway.http import GatewayHttpClient
from mosbot.core.gateway.reload import ReloadNotifier
from mosbot.core.gateway.workspace import WorkspaceClient
from mosbot.core.gateway.ws import GatewayWsClient

# Socket failures that mean "apply path unreachable" rather than "apply rejected".
_UNREACHABLE_CODES = frozenset({"HANDSHAKE_FAILED", "SOCKET_ERROR"})


def apply_heartbeat_patch(heartbeat: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """``None`` deletes a key, any other value overwrites, absent keys are untouched."""
    result = copy.deepcopy(heartbeat)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = copy.deepcopy(value)
    return result


def agents_list(document: dict[str, Any]) -> list[dict[str, Any]]:
    """``agents.list[]``, or the legacy bare ``agents[]`` array."""
    agents = document.get("agents") if isinstance(document, dict) else None
    if isinstance(agents, dict) and isinstance(agents.get("list"), list):
        return agents["list"]
    if isinstance(agents, list):
        return agents
    raise CorruptedDocument(
        "Invalid agent configuration: agents.list or agents array not found"
    )


def ms_to_duration(ms: int) -> str:
    if ms % HOUR_MS == 0:
        return f"{ms // HOUR_MS}h"
    if ms % MINUTE_MS == 0:
        return f"{ms // MINUTE_MS}m"
    return f"{max(1, ms // 1000)}s"


def heartbeat_view(agent: dict[str, Any]) -> ScheduledJob:
    """Render an agent's heartbeat as a read-only job."""
    hb = agent.get("heartbeat") or {}
    agent_id = agent["id"]
    name = (agent.get("identity") or {}).get("name") or agent_id
    every_ms = parse_duration_ms(hb.get("every"))
    target = hb.get("target")
    raw = {
        "id": f"{HEARTBEAT_PREFIX}{agent_id}",
        "name": f"{name} Heartbeat",
        "description": f"Periodic heartbeat for the {name} agent.",
        "agentId": agent_id,
        "enabled": True,
        "source": "config",
        "sessionTarget": hb.get("session") or "main",
        "payload": {"kind": "systemEvent", "text": hb.get("prompt") or "", "model": hb.get("model")},
        "delivery": {"mode": "none" if target in (None, "none") else "announce"},
        "heartbeat": hb,
    }
    if every_ms:
        raw["schedule"] = {"kind": "every", "everyMs": every_ms, "label": hb.get("every")}
    return to_view(raw)


class HeartbeatPatcher:
    """Patch ``agents.list[].heartbeat`` in the agent configuration document."""

    def __init__(
        self,
        config: Config,
        ws: GatewayWsClient | None = None,
        workspace: WorkspaceClient | None = None,
        http: GatewayHttpClient | None = None,
    ):
        self.ws = ws or GatewayWsClient(config)
        self.workspace = workspace or WorkspaceClient(config)
        self.path = config.workspace.config_path
        self.notifier = ReloadNotifier(http or GatewayHttpClient(config), tool="config.reload")

    # ── Document I/O ─────────────────────────────────────────

    async def _read(self) -> tuple[dict[str, Any], str | None]:
        """Return ``(document, hash)``; hash is None when read directly."""
        try:
            snapshot = await self.ws.call("config.get", {})
        except NotConfigured:
            raise
        except SyncError as e:
            logger.warning(f"config.get unavailable ({e.code}), reading {self.path} directly")
        else:
            return _decode_snapshot(snapshot)

        content = await self.workspace.get_file(self.path)
        if not content:
            raise NotFound(f"Agent configuration not found: {self.path}")
        return parse_lenient(content), None

    async def _write(self, document: dict[str, Any], base_hash: str | None) -> None:
        raw = json.dumps(document, indent=2)
        if base_hash is not None:
            try:
                await self.ws.call("config.apply", {"raw": raw, "baseHash": base_hash})
            except NotConfigured:
                raise
            except ServiceUnavailable as e:
                logger.warning(f"config.apply unreachable ({e.code}), overwriting {self.path}")
            except GatewayError as e:
                if e.code in _UNREACHABLE_CODES:
                    logger.warning(f"config.apply unreachable ({e.code}), overwriting {self.path}")
                elif "hash" in e.detail.lower():
                    raise Conflict(
                        "Agent configuration changed since it was read; retry the update",
                        code="CONFIG_CHANGED",
                    ) from e
                else:
                    raise
            else:
                logger.info("Agent configuration applied via config.apply")
                return

        await self.workspace.put_file(self.path, raw)
        await self.notifier.notify("heartbeat update")

    # ── Operations ───────────────────────────────────────────

    async def _patch_agent(self, agent_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        validate_heartbeat_patch(patch).raise_for_errors("heartbeat patch")
        document, base_hash = await self._read()
        for agent in agents_list(document):
            if agent.get("id") == agent_id:
                break
        else:
            raise NotFound(f"Agent not found: {agent_id}")

        agent["heartbeat"] = apply_heartbeat_patch(agent.get("heartbeat") or {}, patch)
        await self._write(document, base_hash)
        logger.info(f"Heartbeat config updated for {agent_id}: {sorted(patch)}")
        return agent

    async def patch_heartbeat(self, agent_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Apply ``patch`` to the agent's heartbeat and return the resulting heartbeat."""
        agent = await self._patch_agent(agent_id, patch)
        return agent["heartbeat"]

    async def list_heartbeat_jobs(self) -> list[ScheduledJob]:
        document, _ = await self._read()
        jobs = []
        for agent in agents_list(document):
            if not isinstance(agent, dict) or not agent.get("heartbeat"):
                continue
            if not agent.get("id"):
                logger.warning("Skipping heartbeat of an agent entry without an id")
                continue
            jobs.append(heartbeat_view(agent))
        return jobs

    async def update_heartbeat_job(self, job_id: str, payload: dict[str, Any]) -> ScheduledJob:
        """Job-shaped update of ``heartbeat-<agentId>``."""
        agent_id = job_id[len(HEARTBEAT_PREFIX):] if job_id.startswith(HEARTBEAT_PREFIX) else ""
        if not agent_id:
            raise ValidationError(f"Invalid heartbeat job id: {job_id}", code="INVALID_JOB_ID")
        agent = await self._patch_agent(agent_id, job_to_heartbeat_patch(payload))
        return heartbeat_view(agent)


def job_to_heartbeat_patch(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a caller job patch onto heartbeat fields."""
    patch: dict[str, Any] = {}

    schedule = payload.get("schedule")
    if isinstance(schedule, dict) and schedule.get("kind") == "every":
        if schedule.get("label"):
            patch["every"] = schedule["label"]
        elif schedule.get("everyMs"):
            patch["every"] = ms_to_duration(int(schedule["everyMs"]))

    if payload.get("sessionTarget"):
        patch["session"] = payload["sessionTarget"]

    body = payload.get("payload")
    if isinstance(body, dict):
        for key in ("model", "target", "session", "activeHours"):
            if key in body:
                patch[key] = body[key]
        for key in ("prompt", "message", "text"):
            if key in body:
                patch["prompt"] = body[key]
                break
        if body.get("ackMaxChars") is not None:
            try:
                patch["ackMaxChars"] = int(body["ackMaxChars"])
            except (TypeError, ValueError):
                patch["ackMaxChars"] = body["ackMaxChars"]
    return patch


def _decode_snapshot(snapshot: Any) -> tuple[dict[str, Any], str | None]:
    """``config.get`` returns ``{"config": {...}, "hash"}`` or ``{"raw": "...", "hash"}``."""
    if isinstance(snapshot, dict):
        base_hash = snapshot.get("hash")
        if isinstance(snapshot.get("config"), dict):
            return snapshot["config"], base_hash
        if isinstance(snapshot.get("raw"), str):
            return parse_lenient(snapshot["raw"]), base_hash
    raise DecodeError("Unrecognized config.get response shape")
