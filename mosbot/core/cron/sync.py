"""CronSyncClient: keeps gateway cron jobs in sync across three tiers.

Every operation tries, in order:
    1. gateway HTTP ``/tools/invoke``
    2. gateway socket (handshake + correlated call)
    3. direct read-modify-write of the shared jobs document,
       followed by a best-effort reload notification

A missing transport configuration aborts the operation outright. Identity,
permission and validation checks run before any tier is attempted, against
the job list served by the same tiers.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from typing import Any, Awaitable, Callable

from loguru import logger

from mosbot.core.config.schema import Config
from mosbot.core.cron.document import JobDocumentStore
from mosbot.core.cron.timing import compute_next_run_ms, now_ms
from mosbot.core.cron.translator import to_official
from mosbot.core.cron.types import HEARTBEAT_PREFIX, ScheduledJob, to_view
from mosbot.core.cron.validator import validate_job
from mosbot.core.errors import (
    Conflict,
    Forbidden,
    NotConfigured,
    NotFound,
    ServiceUnavailable,
    SyncError,
    ToolNotAvailable,
    ValidationError,
)
from mosbot.core.gateway.decode import decode_job, decode_jobs
from mosbot.core.gateway.http import GatewayHttpClient
from mosbot.core.gateway.reload import ReloadNotifier
from mosbot.core.gateway.retry import Sleep
from mosbot.core.gateway.workspace import WorkspaceClient
from mosbot.core.gateway.ws import GatewayWsClient

PENDING_PREFIX = "pending-"

# Never caller-settable through an update.
_PROTECTED_FIELDS = frozenset(
    {"id", "jobId", "createdAtMs", "createdAt", "state", "source"}
)
# Merged key-by-key on update (when the payload kind is unchanged).
_MERGED_FIELDS = ("payload", "delivery", "state")


def merge_patch(existing: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply a gateway-schema patch to a raw job."""
    merged = copy.deepcopy(existing)
    for key, value in patch.items():
        current = merged.get(key)
        if (
            key in _MERGED_FIELDS
            and isinstance(current, dict)
            and isinstance(value, dict)
            and value.get("kind", current.get("kind")) == current.get("kind")
        ):
            merged[key] = {**current, **copy.deepcopy(value)}
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _job_id_of(job: dict[str, Any]) -> str | None:
    return job.get("id") or job.get("jobId")


def _is_placeholder(job: dict[str, Any]) -> bool:
    job_id = _job_id_of(job)
    return not job_id or job_id.startswith(PENDING_PREFIX)


class CronSyncClient:
    """Create, update, delete, enable/disable and trigger gateway cron jobs."""

    def __init__(
        self,
        config: Config,
        http: GatewayHttpClient | None = None,
        ws: GatewayWsClient | None = None,
        workspace: WorkspaceClient | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config
        self.http = http or GatewayHttpClient(config)
        self.ws = ws or GatewayWsClient(config)
        self.store = JobDocumentStore(
            workspace or WorkspaceClient(config), config.workspace.jobs_path
        )
        self.notifier = ReloadNotifier(self.http, tool="cron.reload")
        self.default_tz = config.cron.timezone
        self.agent_ids = list(config.cron.agent_ids)
        self.settle_s = config.cron.create_settle_ms / 1000
        self.trigger_lead_ms = config.cron.trigger_lead_ms
        self._sleep = sleep
        self._clock = clock

    # ── Tier dispatch ────────────────────────────────────────

    async def _dispatch(
        self,
        method: str,
        params: dict[str, Any],
        decode: Callable[[Any], Any],
        fallback: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            raw = await self.http.invoke(method, params)
        except NotConfigured:
            raise
        except (ToolNotAvailable, ServiceUnavailable) as e:
            logger.warning(f"{method}: gateway HTTP cannot serve ({e.code}), trying socket")
        else:
            logger.debug(f"{method} served by gateway HTTP")
            return decode(raw)

        try:
            raw = await self.ws.call(method, params)
        except NotConfigured:
            raise
        except SyncError as e:
            logger.warning(
                f"{method}: gateway socket failed ({e.code}: {e.detail}), "
                f"falling back to {self.store.path}"
            )
        else:
            logger.debug(f"{method} served by gateway socket")
            return decode(raw)

        return await fallback()

    # ── Reads ────────────────────────────────────────────────

    async def _fetch_jobs(self) -> list[dict[str, Any]]:
        return await self._dispatch(
            "cron.list", {"includeDisabled": True}, decode_jobs, self.store.read
        )

    async def list_jobs(self) -> list[ScheduledJob]:
        """All gateway jobs, normalized."""
        return [to_view(job) for job in await self._fetch_jobs()]

    async def get_job(self, job_id: str) -> ScheduledJob:
        return to_view(self._find(await self._fetch_jobs(), job_id))

    # ── Pre-checks ───────────────────────────────────────────

    @staticmethod
    def _find(jobs: list[dict[str, Any]], job_id: str) -> dict[str, Any]:
        for job in jobs:
            if job_id in (job.get("id"), job.get("jobId")):
                return job
        raise NotFound(f"Cron job not found: {job_id}")

    def _require_mutable(self, jobs: list[dict[str, Any]], job_id: str) -> dict[str, Any]:
        job = self._find(jobs, job_id)
        if job.get("source") == "config":
            raise Forbidden(f"Cannot modify config-sourced cron job: {job_id}")
        return job

    @staticmethod
    def _reject_heartbeat(job_id: str) -> None:
        if job_id.startswith(HEARTBEAT_PREFIX):
            raise Forbidden(
                "Heartbeat jobs are defined in agent configuration; "
                "edit the heartbeat instead."
            )

    @staticmethod
    def _check_name(
        jobs: list[dict[str, Any]], name: str, exclude_id: str | None = None
    ) -> None:
        for job in jobs:
            if exclude_id and exclude_id in (job.get("id"), job.get("jobId")):
                continue
            if job.get("name") == name:
                raise Conflict(
                    f'A cron job with name "{name}" already exists', code="DUPLICATE_NAME"
                )

    def _next_run(self, schedule: dict[str, Any] | None) -> int | None:
        return compute_next_run_ms(schedule, self._clock(), self.default_tz)

    # ── Create ───────────────────────────────────────────────

    async def create_job(self, payload: dict[str, Any]) -> ScheduledJob:
        """Create a job. The result may be pending (``id is None``) after a tier-3 create."""
        official = to_official(payload, self.default_tz)
        for key in _PROTECTED_FIELDS | {"updatedAtMs", "updatedAt"}:
            official.pop(key, None)
        official.setdefault("enabled", True)
        official.setdefault("sessionTarget", "main")
        official.setdefault("wakeMode", "now")
        validate_job(official, self.agent_ids).raise_for_errors("cron job")

        self._check_name(await self._fetch_jobs(), official["name"])

        raw = await self._dispatch(
            "cron.add",
            official,
            decode_job,
            lambda: self._create_in_document(official),
        )
        job = to_view(raw)
        logger.info(f"Cron job created: {job.id or '(pending)'} ({job.name})")
        return job

    async def _create_in_document(self, official: dict[str, Any]) -> dict[str, Any]:
        name = official["name"]
        jobs = await self.store.read()
        self._check_name(jobs, name)

        placeholder = f"{PENDING_PREFIX}{uuid.uuid4().hex[:12]}"
        now = self._clock()
        entry = {
            **copy.deepcopy(official),
            "id": placeholder,
            "jobId": placeholder,
            "source": "gateway",
            "createdAtMs": now,
            "updatedAtMs": now,
            "state": {
                "nextRunAtMs": self._next_run(official.get("schedule"))
                if official.get("enabled", True) else None,
            },
        }
        jobs.append(entry)
        await self.store.write(jobs)
        await self.notifier.notify(f"creating {name}")

        # Identity is assigned by the gateway on reload; give it a moment.
        await self._sleep(self.settle_s)

        matches = [j for j in await self.store.read() if j.get("name") == name]
        assigned = [j for j in matches if not _is_placeholder(j)]
        if assigned:
            return assigned[0]

        logger.warning(f"Cron job {name} written but not yet assigned an id; returning pending view")
        pending = copy.deepcopy(matches[0] if matches else entry)
        pending["id"] = None
        pending["jobId"] = None
        return pending

    # ── Update ───────────────────────────────────────────────

    async def update_job(self, job_id: str, patch: dict[str, Any]) -> ScheduledJob:
        """Apply a partial update. Identity, creation time and state are ignored."""
        self._reject_heartbeat(job_id)
        stripped = {k: v for k, v in patch.items() if k not in _PROTECTED_FIELDS}
        official = to_official(stripped, self.default_tz)

        jobs = await self._fetch_jobs()
        existing = self._require_mutable(jobs, job_id)
        merged = merge_patch(existing, official)
        validate_job(merged, self.agent_ids).raise_for_errors("cron job update")
        if "name" in official:
            self._check_name(jobs, merged["name"], exclude_id=job_id)

        raw = await self._dispatch(
            "cron.update",
            {"id": job_id, "patch": official},
            decode_job,
            lambda: self._patch_in_document(job_id, official, "update"),
        )
        job = to_view(raw)
        logger.info(f"Cron job updated: {job_id} ({job.name})")
        return job

    async def _patch_in_document(
        self, job_id: str, patch: dict[str, Any], reason: str
    ) -> dict[str, Any]:
        jobs = await self.store.read()
        existing = self._require_mutable(jobs, job_id)
        if "name" in patch:
            self._check_name(jobs, patch["name"], exclude_id=job_id)

        merged = merge_patch(existing, patch)
        merged["updatedAtMs"] = self._clock()
        if "schedule" in patch and "state" not in patch:
            state = dict(merged.get("state") or {})
            state["nextRunAtMs"] = (
                self._next_run(merged["schedule"]) if merged.get("enabled", True) else None
            )
            merged["state"] = state

        jobs[jobs.index(existing)] = merged
        await self.store.write(jobs)
        await self.notifier.notify(f"{reason} of {job_id}")
        return merged

    # ── Delete ───────────────────────────────────────────────

    async def delete_job(self, job_id: str) -> None:
        self._reject_heartbeat(job_id)
        existing = self._require_mutable(await self._fetch_jobs(), job_id)
        await self._dispatch(
            "cron.remove",
            {"id": job_id},
            lambda raw: raw,
            lambda: self._delete_in_document(job_id),
        )
        logger.info(f"Cron job deleted: {job_id} ({existing.get('name')})")

    async def _delete_in_document(self, job_id: str) -> None:
        jobs = await self.store.read()
        existing = self._require_mutable(jobs, job_id)
        jobs.remove(existing)
        await self.store.write(jobs)
        await self.notifier.notify(f"delete of {job_id}")

    # ── Enable / disable ─────────────────────────────────────

    async def set_enabled(self, job_id: str, enabled: bool) -> ScheduledJob:
        """Disabling clears ``state.nextRunAtMs``; enabling re-arms it."""
        if not isinstance(enabled, bool):
            raise ValidationError("enabled must be a boolean")
        self._reject_heartbeat(job_id)
        existing = self._require_mutable(await self._fetch_jobs(), job_id)

        next_run = self._next_run(existing.get("schedule")) if enabled else None
        patch = {"enabled": enabled, "state": {"nextRunAtMs": next_run}}
        raw = await self._dispatch(
            "cron.update",
            {"id": job_id, "patch": patch},
            decode_job,
            lambda: self._patch_in_document(job_id, patch, "enable" if enabled else "disable"),
        )
        logger.info(f"Cron job {job_id} enabled={enabled}")
        return to_view(raw)

    # ── Trigger ──────────────────────────────────────────────

    async def trigger_job(self, job_id: str) -> ScheduledJob:
        """Arm the job a few seconds ahead; the gateway scheduler runs it on its next poll."""
        self._reject_heartbeat(job_id)
        existing = self._require_mutable(await self._fetch_jobs(), job_id)
        if existing.get("enabled") is False:
            raise Conflict(f"Cannot trigger disabled cron job: {job_id}", code="JOB_DISABLED")

        patch = {"state": {"nextRunAtMs": self._clock() + self.trigger_lead_ms}}
        raw = await self._dispatch(
            "cron.update",
            {"id": job_id, "patch": patch},
            decode_job,
            lambda: self._patch_in_document(job_id, patch, "trigger"),
        )
        logger.info(f"Cron job {job_id} armed to run at {patch['state']['nextRunAtMs']}")
        return to_view(raw)
