"""Scheduled job types: caller-facing view of gateway cron jobs."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from mosbot.core.cron.translator import from_official
from mosbot.core.errors import DecodeError

JOB_DOCUMENT_VERSION = 1
HEARTBEAT_PREFIX = "heartbeat-"


class _CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown gateway fields kept."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


# ── Schedules ─────────────────────────────────────────────


class CronSchedule(_CamelModel):
    kind: Literal["cron"] = "cron"
    expr: str
    tz: str | None = None


class EverySchedule(_CamelModel):
    kind: Literal["every"] = "every"
    every_ms: int
    label: str | None = None  # human form, e.g. "30m" for heartbeats


class AtSchedule(_CamelModel):
    kind: Literal["at"] = "at"
    at: str | int


Schedule = Annotated[
    Union[CronSchedule, EverySchedule, AtSchedule], Field(discriminator="kind")
]


# ── Payloads ──────────────────────────────────────────────


class AgentTurnPayload(_CamelModel):
    kind: Literal["agentTurn"] = "agentTurn"
    message: str = ""
    model: str | None = None
    text: str | None = None  # synonym of message, backfilled on read


class SystemEventPayload(_CamelModel):
    kind: Literal["systemEvent"] = "systemEvent"
    text: str = ""
    model: str | None = None
    message: str | None = None  # synonym of text, backfilled on read


Payload = Annotated[
    Union[AgentTurnPayload, SystemEventPayload], Field(discriminator="kind")
]


# ── Job ───────────────────────────────────────────────────


class Delivery(_CamelModel):
    mode: str = "none"


class JobState(_CamelModel):
    """Runtime-only state owned by the gateway scheduler."""

    next_run_at_ms: int | None = None
    last_run_at_ms: int | None = None
    last_status: str | None = None
    last_duration_ms: int | None = None
    consecutive_errors: int = 0


class ScheduledJob(_CamelModel):
    """A gateway cron job as seen by callers.

    ``id``/``job_id`` are None while a tier-3 create is still waiting for
    the gateway to assign identity.
    """

    id: str | None = None
    job_id: str | None = None
    name: str
    agent_id: str | None = None
    description: str | None = None
    enabled: bool = True
    schedule: Schedule | None = None
    session_target: str | None = None
    wake_mode: str | None = None
    payload: Payload | None = None
    delivery: Delivery | None = None
    state: JobState = Field(default_factory=JobState)
    source: Literal["gateway", "config"] = "gateway"
    created_at_ms: int | None = None
    updated_at_ms: int | None = None

    @property
    def pending(self) -> bool:
        return self.id is None

    @property
    def is_heartbeat(self) -> bool:
        return bool(self.id and self.id.startswith(HEARTBEAT_PREFIX))

    def to_dict(self) -> dict[str, Any]:
        """camelCase dict for API responses; identity keys always present."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.setdefault("id", self.id)
        data.setdefault("jobId", self.job_id)
        return data


class JobDocument(BaseModel):
    """The shared jobs document: ``{"version": 1, "jobs": [...]}``."""

    version: int = JOB_DOCUMENT_VERSION
    jobs: list[dict[str, Any]] = Field(default_factory=list)


def to_view(raw: dict[str, Any]) -> ScheduledJob:
    """Normalize a raw gateway job and validate it into a ScheduledJob."""
    try:
        return ScheduledJob.model_validate(from_official(raw))
    except PydanticValidationError as e:
        raise DecodeError(
            f"Job {raw.get('id') or raw.get('name')!r} does not match the job schema: "
            f"{e.error_count()} error(s)",
            errors=[err["msg"] for err in e.errors()],
        ) from e
