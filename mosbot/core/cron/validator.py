"""Structural and cross-field validation for job and heartbeat payloads."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from mosbot.core.errors import ValidationError

NAME_MAX_LENGTH = 200
DEFAULT_AGENT_IDS = ("main", "coo", "cto", "cmo", "cpo")

SCHEDULE_KINDS = ("cron", "every", "at")
SESSION_TARGETS = ("main", "isolated")
WAKE_MODES = ("now", "next-heartbeat")
PAYLOAD_KINDS = ("agentTurn", "systemEvent")
DELIVERY_MODES = ("none", "announce")

_HEARTBEAT_EVERY = re.compile(r"^\d+\s*(s|m|h|d)$", re.IGNORECASE)
_CLOCK = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$|^24:00$")


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self, what: str) -> None:
        if self.errors:
            raise ValidationError(
                f"Invalid {what}: {', '.join(self.errors)}", errors=list(self.errors)
            )


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_job(
    job: dict[str, Any], agent_ids: Iterable[str] | None = None
) -> ValidationResult:
    """Validate a complete job in gateway schema.

    ``agentTurn`` payloads outside an isolated session are reported here,
    not corrected; correction is the translator's job.
    """
    errors: list[str] = []
    allowed_agents = tuple(agent_ids) if agent_ids is not None else DEFAULT_AGENT_IDS

    name = job.get("name")
    if not _non_empty_str(name):
        errors.append("name is required and must be a non-empty string")
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f"name must be {NAME_MAX_LENGTH} characters or less")

    if "agentId" in job and job["agentId"] not in allowed_agents:
        errors.append(f"agentId must be one of: {', '.join(allowed_agents)}")

    if "enabled" in job and not isinstance(job["enabled"], bool):
        errors.append("enabled must be a boolean")

    errors.extend(_schedule_errors(job.get("schedule")))

    target = job.get("sessionTarget")
    if target is not None and target not in SESSION_TARGETS:
        errors.append('sessionTarget must be either "main" or "isolated"')

    wake = job.get("wakeMode")
    if wake is not None and wake not in WAKE_MODES:
        errors.append('wakeMode must be either "now" or "next-heartbeat"')

    payload = job.get("payload")
    errors.extend(_payload_errors(payload))
    if isinstance(payload, dict) and payload.get("kind") == "agentTurn" and target != "isolated":
        errors.append('payload.kind "agentTurn" requires sessionTarget "isolated"')

    delivery = job.get("delivery")
    if delivery is not None:
        if not isinstance(delivery, dict):
            errors.append("delivery must be an object")
        elif delivery.get("mode") is not None and delivery["mode"] not in DELIVERY_MODES:
            errors.append('delivery.mode must be either "announce" or "none"')

    return ValidationResult(errors)


def _schedule_errors(schedule: Any) -> list[str]:
    if not isinstance(schedule, dict):
        return ["schedule is required and must be an object"]

    kind = schedule.get("kind")
    if kind not in SCHEDULE_KINDS:
        return [f"schedule.kind must be one of: {', '.join(SCHEDULE_KINDS)}"]

    if kind == "cron":
        expr = schedule.get("expr")
        if not _non_empty_str(expr):
            return ["schedule.expr is required for cron schedules"]
        if not 5 <= len(expr.split()) <= 6:
            return ["schedule.expr must be a valid cron expression (5 or 6 fields)"]
    elif kind == "every":
        every_ms = schedule.get("everyMs")
        if isinstance(every_ms, bool) or not isinstance(every_ms, (int, float)) or every_ms <= 0:
            return ["schedule.everyMs is required and must be a positive number for every schedules"]
    elif kind == "at" and not schedule.get("at"):
        return ["schedule.at is required for at schedules"]
    return []


def _payload_errors(payload: Any) -> list[str]:
    if not isinstance(payload, dict):
        return ["payload is required and must be an object"]
    kind = payload.get("kind")
    if kind not in PAYLOAD_KINDS:
        return [f"payload.kind must be one of: {', '.join(PAYLOAD_KINDS)}"]
    if kind == "agentTurn" and not _non_empty_str(payload.get("message")):
        return ["payload.message is required for agentTurn payloads"]
    if kind == "systemEvent" and not _non_empty_str(payload.get("text")):
        return ["payload.text is required for systemEvent payloads"]
    return []


def validate_heartbeat_patch(patch: dict[str, Any]) -> ValidationResult:
    """Validate only the fields present; ``None`` values mean "delete" and pass."""
    errors: list[str] = []

    every = patch.get("every")
    if every is not None and not (isinstance(every, str) and _HEARTBEAT_EVERY.match(every.strip())):
        errors.append('every must be a duration such as "30s", "15m" or "1h"')

    for key in ("model", "target"):
        value = patch.get(key)
        if value is not None and not _non_empty_str(value):
            errors.append(f"{key} must be a non-empty string")

    ack = patch.get("ackMaxChars")
    if ack is not None and (isinstance(ack, bool) or not isinstance(ack, int) or ack <= 0):
        errors.append("ackMaxChars must be a positive integer")

    hours = patch.get("activeHours")
    if hours is not None:
        errors.extend(_active_hours_errors(hours))

    return ValidationResult(errors)


def _active_hours_errors(hours: Any) -> list[str]:
    if not isinstance(hours, dict):
        return ["activeHours must be an object"]
    errors = []
    start, end = hours.get("start"), hours.get("end")
    for key, value in (("start", start), ("end", end)):
        if not (isinstance(value, str) and _CLOCK.match(value)):
            errors.append(f"activeHours.{key} must be HH:MM between 00:00 and 24:00")
    if not errors and start == end:
        errors.append("activeHours.start and activeHours.end must differ")
    tz = hours.get("timezone")
    if tz is not None and not _non_empty_str(tz):
        errors.append("activeHours.timezone must be a non-empty string")
    return errors
