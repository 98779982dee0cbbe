"""Schema translation between caller-facing job shapes and the gateway schema.

``to_official`` is PATCH-shaped: only keys present in the input appear in
the output. ``from_official`` normalizes whatever the gateway (or the shared
document) holds so consumers see one shape.
"""

from __future__ import annotations

import copy
import math
import re
from datetime import datetime, timezone
from typing import Any

from loguru import logger

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS

_DURATION = re.compile(r"^(\d+)\s*(s|m|h|d)$", re.IGNORECASE)
_DURATION_UNITS = {"s": 1_000, "m": MINUTE_MS, "h": HOUR_MS, "d": 24 * HOUR_MS}

# Legacy top-level schedule keys folded into ``schedule`` by to_official.
_LEGACY_SCHEDULE_KEYS = ("cron", "expression", "every", "interval", "tz", "timezone")


def parse_duration_ms(value: str | None) -> int | None:
    """``"30m"`` → 1_800_000. Returns None for anything unparseable."""
    if not value or not isinstance(value, str):
        return None
    match = _DURATION.match(value.strip())
    if not match:
        return None
    return int(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]


def every_ms_to_cron(every_ms: int, tz: str | None = None) -> dict[str, Any]:
    """Convert a fixed interval into an equivalent cron schedule.

    Whole hours (1-24) use the hour field, whole minutes (1-60) the minute
    field; anything else is rounded up to the next whole minute.
    """
    if not isinstance(every_ms, (int, float)) or every_ms <= 0:
        raise ValueError(f"everyMs must be a positive number, got {every_ms!r}")

    hours, rem_h = divmod(every_ms, HOUR_MS)
    minutes, rem_m = divmod(every_ms, MINUTE_MS)
    if rem_h == 0 and 1 <= hours <= 24:
        expr = f"0 */{int(hours)} * * *"
    elif rem_m == 0 and 1 <= minutes <= 60:
        expr = f"*/{int(minutes)} * * * *"
    else:
        expr = f"*/{math.ceil(every_ms / MINUTE_MS)} * * * *"

    schedule: dict[str, Any] = {"kind": "cron", "expr": expr}
    if tz:
        schedule["tz"] = tz
    return schedule


# ════════════════════════════════════════════════════════════
# caller → gateway
# ════════════════════════════════════════════════════════════


def to_official(partial: dict[str, Any], default_tz: str = "UTC") -> dict[str, Any]:
    """Map a partial caller job onto the gateway schema (PATCH semantics).

    - ``every`` schedules become ``cron`` (see every_ms_to_cron)
    - cron schedules without a timezone get ``default_tz``
    - an ``agentTurn`` payload forces ``sessionTarget = "isolated"``
    """
    out = {k: copy.deepcopy(v) for k, v in partial.items() if k not in _LEGACY_SCHEDULE_KEYS}

    schedule = _schedule_from(partial)
    if schedule is not None:
        out["schedule"] = _official_schedule(schedule, default_tz)

    if isinstance(out.get("payload"), dict):
        out["payload"] = _official_payload(out["payload"])
        if out["payload"].get("kind") == "agentTurn":
            out["sessionTarget"] = "isolated"

    if isinstance(out.get("delivery"), str):
        out["delivery"] = {"mode": out["delivery"]}

    return out


def _schedule_from(partial: dict[str, Any]) -> dict[str, Any] | None:
    """Explicit ``schedule`` object, or one built from legacy top-level keys."""
    tz = partial.get("tz") or partial.get("timezone")
    schedule = partial.get("schedule")
    if isinstance(schedule, dict):
        schedule = dict(schedule)
        if tz and not schedule.get("tz"):
            schedule["tz"] = tz
        return schedule

    expr = partial.get("cron") or partial.get("expression")
    if expr:
        return {"kind": "cron", "expr": expr, "tz": tz}
    label = partial.get("every") or partial.get("interval")
    if label:
        return {"kind": "every", "everyMs": parse_duration_ms(label), "label": label, "tz": tz}
    return schedule


def _official_schedule(schedule: dict[str, Any], default_tz: str) -> dict[str, Any]:
    kind = schedule.get("kind")
    if kind is None and schedule.get("expr"):
        kind = "cron"

    if kind == "every":
        every_ms = schedule.get("everyMs")
        if every_ms is None:
            every_ms = parse_duration_ms(schedule.get("label"))
        if isinstance(every_ms, (int, float)) and every_ms > 0:
            return every_ms_to_cron(every_ms, schedule.get("tz") or default_tz)
        # Left untranslated; the validator reports the bad interval.
        return {k: v for k, v in schedule.items() if v is not None}

    if kind == "cron":
        out = {k: v for k, v in schedule.items() if v is not None}
        out["kind"] = "cron"
        out["tz"] = schedule.get("tz") or default_tz
        return out

    return {k: v for k, v in schedule.items() if v is not None}


def _official_payload(payload: dict[str, Any]) -> dict[str, Any]:
    out = dict(payload)
    kind = out.get("kind")
    if kind == "agentTurn":
        message = out.get("message") or out.get("text") or out.pop("prompt", None)
        out.pop("text", None)
        if message is not None:
            out["message"] = message
    elif kind == "systemEvent":
        text = out.get("text") or out.get("message") or out.pop("prompt", None)
        out.pop("message", None)
        if text is not None:
            out["text"] = text
    return out


# ════════════════════════════════════════════════════════════
# gateway → caller
# ════════════════════════════════════════════════════════════


def iso_to_ms(value: Any) -> int | None:
    """ISO-8601 string → epoch milliseconds (naive values are taken as UTC)."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def from_official(job: dict[str, Any]) -> dict[str, Any]:
    """Normalize a gateway job for downstream consumers."""
    out = copy.deepcopy(job)

    if not out.get("id") and out.get("jobId"):
        out["id"] = out["jobId"]
    if not out.get("jobId") and out.get("id"):
        out["jobId"] = out["id"]
    out.setdefault("source", "gateway")

    for iso_key, ms_key in (("createdAt", "createdAtMs"), ("updatedAt", "updatedAtMs")):
        if out.get(ms_key) is None and iso_key in out:
            out[ms_key] = iso_to_ms(out[iso_key])

    state = out.get("state")
    state = dict(state) if isinstance(state, dict) else {}
    for iso_key, ms_key in (("lastRunAt", "lastRunAtMs"), ("nextRunAt", "nextRunAtMs")):
        if state.get(ms_key) is None:
            ms = iso_to_ms(state.get(iso_key)) or iso_to_ms(out.get(iso_key))
            if ms is not None:
                state[ms_key] = ms
    out["state"] = state

    if not isinstance(out.get("schedule"), dict):
        schedule = _schedule_from(out)
        if schedule is not None:
            out["schedule"] = {k: v for k, v in schedule.items() if v is not None}

    payload = out.get("payload")
    if isinstance(payload, dict):
        if not payload.get("message") and payload.get("text"):
            payload["message"] = payload["text"]
        if not payload.get("message") and payload.get("prompt"):
            payload["message"] = payload["prompt"]
        if not payload.get("text") and payload.get("message"):
            payload["text"] = payload["message"]

    return out
