"""Next-run computation for locally armed jobs (APScheduler triggers)."""

from __future__ import annotations

import re
import time
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from mosbot.core.cron.translator import HOUR_MS, MINUTE_MS, iso_to_ms
from mosbot.core.errors import ValidationError


_MINUTE_STEP = re.compile(r"^\*/(\d+) \* \* \* \*$")
_HOUR_STEP = re.compile(r"^0 \*/(\d+) \* \* \*$")


def now_ms() -> int:
    return int(time.time() * 1000)


def oversized_step_ms(expr: str) -> int | None:
    """Interval of a ``*/N`` minute or hour expression whose step exceeds the field range.

    Intervals such as 90 minutes are written as ``*/90 * * * *``, which a cron
    trigger cannot represent; their next run is ``now + N`` units instead.
    """
    fields = " ".join(expr.split())
    match = _MINUTE_STEP.match(fields)
    if match and int(match.group(1)) > 59:
        return int(match.group(1)) * MINUTE_MS
    match = _HOUR_STEP.match(fields)
    if match and int(match.group(1)) > 23:
        return int(match.group(1)) * HOUR_MS
    return None


def cron_trigger(expr: str, tz: str) -> CronTrigger:
    """5-field crontab, or 6 fields with a leading seconds field."""
    try:
        zone = ZoneInfo(tz)
        fields = expr.split()
        if len(fields) == 6:
            second, minute, hour, day, month, day_of_week = fields
            return CronTrigger(
                second=second, minute=minute, hour=hour, day=day,
                month=month, day_of_week=day_of_week, timezone=zone,
            )
        return CronTrigger.from_crontab(expr, timezone=zone)
    except (ValueError, ZoneInfoNotFoundError) as e:
        raise ValidationError(f"Cannot schedule cron expression {expr!r} in {tz}: {e}") from e


def compute_next_run_ms(
    schedule: dict[str, Any] | None, now: int, default_tz: str = "UTC"
) -> int | None:
    """Next fire time in epoch ms for a gateway-schema schedule, never before ``now``."""
    if not schedule:
        return None
    kind = schedule.get("kind")

    if kind == "every":
        every_ms = schedule.get("everyMs")
        return now + int(every_ms) if every_ms else None

    if kind == "at":
        at = schedule.get("at")
        at_ms = at if isinstance(at, int) else iso_to_ms(at)
        return max(at_ms, now) if at_ms is not None else None

    if kind == "cron" and schedule.get("expr"):
        step_ms = oversized_step_ms(schedule["expr"])
        if step_ms is not None:
            return now + step_ms
        tz = schedule.get("tz") or default_tz
        trigger = cron_trigger(schedule["expr"], tz)
        current = datetime.fromtimestamp(now / 1000, ZoneInfo(tz))
        fire = trigger.get_next_fire_time(None, current)
        return int(fire.timestamp() * 1000) if fire else None

    return None
