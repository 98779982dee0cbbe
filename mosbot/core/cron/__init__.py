"""Gateway cron jobs: translation, validation, repair and tiered sync."""

from mosbot.core.cron.sync import CronSyncClient
from mosbot.core.cron.types import ScheduledJob

__all__ = ["CronSyncClient", "ScheduledJob"]
