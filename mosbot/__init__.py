"""mosbot: gateway cron job and heartbeat management with tiered synchronization."""

__version__ = "0.4.0"
