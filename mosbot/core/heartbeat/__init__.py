"""Per-agent heartbeat configuration."""

from mosbot.core.heartbeat.patcher import HeartbeatPatcher

__all__ = ["HeartbeatPatcher"]
