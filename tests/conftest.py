"""Shared fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from fakes import CLOCK_MS, FakeWorkspace, http_down, ws_down
from mosbot.core.config import Config
from mosbot.core.cron.sync import CronSyncClient


@pytest.fixture
def cfg():
    return Config(
        gateway={"url": "http://gateway.test", "token": "gw-token"},
        workspace={"url": "http://workspace.test", "token": "ws-token"},
        cron={"timezone": "UTC"},
    )


@pytest.fixture
def make_client(cfg):
    """Build a CronSyncClient over fakes; unspecified tiers are unreachable."""

    def _make(http=None, ws=None, workspace=None, sleep=None):
        return CronSyncClient(
            cfg,
            http=http or http_down(),
            ws=ws or ws_down(),
            workspace=workspace or FakeWorkspace(),
            sleep=sleep or AsyncMock(),
            clock=lambda: CLOCK_MS,
        )

    return _make


@pytest.fixture
def report_job():
    return {
        "id": "job-1",
        "jobId": "job-1",
        "name": "nightly-report",
        "agentId": "coo",
        "enabled": True,
        "schedule": {"kind": "cron", "expr": "0 9 * * *", "tz": "UTC"},
        "sessionTarget": "main",
        "wakeMode": "now",
        "payload": {"kind": "systemEvent", "text": "run report"},
        "delivery": {"mode": "none"},
        "createdAtMs": 1_600_000_000_000,
        "updatedAtMs": 1_600_000_000_000,
        "state": {"nextRunAtMs": 1_700_000_100_000, "lastStatus": "ok"},
    }
