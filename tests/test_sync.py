"""Tests for CronSyncClient: tier order, pre-checks and tier-3 document writes."""

import errno
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from fakes import CLOCK_MS, JOBS_PATH, FakeGateway, FakeWorkspace, jobs_doc
from mosbot.core.cron.sync import PENDING_PREFIX, merge_patch
from mosbot.core.errors import (
    Conflict,
    CorruptedDocument,
    Forbidden,
    GatewayError,
    NotConfigured,
    NotFound,
    ToolNotAvailable,
    ValidationError,
)
from mosbot.core.gateway.http import GatewayHttpClient
from mosbot.core.gateway.ws import GatewayWsClient

NIGHTLY = {
    "name": "nightly-report",
    "agentId": "coo",
    "schedule": {"kind": "every", "everyMs": 3_600_000},
    "payload": {"kind": "systemEvent", "text": "run report"},
}


def _echo_add(params):
    return {"job": {**params, "id": "gw-1"}}


# ── merge_patch ────────────────────────────────────────────


def test_merge_patch_merges_payload_of_same_kind():
    existing = {"payload": {"kind": "agentTurn", "message": "a", "model": "m"}, "name": "x"}
    merged = merge_patch(existing, {"payload": {"kind": "agentTurn", "message": "b"}})
    assert merged["payload"] == {"kind": "agentTurn", "message": "b", "model": "m"}
    assert existing["payload"]["message"] == "a"


def test_merge_patch_replaces_payload_of_other_kind():
    existing = {"payload": {"kind": "agentTurn", "message": "a", "model": "m"}}
    merged = merge_patch(existing, {"payload": {"kind": "systemEvent", "text": "t"}})
    assert merged["payload"] == {"kind": "systemEvent", "text": "t"}


def test_merge_patch_replaces_schedule():
    existing = {"schedule": {"kind": "cron", "expr": "0 9 * * *", "tz": "UTC"}}
    merged = merge_patch(existing, {"schedule": {"kind": "at", "at": 5}})
    assert merged["schedule"] == {"kind": "at", "at": 5}


# ── Tier selection ─────────────────────────────────────────


async def test_create_via_gateway_http(make_client):
    http = FakeGateway({"cron.list": {"jobs": []}, "cron.add": _echo_add})
    ws = FakeGateway()
    client = make_client(http=http, ws=ws)

    job = await client.create_job(NIGHTLY)

    assert http.methods() == ["cron.list", "cron.add"]
    assert ws.calls == []
    assert job.id == "gw-1"
    sent = http.calls[1][1]
    assert sent["schedule"] == {"kind": "cron", "expr": "0 */1 * * *", "tz": "UTC"}
    assert sent["enabled"] is True
    assert sent["sessionTarget"] == "main"
    assert job.schedule.kind == "cron"
    assert job.schedule.expr == "0 */1 * * *"


async def test_agent_turn_is_always_isolated(make_client):
    http = FakeGateway({"cron.list": [], "cron.add": _echo_add})
    client = make_client(http=http)

    job = await client.create_job(
        {
            "name": "inbox",
            "sessionTarget": "main",
            "schedule": {"kind": "cron", "expr": "*/5 * * * *"},
            "payload": {"kind": "agentTurn", "message": "check inbox"},
        }
    )

    assert http.calls[1][1]["sessionTarget"] == "isolated"
    assert job.session_target == "isolated"


async def test_falls_through_to_socket(make_client):
    ws = FakeGateway({"cron.list": {"jobs": []}, "cron.add": lambda p: {**p, "id": "ws-1"}})
    workspace = FakeWorkspace()
    client = make_client(ws=ws, workspace=workspace)

    job = await client.create_job(NIGHTLY)

    assert job.id == "ws-1"
    assert ws.methods() == ["cron.list", "cron.add"]
    assert workspace.puts == []


async def test_not_configured_aborts_without_fallthrough(make_client):
    ws = FakeGateway()
    workspace = FakeWorkspace()
    client = make_client(http=FakeGateway(default=NotConfigured("no gateway")), ws=ws, workspace=workspace)

    with pytest.raises(NotConfigured):
        await client.create_job(NIGHTLY)
    assert ws.calls == []
    assert workspace.puts == []


async def test_gateway_application_error_aborts(make_client):
    http = FakeGateway({"cron.list": [], "cron.add": GatewayError("invalid schedule")})
    ws = FakeGateway()
    client = make_client(http=http, ws=ws)

    with pytest.raises(GatewayError):
        await client.create_job(NIGHTLY)
    assert ws.calls == []


async def test_socket_error_response_falls_through_to_document(make_client, report_job):
    ws = FakeGateway(default=GatewayError("method not found", code="GATEWAY_CALL_ERROR"))
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(ws=ws, workspace=workspace)

    jobs = await client.list_jobs()

    assert [j.id for j in jobs] == ["job-1"]
    assert ws.methods() == ["cron.list"]


# ── Pre-checks ─────────────────────────────────────────────


async def test_invalid_job_is_rejected_before_any_tier(make_client):
    http = FakeGateway({"cron.list": []})
    client = make_client(http=http)

    with pytest.raises(ValidationError) as exc:
        await client.create_job({"name": "", "payload": {"kind": "systemEvent"}})
    assert exc.value.errors
    assert http.calls == []


@pytest.mark.parametrize("tier", ["http", "ws", "document"])
async def test_duplicate_name_conflicts_on_every_tier(make_client, report_job, tier):
    listing = {"jobs": [report_job]}
    if tier == "http":
        client = make_client(http=FakeGateway({"cron.list": listing}))
    elif tier == "ws":
        client = make_client(ws=FakeGateway({"cron.list": listing}))
    else:
        client = make_client(workspace=FakeWorkspace({JOBS_PATH: jobs_doc(report_job)}))

    with pytest.raises(Conflict) as exc:
        await client.create_job(NIGHTLY)
    assert exc.value.code == "DUPLICATE_NAME"


async def test_unknown_job(make_client):
    with pytest.raises(NotFound):
        await make_client().update_job("missing", {"name": "y"})


async def test_config_sourced_job_is_forbidden(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc({**report_job, "source": "config"})})
    client = make_client(workspace=workspace)

    with pytest.raises(Forbidden):
        await client.update_job("job-1", {"name": "renamed"})
    with pytest.raises(Forbidden):
        await client.delete_job("job-1")
    assert workspace.puts == []


async def test_heartbeat_jobs_are_forbidden(make_client):
    client = make_client()
    with pytest.raises(Forbidden):
        await client.update_job("heartbeat-main", {"name": "x"})
    with pytest.raises(Forbidden):
        await client.set_enabled("heartbeat-main", False)
    with pytest.raises(Forbidden):
        await client.trigger_job("heartbeat-main")


async def test_rename_to_existing_name_conflicts(make_client, report_job):
    other = {**report_job, "id": "job-2", "jobId": "job-2", "name": "weekly"}
    client = make_client(workspace=FakeWorkspace({JOBS_PATH: jobs_doc(report_job, other)}))
    with pytest.raises(Conflict):
        await client.update_job("job-2", {"name": "nightly-report"})


async def test_corrupted_document_is_fatal(make_client):
    workspace = FakeWorkspace({JOBS_PATH: '{"jobs": [ {"id": "a",, '})
    client = make_client(workspace=workspace)
    with pytest.raises(CorruptedDocument):
        await client.create_job(NIGHTLY)
    assert workspace.puts == []


# ── Tier-3 create ──────────────────────────────────────────


async def test_document_create_waits_for_assigned_id(make_client):
    workspace = FakeWorkspace()

    async def gateway_reloads(_delay):
        doc = json.loads(workspace.files[JOBS_PATH])
        for job in doc["jobs"]:
            job["id"] = job["jobId"] = "assigned-1"
        workspace.files[JOBS_PATH] = json.dumps(doc)

    sleep = AsyncMock(side_effect=gateway_reloads)
    client = make_client(workspace=workspace, sleep=sleep)

    job = await client.create_job(NIGHTLY)

    assert job.id == "assigned-1"
    sleep.assert_awaited_once_with(2.0)
    written = workspace.jobs()[0]
    assert written["schedule"] == {"kind": "cron", "expr": "0 */1 * * *", "tz": "UTC"}
    assert written["createdAtMs"] == CLOCK_MS


async def test_document_create_returns_pending_view(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(workspace=workspace)

    job = await client.create_job({**NIGHTLY, "name": "hourly-sync"})

    assert job.pending
    assert job.id is None and job.job_id is None
    assert job.name == "hourly-sync"
    assert job.state.next_run_at_ms == CLOCK_MS + 3_600_000 - CLOCK_MS % 3_600_000
    stored = workspace.jobs()
    assert [j["name"] for j in stored] == ["nightly-report", "hourly-sync"]
    assert stored[1]["id"].startswith(PENDING_PREFIX)


async def test_document_write_sends_reload(make_client, report_job):
    # HTTP serves only cron.reload; job methods fall through.
    http = FakeGateway({"cron.reload": {}}, default=ToolNotAvailable("unknown tool"))
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(http=http, workspace=workspace)

    await client.delete_job("job-1")

    assert http.methods() == ["cron.list", "cron.remove", "cron.reload"]
    assert workspace.jobs() == []


# ── Update ─────────────────────────────────────────────────


async def test_update_ignores_identity_creation_and_state(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(workspace=workspace)

    job = await client.update_job(
        "job-1",
        {
            "id": "hijack",
            "jobId": "hijack",
            "createdAtMs": 1,
            "state": {"nextRunAtMs": 0},
            "description": "daily numbers",
        },
    )

    assert job.id == "job-1"
    assert job.created_at_ms == report_job["createdAtMs"]
    assert job.state.next_run_at_ms == report_job["state"]["nextRunAtMs"]
    assert job.description == "daily numbers"
    assert job.updated_at_ms == CLOCK_MS


async def test_update_schedule_recomputes_next_run(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(workspace=workspace)

    job = await client.update_job("job-1", {"schedule": {"kind": "every", "everyMs": 900_000}})

    assert job.schedule.expr == "*/15 * * * *"
    assert job.state.next_run_at_ms > CLOCK_MS
    assert job.state.last_status == "ok"


async def test_update_to_agent_turn_isolates_session(make_client, report_job):
    http = FakeGateway(
        {"cron.list": [report_job], "cron.update": lambda p: {**report_job, **p["patch"]}}
    )
    client = make_client(http=http)

    job = await client.update_job("job-1", {"payload": {"kind": "agentTurn", "message": "go"}})

    method, params = http.calls[-1]
    assert method == "cron.update"
    assert params["id"] == "job-1"
    assert params["patch"]["sessionTarget"] == "isolated"
    assert job.session_target == "isolated"


# ── Enable / trigger / delete ──────────────────────────────


async def test_disable_clears_next_run_and_enable_rearms(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(workspace=workspace)

    disabled = await client.set_enabled("job-1", False)
    assert disabled.enabled is False
    assert (await client.get_job("job-1")).state.next_run_at_ms is None

    enabled = await client.set_enabled("job-1", True)
    assert enabled.enabled is True
    assert enabled.state.next_run_at_ms > CLOCK_MS


@pytest.mark.parametrize(
    "schedule",
    [
        {"kind": "cron", "expr": "*/10 * * * *", "tz": "UTC"},
        {"kind": "every", "everyMs": 60_000},
        {"kind": "at", "at": CLOCK_MS + 86_400_000},
    ],
)
async def test_enable_rearms_every_schedule_kind(make_client, report_job, schedule):
    job = {**report_job, "enabled": False, "schedule": schedule, "state": {}}
    client = make_client(workspace=FakeWorkspace({JOBS_PATH: jobs_doc(job)}))
    enabled = await client.set_enabled("job-1", True)
    assert enabled.state.next_run_at_ms > CLOCK_MS


async def test_set_enabled_requires_bool(make_client):
    with pytest.raises(ValidationError):
        await make_client().set_enabled("job-1", "yes")


async def test_trigger_arms_near_future_run(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(report_job)})
    client = make_client(workspace=workspace)

    job = await client.trigger_job("job-1")

    assert job.state.next_run_at_ms == CLOCK_MS + 5_000
    assert workspace.jobs()[0]["state"]["lastStatus"] == "ok"


async def test_trigger_disabled_job_conflicts(make_client, report_job):
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc({**report_job, "enabled": False})})
    with pytest.raises(Conflict) as exc:
        await make_client(workspace=workspace).trigger_job("job-1")
    assert exc.value.code == "JOB_DISABLED"


async def test_delete_via_gateway(make_client, report_job):
    http = FakeGateway({"cron.list": [report_job], "cron.remove": {"removed": True}})
    await make_client(http=http).delete_job("job-1")
    assert http.calls[-1] == ("cron.remove", {"id": "job-1"})


# ── Long intervals ─────────────────────────────────────────


async def test_document_create_with_ninety_minute_interval(make_client):
    workspace = FakeWorkspace()
    client = make_client(workspace=workspace)

    job = await client.create_job(
        {**NIGHTLY, "schedule": {"kind": "every", "everyMs": 90 * 60_000}}
    )

    stored = workspace.jobs()[0]
    assert stored["schedule"] == {"kind": "cron", "expr": "*/90 * * * *", "tz": "UTC"}
    assert stored["state"]["nextRunAtMs"] == CLOCK_MS + 90 * 60_000
    assert job.state.next_run_at_ms == CLOCK_MS + 90 * 60_000


async def test_enable_job_with_twenty_five_hour_interval(make_client, report_job):
    job = {
        **report_job,
        "enabled": False,
        "schedule": {"kind": "cron", "expr": "*/1500 * * * *", "tz": "UTC"},
        "state": {},
    }
    workspace = FakeWorkspace({JOBS_PATH: jobs_doc(job)})
    client = make_client(workspace=workspace)

    enabled = await client.set_enabled("job-1", True)

    assert enabled.state.next_run_at_ms == CLOCK_MS + 1500 * 60_000
    assert workspace.jobs()[0]["state"]["nextRunAtMs"] == CLOCK_MS + 1500 * 60_000


async def test_enable_long_interval_via_gateway(make_client, report_job):
    job = {**report_job, "enabled": False, "schedule": {"kind": "cron", "expr": "*/90 * * * *"}}
    http = FakeGateway({"cron.list": [job], "cron.update": lambda p: {**job, **p["patch"]}})
    client = make_client(http=http)

    enabled = await client.set_enabled("job-1", True)

    assert enabled.enabled is True
    assert http.calls[-1][1]["patch"]["state"] == {"nextRunAtMs": CLOCK_MS + 90 * 60_000}


# ── Transport failures on real tier clients ────────────────


async def test_unreachable_socket_falls_through_to_document(cfg, make_client, report_job):
    def connect(url, **kwargs):
        raise OSError(errno.ENETUNREACH, "Network is unreachable")

    ws = GatewayWsClient(cfg, connect=connect, sleep=AsyncMock())
    client = make_client(ws=ws, workspace=FakeWorkspace({JOBS_PATH: jobs_doc(report_job)}))

    assert [j.id for j in await client.list_jobs()] == ["job-1"]


async def test_dropped_http_connection_falls_through_to_document(cfg, make_client, report_job):
    def handler(request):
        raise httpx.RemoteProtocolError("Server disconnected without sending a response.")

    http = GatewayHttpClient(cfg, transport=httpx.MockTransport(handler), sleep=AsyncMock())
    client = make_client(http=http, workspace=FakeWorkspace({JOBS_PATH: jobs_doc(report_job)}))

    assert [j.id for j in await client.list_jobs()] == ["job-1"]
