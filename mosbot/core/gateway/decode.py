"""Decode heterogeneous job responses into one canonical shape.

Known shapes:
    [job, ...]
    {"jobs": [job, ...]}
    {"jobs": {"<id>": job, ...}}
    {"details": {"jobs": ...}}          (tool-invoke envelope)
"""

from __future__ import annotations

from typing import Any

from mosbot.core.errors import DecodeError


def decode_jobs(data: Any) -> list[dict[str, Any]]:
    """Map any known list-response shape to a list of raw job dicts."""
    if isinstance(data, list):
        return [_require_job(item) for item in data]
    if isinstance(data, dict):
        if isinstance(data.get("details"), dict) and "jobs" in data["details"]:
            return decode_jobs(data["details"])
        jobs = data.get("jobs")
        if isinstance(jobs, list):
            return [_require_job(item) for item in jobs]
        if isinstance(jobs, dict):
            out = []
            for key, item in jobs.items():
                job = dict(_require_job(item))
                job.setdefault("id", job.get("jobId") or key)
                out.append(job)
            return out
    raise DecodeError(f"Unrecognized job list shape: {_describe(data)}")


def decode_job(data: Any) -> dict[str, Any]:
    """Map a single-job response (bare or wrapped) to a raw job dict."""
    if isinstance(data, dict):
        if isinstance(data.get("job"), dict):
            return data["job"]
        if isinstance(data.get("details"), dict):
            return decode_job(data["details"])
        if any(k in data for k in ("id", "jobId", "name")):
            return data
    raise DecodeError(f"Unrecognized job shape: {_describe(data)}")


def _require_job(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise DecodeError(f"Job entry is not an object: {_describe(item)}")
    return item


def _describe(data: Any) -> str:
    if isinstance(data, dict):
        return f"object with keys {sorted(data)[:10]}"
    return type(data).__name__
