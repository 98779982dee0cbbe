"""Shared jobs document: tier-3 read-modify-write over the workspace service."""

from __future__ import annotations

from typing import Any

from loguru import logger

from mosbot.core.cron.repair import parse_lenient
from mosbot.core.cron.types import JobDocument
from mosbot.core.gateway.decode import decode_jobs
from mosbot.core.gateway.workspace import WorkspaceClient


def load_job_document(text: str) -> list[dict[str, Any]]:
    """Repair-parse the document text and decode it into a job list."""
    return decode_jobs(parse_lenient(text))


class JobDocumentStore:
    """Reads and rewrites the whole jobs document; no locking."""

    def __init__(self, workspace: WorkspaceClient, path: str = "/cron/jobs.json") -> None:
        self.workspace = workspace
        self.path = path

    async def read(self) -> list[dict[str, Any]]:
        content = await self.workspace.get_file(self.path)
        if not content:
            logger.debug(f"{self.path} does not exist yet, treating as empty")
            return []
        return load_job_document(content)

    async def write(self, jobs: list[dict[str, Any]]) -> None:
        document = JobDocument(jobs=jobs)
        await self.workspace.put_file(self.path, document.model_dump_json(indent=2))
        logger.debug(f"Wrote {len(jobs)} jobs to {self.path}")
