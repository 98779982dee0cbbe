"""Map sync-layer exceptions onto JSON error responses."""

from __future__ import annotations

from fastapi import FastAPI
from loguru import logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from mosbot.core.errors import SyncError


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "errors": exc.errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SyncError, sync_error_handler)
