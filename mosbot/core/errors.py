"""Error taxonomy shared by the gateway transports and the sync client."""

from __future__ import annotations


class SyncError(Exception):
    """Base error. Carries the HTTP status the API layer should answer with."""

    status_code: int = 500
    code: str = "SYNC_ERROR"

    def __init__(
        self,
        detail: str,
        *,
        code: str | None = None,
        errors: list[str] | None = None,
    ):
        self.detail = detail
        if code:
            self.code = code
        self.errors = errors or []
        super().__init__(detail)


class ValidationError(SyncError):
    """Structural or cross-field validation failure. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(SyncError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(SyncError):
    status_code = 409
    code = "CONFLICT"


class Forbidden(SyncError):
    """Mutation of a statically-sourced (config) job."""

    status_code = 403
    code = "FORBIDDEN"


class ServiceUnavailable(SyncError):
    """A remote dependency could not be reached (possibly transient)."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"


class NotConfigured(ServiceUnavailable):
    """Transport configuration is missing; no tier can succeed."""

    code = "SERVICE_NOT_CONFIGURED"


class GatewayError(SyncError):
    """Explicit application-level error returned by a tier."""

    status_code = 502
    code = "GATEWAY_ERROR"


class ToolNotAvailable(GatewayError):
    """The tier does not know the requested operation at all."""

    code = "TOOL_NOT_AVAILABLE"


class CorruptedDocument(SyncError):
    """Shared document could not be recovered by the repair parser."""

    status_code = 502
    code = "CORRUPTED_DOCUMENT"


class DecodeError(CorruptedDocument):
    """A remote response had none of the known shapes."""

    code = "DECODE_ERROR"
