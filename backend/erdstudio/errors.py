from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base for failures that reach the client as ``{success, code, message}``."""

    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "code": self.code, "message": self.message}


class ValidationFailed(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class MissingOwnerError(AppError):
    status_code = 401
    code = "MISSING_AID"
    default_message = "Missing anon id"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Diagram was modified by another request; reload and try again"


class AIQuotaExceededError(AppError):
    status_code = 429
    code = "AI_QUOTA_EXCEEDED"
    default_message = "AI provider quota exceeded"


class AIFailedError(AppError):
    status_code = 502
    code = "AI_FAILED"
    default_message = "AI generation failed"

    def __init__(self, message: Optional[str] = None, *, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.upstream_status is not None:
            body["upstreamStatus"] = self.upstream_status
        return body


class AITimeoutError(AppError):
    status_code = 504
    code = "AI_TIMEOUT"
    default_message = "AI request timed out"


class NormalizationError(AppError):
    status_code = 500
    code = "NORMALIZATION_FAILED"
    default_message = "Internal error while normalizing the diagram"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "code": "SERVER_ERROR", "message": "Unexpected error"}
