"""Structured API errors and the JSON error envelope."""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    OPENROUTER_ERROR = "OPENROUTER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


FieldErrors = dict[str, list[str]]


class ApiError(Exception):
    """A known failure carrying its HTTP status, error code and optional details.

    Raised anywhere below the route layer and rendered by the application's
    exception handler as ``{"error": {"code", "message", "details"?}}``.
    """

    def __init__(
        self,
        status: int,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    @classmethod
    def bad_request(cls, message: str, field_errors: FieldErrors | None = None) -> ApiError:
        return cls(400, ErrorCode.BAD_REQUEST, message, _field_details(field_errors))

    @classmethod
    def validation_failed(cls, field_errors: FieldErrors) -> ApiError:
        return cls(422, ErrorCode.VALIDATION_FAILED, "Validation failed.", _field_details(field_errors))

    @classmethod
    def unauthorized(cls, message: str = "Authentication required.") -> ApiError:
        return cls(401, ErrorCode.UNAUTHORIZED, message)

    @classmethod
    def not_found(cls, message: str) -> ApiError:
        return cls(404, ErrorCode.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str) -> ApiError:
        return cls(409, ErrorCode.CONFLICT, message)

    @classmethod
    def internal(cls, message: str = "An unexpected error occurred.") -> ApiError:
        return cls(500, ErrorCode.INTERNAL_ERROR, message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status, content=self.to_dict())


def _field_details(field_errors: FieldErrors | None) -> dict[str, Any] | None:
    if not field_errors:
        return None
    return {"fieldErrors": field_errors}
