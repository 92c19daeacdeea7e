"""
HTTP integration — ErrorCode→HTTP status mapping and response builders.

    status = HttpStatusMapper.map_error_code(ErrorCode.NOT_FOUND)  # → 404
    return build_fastapi_response(result, success_status=201)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, TypeVar

from fastapi.responses import JSONResponse

from railway.failure import ErrorCode, FailureDescription
from railway.result import Result

T = TypeVar("T")


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.AUTHENTICATION_ERROR: 401,
        ErrorCode.AUTHORIZATION_ERROR: 403,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.ALREADY_EXISTS: 409,
        ErrorCode.IN_USE: 409,
        ErrorCode.TECHNICAL_ERROR: 500,
        ErrorCode.DATABASE_ERROR: 500,
        ErrorCode.UNKNOWN_ERROR: 500,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def map_failure(cls, failure: FailureDescription) -> int:
        return cls.map_error_code(failure.code)


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error response body.

        {
            "error_code": "NOT_FOUND",
            "message": "Failed to find TLS certificate '…'",
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    message: str
    timestamp: str

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            message=failure.message,
            timestamp=failure.timestamp.isoformat(),
        )

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def build_response(
    result: Result[T],
    success_status: int = 200,
    serializer: Callable[[T], Any] | None = None,
) -> tuple[Any, int]:
    """
    Build a (body, status_code) tuple from a Result.

    `serializer` turns the success value into a JSON-compatible body.
    """
    return result.either(
        on_success=lambda value: (
            serializer(value) if serializer is not None else value,
            success_status,
        ),
        on_failure=lambda error: (
            ErrorResponse.from_failure(error).to_dict(),
            HttpStatusMapper.map_failure(error),
        ),
    )


def build_fastapi_response(
    result: Result[T],
    success_status: int = 200,
    serializer: Callable[[T], Any] | None = None,
) -> JSONResponse:
    """
    Build a FastAPI JSONResponse from a Result.

        @app.post("/tls-certificates", status_code=201)
        def create(body: CreateRequest):
            return build_fastapi_response(service.create(...), 201, serialize)
    """
    body, status = build_response(result, success_status, serializer)
    return JSONResponse(content=body, status_code=status)
