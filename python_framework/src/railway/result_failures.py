"""
Convenience factories for the failures the inventory layer produces.

    ResultFailures.not_found("TLS certificate", cert_uuid)

instead of spelling out Result.failure(ErrorCode.NOT_FOUND, ...) each time.
"""

from __future__ import annotations

from railway.failure import ErrorCode
from railway.result import Result


class ResultFailures:
    """Factory methods for common failure types."""

    @staticmethod
    def invalid_input(message: str) -> Result:
        """Malformed input — bad encoding, bad certificate, bad filter term."""
        return Result.failure(ErrorCode.VALIDATION_ERROR, message)

    @staticmethod
    def not_found(resource_type: str, identifier: str) -> Result:
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"Failed to find {resource_type} '{identifier}'",
        )

    @staticmethod
    def permission_denied(operation: str) -> Result:
        return Result.failure(
            ErrorCode.AUTHORIZATION_ERROR,
            f"Permission denied: {operation}",
        )

    @staticmethod
    def already_exists(resource_type: str, name: str) -> Result:
        return Result.failure(
            ErrorCode.ALREADY_EXISTS,
            f"{resource_type} '{name}' exists already",
        )
