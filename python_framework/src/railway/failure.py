"""
Failure description — structured error information for the failure track.

Every failure carries an ErrorCode (what went wrong, mapped to a transport
status at the edge) plus a human-readable message and the optional
exception that caused it.

The codes follow the error classes of the inventory layer:
  - VALIDATION_ERROR  → malformed input (bad base64, bad certificate, bad filter)
  - AUTHORIZATION_ERROR → coarse or instance-level permission missing
  - NOT_FOUND         → unknown id, or an id invisible to the principal
  - ALREADY_EXISTS    → name clash on copy
  - IN_USE            → resource referenced elsewhere, refuse to delete
  - DATABASE_ERROR    → storage failure, transaction rolled back
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Client errors (4xx) first, server errors (5xx) after.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Invalid input: not base64, invalid certificate, unknown filter column (→ 400)."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """Acting principal could not be resolved (→ 401)."""

    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    """Permission denied (→ 403)."""

    NOT_FOUND = "NOT_FOUND"
    """Resource doesn't exist or is not visible to the principal (→ 404)."""

    ALREADY_EXISTS = "ALREADY_EXISTS"
    """A resource with the requested name already exists (→ 409)."""

    IN_USE = "IN_USE"
    """Resource is referenced by another resource (→ 409)."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Infrastructure issues (→ 500)."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Database connectivity or query failures (→ 500)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "not base64")
    >>> desc.code
    <ErrorCode.VALIDATION_ERROR: 'VALIDATION_ERROR'>
    >>> desc.message
    'not base64'
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
