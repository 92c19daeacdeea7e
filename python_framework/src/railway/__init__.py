"""
Railway-Oriented Programming (ROP) framework.

Explicit, composable error handling — no exceptions in business logic.

    from railway import Result, ErrorCode

    def require_name(name: str) -> Result[str]:
        if not name:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "Name is required")
        return Result.success(name)

    result = Result.success("web01").flat_map(require_name).map(str.upper)
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from railway.result_failures import ResultFailures
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]

__version__ = "1.1.0"
