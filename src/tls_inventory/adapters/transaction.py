"""
Transaction adapter — one PostgreSQL transaction per service operation.

Implements the TransactionRunner port with psycopg (v3):

  write(work):
    1. BEGIN
    2. LOCK TABLE tls_certificate IN SHARE ROW EXCLUSIVE MODE
       (writers queue behind each other, plain readers are never blocked)
    3. work(cur) → Result
    4. COMMIT on Success, ROLLBACK on Failure or exception

  read(work):
    autocommit connection, no lock, read committed snapshot per statement.

Rows come back as dicts (psycopg.rows.dict_row) so adapters can address
columns by name.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

import psycopg
import structlog
from psycopg.rows import dict_row
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

T = TypeVar("T")

_WRITE_LOCK = "LOCK TABLE tls_certificate IN SHARE ROW EXCLUSIVE MODE"


class PsycopgTransactionContext:
    """
    Run units of work inside PostgreSQL transactions.

    A Failure returned by the work rolls the transaction back and is passed
    through unchanged; an exception becomes a DATABASE_ERROR failure.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def write(self, work: Callable[[Any], Result[T]]) -> Result[T]:
        return Result.from_computation(
            lambda: self._run_locked(work),
            ErrorCode.DATABASE_ERROR,
            "Database transaction failed",
        ).flat_map(lambda outcome: outcome)

    def read(self, work: Callable[[Any], Result[T]]) -> Result[T]:
        return Result.from_computation(
            lambda: self._run_autocommit(work),
            ErrorCode.DATABASE_ERROR,
            "Database read failed",
        ).flat_map(lambda outcome: outcome)

    def _run_locked(self, work: Callable[[Any], Result[T]]) -> Result[T]:
        outcome: Result[T] | None = None
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
            with conn.transaction(), conn.cursor() as cur:
                cur.execute(_WRITE_LOCK)
                outcome = work(cur)
                if outcome.is_failure():
                    log.info("transaction.rolled_back", error_code=outcome.error().code.value)
                    raise psycopg.Rollback()
        return outcome

    def _run_autocommit(self, work: Callable[[Any], Result[T]]) -> Result[T]:
        with psycopg.connect(self._dsn, row_factory=dict_row, autocommit=True) as conn:
            with conn.cursor() as cur:
                return work(cur)
