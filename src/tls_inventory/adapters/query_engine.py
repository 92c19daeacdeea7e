"""
Query engine — FilterSpec + ColumnMap → permission-scoped SQL.

Adapter layer — implements the CertificateQuery port with psycopg (v3).
Statements are composed with psycopg.sql; every value taken from a filter
is bound as a named parameter, never spliced into the SQL text.

Shape of every statement:

    SELECT <columns> FROM <table> <joins>
    WHERE  <visibility for the principal>
      AND  <constraint> AND ...          (one per filter term)
      AND  (<text col> ILIKE kw OR ...)  (one group per keyword)
    ORDER BY <sort expression> <direction>, <table>.id ASC
    LIMIT <limit> OFFSET <offset>

`count` reuses the exact FROM/WHERE of `list`, and `now` is bound once per
call, so count(f) always equals the length of the unbounded list(f).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator

import structlog
from psycopg import sql
from railway import ResultFailures
from railway.result import Result

from tls_inventory.adapters.access_control import visibility_clause, visibility_params
from tls_inventory.adapters.columns import Column, ColumnMap, ValueKind
from tls_inventory.domain.filters import Comparator, Constraint, FilterSpec
from tls_inventory.domain.models import Principal
from tls_inventory.domain.ports import Clock, TransactionRunner

log = structlog.get_logger()

_INTEGER = re.compile(r"-?\d+")

_OPERATORS = {
    Comparator.EQUAL: "=",
    Comparator.NOT_EQUAL: "IS DISTINCT FROM",
    Comparator.LESS: "<",
    Comparator.GREATER: ">",
    Comparator.LESS_EQUAL: "<=",
    Comparator.GREATER_EQUAL: ">=",
}


def _like_pattern(value: str) -> str:
    """Substring pattern for ILIKE with the LIKE wildcards escaped."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class _Where:
    """Accumulates WHERE terms and their parameters."""

    terms: list[sql.Composable] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)

    def bind(self, prefix: str, value: Any) -> sql.Placeholder:
        name = f"{prefix}{len(self.params)}"
        self.params[name] = value
        return sql.Placeholder(name)


def _constraint_term(where: _Where, column: Column, constraint: Constraint) -> Result[sql.Composable]:
    expression = sql.SQL(column.expression)

    if column.kind is ValueKind.INTEGER:
        if _INTEGER.fullmatch(constraint.value) is None:
            return ResultFailures.invalid_input(
                f"Filter column '{column.key}' takes an integer, got {constraint.value!r}"
            )
        if constraint.comparator is Comparator.CONTAINS:
            return Result.success(
                sql.SQL("CAST({} AS TEXT) ILIKE {}").format(
                    expression, where.bind("p", _like_pattern(constraint.value))
                )
            )
        value: Any = int(constraint.value)
    else:
        if constraint.comparator is Comparator.CONTAINS:
            return Result.success(
                sql.SQL("{} ILIKE {}").format(
                    expression, where.bind("p", _like_pattern(constraint.value))
                )
            )
        value = constraint.value

    operator = sql.SQL(_OPERATORS[constraint.comparator])
    return Result.success(
        sql.SQL("{} {} {}").format(expression, operator, where.bind("p", value))
    )


def _keyword_term(where: _Where, columns: ColumnMap, keyword: str) -> sql.Composable:
    pattern = where.bind("k", _like_pattern(keyword))
    alternatives = [
        sql.SQL("{} ILIKE {}").format(sql.SQL(c.expression), pattern)
        for c in columns.text_columns
    ]
    return sql.SQL("({})").format(sql.SQL(" OR ").join(alternatives))


@dataclass(frozen=True)
class _Compiled:
    """A validated FilterSpec: FROM/WHERE, ORDER BY and parameters."""

    source: sql.Composable
    order: sql.Composable
    params: dict[str, Any]


class RowSequence:
    """
    Lazy, restartable sequence of entities produced by one statement.

    Nothing runs until the sequence is fetched or iterated; each iteration
    re-issues the same statement with the same parameters. Iterating a
    sequence whose query fails raises ValueError; `fetch()` keeps the
    failure on the railway instead.
    """

    def __init__(
        self,
        transactions: TransactionRunner,
        columns: ColumnMap,
        statement: sql.Composable,
        params: dict[str, Any],
    ) -> None:
        self._transactions = transactions
        self._columns = columns
        self._statement = statement
        self._params = params

    def fetch(self) -> Result[list[Any]]:
        return self._transactions.read(
            lambda cur: Result.success(
                [self._columns.materialize(row) for row in cur.execute(self._statement, self._params)]
            )
        )

    def __iter__(self) -> Iterator[Any]:
        yield from self.fetch().value()


class SqlQueryEngine:
    """
    Filtered, sorted, paginated and permission-scoped reads over one column map.

    Implements the CertificateQuery port for TLS certificates, but knows
    nothing about certificates beyond what the ColumnMap declares.
    """

    def __init__(
        self,
        columns: ColumnMap,
        transactions: TransactionRunner,
        clock: Clock,
    ) -> None:
        self._columns = columns
        self._transactions = transactions
        self._clock = clock

    # ─────────────────────── Public API ───────────────────────

    def select(self, principal: Principal, spec: FilterSpec, now: int | None = None) -> Result[RowSequence]:
        """Validate `spec` and return the (not yet executed) row sequence."""
        return self._compile(principal, spec, now).map(
            lambda compiled: RowSequence(
                self._transactions,
                self._columns,
                self._select_statement(compiled, spec),
                {**compiled.params, "offset": spec.offset, "limit": spec.limit},
            )
        )

    def list(self, principal: Principal, spec: FilterSpec, now: int | None = None) -> Result[list[Any]]:
        log.debug(
            "query.list",
            resource_kind=self._columns.resource_kind,
            constraints=len(spec.constraints),
            keywords=len(spec.keywords),
            offset=spec.offset,
            limit=spec.limit,
        )
        return self.select(principal, spec, now).flat_map(lambda rows: rows.fetch())

    def count(self, principal: Principal, spec: FilterSpec, now: int | None = None) -> Result[int]:
        return self._compile(principal, spec, now).flat_map(
            lambda compiled: self._transactions.read(
                lambda cur: Result.success(
                    cur.execute(
                        sql.SQL("SELECT count(*) AS count FROM {}").format(compiled.source),
                        compiled.params,
                    ).fetchone()["count"]
                )
            )
        )

    def get(self, principal: Principal, resource_uuid: str, now: int | None = None) -> Result[Any]:
        """The single visible row with this uuid, or NOT_FOUND."""
        spec = FilterSpec(constraints=(Constraint("uuid", Comparator.EQUAL, resource_uuid),), limit=1)
        return self.list(principal, spec, now).flat_map(
            lambda rows: Result.success(rows[0])
            if rows
            else ResultFailures.not_found(self._columns.resource_kind, resource_uuid)
        )

    # ─────────────────────── Compilation ───────────────────────

    def _compile(self, principal: Principal, spec: FilterSpec, now: int | None) -> Result[_Compiled]:
        where = _Where()
        where.params.update(visibility_params(principal, self._columns.resource_kind))
        where.params["now"] = self._clock.now() if now is None else now
        where.terms.append(sql.SQL(visibility_clause(self._columns.table)))

        return (
            Result.all_of([self._columns.column(c.key) for c in spec.constraints])
            .flat_map(
                lambda cols: Result.all_of(
                    [_constraint_term(where, col, c) for col, c in zip(cols, spec.constraints)]
                )
            )
            .peek(where.terms.extend)
            .flat_map(lambda _: self._columns.column(spec.sort_key))
            .map(
                lambda sort_column: _Compiled(
                    source=self._source(where, spec),
                    order=sql.SQL("{} {}, {} ASC").format(
                        sql.SQL(sort_column.expression),
                        sql.SQL(spec.sort_direction.value),
                        sql.Identifier(self._columns.table, "id"),
                    ),
                    params=where.params,
                )
            )
        )

    def _source(self, where: _Where, spec: FilterSpec) -> sql.Composable:
        for keyword in spec.keywords:
            where.terms.append(_keyword_term(where, self._columns, keyword))
        return sql.SQL("{} {} WHERE {}").format(
            sql.Identifier(self._columns.table),
            sql.SQL(self._columns.joins),
            sql.SQL(" AND ").join(where.terms),
        )

    def _select_statement(self, compiled: _Compiled, spec: FilterSpec) -> sql.Composable:
        selected = sql.SQL(", ").join(
            sql.SQL("{} AS {}").format(sql.SQL(c.expression), sql.Identifier(f"c{i}"))
            for i, c in enumerate(self._columns.columns)
        )
        window = (
            sql.SQL("OFFSET {}").format(sql.Placeholder("offset"))
            if spec.limit is None
            else sql.SQL("LIMIT {} OFFSET {}").format(sql.Placeholder("limit"), sql.Placeholder("offset"))
        )
        return sql.SQL("SELECT {} FROM {} ORDER BY {} {}").format(
            selected, compiled.source, compiled.order, window
        )
