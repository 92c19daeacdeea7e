"""
Filter specifications — declarative list/count requests.

A FilterSpec says WHICH rows (constraints and free-text keywords), in WHAT
order (sort key and direction, id breaks ties) and WHICH window (offset and
limit). It knows nothing about SQL; the query engine validates its keys
against a column map and turns it into a statement.

Filter strings use the management-layer syntax:

    name~web  expires>1700000000  "self signed"  sort-reverse=expires  first=11 rows=10

  key=value   key!=value   key~value (contains)   key<value   key>value
  key<=value  key>=value   bare words (keywords)
  sort=<key>  sort-reverse=<key>  first=<n> (1-based)  rows=<n> (-1 = all)
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, replace
from enum import StrEnum

from railway import ErrorCode
from railway.result import Result


class Comparator(StrEnum):
    EQUAL = "="
    NOT_EQUAL = "!="
    CONTAINS = "~"
    LESS = "<"
    GREATER = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="


class SortDirection(StrEnum):
    ASCENDING = "ASC"
    DESCENDING = "DESC"


@dataclass(frozen=True, slots=True)
class Constraint:
    """A single `key <comparator> value` term."""

    key: str
    comparator: Comparator
    value: str


# Longest operators first so "<=" is not read as "<" followed by "=value".
_TERM = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*)(<=|>=|!=|=|~|<|>)(.*)$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """
    A complete list/count request.

    `limit=None` means unbounded. `offset` is zero-based.
    """

    constraints: tuple[Constraint, ...] = ()
    keywords: tuple[str, ...] = ()
    sort_key: str = "name"
    sort_direction: SortDirection = SortDirection.ASCENDING
    offset: int = 0
    limit: int | None = None

    def window(self, offset: int, limit: int | None) -> FilterSpec:
        return replace(self, offset=offset, limit=limit)

    def unbounded(self) -> FilterSpec:
        """Same selection and order, no pagination."""
        return replace(self, offset=0, limit=None)

    @property
    def keys(self) -> tuple[str, ...]:
        """Every column key this spec refers to, sort key included."""
        return tuple(c.key for c in self.constraints) + (self.sort_key,)

    @staticmethod
    def parse(text: str | None, default_rows: int | None = None) -> Result[FilterSpec]:
        """
        Parse a filter string into a FilterSpec.

        Returns Result.failure(VALIDATION_ERROR) on unbalanced quotes or
        non-integer `first`/`rows` values. Column keys are NOT checked here.
        """
        try:
            terms = shlex.split(text or "")
        except ValueError as e:
            return Result.failure(ErrorCode.VALIDATION_ERROR, f"Malformed filter: {e}", e)

        constraints: list[Constraint] = []
        keywords: list[str] = []
        sort_key = "name"
        direction = SortDirection.ASCENDING
        offset = 0
        limit = default_rows

        for term in terms:
            match = _TERM.match(term)
            if match is None:
                keywords.append(term)
                continue
            key, op, value = match.groups()
            if op == "=" and key in ("sort", "sort-reverse"):
                sort_key = value
                direction = (
                    SortDirection.DESCENDING if key == "sort-reverse" else SortDirection.ASCENDING
                )
            elif op == "=" and key == "first":
                if not _is_int(value):
                    return Result.failure(ErrorCode.VALIDATION_ERROR, f"first must be an integer: {value!r}")
                offset = max(int(value) - 1, 0)
            elif op == "=" and key == "rows":
                if not _is_int(value) or int(value) == 0 or int(value) < -1:
                    return Result.failure(
                        ErrorCode.VALIDATION_ERROR,
                        f"rows must be a positive integer or -1: {value!r}",
                    )
                limit = None if int(value) == -1 else int(value)
            else:
                constraints.append(Constraint(key, Comparator(op), value))

        return Result.success(
            FilterSpec(
                constraints=tuple(constraints),
                keywords=tuple(keywords),
                sort_key=sort_key,
                sort_direction=direction,
                offset=offset,
                limit=limit,
            )
        )


def _is_int(value: str) -> bool:
    return re.fullmatch(r"-?\d+", value) is not None
