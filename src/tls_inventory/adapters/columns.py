"""
Column maps — the closed set of selectable and filterable keys per resource kind.

Each Column ties an external key (what a filter or sort term names) to a
SQL expression and a value kind, and to the entity field it fills when a
row is materialized:

  key         what callers write in filters (`expires`, `owner`, `valid`)
  expression  SQL fragment selected and compared (`tls_certificate.expiration_time`)
  kind        TEXT or INTEGER, decides comparator semantics
  field       dataclass field on the entity the selected value lands in

Expressions are static SQL written here, never built from input. Computed
columns may use the `%(now)s` placeholder; the query engine binds it once
per call so selection, filtering and counting all see the same instant.

ColumnMap checks at import time that every entity field is filled by
exactly one column, so a new stored field cannot silently go missing.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from railway import ErrorCode
from railway.result import Result

from tls_inventory.domain.models import TLS_CERTIFICATE, TLSCertificate


class ValueKind(StrEnum):
    TEXT = "text"
    INTEGER = "integer"


@dataclass(frozen=True, slots=True)
class Column:
    key: str
    expression: str
    kind: ValueKind
    field: str
    filterable: bool = True
    convert: Callable[[Any], Any] | None = None

    def to_field(self, raw: Any) -> Any:
        return self.convert(raw) if self.convert is not None else raw


@dataclass(frozen=True)
class ColumnMap:
    """
    Declared columns of one resource kind.

    `table` is the main table (its `id` column breaks sort ties), `joins` the
    static SQL appended to the FROM clause.
    """

    resource_kind: str
    table: str
    entity: type
    columns: tuple[Column, ...]
    joins: str = ""

    def __post_init__(self) -> None:
        keys = [c.key for c in self.columns if c.filterable]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"{self.resource_kind}: duplicate column keys {duplicates}")

        declared = [f.name for f in dataclasses.fields(self.entity)]
        covered = [c.field for c in self.columns]
        missing = [name for name in declared if name not in covered]
        unknown = [name for name in covered if name not in declared]
        if missing or unknown or len(covered) != len(set(covered)):
            raise ValueError(
                f"{self.resource_kind}: column map does not match {self.entity.__name__} "
                f"(missing={missing}, unknown={unknown})"
            )

    @property
    def filter_keys(self) -> tuple[str, ...]:
        return tuple(c.key for c in self.columns if c.filterable)

    @property
    def text_columns(self) -> tuple[Column, ...]:
        """Columns searched by free-text keywords."""
        return tuple(c for c in self.columns if c.filterable and c.kind is ValueKind.TEXT)

    def column(self, key: str) -> Result[Column]:
        """Resolve a filter or sort key; unknown keys are a VALIDATION_ERROR."""
        for candidate in self.columns:
            if candidate.filterable and candidate.key == key:
                return Result.success(candidate)
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Unknown filter column '{key}' for {self.resource_kind}",
        )

    def materialize(self, row: dict[str, Any]) -> Any:
        """Build the entity from a row selected with aliases c0, c1, ..."""
        values = {
            c.field: c.to_field(row[f"c{i}"]) for i, c in enumerate(self.columns)
        }
        return self.entity(**values)


_VALID = (
    "CASE WHEN (tls_certificate.expiration_time >= %(now)s"
    " OR tls_certificate.expiration_time = -1)"
    " AND (tls_certificate.activation_time <= %(now)s"
    " OR tls_certificate.activation_time = -1)"
    " THEN 1 ELSE 0 END"
)

_LAST_COLLECTED = (
    "(SELECT max(timestamp) FROM tls_certificate_source"
    " WHERE tls_certificate_source.tls_certificate = tls_certificate.id)"
)

TLS_CERTIFICATE_COLUMNS = ColumnMap(
    resource_kind=TLS_CERTIFICATE,
    table="tls_certificate",
    entity=TLSCertificate,
    joins="LEFT OUTER JOIN users ON users.id = tls_certificate.owner",
    columns=(
        Column("id", "tls_certificate.id", ValueKind.INTEGER, "id", filterable=False),
        Column("uuid", "tls_certificate.uuid", ValueKind.TEXT, "uuid"),
        Column("owner_id", "tls_certificate.owner", ValueKind.INTEGER, "owner", filterable=False),
        Column("owner", "users.name", ValueKind.TEXT, "owner_name"),
        Column("name", "tls_certificate.name", ValueKind.TEXT, "name"),
        Column("comment", "tls_certificate.comment", ValueKind.TEXT, "comment"),
        Column("created", "tls_certificate.creation_time", ValueKind.INTEGER, "creation_time"),
        Column("modified", "tls_certificate.modification_time", ValueKind.INTEGER, "modification_time"),
        Column(
            "certificate", "tls_certificate.certificate", ValueKind.TEXT, "certificate",
            filterable=False,
        ),
        Column("subject_dn", "tls_certificate.subject_dn", ValueKind.TEXT, "subject_dn"),
        Column("issuer_dn", "tls_certificate.issuer_dn", ValueKind.TEXT, "issuer_dn"),
        Column("trust", "tls_certificate.trust", ValueKind.INTEGER, "trust"),
        Column("activates", "tls_certificate.activation_time", ValueKind.INTEGER, "activation_time"),
        Column("expires", "tls_certificate.expiration_time", ValueKind.INTEGER, "expiration_time"),
        Column("md5_fingerprint", "tls_certificate.md5_fingerprint", ValueKind.TEXT, "md5_fingerprint"),
        Column(
            "sha256_fingerprint", "tls_certificate.sha256_fingerprint", ValueKind.TEXT,
            "sha256_fingerprint",
        ),
        Column("serial", "tls_certificate.serial", ValueKind.TEXT, "serial"),
        Column(
            "certificate_format", "tls_certificate.certificate_format", ValueKind.TEXT,
            "certificate_format",
        ),
        Column("valid", _VALID, ValueKind.INTEGER, "valid", convert=bool),
        Column("last_collected", _LAST_COLLECTED, ValueKind.INTEGER, "last_collected"),
    ),
)
