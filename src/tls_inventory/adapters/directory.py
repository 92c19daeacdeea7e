"""
Principal directory — resolve a user UUID into the acting Principal.

Adapter layer — implements the PrincipalDirectory port with psycopg (v3).
Role memberships are loaded together with the user so permission checks
never have to look them up again.
"""

from __future__ import annotations

from typing import Any

import psycopg
import structlog
from psycopg.rows import dict_row
from railway import ErrorCode
from railway.result import Result

from tls_inventory.domain.models import Principal

log = structlog.get_logger()

_FIND_PRINCIPAL = """
SELECT users.id, users.uuid, users.name,
       COALESCE(array_agg(role_users.role) FILTER (WHERE role_users.role IS NOT NULL), '{}') AS role_ids
FROM users
LEFT OUTER JOIN role_users ON role_users."user" = users.id
WHERE users.uuid = %(uuid)s
GROUP BY users.id, users.uuid, users.name
"""


def _principal_from_row(row: dict[str, Any]) -> Principal:
    return Principal(
        id=row["id"],
        uuid=row["uuid"],
        name=row["name"],
        role_ids=tuple(sorted(row["role_ids"])),
    )


class PsycopgPrincipalDirectory:
    """Look users up in the shared `users` / `role_users` tables."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def find(self, principal_uuid: str) -> Result[Principal]:
        """
        Resolve a user UUID.

        Returns Result.failure(AUTHENTICATION_ERROR) for an unknown user and
        Result.failure(DATABASE_ERROR) when the lookup itself fails.
        """
        return Result.from_computation(
            lambda: self._lookup(principal_uuid),
            ErrorCode.DATABASE_ERROR,
            "Failed to look up principal",
        ).flat_map(
            lambda row: Result.success(_principal_from_row(row))
            if row
            else Result.failure(ErrorCode.AUTHENTICATION_ERROR, f"Unknown principal '{principal_uuid}'")
        )

    def _lookup(self, principal_uuid: str) -> dict[str, Any] | bool:
        with psycopg.connect(self._dsn, row_factory=dict_row, autocommit=True) as conn:
            row = conn.execute(_FIND_PRINCIPAL, {"uuid": principal_uuid}).fetchone()
        if row is None:
            log.info("directory.unknown_principal", uuid=principal_uuid)
            return False
        return row
