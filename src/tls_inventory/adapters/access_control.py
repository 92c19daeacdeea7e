"""
Access control gate — permission decisions backed by the `permissions` table.

Adapter layer — implements the AccessControlGate port with psycopg (v3).

A permission row grants its `name` (a command such as `modify_tls_certificate`,
or `Everything`) to a subject, which is either a user or a role:

  resource = 0            coarse capability for the whole resource kind
  resource = <row id>     instance-level grant on one resource

Visibility of a resource = the principal owns it, OR holds any instance-level
grant on it. The same predicate is spliced into every query-engine statement
so counts and listings only ever see visible rows.
"""

from __future__ import annotations

from typing import Any

import structlog
from psycopg import sql
from railway import ErrorCode
from railway.result import Result

from tls_inventory.domain.models import Principal, Verb, permission_name

log = structlog.get_logger()

EVERYTHING = "Everything"

_SUBJECT = (
    "((permissions.subject_type = 'user' AND permissions.subject = %(principal_id)s)"
    " OR (permissions.subject_type = 'role'"
    " AND permissions.subject = ANY(%(role_ids)s::integer[])))"
)

_MAY = (
    "SELECT EXISTS (SELECT 1 FROM permissions"
    " WHERE permissions.resource = 0"
    " AND permissions.name IN (%(permission)s, %(everything)s)"
    f" AND {_SUBJECT}) AS allowed"
)

_MAY_ON_RESOURCE = (
    "SELECT EXISTS (SELECT 1 FROM {table}"
    " WHERE {table}.id = %(resource_id)s AND {table}.owner = %(principal_id)s)"
    " OR EXISTS (SELECT 1 FROM permissions"
    " WHERE permissions.resource_type = %(resource_kind)s"
    " AND permissions.resource = %(resource_id)s"
    " AND permissions.name IN (%(permission)s, %(everything)s)"
    f" AND {_SUBJECT}) AS allowed"
)


def visibility_clause(table: str) -> str:
    """
    SQL predicate: rows of `table` the principal may see.

    Expects the parameters returned by visibility_params(). `table` comes
    from a static column map, never from input.
    """
    return (
        f"({table}.owner = %(principal_id)s"
        " OR EXISTS (SELECT 1 FROM permissions"
        " WHERE permissions.resource_type = %(resource_kind)s"
        f" AND permissions.resource = {table}.id"
        f" AND {_SUBJECT}))"
    )


def visibility_params(principal: Principal, resource_kind: str) -> dict[str, Any]:
    return {
        "principal_id": principal.id,
        "role_ids": list(principal.role_ids),
        "resource_kind": resource_kind,
    }


class PsycopgAccessGate:
    """
    Permission checks run on the caller's cursor.

    Checks happen inside the operation's transaction, so a grant revoked
    concurrently cannot slip between the check and the mutation.
    """

    def may(self, cur: Any, principal: Principal, verb: Verb, resource_kind: str) -> Result[bool]:
        """Coarse capability: may `principal` perform `verb` on this kind at all?"""
        params = {
            **visibility_params(principal, resource_kind),
            "permission": permission_name(verb, resource_kind),
            "everything": EVERYTHING,
        }
        return Result.from_computation(
            lambda: bool(cur.execute(_MAY, params).fetchone()["allowed"]),
            ErrorCode.DATABASE_ERROR,
            "Failed to check permissions",
        ).peek(lambda allowed: self._log_decision(allowed, principal, verb, resource_kind))

    def find_visible(
        self, cur: Any, principal: Principal, resource_kind: str, resource_uuid: str
    ) -> Result[int]:
        """Internal id of a visible resource, 0 when missing or invisible."""
        statement = sql.SQL("SELECT {table}.id FROM {table} WHERE {table}.uuid = %(uuid)s AND {visible}").format(
            table=sql.Identifier(resource_kind),
            visible=sql.SQL(visibility_clause(resource_kind)),
        )
        params = {**visibility_params(principal, resource_kind), "uuid": resource_uuid}
        return Result.from_computation(
            lambda: (cur.execute(statement, params).fetchone() or {"id": 0})["id"],
            ErrorCode.DATABASE_ERROR,
            f"Failed to resolve {resource_kind}",
        )

    def may_on_resource(
        self, cur: Any, principal: Principal, verb: Verb, resource_kind: str, resource_id: int
    ) -> Result[bool]:
        """Instance-level check: ownership, or a grant of `verb` on this row."""
        statement = sql.SQL(_MAY_ON_RESOURCE).format(table=sql.Identifier(resource_kind))
        params = {
            **visibility_params(principal, resource_kind),
            "resource_id": resource_id,
            "permission": permission_name(verb, resource_kind),
            "everything": EVERYTHING,
        }
        return Result.from_computation(
            lambda: bool(cur.execute(statement, params).fetchone()["allowed"]),
            ErrorCode.DATABASE_ERROR,
            "Failed to check permissions",
        ).peek(lambda allowed: self._log_decision(allowed, principal, verb, resource_kind, resource_id))

    @staticmethod
    def _log_decision(
        allowed: bool, principal: Principal, verb: Verb, resource_kind: str, resource_id: int = 0
    ) -> None:
        if not allowed:
            log.info(
                "access.denied",
                principal=principal.uuid,
                verb=verb.value,
                resource_kind=resource_kind,
                resource_id=resource_id,
            )
