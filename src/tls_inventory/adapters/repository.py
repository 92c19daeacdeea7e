"""
PostgreSQL resource store — TLS certificates and their observation sources.

Adapter layer — implements the CertificateStore port using psycopg (v3)
with raw parameterized SQL. Every method runs on a cursor handed in by the
TransactionRunner, so one service operation is one transaction:

  create   INSERT tls_certificate
  copy     INSERT ... SELECT from the source row (fingerprints copied, never recomputed)
  modify   single UPDATE of the supplied fields + modification_time
  delete   permissions → tag_resources → tls_certificate_source → tls_certificate
  bulk     owner reassignment / removal, legacy trash table included

Locations and origins are shared dedup tables: they are upserted by value
and outlive the sources that reference them.

All exceptions are caught at this adapter boundary via Result.from_computation().
"""

from __future__ import annotations

import uuid
from typing import Any

import psycopg
import structlog
from psycopg import sql
from railway import ErrorCode
from railway.result import Result

from tls_inventory.domain.models import (
    TLS_CERTIFICATE,
    CertificateInfo,
    CertificateSource,
    Location,
    Origin,
    SourceObservation,
)

log = structlog.get_logger()

_CERTIFICATE_FIELDS = (
    "certificate, subject_dn, issuer_dn, trust, activation_time, expiration_time,"
    " md5_fingerprint, sha256_fingerprint, serial, certificate_format"
)

_INSERT_CERTIFICATE = """
INSERT INTO tls_certificate (
    uuid, owner, name, comment, creation_time, modification_time,
    certificate, subject_dn, issuer_dn, trust, activation_time, expiration_time,
    md5_fingerprint, sha256_fingerprint, serial, certificate_format
) VALUES (
    %(uuid)s, %(owner)s, %(name)s, %(comment)s, %(now)s, %(now)s,
    %(certificate)s, %(subject_dn)s, %(issuer_dn)s, %(trust)s, %(activation_time)s,
    %(expiration_time)s, %(md5_fingerprint)s, %(sha256_fingerprint)s, %(serial)s,
    %(certificate_format)s
)
RETURNING uuid
"""

_COPY_CERTIFICATE = f"""
INSERT INTO tls_certificate (
    uuid, owner, name, comment, creation_time, modification_time, {_CERTIFICATE_FIELDS}
)
SELECT %(uuid)s, %(owner)s, COALESCE(%(name)s, name), COALESCE(%(comment)s, comment),
       %(now)s, %(now)s, {_CERTIFICATE_FIELDS}
FROM tls_certificate
WHERE id = %(source_id)s
RETURNING uuid
"""

_UPSERT_LOCATION = """
INSERT INTO tls_certificate_location (uuid, host_ip, port)
VALUES (%(uuid)s, %(host_ip)s, %(port)s)
ON CONFLICT (host_ip, port) DO UPDATE SET host_ip = EXCLUDED.host_ip
RETURNING id, uuid
"""

_UPSERT_ORIGIN = """
INSERT INTO tls_certificate_origin (uuid, origin_type, origin_id, origin_data)
VALUES (%(uuid)s, %(origin_type)s, %(origin_id)s, %(origin_data)s)
ON CONFLICT (origin_type, origin_id, origin_data) DO UPDATE SET origin_type = EXCLUDED.origin_type
RETURNING id, uuid
"""

_INSERT_SOURCE = """
INSERT INTO tls_certificate_source (uuid, tls_certificate, timestamp, tls_versions, location, origin)
VALUES (%(uuid)s, %(certificate_id)s, %(timestamp)s, %(tls_versions)s, %(location)s, %(origin)s)
"""

_LIST_SOURCES = """
SELECT s.uuid, s.timestamp, s.tls_versions,
       l.uuid AS location_uuid, l.host_ip, l.port,
       o.uuid AS origin_uuid, o.origin_type, o.origin_id, o.origin_data
FROM tls_certificate_source s
LEFT OUTER JOIN tls_certificate_location l ON l.id = s.location
LEFT OUTER JOIN tls_certificate_origin o ON o.id = s.origin
WHERE s.tls_certificate = %(certificate_id)s
ORDER BY s.timestamp DESC, s.id DESC
"""

_OWNED = "SELECT id FROM tls_certificate WHERE owner = %(owner)s"


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _source_from_row(row: dict[str, Any]) -> CertificateSource:
    location = (
        Location(uuid=row["location_uuid"], host_ip=row["host_ip"], port=row["port"])
        if row["location_uuid"] is not None
        else None
    )
    origin = (
        Origin(
            uuid=row["origin_uuid"],
            origin_type=row["origin_type"],
            origin_id=row["origin_id"],
            origin_data=row["origin_data"],
        )
        if row["origin_uuid"] is not None
        else None
    )
    return CertificateSource(
        uuid=row["uuid"],
        timestamp=row["timestamp"],
        tls_versions=row["tls_versions"],
        location=location,
        origin=origin,
    )


class PsycopgCertificateStore:
    """
    Row-level persistence of TLS certificates.

    Implements the CertificateStore port. Stateless: the cursor (and with it
    the transaction) is supplied per call.
    """

    # ─────────────────────── Certificates ───────────────────────

    def insert_certificate(
        self,
        cur: psycopg.Cursor[Any],
        owner: int,
        name: str,
        comment: str,
        certificate: str,
        info: CertificateInfo,
        trust: int,
        now: int,
    ) -> Result[str]:
        """Insert a new certificate row; returns its generated uuid."""
        params = {
            "uuid": _new_uuid(),
            "owner": owner,
            "name": name,
            "comment": comment,
            "now": now,
            "certificate": certificate,
            "subject_dn": info.subject_dn,
            "issuer_dn": info.issuer_dn,
            "trust": trust,
            "activation_time": info.activation_time,
            "expiration_time": info.expiration_time,
            "md5_fingerprint": info.md5_fingerprint,
            "sha256_fingerprint": info.sha256_fingerprint,
            "serial": info.serial,
            "certificate_format": info.certificate_format.value,
        }
        return Result.from_computation(
            lambda: cur.execute(_INSERT_CERTIFICATE, params).fetchone()["uuid"],
            ErrorCode.DATABASE_ERROR,
            "Failed to store TLS certificate",
        ).peek(lambda new_uuid: log.info("repository.certificate_inserted", uuid=new_uuid, owner=owner))

    def copy_certificate(
        self,
        cur: psycopg.Cursor[Any],
        source_id: int,
        owner: int,
        name: str | None,
        comment: str | None,
        now: int,
    ) -> Result[str]:
        """
        Duplicate a certificate row for a new owner.

        Certificate fields are copied verbatim; name and comment fall back to
        the source row's when None.
        """
        params = {
            "uuid": _new_uuid(),
            "owner": owner,
            "name": name,
            "comment": comment,
            "now": now,
            "source_id": source_id,
        }
        return Result.from_computation(
            lambda: cur.execute(_COPY_CERTIFICATE, params).fetchone()["uuid"],
            ErrorCode.DATABASE_ERROR,
            "Failed to copy TLS certificate",
        ).peek(lambda new_uuid: log.info("repository.certificate_copied", uuid=new_uuid, source_id=source_id))

    def name_exists(self, cur: psycopg.Cursor[Any], owner: int, name: str) -> Result[bool]:
        return Result.from_computation(
            lambda: cur.execute(
                "SELECT EXISTS (SELECT 1 FROM tls_certificate"
                " WHERE owner = %(owner)s AND name = %(name)s) AS found",
                {"owner": owner, "name": name},
            ).fetchone()["found"],
            ErrorCode.DATABASE_ERROR,
            "Failed to look up TLS certificate name",
        )

    def update_certificate(
        self,
        cur: psycopg.Cursor[Any],
        certificate_id: int,
        now: int,
        comment: str | None = None,
        name: str | None = None,
        trust: int | None = None,
    ) -> Result[str]:
        """
        Change the supplied fields in one UPDATE; returns the row's uuid.

        modification_time never drops below creation_time, even if the clock
        went backwards. With nothing supplied the row is left untouched.
        """
        return Result.from_computation(
            lambda: self._update(cur, certificate_id, now, comment=comment, name=name, trust=trust),
            ErrorCode.DATABASE_ERROR,
            "Failed to modify TLS certificate",
        )

    def _update(self, cur: psycopg.Cursor[Any], certificate_id: int, now: int, **fields: Any) -> str:
        supplied = {key: value for key, value in fields.items() if value is not None}
        params = {**supplied, "id": certificate_id, "now": now}
        if not supplied:
            return cur.execute("SELECT uuid FROM tls_certificate WHERE id = %(id)s", params).fetchone()["uuid"]

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(key), sql.Placeholder(key)) for key in supplied
        )
        statement = sql.SQL(
            "UPDATE tls_certificate SET {}, modification_time = GREATEST(%(now)s, creation_time)"
            " WHERE id = %(id)s RETURNING uuid"
        ).format(assignments)
        updated = cur.execute(statement, params).fetchone()["uuid"]
        log.info("repository.certificate_updated", uuid=updated, fields=sorted(supplied))
        return updated

    def delete_certificate(self, cur: psycopg.Cursor[Any], certificate_id: int) -> Result[str]:
        """
        Delete a certificate and everything that references exactly it.

        Order: permission grants, tag associations, sources, then the row.
        Shared locations and origins are left in place.
        """
        return Result.from_computation(
            lambda: self._delete(cur, certificate_id),
            ErrorCode.DATABASE_ERROR,
            "Failed to delete TLS certificate",
        )

    def _delete(self, cur: psycopg.Cursor[Any], certificate_id: int) -> str:
        params = {"id": certificate_id, "resource_type": TLS_CERTIFICATE}
        permissions = cur.execute(
            "DELETE FROM permissions WHERE resource_type = %(resource_type)s AND resource = %(id)s",
            params,
        ).rowcount
        tags = cur.execute(
            "DELETE FROM tag_resources WHERE resource_type = %(resource_type)s AND resource = %(id)s",
            params,
        ).rowcount
        sources = cur.execute(
            "DELETE FROM tls_certificate_source WHERE tls_certificate = %(id)s", params
        ).rowcount
        deleted = cur.execute(
            "DELETE FROM tls_certificate WHERE id = %(id)s RETURNING uuid", params
        ).fetchone()["uuid"]
        log.info(
            "repository.certificate_deleted",
            uuid=deleted,
            permissions=permissions,
            tags=tags,
            sources=sources,
        )
        return deleted

    def find_id(self, cur: psycopg.Cursor[Any], certificate_uuid: str) -> Result[int]:
        """Internal id for a uuid, 0 when there is no such certificate."""
        return Result.from_computation(
            lambda: (
                cur.execute(
                    "SELECT id FROM tls_certificate WHERE uuid = %(uuid)s", {"uuid": certificate_uuid}
                ).fetchone()
                or {"id": 0}
            )["id"],
            ErrorCode.DATABASE_ERROR,
            "Failed to look up TLS certificate",
        )

    # ─────────────────────── Bulk (principal removal) ───────────────────────

    def reassign_owner(self, cur: psycopg.Cursor[Any], owner: int, inheritor: int) -> Result[int]:
        """Hand every certificate of `owner`, trash included, to `inheritor`."""
        return Result.from_computation(
            lambda: self._reassign(cur, owner, inheritor),
            ErrorCode.DATABASE_ERROR,
            "Failed to reassign TLS certificates",
        )

    def _reassign(self, cur: psycopg.Cursor[Any], owner: int, inheritor: int) -> int:
        params = {"owner": owner, "inheritor": inheritor}
        moved = cur.execute(
            "UPDATE tls_certificate SET owner = %(inheritor)s WHERE owner = %(owner)s", params
        ).rowcount
        moved += cur.execute(
            "UPDATE tls_certificate_trash SET owner = %(inheritor)s WHERE owner = %(owner)s", params
        ).rowcount
        log.info("repository.certificates_reassigned", owner=owner, inheritor=inheritor, rows=moved)
        return moved

    def delete_owned(self, cur: psycopg.Cursor[Any], owner: int) -> Result[int]:
        """Remove every certificate of `owner`, trash included, with their grants and tags."""
        return Result.from_computation(
            lambda: self._delete_owned(cur, owner),
            ErrorCode.DATABASE_ERROR,
            "Failed to delete TLS certificates",
        )

    def _delete_owned(self, cur: psycopg.Cursor[Any], owner: int) -> int:
        params = {"owner": owner, "resource_type": TLS_CERTIFICATE}
        cur.execute(
            f"DELETE FROM permissions WHERE resource_type = %(resource_type)s AND resource IN ({_OWNED})",
            params,
        )
        cur.execute(
            f"DELETE FROM tag_resources WHERE resource_type = %(resource_type)s AND resource IN ({_OWNED})",
            params,
        )
        cur.execute(f"DELETE FROM tls_certificate_source WHERE tls_certificate IN ({_OWNED})", params)
        removed = cur.execute("DELETE FROM tls_certificate WHERE owner = %(owner)s", params).rowcount
        removed += cur.execute("DELETE FROM tls_certificate_trash WHERE owner = %(owner)s", params).rowcount
        log.info("repository.certificates_deleted", owner=owner, rows=removed)
        return removed

    # ─────────────────────── Sources ───────────────────────

    def insert_source(
        self, cur: psycopg.Cursor[Any], certificate_id: int, observation: SourceObservation
    ) -> Result[CertificateSource]:
        """Append one observation, reusing an existing location/origin of equal value."""
        return Result.from_computation(
            lambda: self._insert_source(cur, certificate_id, observation),
            ErrorCode.DATABASE_ERROR,
            "Failed to store TLS certificate source",
        )

    def _insert_source(
        self, cur: psycopg.Cursor[Any], certificate_id: int, observation: SourceObservation
    ) -> CertificateSource:
        location = cur.execute(
            _UPSERT_LOCATION,
            {"uuid": _new_uuid(), "host_ip": observation.host_ip, "port": observation.port},
        ).fetchone()
        origin = cur.execute(
            _UPSERT_ORIGIN,
            {
                "uuid": _new_uuid(),
                "origin_type": observation.origin_type,
                "origin_id": observation.origin_id,
                "origin_data": observation.origin_data,
            },
        ).fetchone()
        source_uuid = _new_uuid()
        cur.execute(
            _INSERT_SOURCE,
            {
                "uuid": source_uuid,
                "certificate_id": certificate_id,
                "timestamp": observation.timestamp,
                "tls_versions": observation.tls_versions,
                "location": location["id"],
                "origin": origin["id"],
            },
        )
        log.info("repository.source_inserted", uuid=source_uuid, certificate_id=certificate_id)
        return CertificateSource(
            uuid=source_uuid,
            timestamp=observation.timestamp,
            tls_versions=observation.tls_versions,
            location=Location(location["uuid"], observation.host_ip, observation.port),
            origin=Origin(
                origin["uuid"], observation.origin_type, observation.origin_id, observation.origin_data
            ),
        )

    def list_sources(self, cur: psycopg.Cursor[Any], certificate_id: int) -> Result[list[CertificateSource]]:
        """Observations of one certificate, newest first."""
        return Result.from_computation(
            lambda: [
                _source_from_row(row)
                for row in cur.execute(_LIST_SOURCES, {"certificate_id": certificate_id})
            ],
            ErrorCode.DATABASE_ERROR,
            "Failed to list TLS certificate sources",
        )
