"""
Integration test fixtures — PostgreSQL testcontainer, schema and seed data.

Provides a real PostgreSQL instance for each test session via testcontainers.
The schema is the production DDL from tls_inventory.adapters.schema.
Each test gets a fresh, clean database via truncation.

Users, roles and permissions belong to the wider management layer; the
Seeder writes just enough of them for the inventory to make decisions.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import psycopg
import pytest
from fastapi.testclient import TestClient
from railway import ResultAssertions
from testcontainers.postgres import PostgresContainer

from tls_inventory import asgi
from tls_inventory.adapters.directory import PsycopgPrincipalDirectory
from tls_inventory.adapters.schema import TABLES, create_schema
from tls_inventory.config import AppSettings, DatabaseSettings, QuerySettings
from tls_inventory.domain.models import TLS_CERTIFICATE, Principal
from tls_inventory.main import create_service
from tls_inventory.service import CertificateService

TRUNCATE_ALL = f"TRUNCATE {', '.join(TABLES)} RESTART IDENTITY CASCADE"


def connection_url(container: PostgresContainer) -> str:
    """psycopg-compatible DSN for a running container."""
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        create_schema(connection_url(pg))
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    url = connection_url(postgres_container)
    with psycopg.connect(url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return url


class Seeder:
    """Writes users, roles and permission rows straight into the shared tables."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._directory = PsycopgPrincipalDirectory(dsn)

    def _insert(self, statement: str, params: dict[str, object]) -> int:
        with psycopg.connect(self._dsn) as conn:
            row = conn.execute(statement, params).fetchone()
            conn.commit()
        assert row is not None
        return row[0]

    def user(self, name: str) -> Principal:
        user_uuid = str(uuid.uuid4())
        self._insert(
            "INSERT INTO users (uuid, name) VALUES (%(uuid)s, %(name)s) RETURNING id",
            {"uuid": user_uuid, "name": name},
        )
        return self.principal(user_uuid)

    def role(self, name: str, *members: Principal) -> int:
        role_id = self._insert(
            "INSERT INTO roles (uuid, name) VALUES (%(uuid)s, %(name)s) RETURNING id",
            {"uuid": str(uuid.uuid4()), "name": name},
        )
        for member in members:
            self._insert(
                'INSERT INTO role_users (role, "user") VALUES (%(role)s, %(user)s) RETURNING id',
                {"role": role_id, "user": member.id},
            )
        return role_id

    def principal(self, principal_uuid: str) -> Principal:
        """Reload a principal, picking up role memberships added since."""
        return ResultAssertions.assert_success(self._directory.find(principal_uuid))

    def grant(
        self,
        name: str,
        subject: Principal | int,
        resource_uuid: str | None = None,
    ) -> int:
        """
        Grant permission `name` to a user (Principal) or a role (id).

        Without `resource_uuid` the grant is the coarse, kind-wide one.
        """
        subject_type, subject_id = (
            ("user", subject.id) if isinstance(subject, Principal) else ("role", subject)
        )
        resource = self.certificate_id(resource_uuid) if resource_uuid else 0
        return self._insert(
            "INSERT INTO permissions (uuid, name, resource_type, resource, resource_uuid,"
            " subject_type, subject)"
            " VALUES (%(uuid)s, %(name)s, %(resource_type)s, %(resource)s, %(resource_uuid)s,"
            " %(subject_type)s, %(subject)s) RETURNING id",
            {
                "uuid": str(uuid.uuid4()),
                "name": name,
                "resource_type": TLS_CERTIFICATE if resource_uuid else "",
                "resource": resource,
                "resource_uuid": resource_uuid or "",
                "subject_type": subject_type,
                "subject": subject_id,
            },
        )

    def grant_all(self, subject: Principal | int) -> None:
        """Coarse read/create/modify/delete on TLS certificates."""
        for name in (
            "get_tls_certificates",
            "create_tls_certificate",
            "modify_tls_certificate",
            "delete_tls_certificate",
        ):
            self.grant(name, subject)

    def tag(self, owner: Principal, certificate_uuid: str) -> None:
        tag_id = self._insert(
            "INSERT INTO tags (uuid, owner, name) VALUES (%(uuid)s, %(owner)s, 'prod') RETURNING id",
            {"uuid": str(uuid.uuid4()), "owner": owner.id},
        )
        self._insert(
            "INSERT INTO tag_resources (tag, resource_type, resource, resource_uuid)"
            " VALUES (%(tag)s, %(resource_type)s, %(resource)s, %(resource_uuid)s) RETURNING tag",
            {
                "tag": tag_id,
                "resource_type": TLS_CERTIFICATE,
                "resource": self.certificate_id(certificate_uuid),
                "resource_uuid": certificate_uuid,
            },
        )

    def certificate_id(self, certificate_uuid: str) -> int:
        with psycopg.connect(self._dsn) as conn:
            row = conn.execute(
                "SELECT id FROM tls_certificate WHERE uuid = %(uuid)s", {"uuid": certificate_uuid}
            ).fetchone()
        assert row is not None, f"no certificate {certificate_uuid}"
        return row[0]

    def count(self, table: str, where: str = "TRUE", params: dict[str, object] | None = None) -> int:
        with psycopg.connect(self._dsn) as conn:
            row = conn.execute(f"SELECT count(*) FROM {table} WHERE {where}", params or {}).fetchone()
        assert row is not None
        return row[0]


@pytest.fixture()
def seed(dsn: str) -> Seeder:
    return Seeder(dsn)


@pytest.fixture()
def service(dsn: str) -> CertificateService:
    """The production wiring against the container database."""
    certificate_service, _ = create_service(AppSettings(database=DatabaseSettings(dsn=dsn)))
    return certificate_service


@contextmanager
def wired_client(dsn: str) -> Iterator[TestClient]:
    """
    TestClient over the real app, wired to `dsn` without running the lifespan.

    Module-level state is restored on exit.
    """
    saved = (asgi._service, asgi._directory, asgi._query_settings, asgi._error_message)
    settings = AppSettings(database=DatabaseSettings(dsn=dsn), query=QuerySettings(default_rows=10, max_rows=100))
    asgi._service, asgi._directory = create_service(settings)
    asgi._query_settings = settings.query
    asgi._error_message = None
    try:
        yield TestClient(asgi.app, raise_server_exceptions=False)
    finally:
        asgi._service, asgi._directory, asgi._query_settings, asgi._error_message = saved


@pytest.fixture()
def client(dsn: str) -> Iterator[TestClient]:
    with wired_client(dsn) as test_client:
        yield test_client
