"""
Acceptance test fixtures — PostgreSQL testcontainer for end-to-end tests.

Reuses the schema, seeding and HTTP wiring of the integration suite but
runs its own container, scoped to the acceptance session.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from fastapi.testclient import TestClient
from testcontainers.postgres import PostgresContainer

from tests.integration.conftest import TRUNCATE_ALL, Seeder, connection_url, wired_client
from tls_inventory.adapters.schema import create_schema
from tls_inventory.domain.models import Principal


@pytest.fixture(scope="session")
def acceptance_pg() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the acceptance test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        create_schema(connection_url(pg))
        yield pg


@pytest.fixture()
def acceptance_dsn(acceptance_pg: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    url = connection_url(acceptance_pg)
    with psycopg.connect(url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return url


@pytest.fixture()
def acceptance_seed(acceptance_dsn: str) -> Seeder:
    return Seeder(acceptance_dsn)


@pytest.fixture()
def operator(acceptance_seed: Seeder) -> Principal:
    """A user holding the four coarse TLS certificate permissions."""
    principal = acceptance_seed.user("operator")
    acceptance_seed.grant_all(principal)
    return principal


@pytest.fixture()
def api(acceptance_dsn: str) -> Iterator[TestClient]:
    with wired_client(acceptance_dsn) as client:
        yield client
