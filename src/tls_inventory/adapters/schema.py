"""
PostgreSQL schema for the TLS certificate inventory.

The inventory shares its database with the rest of the management layer:
users, roles, permissions and tags are owned elsewhere, but the subset of
columns the inventory reads and cascades into is declared here so the
schema can be created for development and tests.

Times are BIGINT UTC epoch seconds; -1 is the "unbounded" validity sentinel.
"""

from __future__ import annotations

import psycopg
import structlog

log = structlog.get_logger()

DDL = """
CREATE TABLE IF NOT EXISTS users (
    id    SERIAL PRIMARY KEY,
    uuid  TEXT UNIQUE NOT NULL,
    name  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS roles (
    id    SERIAL PRIMARY KEY,
    uuid  TEXT UNIQUE NOT NULL,
    name  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS role_users (
    id      SERIAL PRIMARY KEY,
    role    INTEGER NOT NULL REFERENCES roles (id) ON DELETE CASCADE,
    "user"  INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS permissions (
    id                 SERIAL PRIMARY KEY,
    uuid               TEXT UNIQUE NOT NULL,
    owner              INTEGER REFERENCES users (id) ON DELETE RESTRICT,
    name               TEXT NOT NULL,
    comment            TEXT NOT NULL DEFAULT '',
    resource_type      TEXT NOT NULL DEFAULT '',
    resource           INTEGER NOT NULL DEFAULT 0,
    resource_uuid      TEXT NOT NULL DEFAULT '',
    resource_location  INTEGER NOT NULL DEFAULT 0,
    subject_type       TEXT NOT NULL CHECK (subject_type IN ('user', 'role')),
    subject            INTEGER NOT NULL,
    creation_time      BIGINT NOT NULL DEFAULT 0,
    modification_time  BIGINT NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS permissions_by_resource
    ON permissions (resource_type, resource);

CREATE TABLE IF NOT EXISTS tags (
    id     SERIAL PRIMARY KEY,
    uuid   TEXT UNIQUE NOT NULL,
    owner  INTEGER REFERENCES users (id) ON DELETE RESTRICT,
    name   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tag_resources (
    tag                INTEGER NOT NULL REFERENCES tags (id) ON DELETE CASCADE,
    resource_type      TEXT NOT NULL,
    resource           INTEGER NOT NULL,
    resource_uuid      TEXT NOT NULL DEFAULT '',
    resource_location  INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS tls_certificate (
    id                  SERIAL PRIMARY KEY,
    uuid                TEXT UNIQUE NOT NULL,
    owner               INTEGER REFERENCES users (id) ON DELETE RESTRICT,
    name                TEXT NOT NULL,
    comment             TEXT NOT NULL DEFAULT '',
    creation_time       BIGINT NOT NULL,
    modification_time   BIGINT NOT NULL,
    certificate         TEXT NOT NULL,
    subject_dn          TEXT NOT NULL DEFAULT '',
    issuer_dn           TEXT NOT NULL DEFAULT '',
    trust               INTEGER NOT NULL DEFAULT 2,
    activation_time     BIGINT NOT NULL DEFAULT -1,
    expiration_time     BIGINT NOT NULL DEFAULT -1,
    md5_fingerprint     TEXT NOT NULL DEFAULT '',
    sha256_fingerprint  TEXT NOT NULL DEFAULT '',
    serial              TEXT NOT NULL DEFAULT '',
    certificate_format  TEXT NOT NULL DEFAULT 'unknown',
    CHECK (creation_time <= modification_time)
);

CREATE TABLE IF NOT EXISTS tls_certificate_trash (
    id                  SERIAL PRIMARY KEY,
    uuid                TEXT UNIQUE NOT NULL,
    owner               INTEGER REFERENCES users (id) ON DELETE RESTRICT,
    name                TEXT NOT NULL,
    comment             TEXT NOT NULL DEFAULT '',
    creation_time       BIGINT NOT NULL,
    modification_time   BIGINT NOT NULL,
    certificate         TEXT NOT NULL,
    subject_dn          TEXT NOT NULL DEFAULT '',
    issuer_dn           TEXT NOT NULL DEFAULT '',
    trust               INTEGER NOT NULL DEFAULT 2,
    activation_time     BIGINT NOT NULL DEFAULT -1,
    expiration_time     BIGINT NOT NULL DEFAULT -1,
    md5_fingerprint     TEXT NOT NULL DEFAULT '',
    sha256_fingerprint  TEXT NOT NULL DEFAULT '',
    serial              TEXT NOT NULL DEFAULT '',
    certificate_format  TEXT NOT NULL DEFAULT 'unknown'
);

CREATE TABLE IF NOT EXISTS tls_certificate_location (
    id       SERIAL PRIMARY KEY,
    uuid     TEXT UNIQUE NOT NULL,
    host_ip  TEXT NOT NULL,
    port     TEXT NOT NULL,
    UNIQUE (host_ip, port)
);

CREATE TABLE IF NOT EXISTS tls_certificate_origin (
    id           SERIAL PRIMARY KEY,
    uuid         TEXT UNIQUE NOT NULL,
    origin_type  TEXT NOT NULL,
    origin_id    TEXT NOT NULL,
    origin_data  TEXT NOT NULL DEFAULT '',
    UNIQUE (origin_type, origin_id, origin_data)
);

CREATE TABLE IF NOT EXISTS tls_certificate_source (
    id               SERIAL PRIMARY KEY,
    uuid             TEXT UNIQUE NOT NULL,
    tls_certificate  INTEGER NOT NULL REFERENCES tls_certificate (id) ON DELETE CASCADE,
    timestamp        BIGINT NOT NULL,
    tls_versions     TEXT NOT NULL DEFAULT '',
    location         INTEGER REFERENCES tls_certificate_location (id) ON DELETE RESTRICT,
    origin           INTEGER REFERENCES tls_certificate_origin (id) ON DELETE RESTRICT
);

CREATE INDEX IF NOT EXISTS tls_certificate_source_by_certificate
    ON tls_certificate_source (tls_certificate);
"""

TABLES = (
    "tls_certificate_source",
    "tls_certificate_origin",
    "tls_certificate_location",
    "tls_certificate_trash",
    "tls_certificate",
    "tag_resources",
    "tags",
    "permissions",
    "role_users",
    "roles",
    "users",
)


def create_schema(dsn: str) -> None:
    """Create every inventory table that does not exist yet. Idempotent."""
    with psycopg.connect(dsn) as conn:
        conn.execute(DDL)
        conn.commit()
    log.info("schema.created", tables=len(TABLES))
