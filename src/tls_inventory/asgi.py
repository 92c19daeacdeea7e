"""
FastAPI + Uvicorn ASGI application — the HTTP surface of the inventory.

Every endpoint resolves the acting principal from the `X-Principal` header
(a user UUID), calls the CertificateService off the event loop, and turns
the Result into a response with railway.http_support:

  Success → 200/201 with a JSON body
  Failure → ErrorCode mapped to 400/401/403/404/409/500 with an ErrorResponse body

Entry point for production: uvicorn tls_inventory.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Annotated, Any, TypeVar

import structlog
from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from railway import ErrorCode
from railway.http_support import build_fastapi_response
from railway.result import Result

from tls_inventory import __version__
from tls_inventory.adapters.directory import PsycopgPrincipalDirectory
from tls_inventory.adapters.schema import create_schema
from tls_inventory.config import AppSettings, QuerySettings
from tls_inventory.domain.filters import FilterSpec
from tls_inventory.domain.models import (
    KEEP_TRUST,
    CertificatePage,
    CertificateSource,
    Principal,
    TLSCertificate,
    Trust,
)
from tls_inventory.main import configure_structlog, create_service
from tls_inventory.service import CertificateService

T = TypeVar("T")

# ─────────────────────── Global State ───────────────────────
# Set during app startup and used by every request.

_service: CertificateService | None = None
_directory: PsycopgPrincipalDirectory | None = None
_query_settings: QuerySettings = QuerySettings()
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager — runs on startup and shutdown.

    Startup: load settings, optionally create the schema, wire the service.
    """
    global _service, _directory, _query_settings, _error_message

    log.info("asgi.startup", phase="lifespan")

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)

    try:
        if settings.database.create_schema:
            create_schema(settings.database.get_dsn())
        _service, _directory = create_service(settings)
        _query_settings = settings.query
    except Exception as e:
        _error_message = f"Failed to initialize service: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    log.info("asgi.startup_complete", version=__version__)

    yield

    log.info("asgi.shutdown_complete")


# ─────────────────────── Request / Response shapes ───────────────────────


class CreateCertificateRequest(BaseModel):
    certificate: str
    name: str | None = None
    comment: str | None = None
    trust: int = Trust.UNSET


class CopyCertificateRequest(BaseModel):
    name: str | None = None
    comment: str | None = None


class ModifyCertificateRequest(BaseModel):
    name: str | None = None
    comment: str | None = None
    trust: int = KEEP_TRUST


def certificate_to_json(cert: TLSCertificate) -> dict[str, Any]:
    return {
        "uuid": cert.uuid,
        "owner": cert.owner_name,
        "name": cert.name,
        "comment": cert.comment,
        "creation_time": cert.creation_time,
        "modification_time": cert.modification_time,
        "certificate": cert.certificate,
        "subject_dn": cert.subject_dn,
        "issuer_dn": cert.issuer_dn,
        "trust": cert.trust,
        "valid": cert.valid,
        "activation_time": cert.activation_time,
        "activation_time_iso": cert.activation_iso,
        "expiration_time": cert.expiration_time,
        "expiration_time_iso": cert.expiration_iso,
        "md5_fingerprint": cert.md5_fingerprint,
        "sha256_fingerprint": cert.sha256_fingerprint,
        "serial": cert.serial,
        "certificate_format": cert.certificate_format,
        "last_collected": cert.last_collected,
        "last_collected_iso": cert.last_collected_iso,
    }


def page_to_json(page: CertificatePage) -> dict[str, Any]:
    return {
        "filtered": page.filtered,
        "offset": page.offset,
        "limit": page.limit,
        "tls_certificates": [certificate_to_json(cert) for cert in page.rows],
    }


def source_to_json(source: CertificateSource) -> dict[str, Any]:
    location = source.location
    origin = source.origin
    return {
        "uuid": source.uuid,
        "timestamp": source.iso_timestamp,
        "tls_versions": source.tls_versions,
        "location": {
            "uuid": location.uuid,
            "host_ip": location.host_ip,
            "port": location.port,
        } if location else None,
        "origin": {
            "uuid": origin.uuid,
            "origin_type": origin.origin_type,
            "origin_id": origin.origin_id,
            "origin_data": origin.origin_data,
        } if origin else None,
    }


# ─────────────────────── Helpers ───────────────────────


def _windowed(spec: FilterSpec) -> FilterSpec:
    """Cap the page size at query.max_rows; unbounded requests get the cap too."""
    cap = _query_settings.max_rows
    limit = cap if spec.limit is None else min(spec.limit, cap)
    return spec.window(spec.offset, limit)


async def _as_principal(
    principal_uuid: str | None,
    action: Callable[[CertificateService, Principal], Result[T]],
    success_status: int = 200,
    serializer: Callable[[T], Any] | None = None,
) -> JSONResponse:
    """Resolve the acting principal, run `action` in a worker thread, render the Result."""
    if _service is None or _directory is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Service not initialized"},
        )
    service, directory = _service, _directory

    def run() -> Result[T]:
        if not principal_uuid:
            return Result.failure(ErrorCode.AUTHENTICATION_ERROR, "Missing X-Principal header")
        return directory.find(principal_uuid).flat_map(lambda principal: action(service, principal))

    result = await asyncio.to_thread(run)
    result.peek_failure(
        lambda failure: log.info("http.request_failed", error_code=failure.code.value, message=failure.message)
    )
    return build_fastapi_response(result, success_status, serializer)


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="tls-inventory",
    description="TLS certificate inventory — decoded metadata, sources and access-controlled listings",
    version=__version__,
    lifespan=lifespan,
)

PrincipalHeader = Annotated[str | None, Header(alias="X-Principal")]


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe: 200 once the service is wired, 503 on startup errors."""
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": _error_message})
    if _service is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return JSONResponse(status_code=200, content={"status": "healthy"})


@app.get("/info")
async def info() -> dict[str, Any]:
    return {
        "name": "tls-inventory",
        "version": __version__,
        "initialized": _service is not None,
        "default_rows": _query_settings.default_rows,
        "max_rows": _query_settings.max_rows,
        "has_error": _error_message is not None,
    }


@app.get("/tls-certificates")
async def list_certificates(x_principal: PrincipalHeader = None, filter: str = "") -> JSONResponse:
    """List visible certificates. `filter` uses the key=value / sort= / first= / rows= syntax."""
    return await _as_principal(
        x_principal,
        lambda service, principal: FilterSpec.parse(filter, _query_settings.default_rows)
        .map(_windowed)
        .flat_map(lambda spec: service.enumerate(principal, spec)),
        serializer=page_to_json,
    )


@app.get("/tls-certificates/{certificate_uuid}")
async def get_certificate(certificate_uuid: str, x_principal: PrincipalHeader = None) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.get(principal, certificate_uuid),
        serializer=certificate_to_json,
    )


@app.get("/tls-certificates/{certificate_uuid}/sources")
async def get_certificate_sources(certificate_uuid: str, x_principal: PrincipalHeader = None) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.sources(principal, certificate_uuid),
        serializer=lambda sources: {"sources": [source_to_json(s) for s in sources]},
    )


@app.post("/tls-certificates")
async def create_certificate(body: CreateCertificateRequest, x_principal: PrincipalHeader = None) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.create(
            principal, body.certificate, name=body.name, comment=body.comment, trust=body.trust
        ),
        success_status=201,
        serializer=certificate_to_json,
    )


@app.post("/tls-certificates/{certificate_uuid}/copy")
async def copy_certificate(
    certificate_uuid: str, body: CopyCertificateRequest, x_principal: PrincipalHeader = None
) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.copy(
            principal, certificate_uuid, name=body.name, comment=body.comment
        ),
        success_status=201,
        serializer=certificate_to_json,
    )


@app.patch("/tls-certificates/{certificate_uuid}")
async def modify_certificate(
    certificate_uuid: str, body: ModifyCertificateRequest, x_principal: PrincipalHeader = None
) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.modify(
            principal, certificate_uuid, comment=body.comment, name=body.name, trust=body.trust
        ),
        serializer=certificate_to_json,
    )


@app.delete("/tls-certificates/{certificate_uuid}")
async def delete_certificate(
    certificate_uuid: str, x_principal: PrincipalHeader = None, ultimate: bool = False
) -> JSONResponse:
    return await _as_principal(
        x_principal,
        lambda service, principal: service.delete(principal, certificate_uuid, ultimate=ultimate),
        serializer=lambda deleted: {"uuid": deleted, "status": "deleted"},
    )


if __name__ == "__main__":
    # For local testing: python -m uvicorn tls_inventory.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "tls_inventory.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
