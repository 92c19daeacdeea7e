"""
Application entry point — wires dependencies and starts the HTTP server.

Composition root: creates concrete adapters and injects them into the
CertificateService. This is the ONLY place where concrete classes are
instantiated; everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog
  2. Load and validate configuration from environment
  3. Create concrete adapters (decoder, store, gate, query engine, transactions)
  4. Optionally create the schema
  5. Serve the ASGI app with uvicorn
"""

from __future__ import annotations

import logging
import sys

import structlog

from tls_inventory import __version__
from tls_inventory.adapters.access_control import PsycopgAccessGate
from tls_inventory.adapters.clock import SystemClock
from tls_inventory.adapters.columns import TLS_CERTIFICATE_COLUMNS
from tls_inventory.adapters.directory import PsycopgPrincipalDirectory
from tls_inventory.adapters.query_engine import SqlQueryEngine
from tls_inventory.adapters.repository import PsycopgCertificateStore
from tls_inventory.adapters.schema import create_schema
from tls_inventory.adapters.transaction import PsycopgTransactionContext
from tls_inventory.adapters.x509_decoder import X509CertificateDecoder
from tls_inventory.config import AppSettings
from tls_inventory.service import CertificateService


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output with ISO timestamps; the level
    filter falls back to INFO for unknown level names.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_service(settings: AppSettings) -> tuple[CertificateService, PsycopgPrincipalDirectory]:
    """
    Instantiate all concrete adapters and wire the certificate service.

    Returns the service together with the principal directory the HTTP
    layer uses to resolve the acting user.
    """
    dsn = settings.database.get_dsn()
    clock = SystemClock()
    transactions = PsycopgTransactionContext(dsn)
    service = CertificateService(
        store=PsycopgCertificateStore(),
        gate=PsycopgAccessGate(),
        query=SqlQueryEngine(TLS_CERTIFICATE_COLUMNS, transactions, clock),
        decoder=X509CertificateDecoder(),
        transactions=transactions,
        clock=clock,
    )
    return service, PsycopgPrincipalDirectory(dsn)


def main() -> None:
    """Load settings, prepare the database and serve the HTTP API."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        host=settings.server.host,
        port=settings.server.port,
    )

    if settings.database.create_schema:
        create_schema(settings.database.get_dsn())

    import uvicorn

    try:
        uvicorn.run(
            "tls_inventory.asgi:app",
            host=settings.server.host,
            port=settings.server.port,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
