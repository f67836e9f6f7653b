"""Application entry point: FastAPI service for the audit marketplace.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error forwarding when a DSN is configured
- **Prometheus** HTTP and business metrics on ``/metrics``
- **Ledger** database (requests, deliveries, settlements, journal)
- **Escrow gateway** backed by Stripe manual-capture PaymentIntents
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from auditdesk.api import admin_router, register_error_handlers, requests_router
from auditdesk.config import Settings, get_settings, validate_credentials
from auditdesk.escrow.stripe_gateway import create_stripe_gateway
from auditdesk.health import register_health_routes
from auditdesk.ledger.schema import connect_ledger
from auditdesk.lifecycle.bootstrap import open_ledger
from auditdesk.lifecycle.service import CaptureFailurePolicy
from auditdesk.observability.metrics import setup_metrics
from auditdesk.observability.middleware import RequestIdMiddleware
from auditdesk.observability.sentry import get_sentry_processor, init_sentry
from auditdesk.resilience.retry import configure_error_notifier

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode: JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Insert the Sentry processor before the renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="auditdesk")


def _log_retry_exhaustion(api_name: str, attempts: int, exception: BaseException | None) -> None:
    logger.error(
        "operator_alert",
        api_name=api_name,
        attempts=attempts,
        exception=str(exception),
    )


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up the shared services for the application.

    Opens and prepares the ledger database, builds the Stripe escrow
    gateway (when a key is configured) and wires the retry notifier.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    # Ledger: one long-lived connection for readiness checks, plus a factory
    # for per-request connections.
    ledger_conn = open_ledger(
        settings.ledger_db_path,
        settings.default_fee_rate,
        settings.ledger_busy_timeout_seconds,
    )
    services["ledger_conn"] = ledger_conn
    services["connect_ledger"] = partial(
        connect_ledger,
        settings.ledger_db_path,
        settings.ledger_busy_timeout_seconds,
    )
    logger.info("Ledger ready", db_path=str(settings.ledger_db_path))

    # Escrow gateway
    secret_key = settings.stripe_secret_key.get_secret_value()
    if secret_key:
        services["escrow_gateway"] = create_stripe_gateway(
            secret_key,
            currency=settings.payment_currency,
            timeout_seconds=settings.payment_timeout_seconds,
        )
        logger.info("Stripe escrow gateway initialized", currency=settings.payment_currency)
    else:
        services["escrow_gateway"] = None
        logger.info("STRIPE_SECRET_KEY not set, escrow gateway disabled")

    services["capture_failure_policy"] = CaptureFailurePolicy(settings.capture_failure_policy)

    configure_error_notifier(_log_retry_exhaustion)

    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Startup/shutdown hook: closes the ledger connection on shutdown."""
    logger.info("FastAPI application starting")
    yield
    ledger_conn = app.state.services.get("ledger_conn")
    if ledger_conn is not None:
        ledger_conn.close()
        logger.info("Ledger connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with routers, error mapping, health and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Audit Marketplace", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings", get_settings())
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(requests_router)
    fastapi_app.include_router(admin_router)
    register_error_handlers(fastapi_app)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point.

    1. Configure logging and Sentry
    2. Validate credentials
    3. Initialize services and create the FastAPI app
    4. Serve with uvicorn
    """
    settings = get_settings()
    init_sentry(
        settings.sentry_dsn,
        environment="production" if settings.production else "development",
    )
    configure_logging(production=settings.production, sentry_enabled=bool(settings.sentry_dsn))
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        ledger_conn = services.get("ledger_conn")
        if ledger_conn is not None:
            ledger_conn.close()
            logger.info("Ledger connection closed on shutdown")


if __name__ == "__main__":
    asyncio.run(main())
