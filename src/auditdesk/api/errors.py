"""Map domain errors to HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from auditdesk.domain.errors import (
    AlreadyCapturedError,
    CaptureDeferredError,
    ClaimLostError,
    InvalidTransitionError,
    LedgerConstraintError,
    NotPermittedError,
    PaymentProviderError,
    RequestNotFoundError,
    SettlementEntryNotFoundError,
    ValidationError,
)

logger = structlog.get_logger()


def _error(status_code: int, error: str, exc: Exception, **extra: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc), **extra},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register handlers for every domain error on *app*.

    Starlette resolves handlers along the exception's MRO, so
    ``NotPermittedError`` gets 403 even though it is an
    ``InvalidTransitionError``.
    """

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(422, "validation_error", exc)

    @app.exception_handler(NotPermittedError)
    async def not_permitted(request: Request, exc: NotPermittedError) -> JSONResponse:
        return _error(403, "not_permitted", exc)

    @app.exception_handler(RequestNotFoundError)
    async def request_not_found(request: Request, exc: RequestNotFoundError) -> JSONResponse:
        return _error(404, "not_found", exc)

    @app.exception_handler(SettlementEntryNotFoundError)
    async def entry_not_found(
        request: Request, exc: SettlementEntryNotFoundError
    ) -> JSONResponse:
        return _error(404, "not_found", exc)

    @app.exception_handler(ClaimLostError)
    async def claim_lost(request: Request, exc: ClaimLostError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"outcome": "claim_lost", "request_id": exc.request_id},
        )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error(
            409,
            "invalid_transition",
            exc,
            current_state=exc.current_state,
            event=exc.event,
        )

    @app.exception_handler(AlreadyCapturedError)
    async def already_captured(request: Request, exc: AlreadyCapturedError) -> JSONResponse:
        return _error(409, "already_captured", exc)

    @app.exception_handler(LedgerConstraintError)
    async def ledger_constraint(request: Request, exc: LedgerConstraintError) -> JSONResponse:
        return _error(409, "ledger_constraint", exc)

    @app.exception_handler(CaptureDeferredError)
    async def capture_deferred(request: Request, exc: CaptureDeferredError) -> JSONResponse:
        return JSONResponse(
            status_code=202,
            content={
                "outcome": "capture_deferred",
                "request_id": exc.request_id,
                "queue_entry_id": exc.queue_entry_id,
            },
        )

    @app.exception_handler(PaymentProviderError)
    async def payment_provider(request: Request, exc: PaymentProviderError) -> JSONResponse:
        logger.error(
            "Payment provider error",
            operation=exc.operation,
            code=exc.code,
            path=request.url.path,
        )
        return _error(502, "payment_provider_error", exc, operation=exc.operation)
