"""FastAPI dependencies: caller identity and a per-request lifecycle service."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request

from auditdesk.domain.models import Caller
from auditdesk.domain.types import UserRole
from auditdesk.lifecycle.service import AuditRequestService


def get_caller(
    x_caller_id: Annotated[str, Header()],
    x_caller_role: Annotated[UserRole, Header()],
    x_reviewer_approved: Annotated[bool, Header()] = False,
) -> Caller:
    """Build the caller from headers set by the upstream identity proxy."""
    return Caller(
        caller_id=x_caller_id,
        role=x_caller_role,
        is_reviewer_approved=x_reviewer_approved,
    )


def get_service(request: Request) -> Iterator[AuditRequestService]:
    """Yield a service bound to its own ledger connection.

    Each HTTP request gets a fresh connection so concurrent requests never
    share a transaction.
    """
    services: dict[str, Any] = request.app.state.services
    if services.get("escrow_gateway") is None:
        raise HTTPException(status_code=503, detail="escrow gateway not configured")
    conn = services["connect_ledger"]()
    try:
        yield AuditRequestService(
            conn,
            services["escrow_gateway"],
            capture_failure_policy=services["capture_failure_policy"],
        )
    finally:
        conn.close()


CallerDep = Annotated[Caller, Depends(get_caller)]
ServiceDep = Annotated[AuditRequestService, Depends(get_service)]
