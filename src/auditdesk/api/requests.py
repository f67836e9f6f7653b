"""Audit request endpoints for clients and reviewers.

Every route requires the caller's identity.  Reads are narrowed to what the
caller may see: clients their own requests, reviewers the open pool and
their assignments, admins everything.

Blocking ledger and payment calls run in a worker thread via
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Query

from auditdesk.api.dependencies import CallerDep, ServiceDep
from auditdesk.domain.models import AuditDelivery, AuditRequest, DeliverySubmission, NewAuditRequest
from auditdesk.domain.types import RequestStatus
from auditdesk.lifecycle.service import CreatedRequest, DeliveryOutcome

router = APIRouter(prefix="/requests", tags=["requests"])

Limit = Annotated[int, Query(ge=1, le=200)]


@router.post("", status_code=201)
async def create_request(
    draft: NewAuditRequest, caller: CallerDep, service: ServiceDep
) -> CreatedRequest:
    """Authorize the budget and open a new request."""
    return await asyncio.to_thread(service.create_request, caller, draft)


@router.get("")
async def list_requests(
    caller: CallerDep,
    service: ServiceDep,
    status: RequestStatus | None = None,
    client_id: str | None = None,
    reviewer_id: str | None = None,
    limit: Limit = 50,
) -> list[AuditRequest]:
    return await asyncio.to_thread(
        service.list_requests,
        caller,
        status=status,
        client_id=client_id,
        reviewer_id=reviewer_id,
        limit=limit,
    )


@router.get("/open")
async def list_open_requests(
    caller: CallerDep, service: ServiceDep, limit: Limit = 50
) -> list[AuditRequest]:
    """The open pool, newest first."""
    return await asyncio.to_thread(service.list_open_requests, caller, limit)


@router.get("/{request_id}")
async def get_request(request_id: str, caller: CallerDep, service: ServiceDep) -> AuditRequest:
    return await asyncio.to_thread(service.view_request, request_id, caller)


@router.get("/{request_id}/delivery")
async def get_delivery(
    request_id: str, caller: CallerDep, service: ServiceDep
) -> AuditDelivery | None:
    """The verdict, for the owning client, the assigned reviewer or an admin."""
    return await asyncio.to_thread(service.get_delivery, request_id, caller)


@router.post("/{request_id}/claim")
async def claim_request(request_id: str, caller: CallerDep, service: ServiceDep) -> AuditRequest:
    """Claim an open request.  Losing the race returns 409 ``claim_lost``."""
    return await asyncio.to_thread(service.claim, request_id, caller)


@router.post("/{request_id}/delivery", status_code=201)
async def deliver(
    request_id: str,
    submission: DeliverySubmission,
    caller: CallerDep,
    service: ServiceDep,
) -> DeliveryOutcome:
    """Submit the verdict, complete the request and capture the hold."""
    return await asyncio.to_thread(service.deliver, request_id, caller, submission)


@router.post("/{request_id}/cancel")
async def cancel_request(request_id: str, caller: CallerDep, service: ServiceDep) -> AuditRequest:
    """Cancel an undelivered request and release its hold."""
    return await asyncio.to_thread(service.cancel, request_id, caller)
