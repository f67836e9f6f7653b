"""Administrator endpoints: fee rate, settlement queue, hold reconciliation."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator

from auditdesk.api.dependencies import CallerDep, ServiceDep, get_caller
from auditdesk.domain.models import PlatformSettings, reject_float
from auditdesk.domain.types import HoldStatus
from auditdesk.ledger.settlements import QueueEntry

router = APIRouter(prefix="/admin", tags=["admin"])


class FeeRateUpdate(BaseModel):
    """New fee rate, sent as a decimal string such as ``"0.15"``."""

    fee_rate: Decimal

    @field_validator("fee_rate", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        return reject_float(v)


class HoldStatusResponse(BaseModel):
    request_id: str
    hold_status: HoldStatus


@router.get("/settings/fee-rate", dependencies=[Depends(get_caller)])
async def get_fee_rate(service: ServiceDep) -> PlatformSettings:
    """Current fee rate; any identified caller may read it."""
    return await asyncio.to_thread(service.get_platform_settings)


@router.put("/settings/fee-rate")
async def set_fee_rate(
    update: FeeRateUpdate, caller: CallerDep, service: ServiceDep
) -> PlatformSettings:
    """Replace the fee rate used by future settlements."""
    return await asyncio.to_thread(service.set_fee_rate, caller, update.fee_rate)


@router.get("/settlement-queue")
async def list_settlement_queue(caller: CallerDep, service: ServiceDep) -> list[QueueEntry]:
    return await asyncio.to_thread(service.list_settlement_queue, caller)


@router.post("/settlement-queue/{entry_id}/retry")
async def retry_settlement(entry_id: int, caller: CallerDep, service: ServiceDep) -> QueueEntry:
    """Retry a queued capture or release.  A repeated provider failure returns 502."""
    return await asyncio.to_thread(service.retry_settlement, entry_id, caller)


@router.get("/requests/{request_id}/hold")
async def get_hold_status(
    request_id: str, caller: CallerDep, service: ServiceDep
) -> HoldStatusResponse:
    status = await asyncio.to_thread(service.hold_status, request_id, caller)
    return HoldStatusResponse(request_id=request_id, hold_status=status)
