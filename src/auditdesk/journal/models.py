"""Journal models for the lifecycle events of audit requests."""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events recorded in the journal."""

    REQUEST_CREATED = "request_created"
    REQUEST_CLAIMED = "request_claimed"
    CLAIM_LOST = "claim_lost"
    REQUEST_DELIVERED = "request_delivered"
    PAYMENT_CAPTURED = "payment_captured"
    CAPTURE_FAILED = "capture_failed"
    REQUEST_CANCELLED = "request_cancelled"
    HOLD_RELEASED = "hold_released"
    HOLD_RELEASE_FAILED = "hold_release_failed"
    FEE_RATE_UPDATED = "fee_rate_updated"
    ERROR = "error"


class JournalEntry(BaseModel):
    """A single journal entry.

    Only ``event_type`` is required; fee-rate updates, for example, carry no
    request id.
    """

    event_type: EventType
    request_id: str | None = None
    actor_id: str | None = None
    status: str | None = None
    amount: int | None = None
    metadata: dict[str, str] | None = None
