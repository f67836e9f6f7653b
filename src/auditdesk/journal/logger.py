"""Typed convenience API for writing journal entries.

One method per lifecycle event; each builds a :class:`JournalEntry` and
appends it via :func:`insert_journal_entry`.
"""

from __future__ import annotations

import sqlite3
from decimal import Decimal

from auditdesk.journal.models import EventType, JournalEntry
from auditdesk.journal.store import insert_journal_entry


class JournalLogger:
    """Append lifecycle events to the journal.

    Args:
        conn: An open SQLite connection holding the journal table.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _log(self, entry: JournalEntry) -> int:
        return insert_journal_entry(self._conn, entry)

    def log_request_created(
        self, request_id: str, client_id: str, budget: int, hold_id: str
    ) -> int:
        """Log a new request together with its escrow hold."""
        return self._log(
            JournalEntry(
                event_type=EventType.REQUEST_CREATED,
                request_id=request_id,
                actor_id=client_id,
                status="open",
                amount=budget,
                metadata={"hold_id": hold_id},
            )
        )

    def log_request_claimed(self, request_id: str, reviewer_id: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.REQUEST_CLAIMED,
                request_id=request_id,
                actor_id=reviewer_id,
                status="in_progress",
            )
        )

    def log_claim_lost(self, request_id: str, reviewer_id: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.CLAIM_LOST,
                request_id=request_id,
                actor_id=reviewer_id,
            )
        )

    def log_request_delivered(self, request_id: str, reviewer_id: str, verdict: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.REQUEST_DELIVERED,
                request_id=request_id,
                actor_id=reviewer_id,
                status="completed",
                metadata={"verdict": verdict},
            )
        )

    def log_payment_captured(
        self,
        request_id: str,
        amount: int,
        platform_fee: int,
        reviewer_payout: int,
        receipt_id: str,
    ) -> int:
        """Log a successful capture and its fee split.

        Args:
            request_id: The settled request.
            amount: Captured amount in minor units.
            platform_fee: Platform share.
            reviewer_payout: Reviewer share.
            receipt_id: Provider charge reference.

        Returns:
            The row ID of the inserted entry.
        """
        return self._log(
            JournalEntry(
                event_type=EventType.PAYMENT_CAPTURED,
                request_id=request_id,
                amount=amount,
                metadata={
                    "platform_fee": str(platform_fee),
                    "reviewer_payout": str(reviewer_payout),
                    "receipt_id": receipt_id,
                },
            )
        )

    def log_capture_failed(self, request_id: str, error_message: str, queue_entry_id: int) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.CAPTURE_FAILED,
                request_id=request_id,
                metadata={
                    "error_message": error_message,
                    "queue_entry_id": str(queue_entry_id),
                },
            )
        )

    def log_request_cancelled(self, request_id: str, actor_id: str, from_status: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.REQUEST_CANCELLED,
                request_id=request_id,
                actor_id=actor_id,
                status="cancelled",
                metadata={"from_status": from_status},
            )
        )

    def log_hold_released(self, request_id: str, hold_id: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.HOLD_RELEASED,
                request_id=request_id,
                metadata={"hold_id": hold_id},
            )
        )

    def log_hold_release_failed(
        self, request_id: str, error_message: str, queue_entry_id: int
    ) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.HOLD_RELEASE_FAILED,
                request_id=request_id,
                metadata={
                    "error_message": error_message,
                    "queue_entry_id": str(queue_entry_id),
                },
            )
        )

    def log_fee_rate_updated(self, fee_rate: Decimal, updated_by: str) -> int:
        return self._log(
            JournalEntry(
                event_type=EventType.FEE_RATE_UPDATED,
                actor_id=updated_by,
                metadata={"fee_rate": str(fee_rate)},
            )
        )

    def log_error(
        self,
        request_id: str | None,
        error_message: str,
        context: str | None = None,
    ) -> int:
        """Log an error encountered while processing a request.

        Args:
            request_id: The affected request (if any).
            error_message: The error message.
            context: Where the error occurred.

        Returns:
            The row ID of the inserted entry.
        """
        meta: dict[str, str] = {"error_message": error_message}
        if context is not None:
            meta["context"] = context

        return self._log(
            JournalEntry(
                event_type=EventType.ERROR,
                request_id=request_id,
                metadata=meta,
            )
        )
