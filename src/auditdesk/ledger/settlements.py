"""Settlement records and the operator-visible settlement retry queue.

A settlement row is written once per captured request.  Escrow operations
that failed after the ledger had already moved on (capture after completion,
release after cancellation) are parked in ``settlement_queue`` until an
operator retries them.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel

from auditdesk.domain.errors import LedgerConstraintError
from auditdesk.domain.models import CaptureReceipt
from auditdesk.ledger.store import utc_now
from auditdesk.settlement.policy import Settlement


class QueueOperation(StrEnum):
    """Escrow operation waiting in the settlement queue."""

    CAPTURE = "capture"
    CANCEL = "cancel"


class SettlementRecord(BaseModel, frozen=True):
    """A captured request's fee split."""

    request_id: str
    hold_id: str
    receipt_id: str
    budget: int
    fee_rate: Decimal
    platform_fee: int
    reviewer_payout: int
    captured_at: datetime


class QueueEntry(BaseModel, frozen=True):
    """A pending (or resolved) escrow operation."""

    id: int
    request_id: str
    operation: QueueOperation
    hold_id: str
    last_error: str
    attempts: int
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class SettlementStore:
    """Write-once settlement rows keyed by request id."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def record(
        self, request_id: str, receipt: CaptureReceipt, settlement: Settlement
    ) -> SettlementRecord:
        """Persist the outcome of a successful capture.

        Raises:
            LedgerConstraintError: If the request was already settled.
        """
        record = SettlementRecord(
            request_id=request_id,
            hold_id=receipt.hold_id,
            receipt_id=receipt.receipt_id,
            budget=settlement.budget,
            fee_rate=settlement.fee_rate,
            platform_fee=settlement.platform_fee,
            reviewer_payout=settlement.reviewer_payout,
            captured_at=utc_now(),
        )
        try:
            self._conn.execute(
                """
                INSERT INTO settlements (
                    request_id, hold_id, receipt_id, budget, fee_rate,
                    platform_fee, reviewer_payout, captured_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.request_id,
                    record.hold_id,
                    record.receipt_id,
                    record.budget,
                    str(record.fee_rate),
                    record.platform_fee,
                    record.reviewer_payout,
                    record.captured_at.isoformat(),
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise LedgerConstraintError(f"Cannot record settlement: {exc}") from exc
        return record

    def get(self, request_id: str) -> SettlementRecord | None:
        """Return the settlement for a request, or ``None`` if not captured."""
        row = self._conn.execute(
            "SELECT * FROM settlements WHERE request_id = ?", (request_id,)
        ).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["fee_rate"] = Decimal(data["fee_rate"])
        return SettlementRecord.model_validate(data)


class SettlementQueue:
    """Operator-visible queue of escrow operations that need a retry."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def enqueue(
        self,
        request_id: str,
        operation: QueueOperation,
        hold_id: str,
        error: str,
    ) -> QueueEntry:
        """Add a failed escrow operation to the queue.

        Returns:
            The new queue entry.
        """
        now = utc_now().isoformat()
        cursor = self._conn.execute(
            """
            INSERT INTO settlement_queue (
                request_id, operation, hold_id, last_error, attempts,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, 1, ?, ?)
            """,
            (request_id, operation.value, hold_id, error, now, now),
        )
        self._conn.commit()
        return self.get(cursor.lastrowid)  # type: ignore[arg-type,return-value]

    def get(self, entry_id: int) -> QueueEntry | None:
        """Return one queue entry by id."""
        row = self._conn.execute(
            "SELECT * FROM settlement_queue WHERE id = ?", (entry_id,)
        ).fetchone()
        return QueueEntry.model_validate(dict(row)) if row else None

    def list_pending(self, limit: int = 100) -> list[QueueEntry]:
        """Return unresolved entries, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM settlement_queue WHERE resolved_at IS NULL "
            "ORDER BY created_at ASC, id ASC LIMIT ?",
            (limit,),
        ).fetchall()
        return [QueueEntry.model_validate(dict(row)) for row in rows]

    def record_failure(self, entry_id: int, error: str) -> None:
        """Bump the attempt count after another failed retry."""
        self._conn.execute(
            "UPDATE settlement_queue SET attempts = attempts + 1, last_error = ?, "
            "updated_at = ? WHERE id = ?",
            (error, utc_now().isoformat(), entry_id),
        )
        self._conn.commit()

    def mark_resolved(self, entry_id: int) -> None:
        """Mark an entry as done."""
        now = utc_now().isoformat()
        self._conn.execute(
            "UPDATE settlement_queue SET resolved_at = ?, updated_at = ? "
            "WHERE id = ? AND resolved_at IS NULL",
            (now, now, entry_id),
        )
        self._conn.commit()
