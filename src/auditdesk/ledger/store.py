"""SQLite-backed request ledger.

Owns every audit request and delivery row.  All lifecycle writes go through
``compare_and_set_status``: a single ``UPDATE ... WHERE id = ? AND status IN
(...)`` whose affected-row count tells the caller whether it won.  SQLite
serializes writers, so the check-and-set is atomic across connections and
processes without any in-memory locking.

Uses parameterized queries exclusively and commits synchronously after writes.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from auditdesk.domain.errors import LedgerConstraintError
from auditdesk.domain.models import (
    AuditDelivery,
    AuditRequest,
    DeliverySubmission,
    NewAuditRequest,
)
from auditdesk.domain.types import RequestStatus


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(tz=UTC)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_request(row: sqlite3.Row) -> AuditRequest:
    data = dict(row)
    data["category_options"] = json.loads(data.pop("category_options_json"))
    return AuditRequest.model_validate(data)


class RequestLedger:
    """Persist and query audit requests and deliveries in SQLite.

    Args:
        conn: An open sqlite3.Connection whose database already has the
              ledger tables (see ``init_ledger_db``).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the underlying connection (shared with sibling stores)."""
        return self._conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert_request(
        self,
        client_id: str,
        draft: NewAuditRequest,
        payment_intent_id: str,
        request_id: str | None = None,
    ) -> AuditRequest:
        """Insert a new ``open`` request together with its escrow hold id.

        The hold reference is written in the same row insert, so a request
        never exists without one.

        Raises:
            LedgerConstraintError: If the row violates a stored constraint.
        """
        now = utc_now()
        request_id = request_id or str(uuid.uuid4())
        options_json = draft.category_options.model_dump_json()
        ai_chat_url = str(draft.ai_chat_url) if draft.ai_chat_url is not None else None

        try:
            self._conn.execute(
                """
                INSERT INTO audit_requests (
                    id, client_id, category, title, content, ai_chat_url,
                    budget, status, category_options_json, payment_intent_id,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request_id,
                    client_id,
                    draft.category.value,
                    draft.title,
                    draft.content,
                    ai_chat_url,
                    draft.budget,
                    RequestStatus.OPEN.value,
                    options_json,
                    payment_intent_id,
                    _ts(now),
                    _ts(now),
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise LedgerConstraintError(f"Cannot insert audit request: {exc}") from exc

        return self.get_request(request_id)  # type: ignore[return-value]

    def compare_and_set_status(
        self,
        request_id: str,
        expected: RequestStatus | Iterable[RequestStatus],
        new_status: RequestStatus,
        *,
        reviewer_id: str | None = None,
        claimed_at: datetime | None = None,
        completed_at: datetime | None = None,
        require_reviewer: str | None = None,
        require_no_delivery: bool = False,
        commit: bool = True,
    ) -> bool:
        """Atomically move a request to *new_status* if it is still in *expected*.

        This is the ledger's only lifecycle write primitive.  The predicate
        and the assignment execute as one SQL statement, so among concurrent
        callers exactly one can observe a match.

        Args:
            request_id: The request to update.
            expected: The status (or statuses) the request must currently be in.
            new_status: The status to set.
            reviewer_id: Reviewer to assign in the same update.
            claimed_at: Claim timestamp to set in the same update.
            completed_at: Completion timestamp to set in the same update.
            require_reviewer: Additionally require this reviewer to be assigned.
            require_no_delivery: Additionally require that no delivery exists.
            commit: Commit immediately (``False`` inside a larger transaction).

        Returns:
            ``True`` if exactly one row was updated, ``False`` otherwise.

        Raises:
            LedgerConstraintError: If the update would break a stored invariant.
        """
        expected_states = (
            [expected] if isinstance(expected, RequestStatus) else list(expected)
        )

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [new_status.value, _ts(utc_now())]
        for column, value in (
            ("reviewer_id", reviewer_id),
            ("claimed_at", _ts(claimed_at)),
            ("completed_at", _ts(completed_at)),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)

        placeholders = ", ".join("?" for _ in expected_states)
        conditions = ["id = ?", f"status IN ({placeholders})"]
        params.append(request_id)
        params.extend(s.value for s in expected_states)

        if require_reviewer is not None:
            conditions.append("reviewer_id = ?")
            params.append(require_reviewer)
        if require_no_delivery:
            conditions.append(
                "NOT EXISTS (SELECT 1 FROM audit_deliveries WHERE request_id = audit_requests.id)"
            )

        query = (
            f"UPDATE audit_requests SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(conditions)}"
        )

        try:
            cursor = self._conn.execute(query, params)
            if commit:
                self._conn.commit()
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise LedgerConstraintError(f"Cannot update audit request: {exc}") from exc

        return cursor.rowcount == 1

    def complete_with_delivery(
        self,
        request_id: str,
        reviewer_id: str,
        submission: DeliverySubmission,
    ) -> AuditDelivery | None:
        """Record a delivery and complete the request in one transaction.

        The ``in_progress -> completed`` conditional update runs first; the
        delivery row is only inserted if that update won.  Both commit
        together or not at all.

        Returns:
            The stored ``AuditDelivery``, or ``None`` if the request was not
            ``in_progress`` with *reviewer_id* assigned.

        Raises:
            LedgerConstraintError: If a delivery already exists or another
                stored invariant would be violated.
        """
        now = utc_now()
        delivery = AuditDelivery(
            id=str(uuid.uuid4()),
            request_id=request_id,
            reviewer_id=reviewer_id,
            verdict=submission.verdict,
            comment=submission.comment,
            revision=submission.revision,
            created_at=now,
        )

        try:
            won = self.compare_and_set_status(
                request_id,
                RequestStatus.IN_PROGRESS,
                RequestStatus.COMPLETED,
                completed_at=now,
                require_reviewer=reviewer_id,
                require_no_delivery=True,
                commit=False,
            )
            if not won:
                self._conn.rollback()
                return None

            self._conn.execute(
                """
                INSERT INTO audit_deliveries (
                    id, request_id, reviewer_id, verdict, comment, revision, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    delivery.id,
                    delivery.request_id,
                    delivery.reviewer_id,
                    delivery.verdict.value,
                    delivery.comment,
                    delivery.revision,
                    _ts(delivery.created_at),
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise LedgerConstraintError(f"Cannot record delivery: {exc}") from exc

        return delivery

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> AuditRequest | None:
        """Point lookup of a request by id.

        Returns:
            The request, or ``None`` if no such request exists.
        """
        row = self._conn.execute(
            "SELECT * FROM audit_requests WHERE id = ?", (request_id,)
        ).fetchone()
        return _row_to_request(row) if row else None

    def get_delivery(self, request_id: str) -> AuditDelivery | None:
        """Return the delivery for a request, or ``None`` if not delivered."""
        row = self._conn.execute(
            "SELECT * FROM audit_deliveries WHERE request_id = ?", (request_id,)
        ).fetchone()
        return AuditDelivery.model_validate(dict(row)) if row else None

    def list_requests(
        self,
        *,
        statuses: Iterable[RequestStatus] | None = None,
        client_id: str | None = None,
        reviewer_id: str | None = None,
        newest_first: bool = True,
        limit: int = 50,
    ) -> list[AuditRequest]:
        """Scan requests with optional filters.

        All filters are optional and combined with AND.  Results are ordered
        by ``created_at``.

        Args:
            statuses: Only return requests in one of these statuses.
            client_id: Only return requests owned by this client.
            reviewer_id: Only return requests assigned to this reviewer.
            newest_first: Order by ``created_at`` descending (default).
            limit: Maximum number of results.

        Returns:
            The matching requests.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if statuses is not None:
            status_values = [s.value for s in statuses]
            if not status_values:
                return []
            placeholders = ", ".join("?" for _ in status_values)
            conditions.append(f"status IN ({placeholders})")
            params.extend(status_values)

        if client_id is not None:
            conditions.append("client_id = ?")
            params.append(client_id)

        if reviewer_id is not None:
            conditions.append("reviewer_id = ?")
            params.append(reviewer_id)

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        order = "DESC" if newest_first else "ASC"
        query = (
            f"SELECT * FROM audit_requests {where_clause} "
            f"ORDER BY created_at {order}, rowid {order} LIMIT ?"
        )
        params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        return [_row_to_request(row) for row in rows]
