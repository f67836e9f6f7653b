"""Lifecycle operations on audit requests: create, claim, deliver, cancel.

The service orchestrates the ledger, the escrow gateway and the settlement
policy.  The ledger's conditional updates decide every transition.  The state
machine turns a stale or impossible request into a clean
``InvalidTransitionError`` before any side effect happens, supplies the
expected and target status for the conditional update, and names the escrow
operation that follows it.

Escrow ordering:

- create: authorize first, then insert the row carrying the hold id.  If the
  insert fails the hold is released again.
- deliver: commit completion and delivery, then capture.  A failed capture
  never reverts completion; it goes to the settlement queue.
- cancel: commit the cancellation, then release the hold.  A failed release
  goes to the settlement queue and the error is re-raised.

The escrow call and its queueing run directly after the commit.  Journal
writes come last and a failing one is logged, never raised.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from decimal import Decimal
from enum import StrEnum
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel

from auditdesk.claims.coordinator import ClaimCoordinator
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
from auditdesk.domain.models import (
    AuditDelivery,
    AuditRequest,
    Caller,
    CaptureReceipt,
    DeliverySubmission,
    NewAuditRequest,
    PlatformSettings,
)
from auditdesk.domain.types import HoldStatus, RequestStatus, UserRole
from auditdesk.escrow.gateway import EscrowGateway
from auditdesk.journal.logger import JournalLogger
from auditdesk.ledger.settings_store import PlatformSettingsStore
from auditdesk.ledger.settlements import (
    QueueEntry,
    QueueOperation,
    SettlementQueue,
    SettlementRecord,
    SettlementStore,
)
from auditdesk.ledger.store import RequestLedger
from auditdesk.lifecycle.machine import RequestStateMachine
from auditdesk.lifecycle.transitions import TERMINAL_STATES, EscrowAction, RequestEvent
from auditdesk.observability.metrics import (
    CLAIM_ATTEMPTS,
    PLATFORM_FEES,
    REQUESTS_CREATED,
    SETTLEMENTS,
)
from auditdesk.settlement.policy import settle

logger = structlog.get_logger()


class CaptureFailurePolicy(StrEnum):
    """What ``deliver`` does when the capture after completion fails.

    Both policies keep the request completed and queue the capture.
    """

    QUEUE_FOR_RETRY = "queue_for_retry"
    QUEUE_AND_RAISE = "queue_and_raise"


class CreatedRequest(BaseModel, frozen=True):
    """A new request plus the secret the client needs to confirm the hold."""

    request: AuditRequest
    client_secret: str | None = None


class DeliveryOutcome(BaseModel, frozen=True):
    """Result of a delivery: the stored verdict and how settlement went."""

    delivery: AuditDelivery
    settlement: SettlementRecord | None = None
    queued: QueueEntry | None = None


def _validate(model: type[pydantic.BaseModel], payload: Any) -> Any:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc


class AuditRequestService:
    """Entry point for every lifecycle operation.

    One instance per ledger connection.  Instances hold no request state, so
    any number of them may run concurrently against the same database.

    Args:
        conn: Open ledger connection (tables already initialised).
        gateway: Escrow gateway used for holds.
        capture_failure_policy: Behaviour when capture fails after delivery.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        gateway: EscrowGateway,
        capture_failure_policy: CaptureFailurePolicy = CaptureFailurePolicy.QUEUE_FOR_RETRY,
    ) -> None:
        self._conn = conn
        self._ledger = RequestLedger(conn)
        self._claims = ClaimCoordinator(self._ledger)
        self._settings = PlatformSettingsStore(conn)
        self._settlements = SettlementStore(conn)
        self._queue = SettlementQueue(conn)
        self._journal = JournalLogger(conn)
        self._gateway = gateway
        self._capture_failure_policy = capture_failure_policy

    @property
    def ledger(self) -> RequestLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_request(
        self, caller: Caller, payload: NewAuditRequest | dict[str, Any]
    ) -> CreatedRequest:
        """Authorize a hold for the budget and store a new ``open`` request.

        Args:
            caller: The client creating the request.
            payload: The request draft (model or raw dict).

        Returns:
            The stored request and the hold's client secret.

        Raises:
            NotPermittedError: If the caller is not a client.
            ValidationError: If the draft is malformed (nothing is authorized).
            PaymentProviderError: If the hold is rejected (nothing is stored).
        """
        if caller.role != UserRole.CLIENT:
            raise NotPermittedError(None, "create", "only clients may create requests")

        draft: NewAuditRequest = _validate(NewAuditRequest, payload)

        hold = self._gateway.authorize(
            draft.budget,
            {"client_id": caller.caller_id, "category": draft.category.value},
        )

        try:
            request = self._ledger.insert_request(caller.caller_id, draft, hold.hold_id)
        except (LedgerConstraintError, sqlite3.Error) as exc:
            logger.error(
                "Request insert failed after authorize, releasing hold",
                hold_id=hold.hold_id,
                error=str(exc),
            )
            try:
                self._gateway.cancel(hold.hold_id)
            except (PaymentProviderError, AlreadyCapturedError) as release_exc:
                logger.exception("Failed to release orphaned hold", hold_id=hold.hold_id)
                self._journal_safely(
                    self._journal.log_error,
                    None,
                    str(release_exc),
                    context=f"release orphaned hold {hold.hold_id}",
                )
            raise

        REQUESTS_CREATED.inc()
        self._journal_safely(
            self._journal.log_request_created,
            request.id,
            caller.caller_id,
            request.budget,
            hold.hold_id,
        )
        logger.info(
            "Audit request created",
            request_id=request.id,
            client_id=caller.caller_id,
            budget=request.budget,
        )
        return CreatedRequest(request=request, client_secret=hold.client_secret)

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    def claim(self, request_id: str, caller: Caller) -> AuditRequest:
        """Assign an open request to the calling reviewer.

        Raises:
            NotPermittedError: If the caller is not an approved reviewer.
            RequestNotFoundError: If the request does not exist.
            InvalidTransitionError: If the request was already final when read.
            ClaimLostError: If another reviewer won or the request was cancelled.
        """
        status = self.get_request(request_id).status
        if status in TERMINAL_STATES:
            RequestStateMachine(status).next_state(RequestEvent.CLAIM)

        try:
            request = self._claims.claim(request_id, caller)
        except ClaimLostError:
            CLAIM_ATTEMPTS.labels(outcome="lost").inc()
            self._journal_safely(self._journal.log_claim_lost, request_id, caller.caller_id)
            raise

        CLAIM_ATTEMPTS.labels(outcome="won").inc()
        self._journal_safely(self._journal.log_request_claimed, request_id, caller.caller_id)
        return request

    # ------------------------------------------------------------------
    # Deliver
    # ------------------------------------------------------------------

    def deliver(
        self,
        request_id: str,
        caller: Caller,
        payload: DeliverySubmission | dict[str, Any],
    ) -> DeliveryOutcome:
        """Record the reviewer's verdict, complete the request and capture.

        Args:
            request_id: The in-progress request.
            caller: The assigned reviewer.
            payload: Verdict, comment and optional revision.

        Returns:
            The delivery with either its settlement or its queue entry.

        Raises:
            ValidationError: If the submission is malformed.
            RequestNotFoundError: If the request does not exist.
            InvalidTransitionError: If the request is not ``in_progress`` or
                already has a delivery.
            NotPermittedError: If the caller is not the assigned reviewer.
            CaptureDeferredError: Under ``queue_and_raise`` when capture failed.
        """
        submission: DeliverySubmission = _validate(DeliverySubmission, payload)
        request = self.get_request(request_id)

        machine = RequestStateMachine(request.status)
        machine.next_state(RequestEvent.DELIVER)
        if request.reviewer_id != caller.caller_id:
            raise NotPermittedError(
                request.status,
                RequestEvent.DELIVER,
                "only the assigned reviewer may deliver",
            )

        try:
            delivery = self._ledger.complete_with_delivery(
                request_id, caller.caller_id, submission
            )
        except LedgerConstraintError as exc:
            raise InvalidTransitionError(
                self._current_status(request_id), RequestEvent.DELIVER, str(exc)
            ) from exc

        if delivery is None:
            raise InvalidTransitionError(
                self._current_status(request_id),
                RequestEvent.DELIVER,
                "request changed before the delivery was recorded",
            )

        action = machine.escrow_action(RequestEvent.DELIVER)
        record: SettlementRecord | None = None
        entry: QueueEntry | None = None
        try:
            receipt = self._escrow(action, request.payment_intent_id)
            record = self._settle(request, receipt)  # type: ignore[arg-type]
        except (PaymentProviderError, sqlite3.Error) as exc:
            entry = self._queue_escrow(request, action, exc)

        self._journal_safely(
            self._journal.log_request_delivered,
            request_id,
            caller.caller_id,
            submission.verdict.value,
        )
        logger.info(
            "Delivery recorded",
            request_id=request_id,
            reviewer_id=caller.caller_id,
            verdict=submission.verdict,
        )

        if entry is not None:
            if self._capture_failure_policy == CaptureFailurePolicy.QUEUE_AND_RAISE:
                raise CaptureDeferredError(request_id, entry.id)
            return DeliveryOutcome(delivery=delivery, queued=entry)
        return DeliveryOutcome(delivery=delivery, settlement=record)

    def _settle(self, request: AuditRequest, receipt: CaptureReceipt) -> SettlementRecord:
        """Write the fee split for a captured hold, at the current fee rate."""
        existing = self._settlements.get(request.id)
        if existing is None:
            settlement = settle(request.budget, self._settings.get_fee_rate())
            record = self._settlements.record(request.id, receipt, settlement)
        else:
            record = existing

        SETTLEMENTS.labels(outcome="captured").inc()
        PLATFORM_FEES.inc(record.platform_fee)
        self._journal_safely(
            self._journal.log_payment_captured,
            request.id,
            record.budget,
            record.platform_fee,
            record.reviewer_payout,
            record.receipt_id,
        )
        logger.info(
            "Payment captured",
            request_id=request.id,
            platform_fee=record.platform_fee,
            reviewer_payout=record.reviewer_payout,
            fee_rate=str(record.fee_rate),
        )
        return record

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel(self, request_id: str, caller: Caller) -> AuditRequest:
        """Cancel a request that has not been delivered and release its hold.

        The conditional update expects the status that was read and
        validated, so a claim landing in between makes the cancel lose.

        Args:
            request_id: The request to cancel.
            caller: The owning client or an administrator.

        Returns:
            The cancelled request.

        Raises:
            RequestNotFoundError: If the request does not exist.
            InvalidTransitionError: If the request is final or already
                delivered, or changed status before the cancel landed.
            NotPermittedError: If the caller neither owns the request nor is admin.
            AlreadyCapturedError: If the hold was already captured (no change).
            PaymentProviderError: If releasing the hold failed; the request
                stays cancelled and the release is queued.
        """
        request = self.get_request(request_id)

        machine = RequestStateMachine(request.status)
        target = machine.next_state(RequestEvent.CANCEL)
        if request.client_id != caller.caller_id and not caller.is_admin:
            raise NotPermittedError(
                request.status,
                RequestEvent.CANCEL,
                "only the owning client or an administrator may cancel",
            )

        if self._gateway.status(request.payment_intent_id) == HoldStatus.CAPTURED:
            raise AlreadyCapturedError(request.payment_intent_id)

        won = self._ledger.compare_and_set_status(
            request_id,
            machine.state,
            target,
            require_no_delivery=True,
        )
        if not won:
            raise InvalidTransitionError(
                self._current_status(request_id),
                RequestEvent.CANCEL,
                f"request left {machine.state} before the cancellation landed",
            )

        action = machine.escrow_action(RequestEvent.CANCEL)
        try:
            self._escrow(action, request.payment_intent_id)
        except PaymentProviderError as exc:
            self._queue_escrow(request, action, exc)
            self._journal_cancelled(request, caller)
            raise

        SETTLEMENTS.labels(outcome="released").inc()
        self._journal_cancelled(request, caller)
        self._journal_safely(
            self._journal.log_hold_released, request_id, request.payment_intent_id
        )
        return self.get_request(request_id)

    def _journal_cancelled(self, request: AuditRequest, caller: Caller) -> None:
        self._journal_safely(
            self._journal.log_request_cancelled,
            request.id,
            caller.caller_id,
            request.status.value,
        )
        logger.info("Request cancelled", request_id=request.id, from_status=request.status)

    # ------------------------------------------------------------------
    # Escrow dispatch
    # ------------------------------------------------------------------

    def _escrow(
        self, action: EscrowAction | None, hold_id: str, attempt: int = 0
    ) -> CaptureReceipt | None:
        """Run the gateway call *action* names against *hold_id*."""
        if action == EscrowAction.CAPTURE:
            return self._gateway.capture(hold_id, attempt=attempt)
        if action == EscrowAction.CANCEL:
            self._gateway.cancel(hold_id, attempt=attempt)
            return None
        raise ValueError(f"no escrow operation for {action!r}")

    def _queue_escrow(
        self, request: AuditRequest, action: EscrowAction | None, exc: Exception
    ) -> QueueEntry:
        """Park a failed capture or release for an operator retry."""
        operation = QueueOperation(str(action))
        entry = self._queue.enqueue(request.id, operation, request.payment_intent_id, str(exc))

        if operation == QueueOperation.CAPTURE:
            SETTLEMENTS.labels(outcome="capture_queued").inc()
            self._journal_safely(
                self._journal.log_capture_failed, request.id, str(exc), entry.id
            )
            message = "Capture failed, queued for retry"
        else:
            SETTLEMENTS.labels(outcome="release_queued").inc()
            self._journal_safely(
                self._journal.log_hold_release_failed, request.id, str(exc), entry.id
            )
            message = "Hold release failed, queued for retry"

        logger.error(
            message,
            request_id=request.id,
            hold_id=request.payment_intent_id,
            queue_entry_id=entry.id,
            error=str(exc),
        )
        return entry

    def _journal_safely(self, write: Callable[..., int], *args: Any, **kwargs: Any) -> None:
        try:
            write(*args, **kwargs)
        except sqlite3.Error:
            self._conn.rollback()
            logger.warning(
                "Journal write failed",
                journal_write=getattr(write, "__name__", repr(write)),
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Settlement queue
    # ------------------------------------------------------------------

    def list_settlement_queue(self, caller: Caller, limit: int = 100) -> list[QueueEntry]:
        """Return pending escrow operations (admin only)."""
        self._require_admin(caller, "list_settlement_queue")
        return self._queue.list_pending(limit)

    def retry_settlement(self, entry_id: int, caller: Caller) -> QueueEntry:
        """Retry one queued capture or release (admin only).

        A capture re-reads the fee rate at retry time.  The entry's attempt
        count numbers the gateway call, so each retry reaches the provider
        as a new request.

        Returns:
            The queue entry after the attempt.

        Raises:
            SettlementEntryNotFoundError: If the entry does not exist.
            PaymentProviderError: If the provider failed again; the attempt
                count is bumped and the entry stays pending.
        """
        self._require_admin(caller, "retry_settlement")

        entry = self._queue.get(entry_id)
        if entry is None:
            raise SettlementEntryNotFoundError(entry_id)
        if entry.is_resolved:
            return entry

        request = self.get_request(entry.request_id)
        action = EscrowAction(entry.operation.value)
        try:
            receipt = self._escrow(action, entry.hold_id, attempt=entry.attempts)
        except PaymentProviderError as exc:
            self._queue.record_failure(entry_id, str(exc))
            logger.warning(
                "Settlement retry failed",
                queue_entry_id=entry_id,
                operation=entry.operation,
                attempt=entry.attempts,
                error=str(exc),
            )
            raise

        if receipt is not None:
            self._settle(request, receipt)
        else:
            SETTLEMENTS.labels(outcome="released").inc()
            self._journal_safely(self._journal.log_hold_released, request.id, entry.hold_id)

        self._queue.mark_resolved(entry_id)
        logger.info("Settlement retry succeeded", queue_entry_id=entry_id)
        return self._queue.get(entry_id)  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Platform settings
    # ------------------------------------------------------------------

    def get_platform_settings(self) -> PlatformSettings:
        return self._settings.get()

    def set_fee_rate(self, caller: Caller, fee_rate: Decimal | str) -> PlatformSettings:
        """Replace the platform fee rate (admin only, last write wins).

        Raises:
            NotPermittedError: If the caller is not an administrator.
            ValidationError: If the rate is a float or outside [0, 1].
        """
        self._require_admin(caller, "set_fee_rate")
        validated: PlatformSettings = _validate(PlatformSettings, {"fee_rate": fee_rate})
        settings = self._settings.set_fee_rate(validated.fee_rate, caller.caller_id)
        self._journal_safely(
            self._journal.log_fee_rate_updated, settings.fee_rate, caller.caller_id
        )
        return settings

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> AuditRequest:
        """Return a request or raise ``RequestNotFoundError``."""
        request = self._ledger.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def view_request(self, request_id: str, caller: Caller) -> AuditRequest:
        """Return a request the caller is allowed to see.

        Admins see everything, clients their own requests, reviewers the
        open pool and the requests assigned to them.

        Raises:
            RequestNotFoundError: If the request does not exist.
            NotPermittedError: If the caller may not see it.
        """
        request = self.get_request(request_id)
        if not self._can_view(request, caller):
            raise NotPermittedError(request.status, "view", "not a party to this request")
        return request

    def get_delivery(self, request_id: str, caller: Caller) -> AuditDelivery | None:
        """Return the verdict to its owning client, assigned reviewer or an admin."""
        request = self.get_request(request_id)
        if not (caller.is_admin or caller.caller_id in (request.client_id, request.reviewer_id)):
            raise NotPermittedError(request.status, "view", "not a party to this request")
        return self._ledger.get_delivery(request_id)

    def get_settlement(self, request_id: str) -> SettlementRecord | None:
        return self._settlements.get(request_id)

    def list_requests(
        self,
        caller: Caller,
        *,
        status: RequestStatus | None = None,
        client_id: str | None = None,
        reviewer_id: str | None = None,
        limit: int = 50,
    ) -> list[AuditRequest]:
        """Filtered scan, newest first, narrowed to what *caller* may see.

        Clients are pinned to their own requests.  Reviewers are pinned to
        their assignments unless they ask for the ``open`` pool.
        """
        if caller.role == UserRole.CLIENT:
            client_id = caller.caller_id
        elif caller.role == UserRole.REVIEWER and status != RequestStatus.OPEN:
            reviewer_id = caller.caller_id

        return self._ledger.list_requests(
            statuses=[status] if status is not None else None,
            client_id=client_id,
            reviewer_id=reviewer_id,
            limit=limit,
        )

    def list_open_requests(self, caller: Caller, limit: int = 50) -> list[AuditRequest]:
        """The pool reviewers pick from, newest first (reviewers and admins)."""
        if caller.role == UserRole.CLIENT:
            raise NotPermittedError(None, "list_open_requests", "the open pool is for reviewers")
        return self._ledger.list_requests(statuses=[RequestStatus.OPEN], limit=limit)

    def hold_status(self, request_id: str, caller: Caller) -> HoldStatus:
        """Advisory escrow status for reconciliation (admin only)."""
        self._require_admin(caller, "hold_status")
        return self._gateway.status(self.get_request(request_id).payment_intent_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_status(self, request_id: str) -> RequestStatus | None:
        request = self._ledger.get_request(request_id)
        return request.status if request is not None else None

    @staticmethod
    def _can_view(request: AuditRequest, caller: Caller) -> bool:
        if caller.is_admin:
            return True
        if caller.role == UserRole.CLIENT:
            return request.client_id == caller.caller_id
        return request.status == RequestStatus.OPEN or request.reviewer_id == caller.caller_id

    @staticmethod
    def _require_admin(caller: Caller, operation: str) -> None:
        if not caller.is_admin:
            raise NotPermittedError(None, operation, "administrator role required")
