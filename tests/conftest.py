"""Shared pytest fixtures for the audit marketplace test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Any

import pytest

from auditdesk.domain.errors import AlreadyCapturedError, PaymentProviderError
from auditdesk.domain.models import Caller, CaptureReceipt, Hold
from auditdesk.domain.types import HoldStatus, UserRole
from auditdesk.ledger.schema import connect_ledger
from auditdesk.lifecycle.bootstrap import prepare_ledger
from auditdesk.lifecycle.service import AuditRequestService


class FakeEscrowGateway:
    """In-memory escrow gateway honouring the gateway contract.

    Set ``fail_on`` to a set of operation names (``authorize``, ``capture``,
    ``cancel``, ``status``) to make those calls raise ``PaymentProviderError``.
    ``on_status`` runs inside ``status`` before it answers, which lets a test
    land another writer between a read and the conditional update that
    follows it.  ``attempts`` records the attempt number of every capture
    and cancel.
    """

    def __init__(self) -> None:
        self.holds: dict[str, HoldStatus] = {}
        self.amounts: dict[str, int] = {}
        self.receipts: dict[str, CaptureReceipt] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.charges = 0
        self.attempts: list[tuple[str, str, int]] = []
        self.on_status: Callable[[str], None] | None = None

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise PaymentProviderError(operation, "simulated outage", code="api_error")

    def authorize(self, amount: int, metadata: dict[str, str]) -> Hold:
        self._maybe_fail("authorize")
        hold_id = f"pi_test_{len(self.holds) + 1}"
        self.holds[hold_id] = HoldStatus.AUTHORIZED
        self.amounts[hold_id] = amount
        self.calls.append(("authorize", hold_id))
        return Hold(
            hold_id=hold_id,
            status=HoldStatus.AUTHORIZED,
            amount=amount,
            currency="jpy",
            client_secret=f"{hold_id}_secret",
        )

    def capture(self, hold_id: str, attempt: int = 0) -> CaptureReceipt:
        self.calls.append(("capture", hold_id))
        self.attempts.append(("capture", hold_id, attempt))
        self._maybe_fail("capture")
        if hold_id in self.receipts:
            return self.receipts[hold_id]
        if self.holds[hold_id] != HoldStatus.AUTHORIZED:
            raise PaymentProviderError("capture", f"hold is {self.holds[hold_id]}")
        self.holds[hold_id] = HoldStatus.CAPTURED
        self.charges += 1
        receipt = CaptureReceipt(
            hold_id=hold_id,
            receipt_id=f"ch_{hold_id}",
            amount_captured=self.amounts[hold_id],
            currency="jpy",
        )
        self.receipts[hold_id] = receipt
        return receipt

    def cancel(self, hold_id: str, attempt: int = 0) -> None:
        self.calls.append(("cancel", hold_id))
        self.attempts.append(("cancel", hold_id, attempt))
        self._maybe_fail("cancel")
        if self.holds[hold_id] == HoldStatus.CAPTURED:
            raise AlreadyCapturedError(hold_id)
        self.holds[hold_id] = HoldStatus.CANCELLED

    def status(self, hold_id: str) -> HoldStatus:
        self._maybe_fail("status")
        if self.on_status is not None:
            self.on_status(hold_id)
        return self.holds[hold_id]


@pytest.fixture
def gateway() -> FakeEscrowGateway:
    """A fresh in-memory escrow gateway."""
    return FakeEscrowGateway()


@pytest.fixture
def ledger_conn() -> Iterator[sqlite3.Connection]:
    """In-memory ledger with all tables created and a 10% fee rate."""
    conn = prepare_ledger(connect_ledger(":memory:"), Decimal("0.1"))
    yield conn
    conn.close()


@pytest.fixture
def service(ledger_conn: sqlite3.Connection, gateway: FakeEscrowGateway) -> AuditRequestService:
    """Lifecycle service over the in-memory ledger and fake gateway."""
    return AuditRequestService(ledger_conn, gateway)


@pytest.fixture
def client_caller() -> Caller:
    return Caller(caller_id="client-1", role=UserRole.CLIENT)


@pytest.fixture
def reviewer() -> Caller:
    return Caller(caller_id="reviewer-x", role=UserRole.REVIEWER, is_reviewer_approved=True)


@pytest.fixture
def other_reviewer() -> Caller:
    return Caller(caller_id="reviewer-y", role=UserRole.REVIEWER, is_reviewer_approved=True)


@pytest.fixture
def admin() -> Caller:
    return Caller(caller_id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def draft_payload() -> dict[str, Any]:
    """A valid IT/code request as a client would submit it."""
    return {
        "category": "it_code",
        "title": "Review my Flask login flow",
        "content": "def login(user, pw):\n    return db.check(user, pw)",
        "budget": 5000,
        "category_options": {
            "phase": "mvp",
            "priority": "security",
            "tech_level": "beginner",
        },
        "ai_chat_url": "https://chat.example.com/share/abc",
    }


@pytest.fixture
def delivery_payload() -> dict[str, Any]:
    return {
        "verdict": "needs_revision",
        "comment": "Passwords are compared in plain text.",
        "revision": "Use a salted hash such as bcrypt.",
    }
