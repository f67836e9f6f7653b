"""Tests for ClaimCoordinator, including a real multi-connection race.

The race test uses a file-backed database and one connection per thread, so
exclusivity can only come from SQLite's conditional update.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from pathlib import Path

import pytest

from auditdesk.claims.coordinator import ClaimCoordinator
from auditdesk.domain.errors import ClaimLostError, NotPermittedError, RequestNotFoundError
from auditdesk.domain.models import Caller, NewAuditRequest
from auditdesk.domain.types import RequestStatus, UserRole
from auditdesk.ledger.schema import connect_ledger
from auditdesk.ledger.store import RequestLedger
from auditdesk.lifecycle.bootstrap import open_ledger


@pytest.fixture
def ledger(ledger_conn) -> RequestLedger:
    return RequestLedger(ledger_conn)


@pytest.fixture
def open_request_id(ledger: RequestLedger, draft_payload) -> str:
    draft = NewAuditRequest.model_validate(draft_payload)
    return ledger.insert_request("client-1", draft, "pi_1").id


class TestClaimCoordinator:
    """Single-threaded claim outcomes."""

    def test_approved_reviewer_wins_open_request(self, ledger, open_request_id, reviewer):
        claimed = ClaimCoordinator(ledger).claim(open_request_id, reviewer)

        assert claimed.status == RequestStatus.IN_PROGRESS
        assert claimed.reviewer_id == reviewer.caller_id
        assert claimed.claimed_at is not None

    def test_second_reviewer_loses(self, ledger, open_request_id, reviewer, other_reviewer):
        coordinator = ClaimCoordinator(ledger)
        coordinator.claim(open_request_id, reviewer)

        with pytest.raises(ClaimLostError):
            coordinator.claim(open_request_id, other_reviewer)

        assert ledger.get_request(open_request_id).reviewer_id == reviewer.caller_id

    def test_cancelled_request_is_lost_not_invalid(self, ledger, open_request_id, reviewer):
        ledger.compare_and_set_status(
            open_request_id, RequestStatus.OPEN, RequestStatus.CANCELLED
        )
        with pytest.raises(ClaimLostError):
            ClaimCoordinator(ledger).claim(open_request_id, reviewer)

    def test_unapproved_reviewer_not_permitted(self, ledger, open_request_id):
        pending = Caller(caller_id="newbie", role=UserRole.REVIEWER, is_reviewer_approved=False)
        with pytest.raises(NotPermittedError):
            ClaimCoordinator(ledger).claim(open_request_id, pending)
        assert ledger.get_request(open_request_id).status == RequestStatus.OPEN

    def test_client_cannot_claim(self, ledger, open_request_id, client_caller):
        with pytest.raises(NotPermittedError):
            ClaimCoordinator(ledger).claim(open_request_id, client_caller)

    def test_unknown_request(self, ledger, reviewer):
        with pytest.raises(RequestNotFoundError):
            ClaimCoordinator(ledger).claim("nope", reviewer)


class TestConcurrentClaims:
    """Many reviewers racing on separate connections."""

    @pytest.mark.parametrize("contenders", [2, 8])
    def test_exactly_one_reviewer_wins(self, tmp_path: Path, draft_payload, contenders: int):
        db_path = tmp_path / "race.db"
        setup_conn = open_ledger(db_path, Decimal("0.1"))
        draft = NewAuditRequest.model_validate(draft_payload)
        request_id = RequestLedger(setup_conn).insert_request("client-1", draft, "pi_1").id

        barrier = threading.Barrier(contenders)
        winners: list[str] = []
        losers: list[str] = []
        errors: list[BaseException] = []
        lock = threading.Lock()

        def contend(reviewer_id: str) -> None:
            conn = connect_ledger(db_path, busy_timeout_seconds=10.0)
            caller = Caller(
                caller_id=reviewer_id, role=UserRole.REVIEWER, is_reviewer_approved=True
            )
            try:
                barrier.wait(timeout=10)
                ClaimCoordinator(RequestLedger(conn)).claim(request_id, caller)
                outcome = winners
            except ClaimLostError:
                outcome = losers
            except BaseException as exc:  # surfaced below
                with lock:
                    errors.append(exc)
                return
            finally:
                conn.close()
            with lock:
                outcome.append(reviewer_id)

        threads = [
            threading.Thread(target=contend, args=(f"reviewer-{i}",)) for i in range(contenders)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert len(winners) == 1
        assert len(losers) == contenders - 1

        stored = RequestLedger(setup_conn).get_request(request_id)
        assert stored.status == RequestStatus.IN_PROGRESS
        assert stored.reviewer_id == winners[0]
        setup_conn.close()
