"""Tests for the RequestStateMachine class."""

import pytest

from auditdesk.domain.errors import InvalidTransitionError
from auditdesk.domain.types import RequestStatus
from auditdesk.lifecycle.machine import RequestStateMachine
from auditdesk.lifecycle.transitions import EscrowAction, RequestEvent

# ---------------------------------------------------------------------------
# Valid and invalid pairs
# ---------------------------------------------------------------------------
VALID_TRANSITIONS: list[tuple[RequestStatus, str, RequestStatus]] = [
    (RequestStatus.OPEN, "claim", RequestStatus.IN_PROGRESS),
    (RequestStatus.OPEN, "cancel", RequestStatus.CANCELLED),
    (RequestStatus.IN_PROGRESS, "deliver", RequestStatus.COMPLETED),
    (RequestStatus.IN_PROGRESS, "cancel", RequestStatus.CANCELLED),
]

ALL_EVENTS: list[str] = [e.value for e in RequestEvent]

INVALID_NON_TERMINAL: list[tuple[RequestStatus, str]] = [
    (RequestStatus.OPEN, "deliver"),
    (RequestStatus.IN_PROGRESS, "claim"),
]

TERMINAL = [RequestStatus.COMPLETED, RequestStatus.CANCELLED]


class TestValidTransitions:
    """Every valid transition leads to the expected state."""

    @pytest.mark.parametrize(("start", "event", "expected"), VALID_TRANSITIONS)
    def test_next_state(self, start: RequestStatus, event: str, expected: RequestStatus):
        sm = RequestStateMachine(start)
        assert sm.next_state(event) == expected
        assert sm.state == start

    def test_default_initial_state_is_open(self):
        assert RequestStateMachine().state == RequestStatus.OPEN


class TestInvalidTransitions:
    """Invalid pairs raise InvalidTransitionError."""

    @pytest.mark.parametrize(("start", "event"), INVALID_NON_TERMINAL)
    def test_invalid_pair_raises(self, start: RequestStatus, event: str):
        sm = RequestStateMachine(start)
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.next_state(event)
        assert exc_info.value.current_state == start
        assert exc_info.value.event == event

    @pytest.mark.parametrize("state", TERMINAL)
    @pytest.mark.parametrize("event", ALL_EVENTS)
    def test_terminal_states_reject_everything(self, state: RequestStatus, event: str):
        sm = RequestStateMachine(state)
        assert sm.is_terminal
        with pytest.raises(InvalidTransitionError, match="already final"):
            sm.next_state(event)

    def test_unknown_event_raises(self):
        with pytest.raises(InvalidTransitionError):
            RequestStateMachine().next_state("refund")


class TestEscrowAction:
    def test_deliver_captures(self):
        sm = RequestStateMachine(RequestStatus.IN_PROGRESS)
        assert sm.escrow_action("deliver") == EscrowAction.CAPTURE

    def test_cancel_releases(self):
        assert RequestStateMachine().escrow_action("cancel") == EscrowAction.CANCEL

    def test_claim_has_none(self):
        assert RequestStateMachine().escrow_action("claim") is None
