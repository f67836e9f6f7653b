"""RequestStateMachine class with next_state and escrow_action."""

from __future__ import annotations

from auditdesk.domain.errors import InvalidTransitionError
from auditdesk.domain.types import RequestStatus
from auditdesk.lifecycle.transitions import (
    ESCROW_ACTIONS,
    INITIAL_STATE,
    TERMINAL_STATES,
    TRANSITIONS,
    EscrowAction,
)


class RequestStateMachine:
    """Finite state machine governing one audit request's status.

    The machine is a pure validator: it is rebuilt from the ledger's
    authoritative status before every operation and never persisted itself.
    The ledger's conditional update is what actually makes a transition stick,
    using ``state`` as the expected status and ``next_state(event)`` as the
    new one.  ``escrow_action(event)`` names the gateway call that follows.

    Usage::

        sm = RequestStateMachine(request.status)
        target = sm.next_state("deliver")    # -> COMPLETED
        sm.escrow_action("deliver")          # -> EscrowAction.CAPTURE
    """

    def __init__(self, initial_state: RequestStatus = INITIAL_STATE) -> None:
        self._state: RequestStatus = initial_state

    @property
    def state(self) -> RequestStatus:
        """Return the current request status."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return True if the machine is in a terminal state (COMPLETED or CANCELLED)."""
        return self._state in TERMINAL_STATES

    def next_state(self, event: str) -> RequestStatus:
        """Return the state *event* leads to from the current state.

        Raises:
            InvalidTransitionError: If the event is not allowed from the
                current state, or if the machine is in a terminal state.
        """
        if self.is_terminal:
            raise InvalidTransitionError(self._state, event, "request is already final")

        key = (self._state, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self._state, event)
        return TRANSITIONS[key]

    def escrow_action(self, event: str) -> EscrowAction | None:
        """Return the escrow operation that accompanies *event*, if any."""
        return ESCROW_ACTIONS.get(event)
