"""Transition map defining all valid (state, event) -> state mappings."""

from enum import StrEnum

from auditdesk.domain.types import RequestStatus


class RequestEvent(StrEnum):
    """Events that can trigger status transitions of an audit request."""

    CLAIM = "claim"
    DELIVER = "deliver"
    CANCEL = "cancel"


class EscrowAction(StrEnum):
    """Escrow gateway operation fired by a lifecycle step."""

    CAPTURE = "capture"
    CANCEL = "cancel"


# Status every new request starts in, once its hold is authorized.
INITIAL_STATE: RequestStatus = RequestStatus.OPEN

# All valid (current_state, event_string) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[RequestStatus, str], RequestStatus] = {
    # From OPEN
    (RequestStatus.OPEN, RequestEvent.CLAIM): RequestStatus.IN_PROGRESS,
    (RequestStatus.OPEN, RequestEvent.CANCEL): RequestStatus.CANCELLED,
    # From IN_PROGRESS
    (RequestStatus.IN_PROGRESS, RequestEvent.DELIVER): RequestStatus.COMPLETED,
    (RequestStatus.IN_PROGRESS, RequestEvent.CANCEL): RequestStatus.CANCELLED,
}

# Escrow operation fired after each event commits.
ESCROW_ACTIONS: dict[str, EscrowAction | None] = {
    RequestEvent.CLAIM: None,
    RequestEvent.DELIVER: EscrowAction.CAPTURE,
    RequestEvent.CANCEL: EscrowAction.CANCEL,
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.CANCELLED}
)
