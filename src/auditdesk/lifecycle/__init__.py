"""Request lifecycle: transition table, state machine and service."""

from auditdesk.lifecycle.bootstrap import open_ledger, prepare_ledger
from auditdesk.lifecycle.machine import RequestStateMachine
from auditdesk.lifecycle.service import (
    AuditRequestService,
    CaptureFailurePolicy,
    CreatedRequest,
    DeliveryOutcome,
)
from auditdesk.lifecycle.transitions import (
    ESCROW_ACTIONS,
    INITIAL_STATE,
    TERMINAL_STATES,
    TRANSITIONS,
    EscrowAction,
    RequestEvent,
)

__all__ = [
    "ESCROW_ACTIONS",
    "INITIAL_STATE",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "AuditRequestService",
    "CaptureFailurePolicy",
    "CreatedRequest",
    "DeliveryOutcome",
    "EscrowAction",
    "RequestEvent",
    "RequestStateMachine",
    "open_ledger",
    "prepare_ledger",
]
