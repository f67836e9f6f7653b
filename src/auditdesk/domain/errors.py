"""Domain-specific exception classes for the audit marketplace."""

from auditdesk.domain.types import RequestStatus


class MarketplaceError(Exception):
    """Base class for all domain errors in the audit marketplace."""


class ValidationError(MarketplaceError):
    """Raised when creation input is malformed.

    Raised before any side effect, so there is nothing to roll back.
    """


class RequestNotFoundError(MarketplaceError):
    """Raised when no audit request exists for the given id."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Audit request '{request_id}' not found")


class InvalidTransitionError(MarketplaceError):
    """Raised when a lifecycle operation's state precondition does not hold.

    Attributes:
        current_state: The request's authoritative state when the operation
            was attempted (``None`` if it could not be determined).
        event: The lifecycle event that was rejected.
    """

    def __init__(
        self,
        current_state: RequestStatus | None,
        event: str,
        reason: str | None = None,
    ) -> None:
        self.current_state = current_state
        self.event = event
        self.reason = reason
        message = f"Cannot apply event '{event}' in state '{current_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NotPermittedError(InvalidTransitionError):
    """Raised when the caller's identity or role fails a transition precondition."""


class ClaimLostError(MarketplaceError):
    """Benign race outcome: another caller won the claim, or it was cancelled.

    Callers should refresh the open pool and never retry the same request.
    """

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Claim lost for audit request '{request_id}'")


class PaymentProviderError(MarketplaceError):
    """Raised when the payment provider rejects or fails an escrow operation.

    Attributes:
        operation: The escrow operation (``authorize``, ``capture``,
            ``cancel`` or ``status``).
        code: Provider error code, if any.
    """

    def __init__(self, operation: str, message: str, code: str | None = None) -> None:
        self.operation = operation
        self.code = code
        super().__init__(f"Payment provider failed to {operation}: {message}")


class AlreadyCapturedError(MarketplaceError):
    """Raised when a hold is cancelled after it has been captured.

    This is a contract violation, not a retryable condition.
    """

    def __init__(self, hold_id: str) -> None:
        self.hold_id = hold_id
        super().__init__(f"Escrow hold '{hold_id}' has already been captured")


class CaptureDeferredError(MarketplaceError):
    """Raised under the ``queue_and_raise`` policy after a failed capture is queued.

    The request remains completed; the capture waits in the settlement queue.
    """

    def __init__(self, request_id: str, queue_entry_id: int) -> None:
        self.request_id = request_id
        self.queue_entry_id = queue_entry_id
        super().__init__(
            f"Capture for audit request '{request_id}' deferred "
            f"(settlement queue entry {queue_entry_id})"
        )


class LedgerConstraintError(MarketplaceError):
    """Raised when the ledger rejects a write that would break a stored invariant."""


class SettlementEntryNotFoundError(MarketplaceError):
    """Raised when no settlement queue entry exists for the given id."""

    def __init__(self, entry_id: int) -> None:
        self.entry_id = entry_id
        super().__init__(f"Settlement queue entry {entry_id} not found")
