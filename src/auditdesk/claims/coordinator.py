"""Exclusive claiming of open audit requests.

Exactly one reviewer may win an open request.  The win is decided by the
ledger's conditional update, never by a read-then-write in Python: a claim
that reads ``open`` and then loses the update simply gets zero affected rows.
"""

from __future__ import annotations

import structlog

from auditdesk.domain.errors import (
    ClaimLostError,
    NotPermittedError,
    RequestNotFoundError,
)
from auditdesk.domain.models import AuditRequest, Caller
from auditdesk.domain.types import RequestStatus
from auditdesk.ledger.store import RequestLedger, utc_now

logger = structlog.get_logger()


class ClaimCoordinator:
    """Assign an open request to one approved reviewer.

    Args:
        ledger: The request ledger holding the authoritative status.
    """

    def __init__(self, ledger: RequestLedger) -> None:
        self._ledger = ledger

    def claim(self, request_id: str, caller: Caller) -> AuditRequest:
        """Claim *request_id* for *caller*.

        Args:
            request_id: The open request to claim.
            caller: The reviewer attempting the claim.

        Returns:
            The request as stored after the claim (``in_progress``).

        Raises:
            NotPermittedError: If the caller is not an approved reviewer.
            RequestNotFoundError: If the request does not exist.
            ClaimLostError: If the request was no longer open (claimed by
                someone else, or cancelled).  Never retried automatically.
        """
        if not caller.is_approved_reviewer:
            raise NotPermittedError(
                None, "claim", "only approved reviewers may claim requests"
            )

        won = self._ledger.compare_and_set_status(
            request_id,
            RequestStatus.OPEN,
            RequestStatus.IN_PROGRESS,
            reviewer_id=caller.caller_id,
            claimed_at=utc_now(),
        )

        request = self._ledger.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)

        if not won:
            logger.info(
                "Claim lost",
                request_id=request_id,
                reviewer_id=caller.caller_id,
                status=request.status,
            )
            raise ClaimLostError(request_id)

        logger.info("Request claimed", request_id=request_id, reviewer_id=caller.caller_id)
        return request
