"""Escrow gateway contract used by the lifecycle core."""

from __future__ import annotations

from typing import Protocol

from auditdesk.domain.models import CaptureReceipt, Hold
from auditdesk.domain.types import HoldStatus


class EscrowGateway(Protocol):
    """Authorize-then-capture interface to the external payment processor.

    Amounts are integers in minor units of the deployment currency.

    - ``authorize`` reserves funds and raises ``PaymentProviderError`` if the
      provider rejects the amount or instrument.
    - ``capture`` is idempotent: capturing an already-captured hold returns
      the prior receipt and never charges twice.
    - ``cancel`` releases the hold, is a no-op on an already-cancelled hold,
      and raises ``AlreadyCapturedError`` after capture.
    - ``status`` is advisory and meant for reconciliation.

    ``attempt`` numbers an operator retry of a queued capture or release
    (0 for the first call).  Providers that deduplicate requests must treat
    each attempt as a fresh request.
    """

    def authorize(self, amount: int, metadata: dict[str, str]) -> Hold: ...

    def capture(self, hold_id: str, attempt: int = 0) -> CaptureReceipt: ...

    def cancel(self, hold_id: str, attempt: int = 0) -> None: ...

    def status(self, hold_id: str) -> HoldStatus: ...
