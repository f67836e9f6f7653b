"""Stripe-backed escrow gateway using manual-capture PaymentIntents.

A hold is a PaymentIntent created with ``capture_method="manual"``: the
client confirms it with the returned ``client_secret`` and the funds stay
authorized until the platform captures or cancels the intent.

Capture and cancel carry idempotency keys derived from the hold id and the
operator retry attempt.  Transient failures (connection errors, rate limits)
are retried in-call under the same key, so a retried call can never charge
or release twice.  Stripe replays the stored response for a reused key, so
each operator retry gets a new key; an intent that already moved on is
detected through ``payment_intent_unexpected_state``.
"""

from __future__ import annotations

import uuid
from typing import Any

import stripe
import structlog

from auditdesk.domain.errors import AlreadyCapturedError, PaymentProviderError
from auditdesk.domain.models import CaptureReceipt, Hold
from auditdesk.domain.types import HoldStatus
from auditdesk.resilience.retry import resilient_api_call

logger = structlog.get_logger()

TRANSIENT_STRIPE_ERRORS: tuple[type[BaseException], ...] = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
)

# Stripe reports this code when an intent is not in a capturable/cancelable state.
UNEXPECTED_STATE = "payment_intent_unexpected_state"

_STATUS_MAP: dict[str, HoldStatus] = {
    "requires_payment_method": HoldStatus.PENDING,
    "requires_confirmation": HoldStatus.PENDING,
    "requires_action": HoldStatus.PENDING,
    "processing": HoldStatus.PENDING,
    "requires_capture": HoldStatus.AUTHORIZED,
    "succeeded": HoldStatus.CAPTURED,
    "canceled": HoldStatus.CANCELLED,
}


def map_intent_status(intent: Any) -> HoldStatus:
    """Translate a PaymentIntent's status into a ``HoldStatus``.

    A failed payment attempt sends the intent back to
    ``requires_payment_method`` with ``last_payment_error`` set.
    """
    if intent.status == "requires_payment_method" and getattr(
        intent, "last_payment_error", None
    ):
        return HoldStatus.FAILED
    return _STATUS_MAP.get(intent.status, HoldStatus.FAILED)


def escrow_idempotency_key(operation: str, hold_id: str, attempt: int = 0) -> str:
    """Key for one capture or cancel attempt on *hold_id*."""
    key = f"{operation}-{hold_id}"
    return key if attempt == 0 else f"{key}-retry-{attempt}"


def _provider_error(operation: str, exc: stripe.StripeError) -> PaymentProviderError:
    message = getattr(exc, "user_message", None) or str(exc)
    return PaymentProviderError(operation, message, code=getattr(exc, "code", None))


class StripeEscrowGateway:
    """Escrow gateway backed by Stripe PaymentIntents.

    Args:
        client: A configured ``stripe.StripeClient``.
        currency: Deployment currency (ISO code, lowercase).
    """

    def __init__(self, client: stripe.StripeClient, currency: str = "jpy") -> None:
        self._client = client
        self._currency = currency

    # ------------------------------------------------------------------
    # Raw provider calls (retried on transient failures)
    # ------------------------------------------------------------------

    @resilient_api_call("stripe.create_intent", retry_on=TRANSIENT_STRIPE_ERRORS)
    def _create_intent(self, params: dict[str, Any], idempotency_key: str) -> Any:
        return self._client.payment_intents.create(
            params=params, options={"idempotency_key": idempotency_key}
        )

    @resilient_api_call("stripe.capture_intent", retry_on=TRANSIENT_STRIPE_ERRORS)
    def _capture_intent(self, hold_id: str, idempotency_key: str) -> Any:
        return self._client.payment_intents.capture(
            hold_id, options={"idempotency_key": idempotency_key}
        )

    @resilient_api_call("stripe.cancel_intent", retry_on=TRANSIENT_STRIPE_ERRORS)
    def _cancel_intent(self, hold_id: str, idempotency_key: str) -> Any:
        return self._client.payment_intents.cancel(
            hold_id, options={"idempotency_key": idempotency_key}
        )

    @resilient_api_call("stripe.retrieve_intent", retry_on=TRANSIENT_STRIPE_ERRORS)
    def _retrieve_intent(self, hold_id: str) -> Any:
        return self._client.payment_intents.retrieve(hold_id)

    # ------------------------------------------------------------------
    # EscrowGateway
    # ------------------------------------------------------------------

    def authorize(self, amount: int, metadata: dict[str, str]) -> Hold:
        """Create a manual-capture PaymentIntent for *amount*.

        Args:
            amount: Amount in minor units of the deployment currency.
            metadata: Key-value pairs attached to the intent (e.g. client id).

        Returns:
            The created ``Hold`` including the client secret for confirmation.

        Raises:
            PaymentProviderError: If Stripe rejects the request.
        """
        params = {
            "amount": amount,
            "currency": self._currency,
            "capture_method": "manual",
            "metadata": metadata,
        }
        try:
            intent = self._create_intent(params, f"authorize-{uuid.uuid4()}")
        except stripe.StripeError as exc:
            logger.warning("Stripe authorize failed", amount=amount, error=str(exc))
            raise _provider_error("authorize", exc) from exc

        logger.info("Escrow hold created", hold_id=intent.id, amount=amount)
        return Hold(
            hold_id=intent.id,
            status=map_intent_status(intent),
            amount=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
        )

    def capture(self, hold_id: str, attempt: int = 0) -> CaptureReceipt:
        """Capture the full amount of a hold.

        An intent that has already succeeded is treated as captured and its
        existing charge is returned as the receipt.

        Args:
            hold_id: The PaymentIntent id.
            attempt: Operator retry number, part of the idempotency key.

        Raises:
            PaymentProviderError: If Stripe refuses the capture.
        """
        key = escrow_idempotency_key("capture", hold_id, attempt)
        try:
            intent = self._capture_intent(hold_id, key)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) != UNEXPECTED_STATE:
                raise _provider_error("capture", exc) from exc
            intent = self._retrieve_or_raise(hold_id, "capture")
            if intent.status != "succeeded":
                raise _provider_error("capture", exc) from exc
            logger.info("Escrow hold already captured", hold_id=hold_id)
        except stripe.StripeError as exc:
            raise _provider_error("capture", exc) from exc

        return self._receipt(intent)

    def cancel(self, hold_id: str, attempt: int = 0) -> None:
        """Release a hold.

        Raises:
            AlreadyCapturedError: If the hold has already been captured.
            PaymentProviderError: If Stripe refuses the cancellation.
        """
        key = escrow_idempotency_key("cancel", hold_id, attempt)
        try:
            self._cancel_intent(hold_id, key)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) != UNEXPECTED_STATE:
                raise _provider_error("cancel", exc) from exc
            intent = self._retrieve_or_raise(hold_id, "cancel")
            if intent.status == "succeeded":
                raise AlreadyCapturedError(hold_id) from exc
            if intent.status != "canceled":
                raise _provider_error("cancel", exc) from exc
            logger.info("Escrow hold already released", hold_id=hold_id)
            return
        except stripe.StripeError as exc:
            raise _provider_error("cancel", exc) from exc

        logger.info("Escrow hold released", hold_id=hold_id)

    def status(self, hold_id: str) -> HoldStatus:
        """Return the current ``HoldStatus`` of a hold."""
        return map_intent_status(self._retrieve_or_raise(hold_id, "status"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _retrieve_or_raise(self, hold_id: str, operation: str) -> Any:
        try:
            return self._retrieve_intent(hold_id)
        except stripe.StripeError as exc:
            raise _provider_error(operation, exc) from exc

    def _receipt(self, intent: Any) -> CaptureReceipt:
        charge = getattr(intent, "latest_charge", None)
        if charge is not None and not isinstance(charge, str):
            charge = charge.id
        return CaptureReceipt(
            hold_id=intent.id,
            receipt_id=charge or intent.id,
            amount_captured=intent.amount_received,
            currency=intent.currency,
        )


def create_stripe_gateway(
    secret_key: str,
    currency: str = "jpy",
    timeout_seconds: float = 30.0,
) -> StripeEscrowGateway:
    """Build a ``StripeEscrowGateway`` with a bounded network timeout.

    Stripe's own network retries are disabled; transient failures are retried
    by ``resilient_api_call`` instead so they are logged and alerted.

    Args:
        secret_key: Stripe secret API key.
        currency: Deployment currency.
        timeout_seconds: Per-request HTTP timeout.

    Returns:
        A ready-to-use gateway.
    """
    client = stripe.StripeClient(
        secret_key,
        http_client=stripe.RequestsClient(timeout=timeout_seconds),
        max_network_retries=0,
    )
    return StripeEscrowGateway(client, currency=currency)
