"""Escrow gateway: authorize / capture / cancel / status against the payment provider."""

from auditdesk.escrow.gateway import EscrowGateway
from auditdesk.escrow.stripe_gateway import (
    StripeEscrowGateway,
    create_stripe_gateway,
    map_intent_status,
)

__all__ = [
    "EscrowGateway",
    "StripeEscrowGateway",
    "create_stripe_gateway",
    "map_intent_status",
]
