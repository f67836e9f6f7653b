"""Fee split applied when an escrow hold is captured.

All arithmetic uses Decimal.  The platform fee is rounded to a whole minor
currency unit with ROUND_HALF_UP and the reviewer receives the remainder, so
the two parts always add up to the budget exactly.
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from auditdesk.domain.errors import ValidationError

WHOLE_UNITS = Decimal("1")

ZERO_RATE = Decimal("0")
FULL_RATE = Decimal("1")


class Settlement(BaseModel, frozen=True):
    """Result of splitting a captured budget between platform and reviewer.

    Attributes:
        budget: The captured amount in minor currency units.
        fee_rate: The fee rate in force at settlement time.
        platform_fee: The platform's share, rounded half-up.
        reviewer_payout: ``budget - platform_fee``.
    """

    budget: int
    fee_rate: Decimal
    platform_fee: int
    reviewer_payout: int


def _validate_inputs(budget: int, fee_rate: Decimal) -> None:
    """Validate settlement inputs.

    Raises:
        ValidationError: If the budget is not positive, the rate is not a
            Decimal, or the rate lies outside [0, 1].
    """
    if budget <= 0:
        raise ValidationError(f"budget must be positive, got {budget}")
    if not isinstance(fee_rate, Decimal):
        raise ValidationError("fee_rate must be a Decimal, not float")
    if not ZERO_RATE <= fee_rate <= FULL_RATE:
        raise ValidationError(f"fee_rate must be between 0 and 1, got {fee_rate}")


def calculate_platform_fee(budget: int, fee_rate: Decimal) -> int:
    """Calculate the platform's fee for a budget.

    Formula: budget * fee_rate, rounded half-up to a whole minor unit.

    Args:
        budget: The captured amount in minor currency units.
        fee_rate: Fraction of the budget kept by the platform.

    Returns:
        The platform fee in minor currency units.

    Raises:
        ValidationError: If the inputs are out of range.
    """
    _validate_inputs(budget, fee_rate)
    fee = (Decimal(budget) * fee_rate).quantize(WHOLE_UNITS, rounding=ROUND_HALF_UP)
    return int(fee)


def settle(budget: int, fee_rate: Decimal) -> Settlement:
    """Split a budget into platform fee and reviewer payout.

    The caller passes the fee rate read at settlement time; this function does
    not consult any shared configuration.

    Args:
        budget: The captured amount in minor currency units.
        fee_rate: The fee rate currently configured for the platform.

    Returns:
        The ``Settlement`` with ``platform_fee + reviewer_payout == budget``.

    Raises:
        ValidationError: If the inputs are out of range.
    """
    platform_fee = calculate_platform_fee(budget, fee_rate)
    return Settlement(
        budget=budget,
        fee_rate=fee_rate,
        platform_fee=platform_fee,
        reviewer_payout=budget - platform_fee,
    )
