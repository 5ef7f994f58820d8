"""Commission split calculation.

All amounts are integers in minor currency units (kobo). The platform
commission is ``amount * commission_percent / 100`` rounded half-up to the
nearest unit; the artisan receives the remainder, so the two parts always
sum to the gross amount exactly.
"""

from dataclasses import dataclass

from servicehub.config import settings
from servicehub.errors import ValidationFailed


@dataclass(frozen=True)
class SplitBreakdown:
    """Itemized split of a gross payment."""
    amount: int
    commission_percent: int
    commission_amount: int
    artisan_amount: int


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounding halves up, for non-negative operands."""
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_split(amount: int, commission_percent: int) -> SplitBreakdown:
    """Split a gross amount into platform commission and artisan share."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationFailed("amount must be an integer number of minor units")
    if isinstance(commission_percent, bool) or not isinstance(commission_percent, int):
        raise ValidationFailed("commission_percent must be an integer")
    if amount < 0:
        raise ValidationFailed("amount must not be negative")
    if not 0 <= commission_percent <= 100:
        raise ValidationFailed("commission_percent must be between 0 and 100")

    commission = round_half_up_div(amount * commission_percent, 100)
    return SplitBreakdown(
        amount=amount,
        commission_percent=commission_percent,
        commission_amount=commission,
        artisan_amount=amount - commission,
    )


def format_naira(amount: int) -> str:
    """Render kobo as a human-readable naira string for history notes."""
    naira, kobo = divmod(amount, 100)
    if kobo:
        return f"₦{naira:,}.{kobo:02d}"
    return f"₦{naira:,}"


def get_fee_schedule() -> dict:
    """Current commission and guarantee terms, for display to customers and artisans."""
    example = calculate_split(1_500_000, settings.default_commission_percent)
    return {
        "commission_percent": settings.default_commission_percent,
        "rounding": "half-up to the nearest kobo; artisan receives the remainder",
        "charged_at": "Payment initialisation (split settled by the gateway)",
        "guarantee_period_days": settings.guarantee_period_days,
        "example": {
            "amount": format_naira(example.amount),
            "commission": format_naira(example.commission_amount),
            "artisan": format_naira(example.artisan_amount),
        },
    }
