from decimal import Decimal, ROUND_HALF_UP

from .models import FeeQuote

CENT = Decimal("0.01")
LOW_TIER_CEILING = Decimal("50")
LOW_TIER_RATE = Decimal("0.05")
HIGH_TIER_RATE = Decimal("0.10")


def service_fee(amount: Decimal) -> Decimal:
    """5% on purchases up to 50, 10% above, rounded half-up to cents."""
    rate = LOW_TIER_RATE if amount <= LOW_TIER_CEILING else HIGH_TIER_RATE
    return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def quote(amount: Decimal) -> FeeQuote:
    fee = service_fee(amount)
    return FeeQuote(amount=amount, fee=fee, total=amount + fee)
