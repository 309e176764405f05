"""Commission arithmetic.

All money is ``Decimal`` quantized to cents with half-up rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

from referral_ledger.ledger.errors import InvalidInputError

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize a value to two decimal places, half-up."""
    if isinstance(value, float):
        raise TypeError("Money must not be built from float, use Decimal or str")
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_commission(purchase_amount: Decimal, rate_percent: Decimal) -> Decimal:
    """Commission owed for a purchase at the given percentage rate.

    Args:
        purchase_amount: Price of the referred purchase
        rate_percent: Referrer's commission rate, e.g. ``Decimal("10")`` for 10%

    Returns:
        Commission rounded to cents
    """
    if purchase_amount < 0:
        raise InvalidInputError("Purchase amount must not be negative", purchase_amount=str(purchase_amount))
    if rate_percent < 0 or rate_percent > HUNDRED:
        raise InvalidInputError("Commission rate must be between 0 and 100", rate=str(rate_percent))
    return to_money(Decimal(purchase_amount) * Decimal(rate_percent) / HUNDRED)
