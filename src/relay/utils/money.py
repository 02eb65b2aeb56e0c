"""Amount parsing and formatting.

Amounts cross the Stripe boundary as integer cents (USD minor units) and are
stored in metadata and the CRM as decimal strings with two fraction digits.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


class AmountError(ValueError):
    """Raised when a requested amount cannot be charged."""


def parse_amount_cents(value: Any) -> int:
    """Convert a user-supplied amount in dollars to integer cents.

    Accepts numbers and numeric strings. The dollar value is multiplied by 100
    and rounded half-up, so ``19.999`` becomes ``2000`` and ``0.004`` becomes
    ``0``.

    Args:
        value: Amount in dollars (int, float or numeric string)

    Returns:
        Strictly positive amount in cents.

    Raises:
        AmountError: If the value is not numeric, not finite, or rounds to
            zero or less.
    """
    if isinstance(value, bool) or value is None:
        raise AmountError(f"Amount is not a number: {value!r}")

    try:
        dollars = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as e:
        raise AmountError(f"Amount is not a number: {value!r}") from e

    if not math.isfinite(dollars):
        raise AmountError(f"Amount is not finite: {value!r}")

    cents = math.floor(dollars * 100 + 0.5)
    if cents <= 0:
        raise AmountError(f"Amount must be positive: {value!r}")
    return cents


def format_cents(cents: int) -> str:
    """Format integer cents as a dollar string with two decimals.

    >>> format_cents(4999)
    '49.99'
    """
    amount = (Decimal(int(cents)) / Decimal(100)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return f"{amount:.2f}"
