"""
Decimal amount helpers.

Amounts travel as ``Decimal`` end to end.  They are rounded (half-up) to the
configured scale only at the storage/output boundary, never while summing.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")


def parse_amount(value: Any) -> Decimal | None:
    """
    Coerce a feed/user value into a Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1").  Returns None
    when the value is missing, unparseable, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def quantize_amount(amount: Decimal, scale: int = 2) -> Decimal:
    """Round half-up to ``scale`` decimal places."""
    return amount.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal, scale: int = 2) -> str:
    """Fixed-point string, e.g. Decimal("12.5") -> "12.50"."""
    return f"{quantize_amount(amount, scale):f}"
