"""Money helpers: every amount is a Decimal quantized to two places, half-up."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value) -> Decimal:
    """Coerce numbers and numeric strings to Decimal without float artifacts."""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid monetary value: {value!r}')


def money(value) -> Decimal:
    """Round to two decimals using round-half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def as_float(value) -> float:
    """JSON-friendly representation of a quantized amount."""
    return float(money(value))
