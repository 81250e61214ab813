"""PHP amount helpers."""

from decimal import ROUND_HALF_UP, Decimal

CENTAVO = Decimal("0.01")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Convert an amount to Decimal without binary float artifacts.

    Floats go through ``str`` so 1000.1 stays 1000.1 rather than
    1000.1000000000000227...
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def format_php(value: Decimal | float | int) -> str:
    """Format an amount as pesos with two decimals, e.g. ``₱1000.50``."""
    amount = to_decimal(value).quantize(CENTAVO, rounding=ROUND_HALF_UP)
    return f"₱{amount:.2f}"
