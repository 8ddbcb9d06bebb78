"""
Utility functions for the Eagle vault engine.

Includes decimal arithmetic helpers, basis-point math and time helpers.
"""

from datetime import datetime, timezone
from decimal import ROUND_DOWN, ROUND_UP, Decimal, localcontext

MAX_BPS = 10_000
TOKEN_DECIMALS = 18

# Working precision for intermediate products (shares * assets can exceed
# the default 28 significant digits at 18-decimal resolution)
_WORKING_PRECISION = 78

ZERO = Decimal("0")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# =============================================================================
# Time-related functions
# =============================================================================


def utc_now() -> datetime:
    """Get the current UTC time."""
    return datetime.now(timezone.utc)


def seconds_between(start: datetime, end: datetime) -> Decimal:
    """
    Get the elapsed seconds between two datetimes as a Decimal.

    Negative intervals are returned as zero.
    """
    elapsed = (end - start).total_seconds()
    if elapsed <= 0:
        return ZERO
    return Decimal(str(elapsed))


# =============================================================================
# Numeric functions
# =============================================================================


def round_decimal(
    value: Decimal,
    precision: int = TOKEN_DECIMALS,
    rounding: str = ROUND_DOWN,
) -> Decimal:
    """
    Round a Decimal to specified precision.

    Args:
        value: Decimal value to round
        precision: Number of decimal places
        rounding: Rounding mode (default ROUND_DOWN)

    Returns:
        Rounded Decimal

    Example:
        >>> round_decimal(Decimal("123.456"), 2)
        Decimal('123.45')
    """
    if precision < 0:
        precision = 0

    quantize_str = "1." + "0" * precision if precision > 0 else "1"
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        return value.quantize(Decimal(quantize_str), rounding=rounding)


def mul_div(
    a: Decimal,
    b: Decimal | int,
    denominator: Decimal | int,
    rounding: str = ROUND_DOWN,
) -> Decimal:
    """
    Compute a * b / denominator at high precision, quantized to token decimals.

    Args:
        a: First factor
        b: Second factor
        denominator: Divisor (must be non-zero)
        rounding: ROUND_DOWN (default) or ROUND_UP

    Returns:
        Result rounded to 18 decimal places

    Raises:
        ZeroDivisionError: If denominator is zero
    """
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        result = Decimal(a) * Decimal(b) / Decimal(denominator)
    return round_decimal(result, TOKEN_DECIMALS, rounding)


def apply_bps(amount: Decimal, bps: int, rounding: str = ROUND_DOWN) -> Decimal:
    """
    Take a basis-point fraction of an amount.

    Example:
        >>> apply_bps(Decimal("1000"), 250)
        Decimal('25.000000000000000000')
    """
    return mul_div(amount, bps, MAX_BPS, rounding)


def shortfall_bps(expected: Decimal, received: Decimal) -> Decimal:
    """
    Shortfall of received versus expected, in basis points.

    Returns zero when received meets or exceeds expected, or when nothing
    was expected.
    """
    if expected <= 0 or received >= expected:
        return ZERO
    return mul_div(expected - received, MAX_BPS, expected, ROUND_UP)


def calculate_percentage(part: Decimal, whole: Decimal) -> Decimal:
    """
    Calculate percentage (part/whole * 100).

    Example:
        >>> calculate_percentage(Decimal("25"), Decimal("100"))
        Decimal('25')
    """
    if whole == 0:
        return ZERO
    return (part / whole) * Decimal("100")


def is_zero_address(address: str | None) -> bool:
    """Check whether an address is empty or the zero address."""
    return not address or address.lower() == ZERO_ADDRESS
