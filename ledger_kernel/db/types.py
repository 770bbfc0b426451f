"""
Module: ledger_kernel.db.types
Responsibility: Money coercion and rounding shared by models, domain
    functions, services and selectors.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES is the canonical currency precision.  round_money()
      is the ONLY sanctioned rounding function for monetary values.
    - CRITICAL: No floats anywhere.  to_money() rejects float input outright.

Failure modes:
    - InvalidAmountError on float or non-numeric input to to_money().
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ledger_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency precision.

    This is the ONLY sanctioned rounding function for monetary values.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """
    Coerce an amount to a two-place Decimal.

    Accepts Decimal, int, or numeric string.  Floats are refused: binary
    floating point would drift across long prefix sums.

    Raises:
        InvalidAmountError: If value is a float, a bool, or not numeric.
    """
    if isinstance(value, (float, bool)):
        raise InvalidAmountError(field, f"{type(value).__name__} is not allowed, use Decimal")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(field, f"{value!r} is not a number")
    if not dec.is_finite():
        raise InvalidAmountError(field, f"{value!r} is not finite")
    return round_money(dec)
