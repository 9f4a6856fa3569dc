"""
Module: backoffice_kernel.db.types
Responsibility: The money helpers every model and service shares.
    Centralizes precision and rounding so that forecast, actual, ledger and
    payroll amounts are all computed the same way.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and modules.  MUST NOT import from those layers.

Invariants enforced:
    - No floats.  All amounts are Decimal stored as Numeric(38, 9).
    - round_money() is the ONLY sanctioned rounding function (ROUND_HALF_UP,
      2 places by default).
    - split_amount() distributes a total in cents so that the parts always
      sum back to the total exactly.

Failure modes:
    - decimal.InvalidOperation on non-numeric input to to_money().
    - ValueError from split_amount() when parts < 1.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, string or Decimal into a Decimal amount.

    Floats are rejected: they cannot represent cents exactly.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places``.

    This is the ONLY sanctioned rounding function for amounts in the system.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def split_amount(
    total: Decimal,
    parts: int,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> list[Decimal]:
    """
    Split ``total`` into ``parts`` amounts, remainder on the last part.

    Example:
        split_amount(Decimal("100.00"), 3)
        -> [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    """
    if parts < 1:
        raise ValueError("parts must be >= 1")
    total = round_money(total, decimal_places)
    quantum = Decimal(1).scaleb(-decimal_places)
    share = (total / parts).quantize(quantum, rounding=ROUND_DOWN)
    amounts = [share] * (parts - 1)
    amounts.append(total - share * (parts - 1))
    return amounts
