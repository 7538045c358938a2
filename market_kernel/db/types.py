"""
Module: market_kernel.db.types
Responsibility: Decimal coercion and the money rounding helpers shared by
    the ORM, the pricing and invoicing engines, and the services.
Architecture position: Kernel > DB.  Pure functions with no SQLAlchemy
    import, so engines may use them.  MUST NOT import from outer layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for money.
      Half-up to the cent, applied to final totals only.
    - round_storage() matches the Numeric(38, 9) column scale set in
      Base.type_annotation_map.
    - No floats for money or quantities anywhere.

Failure modes:
    - decimal.InvalidOperation on non-numeric input to to_decimal().
"""

from decimal import Decimal, ROUND_HALF_UP

MONEY_DECIMAL_PLACES = 2
STORAGE_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an int, str or Decimal to Decimal. Floats are refused."""
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value half-up to ``decimal_places``.

    This is the ONLY sanctioned rounding function for money in the system.
    """
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding)


def round_storage(value: Decimal) -> Decimal:
    """Quantize to the Numeric(38, 9) column scale."""
    return round_money(value, STORAGE_DECIMAL_PLACES)
