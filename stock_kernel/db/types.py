"""
Module: stock_kernel.db.types
Responsibility: Annotated column type aliases and the single sanctioned rounding
    function for cost amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in cost arithmetic.  Every amount is a Decimal.
    - round_cost() is the ONLY rounding function used for unit costs and
      values, so merge averages and reports round identically.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Per-unit or total cost with high precision
CostAmount = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Free text for reasons and notes
LongText = Annotated[str, String(4000)]

COST_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_cost(
    value: Decimal,
    decimal_places: int = COST_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a cost amount to the configured number of decimal places.

    Preconditions: value is a Decimal (ints are accepted and converted).
    Postconditions: Returns value quantized with ROUND_HALF_UP by default.
    """
    if not isinstance(value, Decimal):
        value = Decimal(value)
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


def cost_from_str(value: str) -> Decimal:
    """
    Parse a cost amount from text.

    Raises:
        decimal.InvalidOperation: If value is not numeric.
    """
    return Decimal(value)
