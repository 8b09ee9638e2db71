# cart_engine/utils/money.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """Liberalna konwersja na Decimal (str, int, float, Decimal). Smieci -> default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def money(value) -> Decimal:
    # zaokraglenie half-up do 2 miejsc
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
