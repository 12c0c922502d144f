"""Number parsing utilities for money and stock quantities."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from pos.exceptions import ValidationError

CENTS = Decimal('0.01')
INTEGER_PATTERN = re.compile(r"^-?\d+$")


def to_money(value) -> Decimal:
    """Quantize a value to 2 decimals (ROUND_HALF_UP)."""
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_decimal(value, field: str = 'valor', minimum=None, maximum=None) -> Decimal:
    """
    Parse a decimal from request data (string or number).

    Accepts both '1234.56' and '1234,56'.

    Raises:
        ValidationError: if the value is missing, malformed or out of range.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'El campo {field} es requerido')
    if isinstance(value, bool):
        raise ValidationError(f'Formato inválido para {field}')

    try:
        if isinstance(value, str):
            number = Decimal(value.strip().replace(',', '.'))
        else:
            number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Formato inválido para {field}')

    if not number.is_finite():
        raise ValidationError(f'Formato inválido para {field}')
    if minimum is not None and number < Decimal(str(minimum)):
        raise ValidationError(f'El campo {field} debe ser mayor o igual a {minimum}')
    if maximum is not None and number > Decimal(str(maximum)):
        raise ValidationError(f'El campo {field} debe ser menor o igual a {maximum}')
    return number


def parse_quantity(value, field: str = 'cantidad', minimum: int = 1) -> int:
    """
    Parse a whole-unit stock quantity.

    Raises:
        ValidationError: if the value is not an integer or is below ``minimum``.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'El campo {field} debe ser un número entero')
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, float) and value.is_integer():
        quantity = int(value)
    elif isinstance(value, str) and INTEGER_PATTERN.match(value.strip()):
        quantity = int(value.strip())
    else:
        raise ValidationError(f'El campo {field} debe ser un número entero')

    if minimum is not None and quantity < minimum:
        raise ValidationError(f'El campo {field} debe ser mayor o igual a {minimum}')
    return quantity
