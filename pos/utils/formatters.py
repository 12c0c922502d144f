"""
Formatting helpers for prices shown to cashiers and in logs.
"""
from decimal import Decimal, InvalidOperation
from typing import Union

from pos.utils.number_format import to_money

Number = Union[int, float, Decimal, str, None]


def _coerce(value: Number) -> Decimal:
    try:
        return to_money(value if value not in (None, '') else 0)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal('0.00')


def format_price(value: Number) -> str:
    """
    Price with exactly 2 decimals.

    Examples:
        format_price(10) -> "10.00"
        format_price('abc') -> "0.00"
    """
    return f"{_coerce(value):.2f}"


def display_price(value: Number) -> str:
    """Price with currency symbol: "$10.00"."""
    return f"${format_price(value)}"


def format_currency(value: Number) -> str:
    """
    Amount with thousands separators (es style).

    Examples:
        format_currency(1234567.5) -> "1.234.567,50"
        format_currency(-50) -> "-50,00"
    """
    amount = _coerce(value)
    sign = '-' if amount < 0 else ''
    integer_part, decimal_part = f"{abs(amount):.2f}".split('.')
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    return f"{sign}{'.'.join(groups)},{decimal_part}"


def display_currency(value: Number) -> str:
    """Amount with currency symbol: "$1.234,50"."""
    return f"${format_currency(value)}"
