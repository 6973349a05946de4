"""
Money Helpers Module

Decimal precision and rounding for every amount the engine returns.
NEVER uses float for monetary values. Intermediate math keeps full context
precision; only externally returned amounts are rounded.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Iterable, Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28  # High precision for financial calculations

MONEY_PLACES = 2
CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

Numeric = Union[Decimal, int, str]

# Stripped from user-entered amounts before parsing
CURRENCY_NOISE = re.compile(r'[\s$€£¥₹]')


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric input to Decimal without passing through float

    Strings must be plain decimal literals ("1000.50", "1e3"); formatted
    text such as "$1,000.50" goes through decimal_from_string first.

    Args:
        value: Decimal, int or numeric string

    Returns:
        Decimal value

    Raises:
        ValueError: If the value is a float, a bool or not a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        # Floats carry binary drift; bools are ints in disguise
        raise ValueError(f"Monetary values must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        return _parse_literal(value.strip(), value)
    raise ValueError(f"Cannot convert {value!r} to Decimal")


def round_money(value: Numeric, places: int = MONEY_PLACES) -> Decimal:
    """Round to currency precision using ROUND_HALF_UP"""
    return to_decimal(value).quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Exact sum of already rounded amounts"""
    total = ZERO
    for value in values:
        total += value
    return total


def decimal_from_string(value: str) -> Decimal:
    """
    Convert user-entered text to Decimal, handling common formats

    Currency symbols, spaces and thousands separators are dropped. When both
    separators appear, the last one is the decimal point ("1.000,50" and
    "1,000.50" are both 1000.50). Any other character is an error.

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = CURRENCY_NOISE.sub('', value)
    if not clean_value or re.search(r'[^\d.,\-+]', clean_value):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    if ',' in clean_value and '.' in clean_value:
        if clean_value.rfind(',') > clean_value.rfind('.'):
            # European format: dots group thousands, comma is the decimal point
            clean_value = clean_value.replace('.', '').replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    elif clean_value.count(',') == 1 and len(clean_value.split(',')[1]) <= 2:
        clean_value = clean_value.replace(',', '.')
    else:
        clean_value = clean_value.replace(',', '')

    return _parse_literal(clean_value, value)


def _parse_literal(literal: str, original: str) -> Decimal:
    try:
        result = Decimal(literal)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{original}' to Decimal")

    if not result.is_finite():
        raise ValueError(f"Cannot convert '{original}' to Decimal")
    return result


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """Unrounded `amount * percent / 100`"""
    return amount * percent / HUNDRED
