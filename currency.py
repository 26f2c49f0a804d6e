"""Currency formatting helpers.

Amounts are shown without decimals. INR uses the Indian digit grouping
(lakhs and crores: 12,34,567); other currencies use groups of three.
"""
import re
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

Number = Union[int, float, Decimal]

CURRENCY_SYMBOLS = {
    'INR': '₹',
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'JPY': '¥',
}

SUPPORTED_CURRENCIES = list(CURRENCY_SYMBOLS.keys())


def get_currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get((currency or '').upper(), currency or '')


def _round_whole(amount: Number) -> int:
    return int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def group_indian(whole: int) -> str:
    digits = str(abs(whole))
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ','.join(groups + [tail])


def format_inr(amount: Number) -> str:
    whole = _round_whole(abs(Decimal(str(amount))))
    formatted = f"₹ {group_indian(whole)}"
    return f"-{formatted}" if amount < 0 else formatted


def format_inr_compact(amount: Number) -> str:
    value = abs(float(amount))
    if value >= 10_000_000:
        formatted = f"₹ {value / 10_000_000:.1f}Cr"
    elif value >= 100_000:
        formatted = f"₹ {value / 100_000:.1f}L"
    elif value >= 1000:
        formatted = f"₹ {value / 1000:.1f}K"
    else:
        formatted = f"₹ {value:,.2f}".rstrip('0').rstrip('.')
    return f"-{formatted}" if amount < 0 else formatted


def format_amount(amount: Number, currency: str = 'INR') -> str:
    currency = (currency or 'INR').upper()
    if currency == 'INR':
        return format_inr(amount)
    whole = _round_whole(abs(Decimal(str(amount))))
    formatted = f"{get_currency_symbol(currency)}{whole:,}"
    return f"-{formatted}" if amount < 0 else formatted


def format_amount_compact(amount: Number, currency: str = 'INR') -> str:
    currency = (currency or 'INR').upper()
    if currency == 'INR':
        return format_inr_compact(amount)
    symbol = get_currency_symbol(currency)
    value = abs(float(amount))
    if value >= 1_000_000_000:
        formatted = f"{symbol}{value / 1_000_000_000:.1f}B"
    elif value >= 1_000_000:
        formatted = f"{symbol}{value / 1_000_000:.1f}M"
    elif value >= 1000:
        formatted = f"{symbol}{value / 1000:.1f}K"
    else:
        formatted = f"{symbol}{value:,.0f}"
    return f"-{formatted}" if amount < 0 else formatted


def parse_inr_amount(text) -> float:
    """'₹ 1,23,456.50' -> 123456.5; anything unparsable -> 0."""
    if text is None:
        return 0.0
    cleaned = re.sub(r'[₹,\s]', '', str(text))
    match = re.match(r'^[-+]?\d*\.?\d+', cleaned)
    if not match:
        return 0.0
    try:
        return float(Decimal(match.group(0)))
    except InvalidOperation:
        return 0.0
