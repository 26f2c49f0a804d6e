from decimal import Decimal

import pytest

from currency import (
    format_inr, format_inr_compact, format_amount, format_amount_compact,
    group_indian, parse_inr_amount, get_currency_symbol
)


@pytest.mark.parametrize("whole, expected", [
    (0, "0"), (999, "999"), (1000, "1,000"), (123456, "1,23,456"), (1234567, "12,34,567"),
    (123456789, "12,34,56,789"),
])
def test_group_indian(whole, expected):
    assert group_indian(whole) == expected


def test_format_inr():
    assert format_inr(123456) == "₹ 1,23,456"
    assert format_inr(Decimal("1500.50")) == "₹ 1,501"
    assert format_inr(-1500.4) == "-₹ 1,500"
    assert format_inr(0) == "₹ 0"


def test_format_inr_compact():
    assert format_inr_compact(15000000) == "₹ 1.5Cr"
    assert format_inr_compact(2500000) == "₹ 25.0L"
    assert format_inr_compact(1500) == "₹ 1.5K"
    assert format_inr_compact(100) == "₹ 100"
    assert format_inr_compact(-2500) == "-₹ 2.5K"


def test_other_currencies():
    assert get_currency_symbol("usd") == "$"
    assert get_currency_symbol("CHF") == "CHF"
    assert format_amount(1234.4, "USD") == "$1,234"
    assert format_amount(1234.4, "INR") == "₹ 1,234"
    assert format_amount_compact(2500000, "EUR") == "€2.5M"
    assert format_amount_compact(3_000_000_000, "GBP") == "£3.0B"


def test_parse_inr_amount():
    assert parse_inr_amount("₹ 1,23,456.50") == 123456.5
    assert parse_inr_amount("-₹ 500") == -500.0
    assert parse_inr_amount("abc") == 0.0
    assert parse_inr_amount(None) == 0.0
