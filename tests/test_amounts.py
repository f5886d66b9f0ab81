from datetime import date, datetime
from decimal import Decimal

import pytest

from etb_engine.amounts import (
    MAX_ABS_AMOUNT,
    NOT_A_NUMBER,
    is_empty_cell,
    is_not_a_number,
    normalize_amount,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(55,662)", 55662),
        ("42,127", 42127),
        ("$1,200", 1200),
        ("€ 300", 300),
        ("£-45", -45),
        ("-1,000", -1000),
        ("  250  ", 250),
        ("1234.4", 1234),
        ("1234.5", 1235),
        ("-1234.5", -1235),
    ],
)
def test_normalize_text_amounts(raw, expected):
    """Accounting-formatted text is cleaned and rounded to an integer."""
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", float("nan"), "()", "$"])
def test_empty_cells_normalize_to_zero(raw):
    assert normalize_amount(raw) == 0


@pytest.mark.parametrize("raw", ["abc", "N/A", "-", "12abc", "1.2.3"])
def test_unreadable_text_is_not_a_number(raw):
    result = normalize_amount(raw)
    assert result is NOT_A_NUMBER
    assert is_not_a_number(result)


def test_parentheses_stay_positive_by_default():
    """Parentheses are stripped without flipping the sign unless asked to."""
    assert normalize_amount("(1,200)") == 1200
    assert normalize_amount("(1,200)", parentheses_negative=True) == -1200


def test_parentheses_flag_ignores_explicit_minus():
    assert normalize_amount("(-1,200)", parentheses_negative=True) == -1200


def test_typed_cells():
    """Values coming from XLSX cells keep their numeric meaning."""
    assert normalize_amount(1500) == 1500
    assert normalize_amount(12.6) == 13
    assert normalize_amount(-0.5) == -1
    assert normalize_amount(Decimal("10.5")) == 11
    assert normalize_amount(float("inf")) is NOT_A_NUMBER
    assert normalize_amount(True) is NOT_A_NUMBER
    assert normalize_amount(date(2024, 1, 1)) is NOT_A_NUMBER
    assert normalize_amount(datetime(2024, 1, 1, 12, 0)) is NOT_A_NUMBER


def test_not_a_number_sentinel_is_falsy_and_unique():
    assert not NOT_A_NUMBER
    assert repr(NOT_A_NUMBER) == "NOT_A_NUMBER"
    assert normalize_amount("x") is normalize_amount("y")


def test_is_empty_cell():
    assert is_empty_cell(None)
    assert is_empty_cell(" ")
    assert is_empty_cell(float("nan"))
    assert not is_empty_cell(0)
    assert not is_empty_cell("0")


@pytest.mark.parametrize(
    "raw",
    [
        "123456789012345678901234567890",
        "1e30",
        "-1E+40",
        "1e999999999",
        "9223372036854775808",
        1e30,
        -1e300,
        10**20,
        Decimal("1e50"),
    ],
)
def test_out_of_range_amounts_are_not_a_number(raw):
    """Amounts beyond the storable integer range are reported, not raised."""
    assert normalize_amount(raw) is NOT_A_NUMBER


def test_largest_storable_amount():
    assert normalize_amount(str(MAX_ABS_AMOUNT)) == MAX_ABS_AMOUNT
    assert normalize_amount(f"-{MAX_ABS_AMOUNT}") == -MAX_ABS_AMOUNT
    assert normalize_amount("(1e30)", parentheses_negative=True) is NOT_A_NUMBER
