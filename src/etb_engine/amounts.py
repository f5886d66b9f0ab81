# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Number normalization for ETB Engine.

Trial balances arrive with amounts typed in every possible accounting
format: ``42,127``, ``$ 1,000``, ``(55,662)``, ``€12.5`` or plain numbers
already typed by the spreadsheet. This module turns a single raw cell into
a signed integer amount.

Rules
-----
1. Empty input (None, NaN, blank string) → 0.
2. Numeric input → rounded to the nearest integer, ties away from zero.
3. Text input → the characters ``( ) , $ € £ ¥`` are stripped, the result
   is trimmed, parsed as a decimal number and rounded as above.
4. Anything that still does not parse, or whose magnitude exceeds
   MAX_ABS_AMOUNT, → NOT_A_NUMBER, a sentinel distinct from 0 so that the
   schema validator can report the offending row.

Parentheses do not carry a sign: ``(55,662)`` normalizes to ``55662``.
Only a literal ``-`` makes an amount negative. Callers that want the
accounting convention can pass ``parentheses_negative=True``.
"""

import math
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

STRIPPED_CHARACTERS = "(),$€£¥"

_STRIP_TABLE = str.maketrans("", "", STRIPPED_CHARACTERS)

# Amounts are stored as SQLite INTEGER (signed 64-bit).
MAX_ABS_AMOUNT = 2**63 - 1


class _NotANumber:
    """Sentinel type returned when a cell cannot be read as an amount."""

    _instance = None

    def __new__(cls) -> "_NotANumber":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_A_NUMBER"

    def __bool__(self) -> bool:
        return False


NOT_A_NUMBER = _NotANumber()

Amount = Union[int, _NotANumber]


def is_not_a_number(value: Any) -> bool:
    """Return True if ``value`` is the NOT_A_NUMBER sentinel."""
    return value is NOT_A_NUMBER


def is_empty_cell(value: Any) -> bool:
    """Return True for None, float NaN and blank strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def _round_half_away(value: Decimal) -> Amount:
    """Round a finite Decimal to an int, ties away from zero.

    Values outside the storable range yield NOT_A_NUMBER.
    """
    if value.copy_abs() > MAX_ABS_AMOUNT:
        return NOT_A_NUMBER
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_amount(value: Any, *, parentheses_negative: bool = False) -> Amount:
    """Convert a raw spreadsheet cell into a signed integer amount.

    Args:
        value: Raw cell value (str, int, float, None, ...).
        parentheses_negative: When True, a text value wrapped in parentheses
            such as ``(1,200)`` is read as negative. Off by default.

    Returns:
        The rounded integer amount, or NOT_A_NUMBER when the cell holds
        something that cannot be read as a number.
    """
    if is_empty_cell(value):
        return 0

    # bool is an int subclass but never an amount.
    if isinstance(value, bool):
        return NOT_A_NUMBER

    if isinstance(value, int):
        return value if abs(value) <= MAX_ABS_AMOUNT else NOT_A_NUMBER

    if isinstance(value, float):
        if math.isinf(value):
            return NOT_A_NUMBER
        return _round_half_away(Decimal(repr(value)))

    if isinstance(value, Decimal):
        if not value.is_finite():
            return NOT_A_NUMBER
        return _round_half_away(value)

    if isinstance(value, (datetime, date, time)):
        return NOT_A_NUMBER

    if not isinstance(value, str):
        return NOT_A_NUMBER

    text = value.strip()
    negate = (
        parentheses_negative
        and text.startswith("(")
        and text.endswith(")")
        and "-" not in text
    )

    cleaned = text.translate(_STRIP_TABLE).strip()
    if cleaned == "":
        return 0

    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return NOT_A_NUMBER

    if not number.is_finite():
        return NOT_A_NUMBER

    amount = _round_half_away(number)
    if negate and not is_not_a_number(amount):
        return -amount  # type: ignore[operator]
    return amount
