# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Schema validation for ETB Engine.

This module checks that a raw cell grid (as returned by ``io.parse_grid``)
has the shape of an Extended Trial Balance, and turns its data rows into
typed ETBRow records.

Expected header
---------------
Required columns (trimmed, case-insensitive exact match):

    Code, Account Name, Current Year, Prior Year

Optional columns:

    Grouping 1, Grouping 2, Grouping 3, Grouping 4,
    Adjustments, Classification

The header is resolved once into a ColumnMap (column name → index). Rows
are then read through that map, never by guessing positions.

Validation policy
-----------------
- Every missing required column is reported, not only the first one.
- A grid with no data row after the header is rejected.
- For every data row, a non-empty Current Year / Prior Year (and
  Adjustments, when present) cell that is not a number is recorded as a
  RowValidationError. All rows are checked before failing, and the
  collected errors are raised together in an InvalidRowsError.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

from .amounts import is_empty_cell, is_not_a_number, normalize_amount
from .errors import InvalidRowsError, RowValidationError, SchemaError
from .io import Grid
from .rows import ETBRow, make_grouping

CODE = "Code"
ACCOUNT_NAME = "Account Name"
CURRENT_YEAR = "Current Year"
PRIOR_YEAR = "Prior Year"
ADJUSTMENTS = "Adjustments"
CLASSIFICATION = "Classification"
GROUPING_COLUMNS = ("Grouping 1", "Grouping 2", "Grouping 3", "Grouping 4")

REQUIRED_COLUMNS = (CODE, ACCOUNT_NAME, CURRENT_YEAR, PRIOR_YEAR)
OPTIONAL_COLUMNS = GROUPING_COLUMNS + (ADJUSTMENTS, CLASSIFICATION)

# Header row is display row 1, so data row i (0-based) is row i + 2.
FIRST_DATA_ROW_NUMBER = 2


@dataclass(frozen=True)
class ColumnMap:
    """Column indexes resolved from the header row."""

    code: int
    account_name: int
    current_year: int
    prior_year: int
    groupings: tuple[Optional[int], Optional[int], Optional[int], Optional[int]] = (
        None,
        None,
        None,
        None,
    )
    adjustments: Optional[int] = None
    classification: Optional[int] = None

    def amount_columns(self) -> list[tuple[str, int]]:
        """Columns whose cells must hold numbers."""
        cols = [(CURRENT_YEAR, self.current_year), (PRIOR_YEAR, self.prior_year)]
        if self.adjustments is not None:
            cols.append((ADJUSTMENTS, self.adjustments))
        return cols


def _header_key(cell: Any) -> str:
    if is_empty_cell(cell):
        return ""
    return str(cell).strip().lower()


def _find_column(header: Sequence[Any], name: str) -> Optional[int]:
    wanted = name.lower()
    for idx, cell in enumerate(header):
        if _header_key(cell) == wanted:
            return idx
    return None


def find_missing_columns(header: Sequence[Any]) -> list[str]:
    """Return the required columns absent from a header row, in canonical order."""
    return [col for col in REQUIRED_COLUMNS if _find_column(header, col) is None]


def resolve_columns(header: Sequence[Any]) -> ColumnMap:
    """Resolve the column index map from a header row.

    Raises:
        SchemaError: listing every missing required column.
    """
    missing = find_missing_columns(header)
    if missing:
        raise SchemaError(
            [f"Missing required columns: {', '.join(missing)}"],
            missing_columns=missing,
        )

    groupings = tuple(_find_column(header, g) for g in GROUPING_COLUMNS)
    return ColumnMap(
        code=_find_column(header, CODE),  # type: ignore[arg-type]
        account_name=_find_column(header, ACCOUNT_NAME),  # type: ignore[arg-type]
        current_year=_find_column(header, CURRENT_YEAR),  # type: ignore[arg-type]
        prior_year=_find_column(header, PRIOR_YEAR),  # type: ignore[arg-type]
        groupings=groupings,  # type: ignore[arg-type]
        adjustments=_find_column(header, ADJUSTMENTS),
        classification=_find_column(header, CLASSIFICATION),
    )


def _cell(row: Sequence[Any], idx: Optional[int]) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _cell_text(value: Any) -> str:
    """Render a code/name cell as text (1000.0 from Excel becomes '1000')."""
    if is_empty_cell(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _validated_amount(
    value: Any, row_number: int, column: str, parentheses_negative: bool
) -> int:
    amount = normalize_amount(value, parentheses_negative=parentheses_negative)
    if is_not_a_number(amount):
        # Only reachable when build_rows is called on an unvalidated grid.
        raise RowValidationError(row_number, column, value)
    return amount  # type: ignore[return-value]


def validate_grid(
    grid: Grid, *, parentheses_negative: bool = False
) -> ColumnMap:
    """Validate the shape and the amount cells of a raw grid.

    Args:
        grid: Raw grid, header row first.
        parentheses_negative: Forwarded to the number normalizer.

    Returns:
        The resolved ColumnMap.

    Raises:
        SchemaError: required columns missing and/or no data rows. Both
            problems are reported together when both apply.
        InvalidRowsError: one or more amount cells are not numbers.
    """
    if not grid:
        raise SchemaError(["File is empty or could not be read"])

    header = grid[0]
    data_rows = grid[1:]

    problems: list[str] = []
    missing = find_missing_columns(header)
    if missing:
        problems.append(f"Missing required columns: {', '.join(missing)}")
    if not data_rows:
        problems.append("No data rows found")
    if problems:
        raise SchemaError(problems, missing_columns=missing)

    columns = resolve_columns(header)

    errors: list[RowValidationError] = []
    for offset, row in enumerate(data_rows):
        row_number = offset + FIRST_DATA_ROW_NUMBER
        for column_name, idx in columns.amount_columns():
            raw = _cell(row, idx)
            if is_empty_cell(raw):
                continue
            amount = normalize_amount(raw, parentheses_negative=parentheses_negative)
            if is_not_a_number(amount):
                errors.append(RowValidationError(row_number, column_name, raw))

    if errors:
        raise InvalidRowsError(errors)

    return columns


def build_rows(
    grid: Grid,
    columns: ColumnMap,
    *,
    parentheses_negative: bool = False,
) -> list[tuple[ETBRow, Optional[str]]]:
    """Turn the data rows of a validated grid into ETBRow records.

    The grid must have passed ``validate_grid``: amounts are assumed to be
    numeric or empty.

    Returns:
        A list of ``(row, classification)`` pairs, where ``classification``
        is the raw text of the optional Classification column (or None).
    """
    out: list[tuple[ETBRow, Optional[str]]] = []
    for offset, raw in enumerate(grid[1:]):
        row_number = offset + FIRST_DATA_ROW_NUMBER
        amounts = {
            name: _validated_amount(
                _cell(raw, idx), row_number, name, parentheses_negative
            )
            for name, idx in columns.amount_columns()
        }
        row = ETBRow(
            code=_cell_text(_cell(raw, columns.code)),
            account_name=_cell_text(_cell(raw, columns.account_name)),
            current_year=amounts[CURRENT_YEAR],
            prior_year=amounts[PRIOR_YEAR],
            grouping=make_grouping(
                [_cell_text(_cell(raw, idx)) for idx in columns.groupings]
            ),
            adjustments=amounts.get(ADJUSTMENTS, 0),
            row_number=row_number,
        )
        classification = _cell_text(_cell(raw, columns.classification)) or None
        out.append((row, classification))
    return out
