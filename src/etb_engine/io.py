# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for ETB Engine.

This module reads an uploaded trial balance file (already fully resident in
memory) into a raw 2-D grid of cell values. It performs no semantic
validation: a grid of the wrong shape is a valid result and is rejected
later by the schema validator.

Supported input kinds
---------------------

1) ``csv``
   The buffer is decoded with the given encoding (``utf-8-sig`` by default,
   so that a leading BOM is ignored). Every cell is read as text. Blank
   lines are kept as empty rows so that display row numbers still match
   the lines of the file. Rows shorter than the widest row are padded
   with missing cells; rows longer than the header keep their extra cells.

2) ``xlsx``
   Only the first sheet is read. Cell formatting is ignored: cells are
   returned with their typed value (text, int, float, date).

Output schema
-------------
A list of rows, each a list of cells (``str | int | float | None`` and,
for xlsx, possibly ``datetime``). Row 0 is the header row. Missing cells
are ``None``.

Any decoding failure, unsupported kind or zero-row file raises ParseError.
"""

import csv
import io
import logging
import math
from pathlib import PurePath
from typing import Any, Literal, Optional

import pandas as pd

from .errors import ParseError

logger = logging.getLogger(__name__)

FileKind = Literal["csv", "xlsx"]

RawCell = Any
Grid = list[list[RawCell]]

SUPPORTED_KINDS = ("csv", "xlsx")


def kind_from_filename(filename: str) -> FileKind:
    """Return the file kind matching a filename extension.

    Raises:
        ParseError: if the extension is neither ``.csv`` nor ``.xlsx``.
    """
    suffix = PurePath(filename).suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_KINDS:
        raise ParseError(
            f"Unsupported file format {suffix or '(none)'!r}. "
            "Please upload CSV or Excel (.xlsx) files only."
        )
    return suffix  # type: ignore[return-value]


def _to_cell(value: Any) -> RawCell:
    """Map pandas missing values to None and numpy scalars to Python ones."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    # numpy scalars expose .item()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (TypeError, ValueError):
            return value
    return value


def _frame_to_grid(df: pd.DataFrame) -> Grid:
    grid: Grid = []
    for raw in df.itertuples(index=False, name=None):
        grid.append([_to_cell(v) for v in raw])
    return grid


def _csv_width(text: str) -> int:
    """Return the cell count of the widest CSV record."""
    try:
        records = csv.reader(io.StringIO(text))
        return max((len(record) for record in records), default=0)
    except csv.Error as exc:
        raise ParseError(f"CSV parsing error: {exc}") from exc


def _read_csv(buffer: bytes, encoding: str) -> pd.DataFrame:
    try:
        text = buffer.decode(encoding)
    except (UnicodeDecodeError, LookupError) as exc:
        raise ParseError(
            f"Could not decode CSV file with encoding {encoding!r}."
        ) from exc

    if text.strip() == "":
        raise ParseError("File is empty or could not be read.")

    # Ragged rows are padded to the widest one instead of rejected.
    width = _csv_width(text)
    try:
        return pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError as exc:
        raise ParseError("File is empty or could not be read.") from exc
    except (pd.errors.ParserError, ValueError) as exc:
        raise ParseError(f"CSV parsing error: {exc}") from exc


def _read_xlsx(buffer: bytes) -> pd.DataFrame:
    try:
        return pd.read_excel(
            io.BytesIO(buffer),
            sheet_name=0,
            header=None,
            dtype=object,
            engine="openpyxl",
        )
    except Exception as exc:  # noqa: BLE001
        raise ParseError(f"Could not read Excel file: {exc}") from exc


def parse_grid(
    buffer: bytes,
    kind: str,
    *,
    encoding: Optional[str] = None,
) -> Grid:
    """
    Read an uploaded file into a raw cell grid.

    Parameters
    ----------
    buffer:
        The whole file content.
    kind:
        Declared file kind, ``"csv"`` or ``"xlsx"`` (case-insensitive).
    encoding:
        Text encoding used for CSV files. Defaults to ``utf-8-sig``.

    Returns
    -------
    list[list]
        The grid, header row first.

    Raises
    ------
    ParseError
        If the kind is unsupported, the file cannot be decoded, or it
        contains zero rows.
    """
    kind_norm = str(kind).strip().lower()
    if kind_norm not in SUPPORTED_KINDS:
        raise ParseError(
            f"Unsupported file kind {kind!r}. Expected one of: "
            + ", ".join(SUPPORTED_KINDS)
        )

    if not buffer:
        raise ParseError("File is empty or could not be read.")

    if kind_norm == "csv":
        df = _read_csv(buffer, encoding or "utf-8-sig")
    else:
        df = _read_xlsx(buffer)

    grid = _frame_to_grid(df)
    if not grid:
        raise ParseError("File is empty or could not be read.")

    logger.debug("Parsed %s file into %d row(s)", kind_norm, len(grid))
    return grid
