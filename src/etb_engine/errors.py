# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Error taxonomy for ETB Engine.

Every fatal problem met while turning an uploaded file into a committed
trial-balance dataset is reported through one of the exceptions below.
They all derive from ``ETBError``, itself a ``ValueError``, so callers that
only care about "bad input" can keep catching ``ValueError``.

Fatal errors (nothing is committed):
- ParseError:          the file cannot be decoded or has zero rows.
- SchemaError:         required columns missing, or no data rows.
- InvalidRowsError:    one or more rows carry non-numeric amounts; wraps
                       every collected RowValidationError.
- EmptyResultError:    every data row was discarded by the row filter.
- UploadTooLargeError: the buffer exceeds the configured size ceiling.
- ConfigurationError:  a configured resource (such as the classification
                       rules file) is missing or unreadable.

Non-fatal:
- BalanceWarning:      Assets != Liabilities + Equity. Instances are
                       attached to successful results, never raised.
"""

from collections.abc import Iterable, Sequence
from typing import Any


class ETBError(ValueError):
    """Base class for every fatal ETB ingestion error."""

    def messages(self) -> list[str]:
        """Return the user-facing messages carried by this error."""
        return [str(self)]


class ParseError(ETBError):
    """Raised when an uploaded file cannot be read into a cell grid."""


class SchemaError(ETBError):
    """Raised when the header row or the overall grid shape is unusable.

    Attributes:
        problems: Every problem found, in display order.
        missing_columns: Required column names absent from the header.
    """

    def __init__(
        self, problems: Sequence[str], missing_columns: Sequence[str] = ()
    ) -> None:
        self.problems = list(problems)
        self.missing_columns = list(missing_columns)
        super().__init__("; ".join(self.problems))

    def messages(self) -> list[str]:
        return list(self.problems)


class RowValidationError(ETBError):
    """A single row whose amount cell could not be read as a number.

    Row numbers are 1-based and header-inclusive: the first data row is
    reported as row 2.
    """

    def __init__(self, row_number: int, column: str, raw_value: Any) -> None:
        self.row_number = row_number
        self.column = column
        self.raw_value = raw_value
        super().__init__(
            f"Row {row_number}: {column} must be a number (got {raw_value!r})"
        )


class InvalidRowsError(ETBError):
    """Raised once with every RowValidationError collected during validation."""

    def __init__(self, errors: Iterable[RowValidationError]) -> None:
        self.errors = list(errors)
        rows = sorted({e.row_number for e in self.errors})
        super().__init__(
            f"{len(self.errors)} invalid value(s) found in row(s): "
            + ", ".join(str(r) for r in rows)
        )

    def messages(self) -> list[str]:
        return [str(e) for e in self.errors]


class EmptyResultError(ETBError):
    """Raised when filtering leaves no data rows to commit."""


class UploadTooLargeError(ETBError):
    """Raised when an upload exceeds the configured size ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Upload of {size} bytes exceeds the {limit} bytes limit")


class ConfigurationError(ETBError):
    """Raised when the configuration points at a missing or unusable resource."""


class BalanceWarning(UserWarning):
    """Balance sheet totals do not reconcile.

    Attributes:
        assets: Total of the assets section.
        liabilities: Total of the liabilities section.
        equity: Total of the equity section.
        difference: ``assets - (liabilities + equity)``.
    """

    def __init__(self, assets: int, liabilities: int, equity: int) -> None:
        self.assets = assets
        self.liabilities = liabilities
        self.equity = equity
        self.difference = assets - (liabilities + equity)
        super().__init__(
            f"Balance sheet does not balance: assets {assets} != "
            f"liabilities {liabilities} + equity {equity} "
            f"(difference {self.difference})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BalanceWarning):
            return NotImplemented
        return (self.assets, self.liabilities, self.equity) == (
            other.assets,
            other.liabilities,
            other.equity,
        )

    def __hash__(self) -> int:
        return hash((self.assets, self.liabilities, self.equity))
