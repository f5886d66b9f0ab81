# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for ETB Engine.

An ETB always carries two amount columns: the current year and the prior
year. This module derives the labels shown above those columns from the
engagement's fiscal year end.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .config import FiscalYear

CURRENT_YEAR_LABEL = "Current Year"
PRIOR_YEAR_LABEL = "Prior Year"


@dataclass(frozen=True)
class YearLabels:
    """Column labels for the current and prior year amounts."""

    current: str
    prior: str

    def as_tuple(self) -> tuple[str, str]:
        return (self.current, self.prior)


def year_labels(year_end: Optional[date]) -> YearLabels:
    """
    Return the labels of the current and prior year columns.

    With a year end of 2024-12-31 the labels are "2024" and "2023". A
    fiscal year ending early in a calendar year is still named after the
    calendar year of its end date (2025-03-31 → "2025", "2024").

    Without a year end, the generic "Current Year" / "Prior Year" labels
    are returned.
    """
    if year_end is None:
        return YearLabels(current=CURRENT_YEAR_LABEL, prior=PRIOR_YEAR_LABEL)
    return YearLabels(current=str(year_end.year), prior=str(year_end.year - 1))


def labels_for(fy: FiscalYear) -> YearLabels:
    """Year labels for a configured fiscal year."""
    return year_labels(fy.end_date)
