# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for ETB Engine.

This module turns aggregator output into pandas DataFrames ready for display
or CSV export. It never re-sums rows: every amount comes from the
StatementSection / StatementLine objects built by ``engine``.

The main views are:

- statement view:       one level-0 row per section followed by its level-1
                        lines (``sections_to_dataframe``),
- profit and loss view: signed lines with cumulative subtotals
                        (``profit_and_loss_to_dataframe``),
- rows view:            the committed ETB rows with their classification
                        and final balance (``rows_to_dataframe``),
- classification view:  the selectable classifications grouped by title
                        and subtitle (``browser_to_dataframe``).
"""

from collections.abc import Iterable, Sequence
from typing import Optional

import pandas as pd

from .classification import BrowserGroup
from .engine import ProfitAndLoss, StatementSection
from .periods import YearLabels
from .rows import ETBRow

STATEMENT_COLUMNS = ["display_order", "level", "name", "amount", "prior_amount"]

ROW_COLUMNS = [
    "row_number",
    "code",
    "account_name",
    "current_year",
    "prior_year",
    "adjustments",
    "final_balance",
    "classification",
]

BROWSER_COLUMNS = ["title", "subtitle", "classification"]


def _renumber_display_order(
    df: pd.DataFrame, start: int = 10, step: int = 10
) -> pd.DataFrame:
    """Reassign display_order to be strictly sequential: start, start+step, ...
    Preserves the current order of the lines (as it appears in df).
    """
    df = df.copy()
    df = df.reset_index(drop=True)
    df["display_order"] = [start + i * step for i in range(len(df))]
    return df


def _reorder_columns(df: pd.DataFrame, ordered: Sequence[str]) -> pd.DataFrame:
    cols = [c for c in ordered if c in df.columns]
    return df[cols]


def sections_to_dataframe(
    sections: Iterable[StatementSection],
    labels: Optional[YearLabels] = None,
) -> pd.DataFrame:
    """
    Convert statement sections into a display DataFrame.

    Each section contributes one level-0 row (its name and total) followed by
    one level-1 row per line, in the order chosen by the aggregator.

    Args:
        sections:
            Sections of a BalanceSheet or IncomeStatement.
        labels:
            Optional year labels. When given, the ``amount`` and
            ``prior_amount`` columns are renamed to them (e.g. "2024",
            "2023") after ordering.

    Returns:
        A DataFrame with columns display_order, level, name, amount,
        prior_amount; display_order is renumbered 10, 20, 30, ...
    """
    records: list[dict[str, object]] = []
    for section in sections:
        records.append(
            {
                "level": 0,
                "name": section.name,
                "amount": section.total,
                "prior_amount": section.prior_total,
            }
        )
        for line in section.lines:
            records.append(
                {
                    "level": 1,
                    "name": line.label,
                    "amount": line.amount,
                    "prior_amount": line.prior_amount,
                }
            )

    if not records:
        df = pd.DataFrame(columns=STATEMENT_COLUMNS)
    else:
        df = _renumber_display_order(pd.DataFrame(records))
        df = _reorder_columns(df, STATEMENT_COLUMNS)

    if labels is not None:
        df = df.rename(columns={"amount": labels.current, "prior_amount": labels.prior})
    return df


def profit_and_loss_to_dataframe(
    pnl: ProfitAndLoss,
    labels: Optional[YearLabels] = None,
) -> pd.DataFrame:
    """
    Convert a profit and loss view into a display DataFrame.

    Signed lines are level 1 and subtotals level 0, in layout order. The
    columns match ``sections_to_dataframe`` so both can be exported to one
    file.
    """
    records = [
        {
            "level": 0 if line.is_subtotal else 1,
            "name": line.label,
            "amount": line.amount,
            "prior_amount": line.prior_amount,
        }
        for line in pnl.lines
    ]
    if not records:
        df = pd.DataFrame(columns=STATEMENT_COLUMNS)
    else:
        df = _renumber_display_order(pd.DataFrame(records))
        df = _reorder_columns(df, STATEMENT_COLUMNS)

    if labels is not None:
        df = df.rename(columns={"amount": labels.current, "prior_amount": labels.prior})
    return df


def rows_to_dataframe(rows: Iterable[ETBRow]) -> pd.DataFrame:
    """Committed ETB rows as a DataFrame, in dataset order."""
    records = [
        {
            "row_number": row.row_number,
            "code": row.code,
            "account_name": row.account_name,
            "current_year": row.current_year,
            "prior_year": row.prior_year,
            "adjustments": row.adjustments,
            "final_balance": row.final_balance,
            "classification": row.classification,
        }
        for row in rows
    ]
    if not records:
        return pd.DataFrame(columns=ROW_COLUMNS)
    return pd.DataFrame(records, columns=ROW_COLUMNS)


def browser_to_dataframe(groups: Iterable[BrowserGroup]) -> pd.DataFrame:
    """Flatten browser groups into one row per selectable classification."""
    records = [
        {"title": g.title, "subtitle": g.subtitle, "classification": c}
        for g in groups
        for c in g.classifications
    ]
    if not records:
        return pd.DataFrame(columns=BROWSER_COLUMNS)
    return pd.DataFrame(records, columns=BROWSER_COLUMNS)
