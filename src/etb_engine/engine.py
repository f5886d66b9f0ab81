# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Rollup aggregation engine for ETB Engine.

This module derives financial statement views from a committed
TrialBalanceDataset. It is the single source of truth for every number
shown in statements or exports: presentation layers must use its output
instead of re-summing rows themselves.

1. Rollup
   ------
   The total of a classification node is defined recursively as:

       total(node) = sum(row amount for row in node.direct_rows)
                   + sum(total(child) for child in node.children)

   The same definition is used for every measure: current year, prior
   year, adjustments and final balance (current year + adjustments).

2. Statement sections
   -------------------
   A StatementSection is the rollup of one depth-1 classification (e.g.
   "Assets"). Its lines are the depth-2 children of that node, in
   presentation order ("Non-current" before "Current", then lexicographic),
   plus one line for rows attached directly to the depth-1 node. By
   construction ``total == sum(line amounts)``.

3. Statements
   -----------
   - Balance Sheet: Assets, Liabilities and Equity sections. When
     ``Assets != Liabilities + Equity`` a BalanceWarning is attached to the
     result; the dataset is still usable.
   - Income Statement: revenue and expense sections;
     ``net_result = revenue - expenses``. No sign flip is applied: which
     subtree is revenue and which is expense is decided by the
     classification, not by the engine.

4. Profit and loss
   ----------------
   The children of one configured node (by default "Equity > Current Year
   Profits & Losses") are listed in a configured order with a sign each.
   Subtotals such as Gross Profit or Net Profit After Tax are cumulative:
   each one is the signed sum of every line above it.

Notes
-----
Aggregation is side-effect free: it never mutates rows or nodes, and
calling it twice on the same dataset returns equal results. Rows without
any classification are not part of the tree and therefore not part of any
statement.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Optional, Union

from .classification import (
    ClassificationNode,
    ClassificationTree,
    Path,
    sibling_sort_key,
)
from .config import StatementsConfig
from .dataset import TrialBalanceDataset
from .errors import BalanceWarning
from .rows import ETBRow

logger = logging.getLogger(__name__)

Measure = Literal["current_year", "prior_year", "adjustments", "final_balance"]

StatementSource = Union[TrialBalanceDataset, ClassificationTree]

MEASURES: tuple[str, ...] = (
    "current_year",
    "prior_year",
    "adjustments",
    "final_balance",
)


def row_amount(row: ETBRow, measure: Measure = "current_year") -> int:
    """Return the amount of a row for the given measure."""
    if measure not in MEASURES:
        raise ValueError(
            f"Unknown measure {measure!r}. Expected one of: {', '.join(MEASURES)}"
        )
    return int(getattr(row, measure))


def direct_total(node: ClassificationNode, measure: Measure = "current_year") -> int:
    """Sum of the rows attached directly to a node."""
    return sum(row_amount(row, measure) for row in node.direct_rows)


def node_total(node: ClassificationNode, measure: Measure = "current_year") -> int:
    """Rollup total of a node: its direct rows plus all its descendants."""
    return direct_total(node, measure) + sum(
        node_total(child, measure) for child in node.children.values()
    )


def rollup(
    tree: ClassificationTree, measure: Measure = "current_year"
) -> dict[Path, int]:
    """Return the rollup total of every node, keyed by path tuple.

    Computed bottom-up in a single pass, so each row is summed once.
    """
    totals: dict[Path, int] = {}

    def visit(node: ClassificationNode) -> int:
        total = direct_total(node, measure)
        for child in node.children.values():
            total += visit(child)
        if node.path:
            totals[node.path] = total
        return total

    visit(tree.root)
    return totals


# ---------------------------------------------------------------------------
# Statement sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatementLine:
    """One line of a statement section.

    Attributes:
        label: Display label (the depth-2 classification label).
        path: Classification path of the line, as a string.
        amount: Rollup total for the current year.
        prior_amount: Rollup total for the prior year.
    """

    label: str
    path: str
    amount: int
    prior_amount: int = 0


@dataclass(frozen=True)
class StatementSection:
    """Rollup of one depth-1 classification subtree."""

    name: str
    total: int
    lines: tuple[StatementLine, ...] = ()
    prior_total: int = 0

    def as_pairs(self) -> list[tuple[str, int]]:
        """Lines as ``(label, amount)`` pairs."""
        return [(line.label, line.amount) for line in self.lines]


def build_section(
    tree: ClassificationTree,
    label: str,
    measure: Measure = "current_year",
) -> StatementSection:
    """Build the statement section of a depth-1 label.

    A label absent from the tree yields an empty section with a zero total.
    """
    top = tree.top_level(label)
    if top is None:
        return StatementSection(name=label, total=0)

    lines: list[StatementLine] = []
    if top.direct_rows:
        lines.append(
            StatementLine(
                label=label,
                path=top.key,
                amount=direct_total(top, measure),
                prior_amount=direct_total(top, "prior_year"),
            )
        )
    for child in top.sorted_children():
        lines.append(
            StatementLine(
                label=child.label,
                path=child.key,
                amount=node_total(child, measure),
                prior_amount=node_total(child, "prior_year"),
            )
        )

    return StatementSection(
        name=label,
        total=sum(line.amount for line in lines),
        lines=tuple(lines),
        prior_total=sum(line.prior_amount for line in lines),
    )


@dataclass(frozen=True)
class BalanceSheet:
    """Balance Sheet view: Assets, Liabilities and Equity sections."""

    assets: StatementSection
    liabilities: StatementSection
    equity: StatementSection
    warning: Optional[BalanceWarning] = None

    @property
    def sections(self) -> tuple[StatementSection, ...]:
        return (self.assets, self.liabilities, self.equity)

    @property
    def is_balanced(self) -> bool:
        return self.warning is None

    @property
    def difference(self) -> int:
        return self.assets.total - (self.liabilities.total + self.equity.total)


@dataclass(frozen=True)
class IncomeStatement:
    """Income Statement view: revenue and expense sections."""

    revenue: tuple[StatementSection, ...]
    expenses: tuple[StatementSection, ...]

    @property
    def sections(self) -> tuple[StatementSection, ...]:
        return self.revenue + self.expenses

    @property
    def total_revenue(self) -> int:
        return sum(s.total for s in self.revenue)

    @property
    def total_expenses(self) -> int:
        return sum(s.total for s in self.expenses)

    @property
    def net_result(self) -> int:
        return self.total_revenue - self.total_expenses

    @property
    def prior_net_result(self) -> int:
        return sum(s.prior_total for s in self.revenue) - sum(
            s.prior_total for s in self.expenses
        )


def _tree(source: StatementSource) -> ClassificationTree:
    if isinstance(source, TrialBalanceDataset):
        return source.tree
    return source


def check_balance(
    assets: int, liabilities: int, equity: int
) -> Optional[BalanceWarning]:
    """Return a BalanceWarning when ``assets != liabilities + equity``."""
    if assets == liabilities + equity:
        return None
    return BalanceWarning(assets, liabilities, equity)


def balance_sheet(
    source: StatementSource,
    labels: Optional[StatementsConfig] = None,
    measure: Measure = "current_year",
) -> BalanceSheet:
    """Compute the Balance Sheet of a dataset (or of a bare tree)."""
    labels = labels or StatementsConfig()
    tree = _tree(source)

    assets = build_section(tree, labels.assets, measure)
    liabilities = build_section(tree, labels.liabilities, measure)
    equity = build_section(tree, labels.equity, measure)

    warning = check_balance(assets.total, liabilities.total, equity.total)
    if warning is not None:
        logger.debug("%s", warning)

    return BalanceSheet(
        assets=assets, liabilities=liabilities, equity=equity, warning=warning
    )


def _sections(
    tree: ClassificationTree, names: Sequence[str], measure: Measure
) -> tuple[StatementSection, ...]:
    """Sections for the labels present in the tree, in configured order."""
    return tuple(
        build_section(tree, name, measure)
        for name in names
        if tree.top_level(name) is not None
    )


def income_statement(
    source: StatementSource,
    labels: Optional[StatementsConfig] = None,
    measure: Measure = "current_year",
) -> IncomeStatement:
    """Compute the Income Statement of a dataset (or of a bare tree)."""
    labels = labels or StatementsConfig()
    tree = _tree(source)
    return IncomeStatement(
        revenue=_sections(tree, labels.revenue, measure),
        expenses=_sections(tree, labels.expenses, measure),
    )


# ---------------------------------------------------------------------------
# Profit and loss
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProfitAndLossLine:
    """One line of the profit and loss view.

    Line amounts are already signed; subtotal amounts are the running sum
    of every signed line above them.
    """

    label: str
    amount: int
    prior_amount: int = 0
    is_subtotal: bool = False


@dataclass(frozen=True)
class ProfitAndLoss:
    """Signed P&L lines interleaved with cumulative subtotals."""

    lines: tuple[ProfitAndLossLine, ...]
    unmapped: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when no configured line was found in the tree."""
        return all(line.is_subtotal for line in self.lines)

    @property
    def subtotals(self) -> tuple[ProfitAndLossLine, ...]:
        return tuple(line for line in self.lines if line.is_subtotal)

    def subtotal(self, label: str) -> Optional[ProfitAndLossLine]:
        for line in self.subtotals:
            if line.label == label:
                return line
        return None

    @property
    def net_result(self) -> int:
        return sum(line.amount for line in self.lines if not line.is_subtotal)

    @property
    def prior_net_result(self) -> int:
        return sum(line.prior_amount for line in self.lines if not line.is_subtotal)


def profit_and_loss(
    source: StatementSource,
    labels: Optional[StatementsConfig] = None,
    measure: Measure = "current_year",
) -> ProfitAndLoss:
    """Compute the profit and loss view of a dataset (or of a bare tree).

    The children of the configured P&L node are taken in the configured
    order, each multiplied by its sign. Lines absent from the tree are
    skipped; subtotals are always emitted. Children of the P&L node that
    no entry names are reported in ``unmapped`` and left out of every
    total.
    """
    layout = (labels or StatementsConfig()).profit_and_loss
    node = _tree(source).get(layout.path)
    children = node.children if node is not None else {}

    lines: list[ProfitAndLossLine] = []
    running = prior_running = 0
    for entry in layout.entries:
        if entry.subtotal:
            lines.append(
                ProfitAndLossLine(
                    label=entry.label,
                    amount=running,
                    prior_amount=prior_running,
                    is_subtotal=True,
                )
            )
            continue
        child = children.get(entry.label)
        if child is None:
            continue
        amount = entry.sign * node_total(child, measure)
        prior_amount = entry.sign * node_total(child, "prior_year")
        running += amount
        prior_running += prior_amount
        lines.append(
            ProfitAndLossLine(
                label=entry.label, amount=amount, prior_amount=prior_amount
            )
        )

    named = {entry.label for entry in layout.entries if not entry.subtotal}
    unmapped = tuple(
        label
        for label in sorted(children, key=sibling_sort_key)
        if label not in named
    )
    if unmapped:
        logger.debug("P&L labels without a layout entry: %s", ", ".join(unmapped))
    return ProfitAndLoss(lines=tuple(lines), unmapped=unmapped)
