# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Row utilities for ETB Engine.

This module holds the typed representation of one Extended Trial Balance
line (ETBRow) and the helpers applied to rows between validation and
classification.

Responsibilities:
- Define ETBRow, the strongly-typed record built from a validated grid row.
- Drop rows that carry no information (empty code, empty account name and
  a zero current-year amount).
- Fill missing grouping labels from a ``Classification`` path when the
  upload carries one instead of the four ``Grouping`` columns.
- Suggest a default classification from the account name using keyword
  rules (opt-in), the same way the ETB screen pre-fills new uploads.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Optional

import pandas as pd

from .errors import EmptyResultError

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "

Grouping = tuple[Optional[str], Optional[str], Optional[str], Optional[str]]

EMPTY_GROUPING: Grouping = (None, None, None, None)


@dataclass(frozen=True)
class ETBRow:
    """One account line of an Extended Trial Balance.

    Attributes:
        code: Account code (may be empty).
        account_name: Account label (may be empty).
        current_year: Normalized current-year balance.
        prior_year: Normalized prior-year balance.
        grouping: Up to four hierarchical labels (Grouping 1..4).
        adjustments: Audit adjustments booked on top of the current year.
        row_number: 1-based display row in the uploaded file (header is 1).
        linked_files: Opaque references to supporting documents.
    """

    code: str
    account_name: str
    current_year: int
    prior_year: int
    grouping: Grouping = EMPTY_GROUPING
    adjustments: int = 0
    row_number: int = 0
    linked_files: frozenset[str] = field(default_factory=frozenset)

    @property
    def final_balance(self) -> int:
        return self.current_year + self.adjustments

    @property
    def classification_path(self) -> tuple[str, ...]:
        """Non-empty grouping labels, in order."""
        return tuple(g for g in self.grouping if g)

    @property
    def classification(self) -> str:
        return PATH_SEPARATOR.join(self.classification_path)

    def is_empty(self) -> bool:
        return self.code == "" and self.account_name == "" and self.current_year == 0


def make_grouping(labels: Sequence[Optional[str]]) -> Grouping:
    """Build a 4-slot grouping tuple, trimming labels and blanking empties."""
    cleaned: list[Optional[str]] = []
    for label in list(labels)[:4]:
        text = "" if label is None else str(label).strip()
        cleaned.append(text or None)
    while len(cleaned) < 4:
        cleaned.append(None)
    return (cleaned[0], cleaned[1], cleaned[2], cleaned[3])


def split_classification(classification: Optional[str]) -> Grouping:
    """Split a ``"A > B > C"`` classification string into a grouping tuple.

    Examples:
        "Assets > Current > Cash" → ("Assets", "Current", "Cash", None)
        "" or None → (None, None, None, None)
    """
    if not classification:
        return EMPTY_GROUPING
    return make_grouping(str(classification).split(PATH_SEPARATOR))


def filter_empty_rows(rows: Iterable[ETBRow]) -> list[ETBRow]:
    """Drop rows that carry no information.

    A row survives if ``code != "" or account_name != "" or current_year != 0``.

    Raises:
        EmptyResultError: if no row survives.
    """
    kept: list[ETBRow] = []
    dropped = 0
    for row in rows:
        if row.is_empty():
            dropped += 1
            logger.debug("Row %d is empty, ignored", row.row_number)
            continue
        kept.append(row)

    if not kept:
        raise EmptyResultError("No valid data rows found.")

    if dropped:
        logger.info("Ignored %d empty row(s), kept %d", dropped, len(kept))
    return kept


# ---------------------------------------------------------------------------
# Grouping fallbacks
# ---------------------------------------------------------------------------


def ensure_groupings(row: ETBRow, classification: Optional[str]) -> ETBRow:
    """Take the grouping labels from a classification string.

    A row that already has any grouping label keeps its own path untouched;
    the two sources are never mixed.
    """
    if row.classification_path:
        return row
    extracted = split_classification(classification)
    if not any(extracted):
        return row
    return replace(row, grouping=extracted)


@dataclass(frozen=True)
class ClassificationRule:
    """Keyword rule: any keyword found in the account name selects the
    classification."""

    keywords: tuple[str, ...]
    classification: str


DEFAULT_CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ("bank", "cash", "petty"), "Assets > Current > Cash & Cash Equivalents"
    ),
    ClassificationRule(
        ("trade receivable", "trade debtor", "accounts receivable", "debtors"),
        "Assets > Current > Trade Receivables",
    ),
    ClassificationRule(
        ("prepayment", "prepaid", "advance"), "Assets > Current > Prepayments"
    ),
    ClassificationRule(
        ("inventory", "stock", "raw materials"), "Assets > Current > Inventory"
    ),
    ClassificationRule(
        ("vat recoverable", "input vat", "tax receivable"),
        "Assets > Current > Recoverable VAT/Tax",
    ),
    ClassificationRule(
        ("property", "plant", "equipment", "machinery", "furniture"),
        "Assets > Non-current > Property, Plant & Equipment",
    ),
    ClassificationRule(
        ("trade payable", "creditors", "accounts payable", "supplier"),
        "Liabilities > Current > Trade Payables",
    ),
    ClassificationRule(("accrual", "accrued"), "Liabilities > Current > Accruals"),
    ClassificationRule(
        ("vat payable", "output vat", "tax payable"),
        "Liabilities > Current > Taxes Payable",
    ),
    ClassificationRule(
        ("loan", "borrowing", "mortgage"),
        "Liabilities > Non-current > Borrowings (Long-term)",
    ),
    ClassificationRule(
        ("share capital", "ordinary shares"), "Equity > Share Capital"
    ),
    ClassificationRule(
        ("retained earnings", "profit brought forward"),
        "Equity > Retained Earnings",
    ),
    ClassificationRule(
        ("sales", "revenue", "turnover", "income"),
        "Income > Operating > Revenue (Goods)",
    ),
    ClassificationRule(
        ("salary", "wages", "payroll"),
        "Expenses > Administrative Expenses > Payroll",
    ),
    ClassificationRule(
        ("rent", "utilities", "electricity"),
        "Expenses > Administrative Expenses > Rent & Utilities",
    ),
    ClassificationRule(
        ("office", "admin", "stationery"),
        "Expenses > Administrative Expenses > Office/Admin",
    ),
    ClassificationRule(
        ("marketing", "advertising"),
        "Expenses > Administrative Expenses > Marketing",
    ),
    ClassificationRule(
        ("insurance", "premium"),
        "Expenses > Administrative Expenses > Insurance",
    ),
    ClassificationRule(
        ("depreciation", "amortisation"),
        "Expenses > Administrative Expenses > Depreciation & Amortisation",
    ),
)


def auto_classify(
    account_name: str,
    rules: Sequence[ClassificationRule] = DEFAULT_CLASSIFICATION_RULES,
) -> str:
    """Return the classification suggested for an account name.

    Rules are tried in order; the first rule with a keyword contained in the
    lower-cased account name wins. Returns "" when nothing matches.
    """
    name = account_name.lower()
    for rule in rules:
        if any(keyword in name for keyword in rule.keywords):
            return rule.classification
    return ""


def apply_auto_classification(
    rows: Iterable[ETBRow],
    rules: Sequence[ClassificationRule] = DEFAULT_CLASSIFICATION_RULES,
) -> list[ETBRow]:
    """Classify rows that have no grouping at all, leaving the others as-is."""
    out: list[ETBRow] = []
    for row in rows:
        if row.classification_path:
            out.append(row)
            continue
        suggestion = auto_classify(row.account_name, rules)
        if suggestion:
            logger.debug(
                "Row %d %r auto-classified as %r",
                row.row_number,
                row.account_name,
                suggestion,
            )
            row = replace(row, grouping=split_classification(suggestion))
        out.append(row)
    return out


def load_classification_rules(path: str) -> list[ClassificationRule]:
    """Load keyword classification rules from a CSV file.

    Expected structure
    ------------------
    Two columns, matched case-insensitively and trimmed:
        - 'keywords': semicolon-separated keywords
        - 'classification': the ``" > "`` path to assign

    Raises:
        ValueError: if either column is missing.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    col_map = {str(c).strip().lower(): c for c in df.columns}
    for required in ("keywords", "classification"):
        if required not in col_map:
            raise ValueError(
                f"Could not find a '{required}' column in classification rules "
                f"file {path}."
            )

    rules: list[ClassificationRule] = []
    for _, r in df.iterrows():
        keywords = tuple(
            k.strip().lower()
            for k in str(r[col_map["keywords"]]).split(";")
            if k.strip()
        )
        classification = str(r[col_map["classification"]]).strip()
        if keywords and classification:
            rules.append(ClassificationRule(keywords, classification))
    return rules
