from pathlib import Path

import pytest

from etb_engine.errors import EmptyResultError
from etb_engine.rows import (
    ClassificationRule,
    ETBRow,
    apply_auto_classification,
    auto_classify,
    ensure_groupings,
    filter_empty_rows,
    load_classification_rules,
    make_grouping,
    split_classification,
)


def row(code="", name="", cy=0, py=0, grouping=(), **kwargs) -> ETBRow:
    return ETBRow(
        code=code,
        account_name=name,
        current_year=cy,
        prior_year=py,
        grouping=make_grouping(list(grouping)),
        **kwargs,
    )


def test_filter_keeps_rows_with_any_information():
    rows = [
        row(code="1000"),
        row(name="Cash"),
        row(cy=5),
        row(py=99),  # prior year alone does not keep a row
        row(),
    ]
    kept = filter_empty_rows(rows)
    assert kept == rows[:3]


def test_filter_preserves_order():
    rows = [row(code=str(i)) for i in range(5)]
    assert filter_empty_rows(rows) == rows


def test_filter_raises_when_nothing_survives():
    with pytest.raises(EmptyResultError):
        filter_empty_rows([row(), row(py=10)])


def test_final_balance_and_classification():
    r = row(
        code="1",
        cy=100,
        adjustments=-30,
        grouping=("Assets", "", "Current", None),
    )
    assert r.final_balance == 70
    assert r.grouping == ("Assets", None, "Current", None)
    assert r.classification_path == ("Assets", "Current")
    assert r.classification == "Assets > Current"


def test_split_classification():
    assert split_classification("Assets > Current > Cash") == (
        "Assets",
        "Current",
        "Cash",
        None,
    )
    assert split_classification(None) == (None, None, None, None)
    assert split_classification("A > B > C > D > E") == ("A", "B", "C", "D")


def test_ensure_groupings_only_fills_unclassified_rows():
    bare = row(code="1")
    filled = ensure_groupings(bare, "Assets > Current > Cash")
    assert filled.grouping == ("Assets", "Current", "Cash", None)

    partial = row(code="2", grouping=("Liabilities",))
    assert ensure_groupings(partial, "Assets > Current > Cash") is partial

    assert ensure_groupings(bare, None) is bare


def test_ensure_groupings_never_mixes_two_paths():
    """A row grouped under Assets is not moved under a Liabilities column."""
    own = row(code="3", grouping=("Assets", None, "Cash"))
    kept = ensure_groupings(own, "Liabilities > Current > Trade Payables")

    assert kept is own
    assert kept.classification_path == ("Assets", "Cash")


def test_auto_classify_uses_first_matching_rule():
    assert auto_classify("Main Bank Account") == (
        "Assets > Current > Cash & Cash Equivalents"
    )
    assert auto_classify("Salaries and wages") == (
        "Expenses > Administrative Expenses > Payroll"
    )
    assert auto_classify("Suspense") == ""


def test_apply_auto_classification_only_touches_unclassified_rows():
    rows = [
        row(code="1", name="Petty cash"),
        row(code="2", name="Bank loan", grouping=("Liabilities", "Current")),
        row(code="3", name="Suspense"),
    ]
    out = apply_auto_classification(rows)

    assert out[0].classification == "Assets > Current > Cash & Cash Equivalents"
    assert out[1] is rows[1]
    assert out[2].classification == ""


def test_apply_auto_classification_with_custom_rules():
    rules = [ClassificationRule(("suspense",), "Assets > Current > Other")]
    out = apply_auto_classification([row(code="3", name="Suspense")], rules)
    assert out[0].classification == "Assets > Current > Other"


def test_load_classification_rules(tmp_path: Path):
    path = tmp_path / "rules.csv"
    path.write_text(
        "Keywords,Classification\n"
        "grant; subsidy,Income > Other > Grants\n"
        ",Income > Other > Ignored\n",
        encoding="utf-8",
    )

    rules = load_classification_rules(str(path))

    assert rules == [
        ClassificationRule(("grant", "subsidy"), "Income > Other > Grants")
    ]


def test_load_classification_rules_requires_both_columns(tmp_path: Path):
    path = tmp_path / "rules.csv"
    path.write_text("keywords\nbank\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_classification_rules(str(path))
