from etb_engine.classification import (
    ClassificationTree,
    browser_groups,
    parse_path,
    path_key,
    sibling_sort_key,
)
from etb_engine.rows import ETBRow, make_grouping


def row(code, cy, *labels) -> ETBRow:
    return ETBRow(
        code=code,
        account_name=f"Account {code}",
        current_year=cy,
        prior_year=0,
        grouping=make_grouping(list(labels)),
    )


def test_every_prefix_is_a_node():
    tree = ClassificationTree.build([row("1", 10, "Assets", "Current", "Cash")])

    assert "Assets" in tree
    assert "Assets > Current" in tree
    assert ("Assets", "Current", "Cash") in tree
    assert len(tree) == 3

    node = tree.get("Assets > Current > Cash")
    assert node is not None
    assert node.depth == 3
    assert node.label == "Cash"
    assert [r.code for r in node.direct_rows] == ["1"]
    assert tree.get("Assets").direct_rows == []


def test_shared_paths_collapse_into_one_node():
    rows = [
        row("1", 10, "Assets", "Current", "Cash"),
        row("2", 20, "Assets", "Current", "Cash"),
    ]
    tree = ClassificationTree.build(rows)

    assert len(tree) == 3
    assert [r.code for r in tree.get("Assets > Current > Cash").direct_rows] == [
        "1",
        "2",
    ]


def test_label_containing_separator_does_not_merge_with_deeper_path():
    """("A > B",) and ("A", "B") render alike but stay separate nodes."""
    rows = [
        row("1", 10, "Assets > Current", "Cash"),
        row("2", 20, "Assets", "Current", "Cash"),
    ]
    tree = ClassificationTree.build(rows)

    assert len(tree) == 5
    merged = tree.get(("Assets > Current", "Cash"))
    nested = tree.get(("Assets", "Current", "Cash"))
    assert merged is not nested
    assert [r.code for r in merged.direct_rows] == ["1"]
    assert [r.code for r in nested.direct_rows] == ["2"]
    assert tree.get(("Assets > Current",)).is_leaf is False


def test_deeper_path_wins_the_leaf():
    """A path used by a row but extended by another is not a leaf."""
    rows = [
        row("1", 10, "Assets", "Current"),
        row("2", 20, "Assets", "Current", "Cash"),
    ]
    tree = ClassificationTree.build(rows)

    assert not tree.get("Assets > Current").is_leaf
    assert tree.get("Assets > Current > Cash").is_leaf
    assert [n.key for n in tree.leaves()] == ["Assets > Current > Cash"]
    # The shallower row is still attached to its own node.
    assert [r.code for r in tree.get("Assets > Current").direct_rows] == ["1"]
    assert tree.classifications() == ["Assets > Current", "Assets > Current > Cash"]


def test_unclassified_rows_are_kept_aside():
    rows = [row("1", 10), row("2", 20, "Equity", "Share Capital")]
    tree = ClassificationTree.build(rows)

    assert [r.code for r in tree.unclassified_rows] == ["1"]
    assert list(tree.get("Equity").iter_rows()) == [rows[1]]


def test_sibling_order_pins_non_current_then_current():
    labels = ["Other", "Current", "Deferred", "Non-current"]
    assert sorted(labels, key=sibling_sort_key) == [
        "Non-current",
        "Current",
        "Deferred",
        "Other",
    ]


def test_path_key_round_trip():
    assert path_key(("A", "B")) == "A > B"
    assert parse_path("A > B") == ("A", "B")
    assert parse_path("") == ()


def test_browser_groups_order_and_depth():
    rows = [
        row("1", 1, "Liabilities", "Current", "Trade Payables"),
        row("2", 1, "Assets", "Current", "Trade Receivables"),
        row("3", 1, "Assets", "Current", "Cash"),
        row("4", 1, "Assets", "Non-current", "PPE"),
        row("5", 1, "Equity", "Share Capital"),  # depth 2: not selectable
        row("6", 1, "Assets", "Current", "Cash", "Petty"),
    ]
    groups = browser_groups(ClassificationTree.build(rows))

    assert [(g.title, g.subtitle) for g in groups] == [
        ("Assets", "Non-current"),
        ("Assets", "Current"),
        ("Liabilities", "Current"),
    ]
    assert groups[0].classifications == ("Assets > Non-current > PPE",)
    assert groups[1].classifications == (
        "Assets > Current > Cash > Petty",
        "Assets > Current > Trade Receivables",
    )


def test_browser_groups_min_depth_two():
    rows = [row("5", 1, "Equity", "Share Capital")]
    groups = browser_groups(ClassificationTree.build(rows), min_depth=2)
    assert [g.classifications for g in groups] == [("Equity > Share Capital",)]
