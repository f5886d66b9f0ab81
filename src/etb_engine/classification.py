# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Classification tree for ETB Engine.

Each ETB row carries up to four grouping labels (Grouping 1..4). The
non-empty labels, in order, form the row's classification path, e.g.:

    ("Assets", "Current", "Cash & Cash Equivalents")
    → "Assets > Current > Cash & Cash Equivalents"

This module builds a tree out of those paths:
- every distinct path and every strict prefix of it becomes a node,
- nodes are linked to their parent by the next path segment,
- rows are attached to the node whose path equals their own path,
- a node is a leaf iff no deeper path extends it.

Rows without any grouping label are unclassified: they are kept aside in
``ClassificationTree.unclassified_rows`` and are not part of the tree.

A path that is both used by some row and extended by another row is NOT a
leaf: the deeper path wins. The shallower rows stay attached to their node
and still roll up, but the node is not offered as a selectable
classification.

The module also exposes the ordering policy used by presentation layers
(``sibling_sort_key``) and the grouping used by the classification browser
(``browser_groups``).

This module exposes:
- ClassificationNode:  One node of the tree.
- ClassificationTree:  The tree plus a path index over its nodes.
- BrowserGroup:        Depth-1 / depth-2 grouping of selectable leaves.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Optional, Union

from .rows import PATH_SEPARATOR, ETBRow

logger = logging.getLogger(__name__)

Path = tuple[str, ...]

# Sibling labels that do not follow plain lexicographic order.
PINNED_SIBLING_ORDER = ("Non-current", "Current")


def path_key(path: Path) -> str:
    """Return the string form of a path (its key in the tree index)."""
    return PATH_SEPARATOR.join(path)


def parse_path(key: str) -> Path:
    """Inverse of ``path_key``."""
    if not key:
        return ()
    return tuple(part.strip() for part in key.split(PATH_SEPARATOR))


def classification_path(row: ETBRow) -> Path:
    """Return the classification path of a row (may be empty)."""
    return row.classification_path


def sibling_sort_key(label: str) -> tuple[int, str]:
    """Sort key for sibling labels.

    "Non-current" comes first, then "Current", then every other label in
    lexicographic order.
    """
    if label in PINNED_SIBLING_ORDER:
        return (PINNED_SIBLING_ORDER.index(label), "")
    return (len(PINNED_SIBLING_ORDER), label)


@dataclass
class ClassificationNode:
    """A node of the classification tree.

    Attributes:
        path: The node's own key (empty tuple for the root).
        children: Next-level label → child node.
        direct_rows: Rows whose full path equals this node's path.
    """

    path: Path
    children: dict[str, "ClassificationNode"] = field(default_factory=dict)
    direct_rows: list[ETBRow] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.path[-1] if self.path else ""

    @property
    def key(self) -> str:
        return path_key(self.path)

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def sorted_children(self) -> list["ClassificationNode"]:
        """Children in presentation order (see ``sibling_sort_key``)."""
        return [
            self.children[label]
            for label in sorted(self.children, key=sibling_sort_key)
        ]

    def walk(self) -> Iterator["ClassificationNode"]:
        """Yield this node and its descendants, depth-first, in sibling order."""
        yield self
        for child in self.sorted_children():
            yield from child.walk()

    def iter_rows(self) -> Iterator[ETBRow]:
        """Yield every row attached to this node or to a descendant."""
        for node in self.walk():
            yield from node.direct_rows


class ClassificationTree:
    """Tree of classification nodes built from ETB rows.

    Nodes are also indexed by their path tuple, so that lookups never scan
    other paths. Labels that themselves contain the display separator stay
    distinct from the deeper path their string form would suggest.
    """

    def __init__(self) -> None:
        self.root = ClassificationNode(path=())
        self._by_key: dict[Path, ClassificationNode] = {(): self.root}
        self.unclassified_rows: list[ETBRow] = []

    @staticmethod
    def build(rows: Iterable[ETBRow]) -> "ClassificationTree":
        """Build a tree from rows.

        Rows sharing the same path all attach to the same node, in input
        order.
        """
        tree = ClassificationTree()
        for row in rows:
            path = classification_path(row)
            if not path:
                tree.unclassified_rows.append(row)
                continue
            tree._insert(path).direct_rows.append(row)

        logger.debug(
            "Built classification tree: %d node(s), %d leaf(s), %d unclassified row(s)",
            len(tree._by_key) - 1,
            sum(1 for _ in tree.leaves()),
            len(tree.unclassified_rows),
        )
        return tree

    def _insert(self, path: Path) -> ClassificationNode:
        """Insert a path and all its strict prefixes; return the deepest node."""
        node = self.root
        for depth, label in enumerate(path, start=1):
            child = node.children.get(label)
            if child is None:
                child = ClassificationNode(path=path[:depth])
                node.children[label] = child
                self._by_key[child.path] = child
            node = child
        return node

    def get(self, path: Union[str, Path]) -> Optional[ClassificationNode]:
        """Return the node for a path tuple, or None.

        A ``" > "`` string is accepted for convenience and split into a path.
        """
        key = parse_path(path) if isinstance(path, str) else tuple(path)
        return self._by_key.get(key)

    def __contains__(self, path: object) -> bool:
        if isinstance(path, (str, tuple)):
            return self.get(path) is not None
        return False

    def __len__(self) -> int:
        """Number of nodes, root excluded."""
        return len(self._by_key) - 1

    def nodes(self) -> list[ClassificationNode]:
        """All nodes except the root, depth-first in presentation order."""
        return list(self.root.walk())[1:]

    def leaves(self) -> Iterator[ClassificationNode]:
        for node in self.root.walk():
            if node is not self.root and node.is_leaf:
                yield node

    def top_level(self, label: str) -> Optional[ClassificationNode]:
        return self.root.children.get(label)

    def classifications(self) -> list[str]:
        """Distinct classification strings used by at least one row."""
        return [node.key for node in self.nodes() if node.direct_rows]


# ---------------------------------------------------------------------------
# Classification browser (presentation policy)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BrowserGroup:
    """Selectable classifications sharing the same depth-1 and depth-2 labels."""

    title: str
    subtitle: str
    classifications: tuple[str, ...]


def browser_groups(
    tree: ClassificationTree, min_depth: int = 3
) -> list[BrowserGroup]:
    """Group selectable classifications for the classification browser.

    A node is selectable when it is a leaf at depth >= ``min_depth``. Nodes
    are grouped by their depth-1 label (title) then depth-2 label
    (subtitle). Titles and subtitles follow ``sibling_sort_key``, and the
    classifications inside a group are sorted lexicographically.
    """
    grouped: dict[str, dict[str, list[str]]] = {}
    for node in tree.leaves():
        if node.depth < max(min_depth, 2):
            continue
        title, subtitle = node.path[0], node.path[1]
        grouped.setdefault(title, {}).setdefault(subtitle, []).append(node.key)

    out: list[BrowserGroup] = []
    for title in sorted(grouped, key=sibling_sort_key):
        subgroups = grouped[title]
        for subtitle in sorted(subgroups, key=sibling_sort_key):
            out.append(
                BrowserGroup(
                    title=title,
                    subtitle=subtitle,
                    classifications=tuple(sorted(subgroups[subtitle])),
                )
            )
    return out
