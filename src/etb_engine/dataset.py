# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""Committed trial-balance dataset: filtered rows plus their classification tree."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .classification import ClassificationTree
from .rows import ETBRow


@dataclass(frozen=True)
class TrialBalanceDataset:
    """Validated, filtered and classified ETB rows for one engagement.

    A dataset is created once per successful upload and replaced wholesale
    on the next one. Statements are always derived from it, never stored.
    """

    engagement_id: str
    rows: tuple[ETBRow, ...]
    tree: ClassificationTree = field(compare=False, repr=False)
    source_kind: Optional[str] = None
    source_label: Optional[str] = None
    created_at: Optional[datetime] = None

    @staticmethod
    def from_rows(
        engagement_id: str,
        rows: Iterable[ETBRow],
        *,
        source_kind: Optional[str] = None,
        source_label: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "TrialBalanceDataset":
        rows_t = tuple(rows)
        return TrialBalanceDataset(
            engagement_id=engagement_id,
            rows=rows_t,
            tree=ClassificationTree.build(rows_t),
            source_kind=source_kind,
            source_label=source_label,
            created_at=created_at,
        )

    @property
    def unclassified_rows(self) -> list[ETBRow]:
        return list(self.tree.unclassified_rows)

    def __len__(self) -> int:
        return len(self.rows)
