# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services for uploading and reporting on ETB datasets.

This module sits between:
- the pure building blocks (io, schema, rows, classification, engine), and
- the low-level database helpers in `db.py`,
and is what user-facing layers such as the CLI call.

Responsibilities
----------------
1) Building a dataset (pure, nothing is written)
   parse → validate → build rows → grouping fallback / auto-classification
   → empty-row filter → classification tree.

2) Ingesting an upload
   - reject buffers above the configured size ceiling before parsing,
   - build the dataset,
   - replace the engagement's stored dataset in one transaction,
   - check the balance sheet and return any warning with the result.

   Nothing is written unless every stage succeeded: a fatal error leaves
   the previous dataset of the engagement untouched.

3) Reporting
   - reload a committed dataset from the database,
   - compute the Balance Sheet, the Income Statement and the profit and
     loss view for it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .config import AppConfig, ClassificationConfig, ImportConfig
from .dataset import TrialBalanceDataset
from .db import get_current_upload, load_rows, replace_dataset
from .engine import (
    BalanceSheet,
    IncomeStatement,
    ProfitAndLoss,
    balance_sheet,
    income_statement,
    profit_and_loss,
)
from .errors import (
    BalanceWarning,
    ConfigurationError,
    EmptyResultError,
    UploadTooLargeError,
)
from .io import parse_grid
from .rows import (
    DEFAULT_CLASSIFICATION_RULES,
    ClassificationRule,
    apply_auto_classification,
    ensure_groupings,
    filter_empty_rows,
    load_classification_rules,
)
from .schema import build_rows, validate_grid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    """
    Outcome of a successful upload.

    Attributes
    ----------
    dataset:
        The dataset now committed for the engagement.
    batch_id:
        Identifier of the upload record in the database.
    warnings:
        Non-fatal findings (currently only BalanceWarning).
    """

    dataset: TrialBalanceDataset
    batch_id: int
    warnings: tuple[BalanceWarning, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Statements:
    """Every statement view derived from one dataset."""

    balance_sheet: BalanceSheet
    income_statement: IncomeStatement
    profit_and_loss: ProfitAndLoss


def _classification_rules(
    cfg: ClassificationConfig,
) -> tuple[ClassificationRule, ...]:
    if cfg.rules_file is None:
        return DEFAULT_CLASSIFICATION_RULES
    try:
        return tuple(load_classification_rules(str(cfg.rules_file)))
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Classification rules file not found: {cfg.rules_file}"
        ) from exc
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid classification rules file {cfg.rules_file}: {exc}"
        ) from exc


def build_dataset(
    buffer: bytes,
    kind: str,
    engagement_id: str,
    import_config: Optional[ImportConfig] = None,
    classification_config: Optional[ClassificationConfig] = None,
    *,
    source_label: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> TrialBalanceDataset:
    """
    Turn an uploaded buffer into a TrialBalanceDataset without persisting it.

    Raises
    ------
    ParseError, SchemaError, InvalidRowsError, EmptyResultError
        On the first fatal stage. Row-level problems are all reported at
        once through InvalidRowsError.
    ConfigurationError
        If auto-classification is on and the rules file is missing or
        unreadable.
    """
    import_config = import_config or ImportConfig()
    classification_config = classification_config or ClassificationConfig()
    pn = import_config.parentheses_negative

    grid = parse_grid(buffer, kind, encoding=import_config.csv_encoding)
    columns = validate_grid(grid, parentheses_negative=pn)

    rows = [
        ensure_groupings(row, classification)
        for row, classification in build_rows(grid, columns, parentheses_negative=pn)
    ]
    if classification_config.auto_classify:
        rows = apply_auto_classification(
            rows, _classification_rules(classification_config)
        )

    rows = filter_empty_rows(rows)

    dataset = TrialBalanceDataset.from_rows(
        engagement_id,
        rows,
        source_kind=str(kind).strip().lower(),
        source_label=source_label,
        created_at=created_at,
    )
    if dataset.unclassified_rows:
        logger.info(
            "Engagement %s: %d row(s) without classification",
            engagement_id,
            len(dataset.unclassified_rows),
        )
    return dataset


def ingest_upload(
    buffer: bytes,
    kind: str,
    engagement_id: str,
    app_config: AppConfig,
    *,
    source_label: Optional[str] = None,
) -> UploadResult:
    """
    Validate an upload and replace the engagement's dataset with it.

    Behavior
    --------
    - The size ceiling is checked before anything is parsed.
    - The stored dataset is replaced, never merged, and only once the new
      one has been fully built.
    - An unbalanced balance sheet does not block the upload; the warning is
      returned in ``UploadResult.warnings``.

    Raises
    ------
    UploadTooLargeError
        If the buffer exceeds ``[import].max_upload_bytes``.
    ETBError
        Any fatal error raised by ``build_dataset``.
    sqlite3.Error
        If the replacement transaction fails (it is rolled back).
    """
    limit = app_config.imports.max_upload_bytes
    if len(buffer) > limit:
        raise UploadTooLargeError(len(buffer), limit)

    label = source_label or f"upload.{str(kind).strip().lower()}"
    created_at = datetime.now(timezone.utc).replace(microsecond=0)

    dataset = build_dataset(
        buffer,
        kind,
        engagement_id,
        app_config.imports,
        app_config.classification,
        source_label=label,
        created_at=created_at,
    )

    stats = replace_dataset(
        app_config.database,
        engagement_id,
        dataset.rows,
        source_kind=dataset.source_kind or str(kind),
        source_label=label,
        created_at=created_at,
    )

    sheet = balance_sheet(dataset, app_config.statements)
    warnings = (sheet.warning,) if sheet.warning is not None else ()

    logger.info(
        "Engagement %s: upload %d committed (%d row(s))",
        engagement_id,
        stats.upload_id,
        stats.rows_inserted,
    )
    return UploadResult(dataset=dataset, batch_id=stats.upload_id, warnings=warnings)


def load_dataset(
    engagement_id: str, app_config: AppConfig
) -> Optional[TrialBalanceDataset]:
    """Rebuild the committed dataset of an engagement, or None if it has none."""
    rows = load_rows(app_config.database, engagement_id)
    if not rows:
        return None

    upload = get_current_upload(app_config.database, engagement_id)
    return TrialBalanceDataset.from_rows(
        engagement_id,
        rows,
        source_kind=upload.source_kind if upload else None,
        source_label=upload.source_label if upload else None,
        created_at=upload.created_at if upload else None,
    )


def statements_for(engagement_id: str, app_config: AppConfig) -> Statements:
    """
    Compute every statement view for the committed dataset of an engagement.

    Raises
    ------
    EmptyResultError
        If the engagement has no committed dataset.
    """
    dataset = load_dataset(engagement_id, app_config)
    if dataset is None:
        raise EmptyResultError(f"No dataset found for engagement {engagement_id!r}.")

    return Statements(
        balance_sheet=balance_sheet(dataset, app_config.statements),
        income_statement=income_statement(dataset, app_config.statements),
        profit_and_loss=profit_and_loss(dataset, app_config.statements),
    )
