# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for ETB Engine.

This module wires together the main building blocks of ETB Engine:

- global configuration (engagement year end, database, import options,
  statement labels, auto-classification),
- upload service (parse, validate, filter, classify, commit),
- aggregation engine (Balance Sheet, Income Statement, profit and loss),
- view helpers (tabular rendering and CSV export).

The CLI is intentionally thin: it does not implement any ETB logic itself.
It orchestrates the underlying modules based on command-line arguments and
the TOML configuration file.


Commands
--------
import           Upload a CSV/XLSX file and replace the engagement's dataset.
statements       Show the Balance Sheet, Income Statement and P&L.
classifications  List the selectable classifications (browser view).
rows             List the committed rows with their classification.
uploads          Show the upload history.
delete           Delete every stored row of an engagement.


Exit status
-----------
0 on success (including an unbalanced balance sheet, which is reported as a
warning), 1 when the upload or the request is rejected. Every problem found
is printed, one per line.


Examples
--------
Upload an ETB file:
    python -m etb_engine.cli import ACME-2024 data/input/etb.xlsx

Show statements and export them:
    python -m etb_engine.cli statements ACME-2024 --output data/output/acme.csv
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .classification import browser_groups
from .config import AppConfig, load_app_config
from .db import delete_engagement, init_database, list_uploads
from .errors import ETBError
from .io import kind_from_filename
from .periods import labels_for
from .service import ingest_upload, load_dataset, statements_for
from .views import (
    browser_to_dataframe,
    profit_and_loss_to_dataframe,
    rows_to_dataframe,
    sections_to_dataframe,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m etb_engine.cli",
        description=(
            "ETB Engine - Extended Trial Balance ingestion & rollup engine. "
            "Validates uploaded trial balances, stores them per engagement and "
            "renders Balance Sheet, Income Statement and profit and loss views."
        ),
    )

    ap.add_argument(
        "--version",
        action="version",
        version=f"etb_engine version {__version__}",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. "
            "If omitted, 'etb_engine_config.toml' in the current directory is "
            "used when present, otherwise defaults apply."
        ),
    )
    ap.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    # import
    p_import = subparsers.add_parser(
        "import", help="Upload an ETB file and replace the engagement's dataset."
    )
    p_import.add_argument("engagement", help="Engagement identifier.")
    p_import.add_argument("path", help="CSV or XLSX file to upload.")
    p_import.add_argument(
        "--kind",
        choices=["csv", "xlsx"],
        help="File kind. If omitted, it is derived from the file extension.",
    )

    # statements
    p_statements = subparsers.add_parser(
        "statements", help="Show the Balance Sheet, Income Statement and P&L."
    )
    p_statements.add_argument("engagement", help="Engagement identifier.")
    p_statements.add_argument(
        "--statement",
        choices=["balance-sheet", "income-statement", "profit-and-loss", "all"],
        default="all",
        help="Which statement to show (default: all).",
    )
    p_statements.add_argument(
        "--output",
        dest="output_path",
        help="Optional CSV path. Every statement shown is written to one file.",
    )

    # classifications
    p_classes = subparsers.add_parser(
        "classifications", help="List selectable classifications."
    )
    p_classes.add_argument("engagement", help="Engagement identifier.")
    p_classes.add_argument(
        "--min-depth",
        type=int,
        default=3,
        help="Minimum depth of selectable classifications (default: 3).",
    )

    # rows
    p_rows = subparsers.add_parser(
        "rows", help="List the committed rows of an engagement."
    )
    p_rows.add_argument("engagement", help="Engagement identifier.")
    p_rows.add_argument(
        "--unclassified",
        action="store_true",
        help="Only show rows without any classification.",
    )
    p_rows.add_argument("--output", dest="output_path", help="Optional CSV path.")

    # uploads
    p_uploads = subparsers.add_parser("uploads", help="Show the upload history.")
    p_uploads.add_argument(
        "engagement", nargs="?", help="Engagement identifier (default: all)."
    )

    # delete
    p_delete = subparsers.add_parser(
        "delete", help="Delete every stored row of an engagement."
    )
    p_delete.add_argument("engagement", help="Engagement identifier.")

    return ap


def _print_errors(exc: Exception) -> None:
    messages = exc.messages() if isinstance(exc, ETBError) else [str(exc)]
    print("Error:")
    for message in messages:
        print(f"  - {message}")


def _write_csv(df: pd.DataFrame, output_path: str) -> None:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    print(f"Written: {path}")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_import(args: argparse.Namespace, config: AppConfig) -> int:
    path = Path(args.path)
    if not path.is_file():
        print(f"File not found: {path}")
        return 1

    kind = args.kind or kind_from_filename(path.name)
    print(f"Uploading {path} to engagement {args.engagement!r}...")

    result = ingest_upload(
        path.read_bytes(),
        kind,
        args.engagement,
        config,
        source_label=path.name,
    )

    dataset = result.dataset
    print(
        f"Upload #{result.batch_id}: {len(dataset)} row(s) committed, "
        f"{len(dataset.tree.classifications())} classification(s), "
        f"{len(dataset.unclassified_rows)} unclassified row(s)."
    )
    for warning in result.warnings:
        print(f"Warning: {warning}")
    return 0


def _handle_statements(args: argparse.Namespace, config: AppConfig) -> int:
    statements = statements_for(args.engagement, config)
    labels = labels_for(config.fiscal_year)

    frames: list[pd.DataFrame] = []

    if args.statement in ("balance-sheet", "all"):
        sheet = statements.balance_sheet
        df = sections_to_dataframe(sheet.sections, labels)
        print()
        print("=== Balance Sheet ===")
        print(df.to_string(index=False))
        if sheet.warning is not None:
            print()
            print(f"Warning: {sheet.warning}")
        frames.append(df.assign(statement="balance_sheet"))

    if args.statement in ("income-statement", "all"):
        income = statements.income_statement
        df = sections_to_dataframe(income.sections, labels)
        print()
        print("=== Income Statement ===")
        if df.empty:
            print("No revenue or expense classifications found.")
        else:
            print(df.to_string(index=False))
        print()
        print(
            f"Net result: {income.net_result} "
            f"(prior year: {income.prior_net_result})"
        )
        frames.append(df.assign(statement="income_statement"))

    if args.statement in ("profit-and-loss", "all"):
        pnl = statements.profit_and_loss
        print()
        print("=== Profit and Loss ===")
        if pnl.is_empty:
            print("No profit and loss classifications found.")
        else:
            df = profit_and_loss_to_dataframe(pnl, labels)
            print(df.to_string(index=False))
            frames.append(df.assign(statement="profit_and_loss"))
        if pnl.unmapped:
            print()
            print(f"Not in the P&L layout: {', '.join(pnl.unmapped)}")

    if args.output_path and frames:
        _write_csv(pd.concat(frames, ignore_index=True), args.output_path)
    return 0


def _handle_classifications(args: argparse.Namespace, config: AppConfig) -> int:
    dataset = load_dataset(args.engagement, config)
    if dataset is None:
        print(f"No dataset found for engagement {args.engagement!r}.")
        return 1

    df = browser_to_dataframe(browser_groups(dataset.tree, args.min_depth))
    if df.empty:
        print("No selectable classifications.")
        return 0

    for (title, subtitle), group in df.groupby(["title", "subtitle"], sort=False):
        print()
        print(f"{title} / {subtitle}")
        for classification in group["classification"]:
            print(f"  {classification}")
    return 0


def _handle_rows(args: argparse.Namespace, config: AppConfig) -> int:
    dataset = load_dataset(args.engagement, config)
    if dataset is None:
        print(f"No dataset found for engagement {args.engagement!r}.")
        return 1

    rows = dataset.unclassified_rows if args.unclassified else dataset.rows
    df = rows_to_dataframe(rows)
    if df.empty:
        print("No rows to show.")
    else:
        print(df.to_string(index=False))

    if args.output_path:
        _write_csv(df, args.output_path)
    return 0


def _handle_uploads(args: argparse.Namespace, config: AppConfig) -> int:
    df = list_uploads(config.database, args.engagement)
    if df.empty:
        print("No uploads recorded.")
    else:
        print(df.to_string(index=False))
    return 0


def _handle_delete(args: argparse.Namespace, config: AppConfig) -> int:
    deleted = delete_engagement(config.database, args.engagement)
    print(f"Engagement {args.engagement!r}: {deleted} row(s) deleted.")
    return 0


_HANDLERS = {
    "import": _handle_import,
    "statements": _handle_statements,
    "classifications": _handle_classifications,
    "rows": _handle_rows,
    "uploads": _handle_uploads,
    "delete": _handle_delete,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ETB Engine CLI.

    Parses command-line arguments, loads the configuration, initializes the
    database and dispatches to the selected command. Returns the process
    exit status.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_app_config(args.config_path)
        init_database(config.database)
    except (ETBError, ValueError, FileNotFoundError) as exc:
        logger.debug("Configuration failed", exc_info=True)
        _print_errors(exc)
        return 1

    try:
        return _HANDLERS[args.command](args, config)
    except ETBError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _print_errors(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
