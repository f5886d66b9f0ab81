# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
ETB Engine
----------

A Python engine that turns Extended Trial Balance (ETB) uploads into
classified, aggregated financial statements for audit engagements.

Main capabilities:
- CSV / XLSX ingestion into a raw cell grid,
- accounting-style number normalization ("(55,662)", "$1,200", ...),
- schema and per-row validation reporting every problem at once,
- empty-row filtering and grouping fallbacks (Classification column,
  keyword-based auto-classification),
- a classification tree built from up to four grouping levels,
- Balance Sheet and Income Statement rollups with a balance check,
- a profit and loss view with signed lines and cumulative subtotals,
- per-engagement persistence (SQLite) with replace-on-upload semantics,
- a command-line interface for uploads, statements and exports.

Version: 0.1.0

Usage:
    python -m etb_engine.cli --help
"""

__all__ = ["engine", "classification", "service", "views", "io"]

__version__ = "0.1.0"
