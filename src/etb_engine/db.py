# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for ETB Engine.

This module provides all low-level accessors for the SQLite database that
stores the committed trial-balance dataset of each engagement.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) uploads
   One row per successful upload, kept as history.

   Columns:
   - id             INTEGER PRIMARY KEY AUTOINCREMENT
   - engagement_id  TEXT    NOT NULL
   - created_at     TEXT    NOT NULL (ISO datetime, UTC)
   - source_kind    TEXT    NOT NULL  -- "csv" | "xlsx"
   - source_label   TEXT    NOT NULL  -- file name, connector name, etc.
   - rows_inserted  INTEGER NOT NULL

2) etb_rows
   The rows of the *current* dataset of each engagement.

   Columns:
   - id             INTEGER PRIMARY KEY AUTOINCREMENT
   - engagement_id  TEXT    NOT NULL
   - upload_id      INTEGER NOT NULL  -- foreign key to uploads.id
   - position       INTEGER NOT NULL  -- order of the row in the dataset
   - row_number     INTEGER NOT NULL  -- display row in the uploaded file
   - code, account_name               TEXT NOT NULL
   - current_year, prior_year,
     adjustments                      INTEGER NOT NULL
   - grouping1 .. grouping4           TEXT
   - linked_files                     TEXT  -- JSON array of file refs

------------------------------------------------------------------------------
Replace, never merge
------------------------------------------------------------------------------

``replace_dataset`` deletes the engagement's rows and inserts the new ones
inside a single ``BEGIN IMMEDIATE`` transaction. Readers therefore see
either the old dataset or the new one, never a mix, and any failure rolls
the whole write back. The IMMEDIATE lock also serializes concurrent
uploads: a second writer waits (up to the configured busy timeout) and then
replaces the dataset as a whole.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

import pandas as pd

from .config import DatabaseConfig
from .rows import ETBRow, make_grouping

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadStats:
    """
    Summary of a committed upload.

    Attributes
    ----------
    upload_id:
        Identifier of the row in `uploads`.
    rows_inserted:
        Number of rows now stored for the engagement.
    rows_replaced:
        Number of rows of the previous dataset that were deleted.
    """

    upload_id: int
    rows_inserted: int
    rows_replaced: int


@dataclass(frozen=True)
class UploadRecord:
    """Metadata of the upload currently backing an engagement's dataset."""

    id: int
    engagement_id: str
    created_at: datetime
    source_kind: str
    source_label: str
    rows_inserted: int


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The connection runs in autocommit mode: transactions are opened
    explicitly. The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(
        cfg.path, timeout=cfg.busy_timeout_seconds, isolation_level=None
    )
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS uploads (
            id             INTEGER PRIMARY KEY AUTOINCREMENT,
            engagement_id  TEXT    NOT NULL,
            created_at     TEXT    NOT NULL,
            source_kind    TEXT    NOT NULL,
            source_label   TEXT    NOT NULL,
            rows_inserted  INTEGER NOT NULL DEFAULT 0
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS etb_rows (
            id             INTEGER PRIMARY KEY AUTOINCREMENT,
            engagement_id  TEXT    NOT NULL,
            upload_id      INTEGER NOT NULL,
            position       INTEGER NOT NULL,
            row_number     INTEGER NOT NULL,
            code           TEXT    NOT NULL,
            account_name   TEXT    NOT NULL,
            current_year   INTEGER NOT NULL,
            prior_year     INTEGER NOT NULL,
            adjustments    INTEGER NOT NULL DEFAULT 0,
            grouping1      TEXT,
            grouping2      TEXT,
            grouping3      TEXT,
            grouping4      TEXT,
            linked_files   TEXT    NOT NULL DEFAULT '[]',

            FOREIGN KEY (upload_id) REFERENCES uploads(id)
        );
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_etb_rows_engagement
            ON etb_rows(engagement_id, position);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_uploads_engagement
            ON uploads(engagement_id);
        """
    )


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _row_params(
    engagement_id: str, upload_id: int, position: int, row: ETBRow
) -> tuple:
    g1, g2, g3, g4 = row.grouping
    return (
        engagement_id,
        upload_id,
        position,
        row.row_number,
        row.code,
        row.account_name,
        row.current_year,
        row.prior_year,
        row.adjustments,
        g1,
        g2,
        g3,
        g4,
        json.dumps(sorted(row.linked_files)),
    )


def _row_from_db(raw: tuple) -> ETBRow:
    (
        row_number,
        code,
        account_name,
        current_year,
        prior_year,
        adjustments,
        g1,
        g2,
        g3,
        g4,
        linked_files,
    ) = raw
    return ETBRow(
        code=code,
        account_name=account_name,
        current_year=int(current_year),
        prior_year=int(prior_year),
        grouping=make_grouping([g1, g2, g3, g4]),
        adjustments=int(adjustments),
        row_number=int(row_number),
        linked_files=frozenset(json.loads(linked_files or "[]")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def replace_dataset(
    cfg: DatabaseConfig,
    engagement_id: str,
    rows: Iterable[ETBRow],
    *,
    source_kind: str,
    source_label: str,
    created_at: datetime | None = None,
) -> UploadStats:
    """
    Atomically replace the dataset stored for an engagement.

    Behavior
    --------
    Inside one IMMEDIATE transaction:
    - records a new row in `uploads`,
    - deletes every `etb_rows` row of the engagement,
    - inserts the new rows, preserving their order.

    Either everything is committed or nothing is.

    Raises
    ------
    sqlite3.OperationalError
        If another writer holds the lock longer than the busy timeout.
    sqlite3.Error
        If any statement fails (the transaction is rolled back).
    """
    init_database(cfg)

    if created_at is None:
        created_at_iso = _now_utc_iso()
    else:
        created_at_iso = created_at.isoformat(timespec="seconds")

    rows_list = list(rows)

    conn = _connect(cfg)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO uploads (
                    engagement_id, created_at, source_kind, source_label,
                    rows_inserted
                )
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    engagement_id,
                    created_at_iso,
                    source_kind,
                    source_label,
                    len(rows_list),
                ),
            )
            upload_id = cur.lastrowid

            cur.execute(
                "DELETE FROM etb_rows WHERE engagement_id = ?;", (engagement_id,)
            )
            rows_replaced = cur.rowcount

            cur.executemany(
                """
                INSERT INTO etb_rows (
                    engagement_id, upload_id, position, row_number,
                    code, account_name,
                    current_year, prior_year, adjustments,
                    grouping1, grouping2, grouping3, grouping4,
                    linked_files
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    _row_params(engagement_id, upload_id, pos, row)
                    for pos, row in enumerate(rows_list)
                ],
            )
            conn.execute("COMMIT;")
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
    finally:
        conn.close()

    logger.info(
        "Engagement %s: dataset replaced (%d row(s) deleted, %d inserted)",
        engagement_id,
        rows_replaced,
        len(rows_list),
    )
    return UploadStats(
        upload_id=upload_id,
        rows_inserted=len(rows_list),
        rows_replaced=rows_replaced,
    )


def load_rows(cfg: DatabaseConfig, engagement_id: str) -> list[ETBRow]:
    """
    Load the rows of the current dataset of an engagement, in upload order.

    Returns an empty list when the engagement has no dataset.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT row_number, code, account_name,
                   current_year, prior_year, adjustments,
                   grouping1, grouping2, grouping3, grouping4,
                   linked_files
              FROM etb_rows
             WHERE engagement_id = ?
             ORDER BY position;
            """,
            (engagement_id,),
        )
        raw_rows = cur.fetchall()
    finally:
        conn.close()

    return [_row_from_db(raw) for raw in raw_rows]


def get_current_upload(cfg: DatabaseConfig, engagement_id: str) -> UploadRecord | None:
    """Return the upload backing the engagement's current dataset, if any."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT u.id, u.engagement_id, u.created_at, u.source_kind,
                   u.source_label, u.rows_inserted
              FROM uploads u
             WHERE u.id = (
                   SELECT upload_id FROM etb_rows
                    WHERE engagement_id = ?
                    LIMIT 1
             );
            """,
            (engagement_id,),
        )
        raw = cur.fetchone()
    finally:
        conn.close()

    if raw is None:
        return None
    return UploadRecord(
        id=int(raw[0]),
        engagement_id=str(raw[1]),
        created_at=datetime.fromisoformat(raw[2]),
        source_kind=str(raw[3]),
        source_label=str(raw[4]),
        rows_inserted=int(raw[5]),
    )


def has_dataset(cfg: DatabaseConfig, engagement_id: str) -> bool:
    """Return True if the engagement currently has at least one stored row."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            "SELECT 1 FROM etb_rows WHERE engagement_id = ? LIMIT 1;",
            (engagement_id,),
        )
        return cur.fetchone() is not None
    finally:
        conn.close()


def list_uploads(cfg: DatabaseConfig, engagement_id: str | None = None) -> pd.DataFrame:
    """
    Return the upload history, most recent first.

    Columns:
    - id
    - engagement_id
    - created_at
    - source_kind
    - source_label
    - rows_inserted
    """
    init_database(cfg)

    columns = [
        "id",
        "engagement_id",
        "created_at",
        "source_kind",
        "source_label",
        "rows_inserted",
    ]
    sql = f"SELECT {', '.join(columns)} FROM uploads"
    params: tuple = ()
    if engagement_id is not None:
        sql += " WHERE engagement_id = ?"
        params = (engagement_id,)
    sql += " ORDER BY id DESC;"

    conn = _connect(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows, columns=columns)
    df["created_at"] = pd.to_datetime(df["created_at"])
    return df


def delete_engagement(cfg: DatabaseConfig, engagement_id: str) -> int:
    """
    Delete every stored row and upload record of an engagement.

    Returns the number of dataset rows deleted.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        try:
            cur = conn.execute(
                "DELETE FROM etb_rows WHERE engagement_id = ?;", (engagement_id,)
            )
            deleted = cur.rowcount
            conn.execute(
                "DELETE FROM uploads WHERE engagement_id = ?;", (engagement_id,)
            )
            conn.execute("COMMIT;")
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
    finally:
        conn.close()

    logger.info("Engagement %s: %d row(s) deleted", engagement_id, deleted)
    return deleted
