import sqlite3
from datetime import datetime, timezone

import pytest

from etb_engine.config import DatabaseConfig
from etb_engine.db import (
    delete_engagement,
    get_current_upload,
    has_dataset,
    init_database,
    list_uploads,
    load_rows,
    replace_dataset,
)
from etb_engine.rows import ETBRow, make_grouping


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    return DatabaseConfig(engine="sqlite", path=tmp_path / "db" / "test_etb.sqlite")


def sample_rows(prefix="", n=3) -> list[ETBRow]:
    return [
        ETBRow(
            code=f"{prefix}{1000 + i}",
            account_name=f"Account {i}",
            current_year=100 * (i + 1),
            prior_year=-10 * i,
            grouping=make_grouping(["Assets", "Current", f"Line {i}"]),
            adjustments=i,
            row_number=i + 2,
            linked_files=frozenset({f"doc-{i}.pdf"}) if i == 0 else frozenset(),
        )
        for i in range(n)
    ]


def test_init_database_creates_file_and_schema(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()
    assert has_dataset(cfg, "ENG-1") is False

    # Idempotent.
    init_database(cfg)


def test_replace_and_load_round_trip(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    rows = sample_rows()

    stats = replace_dataset(
        cfg, "ENG-1", rows, source_kind="csv", source_label="etb.csv"
    )

    assert stats.rows_inserted == 3
    assert stats.rows_replaced == 0
    assert has_dataset(cfg, "ENG-1") is True
    assert load_rows(cfg, "ENG-1") == rows


def test_replace_never_merges(tmp_path):
    """A second upload replaces the dataset and both uploads are recorded."""
    cfg = make_tmp_db_cfg(tmp_path)
    replace_dataset(cfg, "ENG-1", sample_rows("A"), source_kind="csv", source_label="a")
    second = sample_rows("B", n=2)
    stats = replace_dataset(cfg, "ENG-1", second, source_kind="xlsx", source_label="b")

    assert stats.rows_replaced == 3
    assert load_rows(cfg, "ENG-1") == second

    history = list_uploads(cfg, "ENG-1")
    assert len(history) == 2
    assert list(history["source_label"]) == ["b", "a"]
    assert list(history["rows_inserted"]) == [2, 3]

    current = get_current_upload(cfg, "ENG-1")
    assert current is not None
    assert current.id == stats.upload_id
    assert current.source_kind == "xlsx"


def test_engagements_are_isolated(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_dataset(cfg, "ENG-1", sample_rows("A"), source_kind="csv", source_label="a")
    replace_dataset(cfg, "ENG-2", sample_rows("B", 1), source_kind="csv", source_label="b")

    assert len(load_rows(cfg, "ENG-1")) == 3
    assert len(load_rows(cfg, "ENG-2")) == 1
    assert len(list_uploads(cfg)) == 2


def test_failed_replacement_rolls_back(tmp_path, monkeypatch):
    """A failure while inserting keeps the previous dataset intact."""
    cfg = make_tmp_db_cfg(tmp_path)
    original = sample_rows("A")
    replace_dataset(cfg, "ENG-1", original, source_kind="csv", source_label="a")

    import etb_engine.db as db_module

    def broken_params(*args, **kwargs):
        raise sqlite3.IntegrityError("simulated failure")

    monkeypatch.setattr(db_module, "_row_params", broken_params)

    with pytest.raises(sqlite3.IntegrityError):
        replace_dataset(
            cfg, "ENG-1", sample_rows("B"), source_kind="csv", source_label="b"
        )

    assert load_rows(cfg, "ENG-1") == original
    assert len(list_uploads(cfg, "ENG-1")) == 1


def test_created_at_is_stored(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    when = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
    replace_dataset(
        cfg, "ENG-1", sample_rows(), source_kind="csv", source_label="a", created_at=when
    )
    assert get_current_upload(cfg, "ENG-1").created_at == when


def test_delete_engagement(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_dataset(cfg, "ENG-1", sample_rows(), source_kind="csv", source_label="a")

    assert delete_engagement(cfg, "ENG-1") == 3
    assert has_dataset(cfg, "ENG-1") is False
    assert list_uploads(cfg, "ENG-1").empty
    assert get_current_upload(cfg, "ENG-1") is None


def test_unsupported_engine_is_rejected(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")
    with pytest.raises(ValueError):
        init_database(cfg)
