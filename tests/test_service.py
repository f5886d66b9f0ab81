import io
from pathlib import Path

import pytest
from openpyxl import Workbook

from etb_engine.config import (
    AppConfig,
    ClassificationConfig,
    DatabaseConfig,
    FiscalYear,
    ImportConfig,
)
from etb_engine.db import list_uploads, load_rows
from etb_engine.errors import (
    ConfigurationError,
    EmptyResultError,
    InvalidRowsError,
    ParseError,
    SchemaError,
    UploadTooLargeError,
)
from etb_engine.service import (
    build_dataset,
    ingest_upload,
    load_dataset,
    statements_for,
)

BALANCED_CSV = (
    "Code,Account Name,Current Year,Prior Year,Grouping 1,Grouping 2,Grouping 3\n"
    '1000,Cash at bank,"(55,662)","42,127",Assets,Current,Cash & Cash Equivalents\n'
    '1500,Equipment,"10,000","8,000",Assets,Non-current,PPE\n'
    '2000,Trade payables,"15,662","20,127",Liabilities,Current,Trade Payables\n'
    '3000,Share capital,"50,000","30,000",Equity,Share Capital,\n'
    ",,,,,,\n"
    '4000,Sales,"120,000","100,000",Income,Operating,Revenue\n'
    '5000,Wages,"70,000","60,000",Expenses,Administrative Expenses,Payroll\n'
).encode("utf-8")


def make_config(tmp_path: Path, **kwargs) -> AppConfig:
    return AppConfig(
        fiscal_year=FiscalYear(),
        database=DatabaseConfig(engine="sqlite", path=tmp_path / "etb.sqlite"),
        **kwargs,
    )


def _xlsx_bytes(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_build_dataset_from_csv():
    ds = build_dataset(BALANCED_CSV, "csv", "ENG-1")

    # The blank line (row 6) is dropped but row numbers keep following the file.
    assert len(ds) == 6
    assert [r.row_number for r in ds.rows] == [2, 3, 4, 5, 7, 8]
    assert ds.rows[0].current_year == 55662
    assert ds.rows[0].prior_year == 42127
    assert ds.rows[3].classification == "Equity > Share Capital"
    assert ds.source_kind == "csv"
    assert "Assets > Current > Cash & Cash Equivalents" in ds.tree


def test_build_dataset_from_xlsx():
    buffer = _xlsx_bytes(
        [
            ["Code", "Account Name", "Current Year", "Prior Year", "Classification"],
            [1000, "Cash", 250, 100, "Assets > Current > Cash"],
            [None, None, None, None, None],
            [2000, "Capital", "250", "100", "Equity > Share Capital"],
        ]
    )
    ds = build_dataset(buffer, "xlsx", "ENG-1")

    assert [r.code for r in ds.rows] == ["1000", "2000"]
    assert [r.row_number for r in ds.rows] == [2, 4]
    assert ds.rows[0].grouping == ("Assets", "Current", "Cash", None)


def test_build_dataset_with_parentheses_negative():
    ds = build_dataset(
        BALANCED_CSV, "csv", "ENG-1", ImportConfig(parentheses_negative=True)
    )
    assert ds.rows[0].current_year == -55662


def test_build_dataset_auto_classifies_bare_rows():
    buffer = (
        "Code,Account Name,Current Year,Prior Year\n"
        "1000,Petty cash,10,5\n"
        "9000,Suspense,1,1\n"
    ).encode("utf-8")

    plain = build_dataset(buffer, "csv", "ENG-1")
    assert len(plain.unclassified_rows) == 2

    classified = build_dataset(
        buffer, "csv", "ENG-1", classification_config=ClassificationConfig(True)
    )
    assert classified.rows[0].classification == (
        "Assets > Current > Cash & Cash Equivalents"
    )
    assert [r.code for r in classified.unclassified_rows] == ["9000"]


def test_unusable_rules_file_is_a_configuration_error(tmp_path):
    buffer = b"Code,Account Name,Current Year,Prior Year\n1000,Petty cash,10,5\n"
    missing = ClassificationConfig(True, tmp_path / "missing.csv")
    with pytest.raises(ConfigurationError, match="not found"):
        build_dataset(buffer, "csv", "ENG-1", classification_config=missing)

    bad = tmp_path / "rules.csv"
    bad.write_text("words,target\ncash,Assets\n", encoding="utf-8")
    unreadable = ClassificationConfig(True, bad)
    with pytest.raises(ConfigurationError, match="keywords"):
        build_dataset(buffer, "csv", "ENG-1", classification_config=unreadable)


def test_build_dataset_error_stages():
    with pytest.raises(ParseError):
        build_dataset(b"", "csv", "ENG-1")
    with pytest.raises(SchemaError):
        build_dataset(b"Code,Name\n1,A\n", "csv", "ENG-1")
    with pytest.raises(InvalidRowsError):
        build_dataset(
            b"Code,Account Name,Current Year,Prior Year\n1,A,N/A,1\n", "csv", "ENG-1"
        )
    with pytest.raises(EmptyResultError):
        build_dataset(
            b"Code,Account Name,Current Year,Prior Year\n,,0,5\n,,,\n", "csv", "ENG-1"
        )


def test_ingest_commits_and_reports_no_warning(tmp_path):
    cfg = make_config(tmp_path)
    result = ingest_upload(BALANCED_CSV, "csv", "ENG-1", cfg, source_label="etb.csv")

    assert result.batch_id > 0
    assert result.warnings == ()
    assert load_rows(cfg.database, "ENG-1") == list(result.dataset.rows)


def test_ingest_returns_balance_warning(tmp_path):
    buffer = (
        "Code,Account Name,Current Year,Prior Year,Classification\n"
        "1,Cash,100,0,Assets > Current > Cash\n"
        "2,Capital,90,0,Equity > Share Capital\n"
    ).encode("utf-8")
    result = ingest_upload(buffer, "csv", "ENG-1", make_config(tmp_path))

    assert len(result.warnings) == 1
    assert result.warnings[0].difference == 10
    # Still committed.
    assert len(load_rows(make_config(tmp_path).database, "ENG-1")) == 2


def test_reupload_replaces_and_records_history(tmp_path):
    cfg = make_config(tmp_path)
    ingest_upload(BALANCED_CSV, "csv", "ENG-1", cfg, source_label="first.csv")
    second = (
        "Code,Account Name,Current Year,Prior Year,Classification\n"
        "1,Cash,100,0,Assets > Current > Cash\n"
    ).encode("utf-8")
    ingest_upload(second, "csv", "ENG-1", cfg, source_label="second.csv")

    rows = load_rows(cfg.database, "ENG-1")
    assert [r.code for r in rows] == ["1"]
    assert list(list_uploads(cfg.database, "ENG-1")["source_label"]) == [
        "second.csv",
        "first.csv",
    ]


def test_failed_upload_keeps_previous_dataset(tmp_path):
    cfg = make_config(tmp_path)
    ingest_upload(BALANCED_CSV, "csv", "ENG-1", cfg)
    before = load_rows(cfg.database, "ENG-1")

    bad = b"Code,Account Name,Current Year,Prior Year\n1,A,abc,1\n"
    with pytest.raises(InvalidRowsError):
        ingest_upload(bad, "csv", "ENG-1", cfg)

    assert load_rows(cfg.database, "ENG-1") == before
    assert len(list_uploads(cfg.database, "ENG-1")) == 1


def test_upload_too_large_is_rejected_before_parsing(tmp_path):
    cfg = make_config(tmp_path, imports=ImportConfig(max_upload_bytes=10))
    with pytest.raises(UploadTooLargeError) as excinfo:
        ingest_upload(BALANCED_CSV, "csv", "ENG-1", cfg)

    assert excinfo.value.limit == 10
    assert excinfo.value.size == len(BALANCED_CSV)
    assert list_uploads(cfg.database).empty


def test_load_dataset_and_statements(tmp_path):
    cfg = make_config(tmp_path)
    assert load_dataset("ENG-1", cfg) is None

    ingest_upload(BALANCED_CSV, "csv", "ENG-1", cfg, source_label="etb.csv")
    ds = load_dataset("ENG-1", cfg)
    assert ds is not None
    assert ds.source_label == "etb.csv"
    assert len(ds) == 6

    statements = statements_for("ENG-1", cfg)
    sheet = statements.balance_sheet
    assert sheet.assets.total == 65662
    assert sheet.liabilities.total == 15662
    assert sheet.equity.total == 50000
    assert sheet.is_balanced
    assert statements.income_statement.net_result == 50000
    assert statements.profit_and_loss.is_empty


def test_statements_for_unknown_engagement(tmp_path):
    with pytest.raises(EmptyResultError):
        statements_for("NOPE", make_config(tmp_path))
