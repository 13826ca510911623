from __future__ import annotations

import json

import pandas as pd
import pytest
from openpyxl import Workbook

from app.importer.error_report import REPORT_COLUMNS, write_error_report
from app.importer.file_reader import read_tabular_file


def test_csv_with_bom_keeps_text_and_drops_blank_rows(tmp_path) -> None:
    path = tmp_path / "payments.csv"
    path.write_text(" שם ,סכום,ת.ז\n דני ,1200,0012\n,,\nרותי,abc,\n", encoding="utf-8-sig")

    records = read_tabular_file(path)

    assert records == [
        {"שם": "דני", "סכום": "1200", "ת.ז": "0012"},
        {"שם": "רותי", "סכום": "abc", "ת.ז": ""},
    ]


def test_excel_first_sheet_is_read_as_text(tmp_path) -> None:
    path = tmp_path / "tenants.xlsx"
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["שם", "טלפון", "מזהה דייר"])
    sheet.append(["דני", "050-1234567", "0099"])
    sheet.append([None, None, None])
    sheet.append(["רותי", None, 17])
    workbook.save(path)

    records = read_tabular_file(path)

    assert len(records) == 2
    assert records[0] == {"שם": "דני", "טלפון": "050-1234567", "מזהה דייר": "0099"}
    assert records[1]["טלפון"] == ""
    assert records[1]["מזהה דייר"] == "17"


def test_unsupported_file_type(tmp_path) -> None:
    with pytest.raises(ValueError, match="Unsupported"):
        read_tabular_file(tmp_path / "data.json")


def test_error_report_is_sorted_by_row(tmp_path) -> None:
    errors = [
        {"row_number": 12, "chunk_index": 1, "sub_batch": 1, "error_type": "total_write", "message": "Batch insert failed"},
        {
            "row_number": 3,
            "chunk_index": 1,
            "sub_batch": None,
            "error_type": "normalization",
            "message": "Missing amount value",
            "raw": {"שם": "דני"},
        },
    ]

    path = write_error_report(errors, tmp_path / "reports" / "errors.csv")

    frame = pd.read_csv(path, encoding="utf-8-sig", dtype=str, keep_default_na=False)
    assert list(frame.columns) == REPORT_COLUMNS
    assert frame["row_number"].tolist() == ["3", "12"]
    assert frame["sub_batch"].tolist() == ["", "1"]
    assert json.loads(frame.loc[0, "raw"]) == {"שם": "דני"}
    assert frame.loc[1, "raw"] == ""
    assert path.read_bytes().startswith(b"\xef\xbb\xbf")


def test_empty_error_report_has_header_only(tmp_path) -> None:
    path = write_error_report([], tmp_path / "errors.csv")

    frame = pd.read_csv(path, encoding="utf-8-sig")
    assert list(frame.columns) == REPORT_COLUMNS
    assert frame.empty
