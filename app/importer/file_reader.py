"""
app/importer/file_reader.py

Load CSV/Excel files as raw records for the import client.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
CSV_SUFFIXES = {".csv", ".txt"}


def read_tabular_file(path: str | Path, *, sheet_name: str | int = 0) -> list[dict[str, Any]]:
    """
    Read a spreadsheet into raw records.

    Every cell is read as text so identifiers and dates are not reinterpreted.
    Blank cells become ``""`` and fully blank rows are dropped. Excel input
    reads the first sheet unless ``sheet_name`` is given.
    """

    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        frame = pd.read_excel(path, sheet_name=sheet_name, dtype=str)
    elif suffix in CSV_SUFFIXES:
        # utf-8-sig strips the BOM Excel writes in front of exported CSVs.
        frame = pd.read_csv(path, dtype=str, encoding="utf-8-sig", keep_default_na=False)
    else:
        raise ValueError(f"Unsupported file type: {path.suffix or path.name}")

    frame = frame.fillna("")
    frame.columns = [str(column).strip() for column in frame.columns]

    records: list[dict[str, Any]] = []
    for row in frame.to_dict(orient="records"):
        cleaned = {column: value.strip() if isinstance(value, str) else value for column, value in row.items()}
        if all(value == "" for value in cleaned.values()):
            continue
        records.append(cleaned)

    logger.info("Read tabular file path=%s rows=%s columns=%s", path, len(records), len(frame.columns))
    return records
