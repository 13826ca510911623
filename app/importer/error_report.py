"""
app/importer/error_report.py

Downloadable CSV report of every record that failed in an import.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

REPORT_COLUMNS = ["row_number", "chunk_index", "sub_batch", "error_type", "message", "raw"]


def write_error_report(errors: Sequence[dict[str, Any]], path: str | Path) -> Path:
    """
    Write record errors to ``path`` as CSV sorted by row number and return the path.

    The raw payload, when present, is serialized as JSON in a single column.
    """

    rows = [
        {
            "row_number": error.get("row_number"),
            "chunk_index": error.get("chunk_index"),
            "sub_batch": error.get("sub_batch"),
            "error_type": error.get("error_type"),
            "message": error.get("message"),
            "raw": json.dumps(error["raw"], ensure_ascii=False) if error.get("raw") else "",
        }
        for error in errors
    ]
    frame = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    if not frame.empty:
        for column in ("row_number", "chunk_index", "sub_batch"):
            frame[column] = pd.to_numeric(frame[column], errors="coerce").astype("Int64")
        frame = frame.sort_values(by=["row_number"], kind="stable")

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    # utf-8-sig so Excel opens Hebrew text correctly.
    frame.to_csv(destination, index=False, encoding="utf-8-sig")
    return destination
