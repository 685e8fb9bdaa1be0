"""Spreadsheet helpers for the CID input list and the result table."""

from __future__ import annotations

import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping

import pandas as pd

from . import config

RecordData = Dict[str, float]


def normalize_cid(value: Any) -> str:
    """Return ``value`` as a CID string; spreadsheet floats lose their ``.0``."""

    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def read_cid_list(path: Path) -> List[str]:
    """Read the ordered CID list from the first column of ``path``.

    ``.csv`` files are read with :func:`pandas.read_csv`; everything else is
    treated as a workbook. The sheet carries no header row.
    """

    path = Path(path)
    if path.suffix.lower() == ".csv":
        frame = pd.read_csv(path, header=None, dtype=str)
    else:
        frame = pd.read_excel(path, header=None, dtype=str)

    if frame.empty:
        return []

    cids: List[str] = []
    for value in frame.iloc[:, 0].dropna().tolist():
        cid = normalize_cid(value)
        if cid:
            cids.append(cid)
    return cids


def read_result_table(path: Path) -> Dict[str, RecordData]:
    """Load the result workbook into ``{cid: {period: amount}}``.

    Empty cells are dropped; every other period cell is coerced to float.
    """

    frame = pd.read_excel(Path(path), sheet_name=0, dtype={config.CID_COLUMN: str})
    if frame.empty or config.CID_COLUMN not in frame.columns:
        return {}

    results: Dict[str, RecordData] = {}
    for row in frame.to_dict(orient="records"):
        cid = normalize_cid(row.pop(config.CID_COLUMN, ""))
        if not cid:
            continue
        record: RecordData = {}
        for label, value in row.items():
            if value is None or (isinstance(value, float) and math.isnan(value)):
                continue
            try:
                record[str(label)] = float(value)
            except (TypeError, ValueError):
                record[str(label)] = 0.0
        results[cid] = record
    return results


def write_result_table(path: Path, results: Mapping[str, RecordData]) -> None:
    """Rewrite the result workbook with one row per CID.

    Columns are ``CID`` followed by every period label seen across all rows,
    in first-seen order. The workbook is written to a sibling temp file and
    moved into place.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    rows = [{config.CID_COLUMN: cid, **record} for cid, record in results.items()]
    frame = pd.DataFrame(rows)
    if frame.empty:
        frame = pd.DataFrame(columns=[config.CID_COLUMN])

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=path.suffix or ".xlsx", dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with pd.ExcelWriter(tmp_path, engine="openpyxl") as writer:
            frame.to_excel(writer, index=False, sheet_name="Sheet1")
        tmp_path.replace(path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


__all__ = [
    "RecordData",
    "normalize_cid",
    "read_cid_list",
    "read_result_table",
    "write_result_table",
]
