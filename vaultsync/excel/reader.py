from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any
from zipfile import BadZipFile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

"""Spreadsheet row source.

First sheet, first row is the header. Header names are stripped; rows where
every cell is empty are skipped. Cell values are returned raw (the mapper owns
text conversion) except that pandas NaN / NaT become None.

Only OpenXML workbooks (.xlsx / .xlsm) and CSV are supported; a damaged
workbook surfaces as SourceReadError like any other unreadable source.

CSV files are read as text with NA coercion disabled so card numbers keep
their leading zeros.
"""

__all__ = [
    "SourceReadError",
    "read_rows",
    "find_source_file",
]

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


class SourceReadError(Exception):
    """Raised when a spreadsheet cannot be opened or parsed."""


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    try:
        if suffix in EXCEL_SUFFIXES:
            return pd.read_excel(path, sheet_name=0, header=0, dtype=object)
        if suffix == ".csv":
            return pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except (OSError, ValueError, KeyError, BadZipFile, InvalidFileException) as e:
        raise SourceReadError(f"failed to read {path.name}: {e}") from e
    raise SourceReadError(f"unsupported file type: {path.suffix or path.name}")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def read_rows(path: Path) -> list[dict[str, Any]]:
    """Read every non-blank row of the first sheet as ``{header: value}``."""
    df = _read_frame(path)
    columns = [str(c).strip() for c in df.columns]
    rows: list[dict[str, Any]] = []
    for raw in df.itertuples(index=False, name=None):
        if all(_is_blank(v) for v in raw):
            continue
        row: dict[str, Any] = {}
        for col, val in zip(columns, raw, strict=False):
            row[col] = None if _is_blank(val) and not isinstance(val, str) else val
        rows.append(row)
    return rows


def find_source_file(directory: Path, patterns: Iterable[str]) -> Path | None:
    """Return the first file matching the patterns, in pattern priority order.

    Within one pattern the lexically last match wins (exports are date stamped).
    """
    for pattern in patterns:
        matches = sorted(p for p in directory.glob(pattern) if p.is_file())
        if matches:
            return matches[-1]
    return None
