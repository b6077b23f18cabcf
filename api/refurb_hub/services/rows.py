# refurb_hub/services/rows.py
"""
Spreadsheet ingestion.

Resolves the many header spellings found in supplier inventory sheets to one
canonical field set, once, producing typed RawRow values for the classifier.
"""
from __future__ import annotations
import io
import logging
import math
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from refurb_hub.errors import SpreadsheetError

logger = logging.getLogger(__name__)

# Canonical field -> accepted source headers, in priority order
FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "stock_id": ("Stock", "stock", "Stock #", "Stock ID", "StockID", "Stock No"),
    "serial_number": ("Serial Number", "serial", "Serial", "S/N", "Serial No"),
    "model": ("Model", "model", "Description", "Product"),
    "category": ("Sub-Category", "Category", "sub-category", "Subcategory"),
    "processor": ("Processor", "processor", "CPU", "Chip"),
    "brand": ("Brand", "brand", "Manufacturer"),
    "color": ("Color", "color", "Colour"),
    "condition": ("Condition", "condition", "Grade"),
    "storage": ("Storage", "storage", "SSD", "Capacity", "HDD"),
    "memory": ("Memory", "memory", "RAM"),
    "comments": ("Comments", "comments", "Notes", "Comment"),
}


@dataclass(frozen=True)
class RawRow:
    """One inventory row with headers already resolved."""
    row_number: int = 0
    stock_id: str = ""
    serial_number: str = ""
    model: str = ""
    category: str = ""
    processor: str = ""
    brand: str = ""
    color: str = ""
    condition: str = ""
    storage: str = ""
    memory: str = ""
    comments: str = ""

    def is_blank(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self) if f.name != "row_number")


def _norm_header(h: Any) -> str:
    s = str(h or "").replace("\u00A0", " ").strip()
    if s.startswith("[") and s.endswith("]"):
        s = s[1:-1]
    return re.sub(r"\s+", " ", s).strip().lower()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    s = str(value).replace("\u00A0", " ").strip()
    return "" if s.lower() == "nan" else s


def _resolve(row: Mapping[str, Any], norm_index: Dict[str, str], aliases: Sequence[str]) -> str:
    # exact header first, then normalized spelling
    for alias in aliases:
        if alias in row:
            v = _cell(row[alias])
            if v:
                return v
    for alias in aliases:
        src = norm_index.get(_norm_header(alias))
        if src is not None:
            v = _cell(row[src])
            if v:
                return v
    return ""


def to_raw_row(row: Mapping[str, Any], row_number: int = 0) -> RawRow:
    """Apply the field-resolution table to one string-keyed mapping."""
    norm_index: Dict[str, str] = {}
    for k in row.keys():
        norm_index.setdefault(_norm_header(k), k)
    values = {name: _resolve(row, norm_index, aliases) for name, aliases in FIELD_ALIASES.items()}
    return RawRow(row_number=row_number, **values)


def to_raw_rows(rows: Iterable[Mapping[str, Any]]) -> List[RawRow]:
    out: List[RawRow] = []
    for i, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            continue
        raw = to_raw_row(row, row_number=i)
        if not raw.is_blank():
            out.append(raw)
    return out


# ========================
# File decoding
# ========================

def _read_csv_smart(data: bytes) -> pd.DataFrame:
    encodings = ["utf-8-sig", "cp1252", "latin-1"]
    seps = [",", ";", "\t", "|"]
    last_err: Optional[Exception] = None
    for enc in encodings:
        for sep in seps:
            try:
                df = pd.read_csv(io.BytesIO(data), encoding=enc, sep=sep, dtype=str, on_bad_lines="skip")
                if df.shape[1] > 1:
                    return df
            except (UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                last_err = e
                continue
    raise SpreadsheetError(f"Cannot parse CSV: {last_err or 'single column'}")


def read_dataframe(data: bytes, filename: str = "") -> pd.DataFrame:
    """Decode an uploaded xlsx/xls/csv file into a string-typed DataFrame (first sheet)."""
    if not data:
        raise SpreadsheetError("Empty file")
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".csv":
        return _read_csv_smart(data)
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=str)
    except Exception as e:
        if suffix in (".xlsx", ".xls", ".xlsm"):
            raise SpreadsheetError(f"Cannot read spreadsheet {filename}: {e}") from e
        logger.info("Not an Excel workbook (%s), trying CSV", e)
        return _read_csv_smart(data)
    return df


def read_rows(data: bytes, filename: str = "") -> List[RawRow]:
    df = read_dataframe(data, filename)
    df = df.dropna(how="all")
    records = df.to_dict(orient="records")
    rows = to_raw_rows(records)
    logger.info("Decoded %s: %d data rows, columns=%s", filename or "upload", len(rows), list(df.columns))
    return rows
