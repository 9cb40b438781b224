"""Raw takeoff file reading.

Turns CSV text or an Excel workbook into a header list plus one dict per
data row. Cells stay strings; typing happens in the row validator.

CSV goes through ``csv.DictReader`` so rows with more values than headers
survive parsing (under the ``None`` key) and can be reported as malformed
instead of failing the whole file. Workbooks go through pandas.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xls")


@dataclass
class RawTable:
    """Headers and string records from one takeoff file."""

    headers: list[str]
    records: list[dict] = field(default_factory=list)
    size_bytes: int = 0
    source_name: str = ""

    @property
    def row_count(self) -> int:
        return len(self.records)


def is_excel_file(name: str) -> bool:
    return name.lower().endswith(EXCEL_SUFFIXES)


def read_takeoff(content: str | bytes, source_name: str = "takeoff.csv") -> RawTable:
    """Read an uploaded takeoff (CSV or Excel chosen by file name).

    Raises:
        ValueError: If the content is empty or has no header row
    """
    if is_excel_file(source_name):
        if isinstance(content, str):
            raise ValueError(f"Excel file {source_name} must be provided as bytes")
        return read_takeoff_excel(content, source_name)
    return read_takeoff_csv(content, source_name)


def read_takeoff_file(file_path: Path) -> RawTable:
    """Read a takeoff from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported or the file is empty
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Takeoff file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix not in (".csv", ".txt") + EXCEL_SUFFIXES:
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use CSV or XLSX.")

    return read_takeoff(file_path.read_bytes(), file_path.name)


def read_takeoff_csv(content: str | bytes, source_name: str = "takeoff.csv") -> RawTable:
    size_bytes = len(content) if isinstance(content, bytes) else len(content.encode("utf-8"))
    text = _decode(content)
    if not text.strip():
        raise ValueError("CSV has no header row or is empty")

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValueError("CSV has no header row or is empty")

    # Strip whitespace from every header
    reader.fieldnames = [h.strip() for h in reader.fieldnames]
    headers = list(reader.fieldnames)

    records = [row for row in reader if not _is_blank(row)]
    logger.info(f"Read {len(records)} rows from {source_name}")

    return RawTable(headers=headers, records=records, size_bytes=size_bytes, source_name=source_name)


def read_takeoff_excel(content: bytes, source_name: str = "takeoff.xlsx") -> RawTable:
    if not content:
        raise ValueError("Excel file is empty")

    df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip() for c in df.columns]

    if df.columns.empty:
        raise ValueError("Excel file has no header row")

    records = [row for row in df.to_dict(orient="records") if not _is_blank(row)]
    logger.info(f"Read {len(records)} rows from {source_name}")

    return RawTable(
        headers=list(df.columns),
        records=records,
        size_bytes=len(content),
        source_name=source_name,
    )


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        # Strip UTF-8 BOM
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        return raw.decode("utf-8", errors="replace")
    if raw.startswith("\ufeff"):
        return raw[1:]
    return raw


def _is_blank(row: dict) -> bool:
    for key, value in row.items():
        if key is None:
            return False
        if value is not None and str(value).strip():
            return False
    return True
