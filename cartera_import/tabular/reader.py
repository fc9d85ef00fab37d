from __future__ import annotations

import csv
import io
import math
import numbers
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

import pandas as pd

from cartera_import.models.source_row import SourceRow
from cartera_import.normalize.fields import clean_cell, normalize_header

"""Tabular decoder: uploaded bytes -> header + ordered SourceRows.

- Row 1 is always the header; data starts on row 2.
- Delimited text uses a single reserved separator (``;`` by default) so that
  comma-decimal amounts are never split. Cells may carry the legacy single
  quote wrapping of the external system's export.
- Spreadsheets: first worksheet only. Native dates and numbers are rendered
  to the same text the delimited export would contain, so downstream parsing
  does not care which format was uploaded.
"""

__all__ = [
    "CellRendering",
    "DecodeError",
    "EmptyInputError",
    "MissingColumnsError",
    "TableData",
    "TabularFormat",
    "detect_format",
    "read_table",
]

SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}


class DecodeError(Exception):
    """Raised when the uploaded file cannot be read at all."""


class EmptyInputError(Exception):
    """Raised when the file has a header but no data rows (or nothing at all)."""


class MissingColumnsError(Exception):
    """Raised when a required logical column has no matching header."""


class TabularFormat(Enum):
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"


@dataclass(frozen=True)
class CellRendering:
    """Text rendering for native spreadsheet values."""
    date_order: str = "dmy"
    decimal_separator: str = ","


@dataclass
class TableData:
    headers: list[str]  # normalized, de-duplicated
    rows: list[SourceRow]


def detect_format(file_name: str) -> TabularFormat:
    if PurePath(file_name.lower()).suffix in SPREADSHEET_SUFFIXES:
        return TabularFormat.SPREADSHEET
    return TabularFormat.DELIMITED


def read_table(
    data: bytes,
    fmt: TabularFormat,
    *,
    delimiter: str = ";",
    rendering: CellRendering | None = None,
) -> TableData:
    """Decode ``data`` into a TableData.

    Raises:
        DecodeError: unreadable bytes / corrupt workbook
        EmptyInputError: fewer than two non-blank lines
    """
    rendering = rendering or CellRendering()
    if fmt is TabularFormat.SPREADSHEET:
        df = _read_spreadsheet(data)
    else:
        df = _read_delimited(data, delimiter)
    return _to_table(df, rendering)


def _read_delimited(data: bytes, delimiter: str) -> pd.DataFrame:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DecodeError(f"file is not valid UTF-8 text: {e}") from e
    if not text.strip():
        raise EmptyInputError("file is empty")

    width: list[int] = []

    def _truncate(bad_line: list[str]) -> list[str]:
        # extra cells beyond the header width are dropped
        return bad_line[: width[0]] if width else bad_line

    first_line = next(line for line in text.splitlines() if line.strip())
    width.append(len(first_line.split(delimiter)))
    try:
        return pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            quoting=csv.QUOTE_NONE,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_truncate,
        )
    except pd.errors.EmptyDataError as e:
        raise EmptyInputError("file is empty") from e
    except (pd.errors.ParserError, ValueError) as e:
        raise DecodeError(f"could not parse delimited text: {e}") from e


def _read_spreadsheet(data: bytes) -> pd.DataFrame:
    try:
        return pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine="openpyxl")
    except Exception as e:  # zip / openpyxl errors all mean "unreadable"
        raise DecodeError(f"could not read spreadsheet: {e}") from e


def _render_cell(value: Any, rendering: CellRendering) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if value is pd.NaT:
        return ""
    if isinstance(value, (datetime, date)):
        if rendering.date_order == "mdy":
            return f"{value.month}/{value.day}/{value.year}"
        return f"{value.day}/{value.month}/{value.year}"
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        number = float(value)
        if number.is_integer():
            return str(int(number))
        return repr(number).replace(".", rendering.decimal_separator)
    return clean_cell(str(value))


def _dedupe_headers(raw_headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    headers: list[str] = []
    for h in raw_headers:
        count = seen.get(h, 0) + 1
        seen[h] = count
        headers.append(h if count == 1 else f"{h}#{count}")
    return headers


def _to_table(df: pd.DataFrame, rendering: CellRendering) -> TableData:
    if df.shape[0] < 2:
        raise EmptyInputError("file has no data rows (header only)")

    header_cells = [_render_cell(v, rendering) for v in df.iloc[0].tolist()]
    headers = _dedupe_headers([normalize_header(h) for h in header_cells])

    rows: list[SourceRow] = []
    for position, raw in enumerate(df.iloc[1:].itertuples(index=False, name=None), start=2):
        cells = [_render_cell(v, rendering) for v in raw]
        if not any(cells):
            continue
        values = dict(zip(headers, cells, strict=False))
        rows.append(SourceRow(row_number=position, values=values))

    if not rows:
        raise EmptyInputError("file has no data rows (header only)")
    return TableData(headers=headers, rows=rows)
