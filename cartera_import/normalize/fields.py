from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TypeVar

from cartera_import.config.loader import AmountFormat

"""Field normalizer: raw cell text -> typed values.

Every parser here is pure and never raises on bad input; unparseable values
come back as ``None`` (absent) or as the documented default.
"""

__all__ = [
    "CENTS",
    "MULTI_VALUE_SEPARATOR",
    "clean_cell",
    "map_document_type",
    "normalize_header",
    "normalize_identifier",
    "normalize_text",
    "parse_amount",
    "parse_count",
    "parse_date",
    "parse_percentage",
    "resolution_type_from_label",
    "split_multi",
    "strip_diacritics",
    "value_at",
]

T = TypeVar("T")

CENTS = Decimal("0.01")
MULTI_VALUE_SEPARATOR = "-"
_ORDINAL_MARKS = str.maketrans("", "", "º°ª")
_WHITESPACE = re.compile(r"\s+")
_AMOUNT = re.compile(r"^\d+(\.\d+)?$")
_LEGACY_QUOTE = "'"


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def clean_cell(value: str | None) -> str:
    """Trim whitespace and the legacy single-quote wrapping of exported cells."""
    if value is None:
        return ""
    return value.strip().strip(_LEGACY_QUOTE).strip()


def normalize_text(value: str | None) -> str:
    """Lowercase, accent-free, trimmed text for keyword comparisons."""
    return _WHITESPACE.sub(" ", strip_diacritics(clean_cell(value)).lower())


def normalize_header(value: str | None) -> str:
    """Header lookup key: "Nº Comparendo", "N° Comparendo" and "N Comparendo"
    all become ``"n comparendo"``."""
    text = strip_diacritics(clean_cell(value)).translate(_ORDINAL_MARKS)
    return _WHITESPACE.sub(" ", text).strip().lower()


def normalize_identifier(value: str | None) -> str | None:
    """Trimmed, upper-cased identifier; ``None`` for empty cells and ``"-"``."""
    text = _WHITESPACE.sub(" ", clean_cell(value)).upper()
    if not text or text == "-":
        return None
    return text


def parse_date(value: str | None, order: str = "dmy") -> date | None:
    """Parse ``d/m/y`` (or ``m/d/y`` when ``order="mdy"``) into a date.

    Two-digit years below 50 are 20xx, the rest 19xx. Impossible calendar
    dates (31/04, 29/02 outside leap years) yield ``None``.
    """
    text = clean_cell(value)
    if not text:
        return None
    parts = [p.strip() for p in text.split("/")]
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    if order == "mdy":
        month_raw, day_raw, year_raw = parts
    else:
        day_raw, month_raw, year_raw = parts
    if len(year_raw) not in (2, 4):
        return None
    year = int(year_raw)
    if len(year_raw) == 2:
        year += 2000 if year < 50 else 1900
    try:
        return date(year, int(month_raw), int(day_raw))
    except ValueError:
        return None


def parse_amount(value: str | None, fmt: AmountFormat) -> Decimal | None:
    """Parse a currency cell using the export's separator convention.

    ``"$ 1.234.567"`` -> 1234567.00 and ``"$ 64.000,00"`` -> 64000.00 with
    dot thousands / comma decimal. Negative or malformed input is ``None``.
    """
    text = clean_cell(value)
    if not text:
        return None
    for symbol in fmt.symbols:
        text = text.replace(symbol, "")
    text = "".join(text.split())
    if fmt.thousands_separator:
        text = text.replace(fmt.thousands_separator, "")
    if fmt.decimal_separator != ".":
        text = text.replace(fmt.decimal_separator, ".")
    if not _AMOUNT.match(text):
        return None
    try:
        return Decimal(text).quantize(CENTS)
    except InvalidOperation:
        return None


def parse_percentage(value: str | None, default: Decimal) -> Decimal:
    """Parse ``"30%"`` / ``"12,5"``; out of 0-100 or unparseable -> ``default``."""
    text = clean_cell(value).replace("%", "").replace(",", ".").strip()
    if not text:
        return default
    try:
        pct = Decimal(text)
    except InvalidOperation:
        return default
    if not pct.is_finite() or pct < 0 or pct > 100:
        return default
    return pct.quantize(CENTS)


def parse_count(value: str | None, minimum: int = 1) -> int:
    """Digits of the cell as an int (``"6 cuotas"`` -> 6), at least ``minimum``."""
    digits = re.sub(r"\D", "", clean_cell(value))
    if not digits:
        return minimum
    return max(minimum, int(digits))


def split_multi(value: str | None, separator: str = MULTI_VALUE_SEPARATOR) -> list[str]:
    """Split a packed cell (``"123-456"``) into its non-empty sub-values."""
    return [part.strip() for part in clean_cell(value).split(separator) if part.strip()]


def value_at(values: Sequence[T | None], index: int) -> T | None:
    """Sub-value for expansion position ``index``.

    Positions past the end of ``values``, or holding ``None``, carry the
    first element forward.
    """
    if index < len(values) and values[index] is not None:
        return values[index]
    if values:
        return values[0]
    return None


def map_document_type(raw: str | None) -> str:
    text = normalize_text(raw)
    if text == "cedula venezolana":
        return "cedula_venezolana"
    if text in ("tarjeta identidad", "tarjeta de identidad"):
        return "tarjeta_identidad"
    return "cedula"


def resolution_type_from_label(label: str | None) -> str | None:
    text = normalize_text(label)
    if "resumen" in text:
        return "resumen_ap"
    if "sancion" in text:
        return "sancion"
    return None
