from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from cartera_import.config.loader import AmountFormat
from cartera_import.normalize.fields import (
    clean_cell,
    map_document_type,
    normalize_header,
    normalize_identifier,
    parse_amount,
    parse_count,
    parse_date,
    parse_percentage,
    resolution_type_from_label,
    split_multi,
    value_at,
)

COP = AmountFormat(thousands_separator=".", decimal_separator=",")
PLAIN = AmountFormat(thousands_separator=None, decimal_separator=",")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("29/02/2024", date(2024, 2, 29)),
        ("15/06/99", date(1999, 6, 15)),
        ("15/06/05", date(2005, 6, 15)),
        ("1/2/2023", date(2023, 2, 1)),
        ("'15/06/2023'", date(2023, 6, 15)),
    ],
)
def test_parse_date_day_first(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["31/04/2024", "29/02/2023", "2024-01-10", "15/06/202", "", None, "x/y/z"])
def test_parse_date_invalid_is_absent(raw):
    assert parse_date(raw) is None


def test_parse_date_month_first():
    assert parse_date("02/01/2024", order="mdy") == date(2024, 2, 1)
    assert parse_date("02/01/2024") == date(2024, 1, 2)


def test_parse_amount_cop_convention():
    assert parse_amount("$ 1.234.567", COP) == Decimal("1234567.00")
    assert parse_amount("$ 64.000,00", COP) == Decimal("64000.00")
    assert parse_amount("$\t123.667", COP) == Decimal("123667.00")


def test_parse_amount_plain_convention():
    assert parse_amount("1234,5", PLAIN) == Decimal("1234.50")
    assert parse_amount("98000.25", PLAIN) == Decimal("98000.25")


@pytest.mark.parametrize("raw", ["abc", "-500", "1.2.3,4,5", "", None])
def test_parse_amount_malformed_is_absent(raw):
    assert parse_amount(raw, COP) is None


def test_parse_percentage():
    default = Decimal("30")
    assert parse_percentage("30%", default) == Decimal("30.00")
    assert parse_percentage("12,5", default) == Decimal("12.50")
    assert parse_percentage("150", default) == default
    assert parse_percentage("", default) == default
    assert parse_percentage("n/a", default) == default


def test_parse_count():
    assert parse_count("6 cuotas") == 6
    assert parse_count("") == 1
    assert parse_count("0") == 1


def test_split_multi_and_value_at():
    parts = split_multi(" 123 - 456 -")
    assert parts == ["123", "456"]
    assert value_at(parts, 1) == "456"
    # missing positions carry the first element forward
    assert value_at(["a"], 3) == "a"
    assert value_at([], 0) is None


def test_clean_cell_and_identifier():
    assert clean_cell("  'ABC123'  ") == "ABC123"
    assert normalize_identifier(" abc  12 ") == "ABC 12"
    assert normalize_identifier("-") is None
    assert normalize_identifier("   ") is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Nº Comparendo", "n comparendo"),
        ("N° Comparendo", "n comparendo"),
        ("Identificación  Infractor", "identificacion infractor"),
        ("% Cuota Inicial", "% cuota inicial"),
    ],
)
def test_normalize_header(raw, expected):
    assert normalize_header(raw) == expected


def test_document_type_and_resolution_type_mapping():
    assert map_document_type("Cédula Venezolana") == "cedula_venezolana"
    assert map_document_type("Tarjeta de Identidad") == "tarjeta_identidad"
    assert map_document_type("NIT") == "cedula"
    assert resolution_type_from_label("Resumen AP") == "resumen_ap"
    assert resolution_type_from_label("Sanción") == "sancion"
    assert resolution_type_from_label("") is None
