from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from conftest import AGREEMENT_HEADERS, InMemoryRepository, agreement_row, make_csv

from cartera_import.config.loader import AgreementImportSettings, ImportConfig
from cartera_import.logging.error_log import ErrorLogBuffer
from cartera_import.models.classified_row import Classification
from cartera_import.models.import_run import ImportKind
from cartera_import.services import AgreementImportPipeline
from cartera_import.services.derived import add_months

PAID_THREE = {
    "Cuota 1": "$ 100.000",
    "Fecha Cuota 1": "10/02/2024",
    "Cuota 2": "$ 100.000",
    "Fecha Cuota 2": "11/03/2024",
    "Cuota 3": "$ 100.000",
    "Fecha Cuota 3": "09/04/2024",
}


@pytest.fixture()
def seeded(repository: InMemoryRepository) -> InMemoryRepository:
    taxpayer = repository.add_taxpayer("1010", "Ana Perez")
    repository.add_case(taxpayer, "99999999000001", date(2023, 6, 15), Decimal("100000.00"), "RES 4500123")
    repository.add_case(taxpayer, "111", date(2023, 7, 1), Decimal("50000.00"))
    repository.add_case(taxpayer, "222", date(2023, 8, 1), Decimal("50000.00"))
    return repository


@pytest.fixture()
def pipeline(seeded: InMemoryRepository, tmp_path: Path) -> AgreementImportPipeline:
    return AgreementImportPipeline(seeded, ImportConfig(), error_log=ErrorLogBuffer(tmp_path))


def _file(rows: list[list[str]]) -> bytes:
    return make_csv(AGREEMENT_HEADERS, rows)


@pytest.mark.parametrize(
    "reference",
    ["99999999000001", "0099999999000001", "9999000001", "4500123", " res 4500123 "],
)
def test_case_found_through_key_variants(pipeline, reference):
    summary = pipeline.preview(_file([agreement_row({"N° Comparendo": reference})]), "acuerdos.csv")
    assert summary.matched == 1
    row = summary.samples[Classification.MATCHED][0]
    assert row.target_id == 1
    assert row.counterparty_label == "Ana Perez"


def test_unknown_case_is_unmatched(pipeline, seeded):
    summary = pipeline.preview(_file([agreement_row({"N° Comparendo": "555"})]), "acuerdos.csv")
    assert summary.unmatched == 1

    result = pipeline.execute(_file([agreement_row({"N° Comparendo": "555"})]), "acuerdos.csv", 1)
    assert (result.imported, result.skipped) == (0, 1)
    assert seeded.tables["agreements"] == []


def test_execute_writes_agreement_schedule_and_case_update(pipeline, seeded):
    result = pipeline.execute(_file([agreement_row(PAID_THREE)]), "acuerdos.csv", operator_id=3)
    assert (result.imported, result.failed) == (1, 0)

    agreement = seeded.tables["agreements"][0]
    assert agreement["case_id"] == 1
    assert agreement["agreement_number"] == "AC-1"
    assert agreement["installments"] == 6
    assert agreement["initial_percentage"] == Decimal("30.00")
    assert agreement["billing_day"] == 10
    assert agreement["import_run_id"] == result.import_run_id
    assert agreement["idempotency_key"] == "ac-1|2024-01-10|100000.00|99999999000001"

    installments = seeded.tables["installments"]
    assert [i["number"] for i in installments] == [1, 2, 3, 4, 5, 6]
    assert [i["status"] for i in installments] == ["pagada"] * 3 + ["pendiente"] * 3
    assert installments[2]["paid_date"] == date(2024, 4, 9)
    assert installments[2]["due_date"] is None
    assert installments[3]["due_date"] == date(2024, 4, 10)
    assert installments[3]["expected_amount"] == Decimal("100000.00")

    case = seeded.case(1)
    assert case["status"] == "acuerdo_pago"
    assert case["deadline"] == add_months(date(2024, 4, 9), 37)

    history = seeded.tables["history"][0]
    assert history["case_id"] == 1
    assert history["user_id"] == 3
    assert history["comment"] == "Acuerdo de pago importado desde archivo: AC-1"


def test_all_paid_uses_prescription_override(pipeline, seeded):
    overrides = {"N° Cuotas": "2", "Fecha Inicio Prescripcion": "01/05/2028"}
    overrides.update({k: v for k, v in PAID_THREE.items() if k.endswith(("1", "2"))})
    pipeline.execute(_file([agreement_row(overrides)]), "acuerdos.csv", 1)
    assert seeded.case(1)["deadline"] == date(2028, 5, 1)
    assert [i["status"] for i in seeded.tables["installments"]] == ["pagada", "pagada"]


def test_multi_reference_row_expands(pipeline, seeded):
    row = agreement_row(
        {
            "N° Comparendo": "111-222",
            "Fecha Acuerdo": "10/01/2024-15/02/2024",
            "Fecha Cuota Inicial": "10/01/2024",
        }
    )
    summary = pipeline.preview(_file([row]), "acuerdos.csv")
    assert summary.total_rows == 2
    assert summary.matched == 2
    records = [r.record for r in summary.samples[Classification.MATCHED]]
    assert [r.case_reference for r in records] == ["111", "222"]
    assert [r.agreement_date for r in records] == [date(2024, 1, 10), date(2024, 2, 15)]
    # single value carried to every expanded record
    assert {r.initial_installment_date for r in records} == {date(2024, 1, 10)}
    assert {r.row_number for r in records} == {2}

    result = pipeline.execute(_file([row]), "acuerdos.csv", 1)
    assert result.imported == 2
    assert {a["case_id"] for a in seeded.tables["agreements"]} == {2, 3}


def test_agreement_number_already_on_case_is_duplicate(pipeline, seeded):
    seeded.add_agreement(1, " ac-1 ")
    summary = pipeline.preview(_file([agreement_row()]), "acuerdos.csv")
    assert summary.duplicates == 1
    assert summary.samples[Classification.DUPLICATE][0].target_id is None


def test_same_agreement_twice_in_file(pipeline):
    rows = [agreement_row(), agreement_row({"Fecha Acuerdo": "11/01/2024"})]
    summary = pipeline.preview(_file(rows), "acuerdos.csv")
    assert (summary.matched, summary.duplicates) == (1, 1)


def test_rerun_is_idempotent(pipeline, seeded):
    data = _file([agreement_row(), agreement_row({"N° Comparendo": "111", "N° Acuerdo": "AC-2"})])
    first = pipeline.execute(data, "acuerdos.csv", 1)
    second = pipeline.execute(data, "acuerdos.csv", 1)
    assert first.imported == 2
    assert (second.imported, second.skipped) == (0, 2)
    assert len(seeded.tables["agreements"]) == 2
    assert seeded.runs[ImportKind.AGREEMENTS][second.import_run_id]["status"] == "failed"


def test_failed_batch_rolls_back_every_write(seeded, tmp_path):
    seeded.fail_at = {1: "case_updates"}
    pipeline = AgreementImportPipeline(seeded, ImportConfig(), error_log=ErrorLogBuffer(tmp_path))
    result = pipeline.execute(_file([agreement_row(PAID_THREE)]), "acuerdos.csv", 1)

    assert (result.imported, result.failed) == (0, 1)
    assert seeded.tables["agreements"] == []
    assert seeded.tables["installments"] == []
    assert seeded.case(1)["status"] == "pendiente"


def test_missing_agreement_number_gets_placeholder(pipeline, seeded):
    pipeline.execute(_file([agreement_row({"N° Acuerdo": ""})]), "acuerdos.csv", 1)
    assert seeded.tables["agreements"][0]["agreement_number"] == "Acuerdo 99999999000001"


def test_defaults_for_percentage_and_billing_day(pipeline, seeded):
    row = agreement_row({"% Cuota Inicial": "", "Fecha Cuota Inicial": ""})
    pipeline.execute(_file([row]), "acuerdos.csv", 1)
    agreement = seeded.tables["agreements"][0]
    assert agreement["initial_percentage"] == Decimal("30.00")
    assert agreement["billing_day"] == 15


def test_month_first_dates(seeded, tmp_path):
    config = ImportConfig(agreements=AgreementImportSettings(date_order="mdy"))
    pipeline = AgreementImportPipeline(seeded, config, error_log=ErrorLogBuffer(tmp_path))
    row = agreement_row({"Fecha Acuerdo": "01/20/2024", "Fecha Cuota Inicial": "02/05/2024"})
    summary = pipeline.preview(_file([row]), "acuerdos.csv")
    record = summary.samples[Classification.MATCHED][0].record
    assert record.agreement_date == date(2024, 1, 20)
    assert record.initial_installment_date == date(2024, 2, 5)
