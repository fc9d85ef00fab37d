# Shared pytest fixtures
from __future__ import annotations

import copy
import io
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from cartera_import.db.batch_insert import BatchInsertError
from cartera_import.db.repository import AgreementKeyRow, CaseKeyRow, CaseReference, TaxpayerRow
from cartera_import.models.import_run import ImportKind, ImportRun, RunStatus

CASE_HEADERS = [
    "Nro Comparendo",
    "Fecha Comparendo",
    "Nro Resolucion",
    "Fecha Resolucion",
    "Tipo Documento",
    "Identificacion Infractor",
    "Nombre Infractor",
    "Codigo Infraccion",
    "Valor Multa",
    "Tipo Resolucion",
    "Estado Cartera",
    "Valor Deuda",
    "Valor Intereses",
    "Polca",
    "Nro Coactivo",
    "Fecha Coactivo",
]

AGREEMENT_HEADERS = [
    "N° Comparendo",
    "N° Acuerdo",
    "Nombre",
    "Fecha Acuerdo",
    "Fecha Cuota Inicial",
    "N° Cuotas",
    "% Cuota Inicial",
    "Fecha Inicio Prescripcion",
    "Valor de la Cuota",
    "Cuota 1",
    "Fecha Cuota 1",
    "Cuota 2",
    "Fecha Cuota 2",
    "Cuota 3",
    "Fecha Cuota 3",
    "Cuota 4",
    "Fecha Cuota 4",
    "Cuota 5",
    "Fecha Cuota 5",
    "Cuota 6",
    "Fecha Cuota 6",
]


class InMemoryRepository:
    """Repository fake with the PostgresRepository interface.

    ``transaction()`` snapshots every table and restores it on error, so
    rolled back batches leave no trace. ``fail_at`` maps a 1-based
    transaction ordinal to the table whose insert should blow up inside it.
    """

    TABLES = (
        "taxpayers",
        "cases",
        "history",
        "resolution_orders",
        "enforcements",
        "agreements",
        "installments",
    )

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {t: [] for t in self.TABLES}
        self.next_id: dict[str, int] = {t: 1 for t in self.TABLES}
        self.runs: dict[ImportKind, dict[int, dict[str, Any]]] = {k: {} for k in ImportKind}
        self.run_updates: list[tuple[ImportKind, int, str]] = []
        self.fail_at: dict[int, str] = {}
        self.transactions = 0
        self.in_transaction = False

    # ─── seeding ───────────────────────────────────────────────────────────

    def _add(self, table: str, row: dict[str, Any]) -> int:
        new_id = self.next_id[table]
        self.next_id[table] += 1
        self.tables[table].append({"id": new_id, **row})
        return new_id

    def add_taxpayer(self, document_number: str, name: str = "Contribuyente", document_type: str = "cedula") -> int:
        return self._add(
            "taxpayers",
            {"document_number": document_number, "document_type": document_type, "name": name},
        )

    def add_case(
        self,
        taxpayer_id: int,
        comparendo: str | None,
        application_date: date | None = None,
        amount: Decimal = Decimal("0.00"),
        resolution_number: str | None = None,
    ) -> int:
        case_id = self._add(
            "cases",
            {
                "taxpayer_id": taxpayer_id,
                "comparendo": comparendo,
                "amount": amount,
                "application_date": application_date,
                "status": "pendiente",
                "deadline": None,
            },
        )
        if resolution_number is not None:
            self._add("resolution_orders", {"case_id": case_id, "resolution_number": resolution_number})
        return case_id

    def add_agreement(self, case_id: int, agreement_number: str, idempotency_key: str | None = None) -> int:
        return self._add(
            "agreements",
            {"case_id": case_id, "agreement_number": agreement_number, "idempotency_key": idempotency_key},
        )

    def case(self, case_id: int) -> dict[str, Any]:
        return next(c for c in self.tables["cases"] if c["id"] == case_id)

    # ─── repository interface ──────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.transactions += 1
        snapshot = (copy.deepcopy(self.tables), dict(self.next_id))
        self.in_transaction = True
        try:
            yield
        except BaseException:
            self.tables, self.next_id = snapshot
            raise
        finally:
            self.in_transaction = False

    def _insert(self, table: str, rows: list[Any]) -> list[int]:
        assert self.in_transaction, f"{table} written outside a batch transaction"
        if self.fail_at.get(self.transactions) == table:
            raise BatchInsertError(f"insert into {table} failed: injected")
        return [self._add(table, asdict(r)) for r in rows]

    def fetch_taxpayers(self) -> list[TaxpayerRow]:
        return [
            TaxpayerRow(t["id"], t["document_type"], t["document_number"], t["name"])
            for t in self.tables["taxpayers"]
        ]

    def fetch_case_keys(self) -> list[CaseKeyRow]:
        taxpayers = {t["id"]: t for t in self.tables["taxpayers"]}
        return [
            CaseKeyRow(
                c["comparendo"],
                c["application_date"],
                c["amount"],
                taxpayers[c["taxpayer_id"]]["document_number"],
            )
            for c in self.tables["cases"]
        ]

    def fetch_case_references(self) -> list[CaseReference]:
        taxpayers = {t["id"]: t for t in self.tables["taxpayers"]}
        refs: list[CaseReference] = []
        for c in self.tables["cases"]:
            name = taxpayers.get(c["taxpayer_id"], {}).get("name")
            orders = [o for o in self.tables["resolution_orders"] if o["case_id"] == c["id"]]
            if not orders:
                refs.append(CaseReference(c["id"], c["comparendo"], None, name))
            for o in orders:
                refs.append(CaseReference(c["id"], c["comparendo"], o["resolution_number"], name))
        return refs

    def fetch_agreement_keys(self) -> list[AgreementKeyRow]:
        return [
            AgreementKeyRow(a["case_id"], a["agreement_number"], a["idempotency_key"])
            for a in self.tables["agreements"]
        ]

    def insert_taxpayers(self, rows):
        return self._insert("taxpayers", rows)

    def insert_cases(self, rows):
        return self._insert("cases", rows)

    def insert_history(self, rows):
        self._insert("history", rows)

    def insert_resolution_orders(self, rows):
        self._insert("resolution_orders", rows)

    def insert_enforcement_collections(self, rows):
        self._insert("enforcements", rows)

    def insert_agreements(self, rows):
        return self._insert("agreements", rows)

    def insert_installments(self, rows):
        self._insert("installments", rows)

    def update_cases(self, updates):
        assert self.in_transaction
        if self.fail_at.get(self.transactions) == "case_updates":
            raise BatchInsertError("update procesos failed: injected")
        for u in updates:
            case = self.case(u.case_id)
            case["status"] = u.status
            if u.deadline is not None:
                case["deadline"] = u.deadline

    def create_import_run(self, kind: ImportKind, file_name: str, operator_id, total: int, submitted_at: datetime) -> int:
        run_id = len(self.runs[kind]) + 1
        self.runs[kind][run_id] = {
            "file_name": file_name,
            "operator_id": operator_id,
            "total": total,
            "status": RunStatus.RUNNING.value,
            "success": 0,
            "failure": 0,
            "skipped": 0,
        }
        return run_id

    def finish_import_run(self, run: ImportRun) -> None:
        self.runs[run.kind][run.id].update(
            success=run.success, failure=run.failure, skipped=run.skipped, status=run.status.value
        )
        self.run_updates.append((run.kind, run.id, run.status.value))

    def set_import_run_status(self, kind: ImportKind, run_id: int, status: RunStatus) -> None:
        self.runs[kind][run_id]["status"] = status.value
        self.run_updates.append((kind, run_id, status.value))


def make_csv(headers: list[str], rows: list[list[str]], delimiter: str = ";") -> bytes:
    lines = [delimiter.join(headers)] + [delimiter.join(r) for r in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_xlsx(headers: list[str], rows: list[list[Any]]) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows, columns=headers).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def case_row(overrides: dict[str, str] | None = None) -> list[str]:
    values = {
        "Nro Comparendo": "99999999000001",
        "Fecha Comparendo": "15/06/2023",
        "Nro Resolucion": "",
        "Fecha Resolucion": "",
        "Tipo Documento": "Cedula",
        "Identificacion Infractor": "1010",
        "Nombre Infractor": "Ana Perez",
        "Codigo Infraccion": "C02",
        "Valor Multa": "100000",
        "Tipo Resolucion": "Sancion",
        "Estado Cartera": "Pendiente",
        "Valor Deuda": "",
        "Valor Intereses": "",
        "Polca": "N",
        "Nro Coactivo": "",
        "Fecha Coactivo": "",
    }
    values.update(overrides or {})
    return [values[h] for h in CASE_HEADERS]


def agreement_row(overrides: dict[str, str] | None = None) -> list[str]:
    values = {h: "" for h in AGREEMENT_HEADERS}
    values.update(
        {
            "N° Comparendo": "99999999000001",
            "N° Acuerdo": "AC-1",
            "Nombre": "Ana Perez",
            "Fecha Acuerdo": "10/01/2024",
            "Fecha Cuota Inicial": "10/01/2024",
            "N° Cuotas": "6",
            "% Cuota Inicial": "30%",
            "Valor de la Cuota": "$ 100.000",
        }
    )
    values.update(overrides or {})
    return [values[h] for h in AGREEMENT_HEADERS]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: cartera
  password: secret
  database: cartera
batch_size: 100
delimiter: ";"
error_log_directory: logs
imports:
  procesos:
    date_order: dmy
    prescription_years: 3
  acuerdos:
    date_order: dmy
    amount_format:
      thousands_separator: "."
      decimal_separator: ","
    prescription_months: 37
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg
