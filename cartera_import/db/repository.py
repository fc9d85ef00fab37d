from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import astuple, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from psycopg2.extras import execute_batch

from cartera_import.models.import_run import ImportKind, ImportRun, RunStatus
from cartera_import.models.writes import (
    CaseStatusUpdate,
    HistoryEntry,
    NewAgreement,
    NewCase,
    NewEnforcementCollection,
    NewInstallment,
    NewResolutionOrder,
    NewTaxpayer,
)

from .batch_insert import batch_insert

"""PostgreSQL repository for the import engine.

Expects a cursor on an autocommit connection: ledger writes persist as soon
as they run, and each batch opens its own explicit transaction with
``transaction()``.
"""

__all__ = [
    "AgreementKeyRow",
    "CaseKeyRow",
    "CaseReference",
    "PostgresRepository",
    "TaxpayerRow",
]

logger = logging.getLogger(__name__)

LEDGER_TABLES = {
    ImportKind.CASES: "importaciones_procesos",
    ImportKind.AGREEMENTS: "importaciones_acuerdos",
}

# dataclass field order -> column order
TAXPAYER_COLUMNS = ("nit", "tipo_documento", "nombre_razon_social")
CASE_COLUMNS = (
    "contribuyente_id",
    "vigencia",
    "no_comparendo",
    "monto_cop",
    "monto_multa_cop",
    "monto_intereses_cop",
    "estado_actual",
    "fecha_limite",
    "fecha_aplicacion_impuesto",
    "fecha_importacion",
    "importacion_id",
    "importado",
)
HISTORY_COLUMNS = (
    "proceso_id",
    "usuario_id",
    "estado_nuevo",
    "comentario",
    "tipo_evento",
    "estado_anterior",
)
RESOLUTION_COLUMNS = (
    "proceso_id",
    "numero_resolucion",
    "fecha_resolucion",
    "codigo_infraccion",
    "tipo_resolucion",
)
ENFORCEMENT_COLUMNS = ("proceso_id", "no_coactivo", "fecha_inicio", "activo")
AGREEMENT_COLUMNS = (
    "proceso_id",
    "numero_acuerdo",
    "fecha_acuerdo",
    "fecha_inicio",
    "cuotas",
    "porcentaje_cuota_inicial",
    "dia_cobro_mes",
    "fecha_importacion",
    "importacion_id",
    "clave_idempotencia",
)
INSTALLMENT_COLUMNS = (
    "acuerdo_pago_id",
    "numero_cuota",
    "fecha_vencimiento",
    "monto_esperado",
    "estado",
    "fecha_pago",
)


@dataclass(frozen=True)
class TaxpayerRow:
    id: int
    document_type: str
    document_number: str
    name: str


@dataclass(frozen=True)
class CaseKeyRow:
    comparendo: str | None
    application_date: date | None
    amount: Decimal | None
    document_number: str | None


@dataclass(frozen=True)
class CaseReference:
    id: int
    comparendo: str | None
    resolution_number: str | None
    taxpayer_name: str | None


@dataclass(frozen=True)
class AgreementKeyRow:
    case_id: int
    agreement_number: str | None
    idempotency_key: str | None


class PostgresRepository:
    def __init__(self, cursor: Any, page_size: int = 1000) -> None:
        self.cursor = cursor
        self.page_size = page_size

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.cursor.execute("BEGIN")
        try:
            yield
        except BaseException:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception:
                logger.exception("rollback failed")
            raise
        self.cursor.execute("COMMIT")

    # ─── bulk reads (one query each) ───────────────────────────────────────

    def fetch_taxpayers(self) -> list[TaxpayerRow]:
        self.cursor.execute(
            "SELECT id, tipo_documento, nit, nombre_razon_social FROM contribuyentes"
        )
        return [TaxpayerRow(*r) for r in self.cursor.fetchall()]

    def fetch_case_keys(self) -> list[CaseKeyRow]:
        self.cursor.execute(
            "SELECT p.no_comparendo, p.fecha_aplicacion_impuesto, p.monto_cop, c.nit "
            "FROM procesos p JOIN contribuyentes c ON c.id = p.contribuyente_id"
        )
        return [CaseKeyRow(*r) for r in self.cursor.fetchall()]

    def fetch_case_references(self) -> list[CaseReference]:
        self.cursor.execute(
            "SELECT p.id, p.no_comparendo, o.numero_resolucion, c.nombre_razon_social "
            "FROM procesos p "
            "LEFT JOIN ordenes_resolucion o ON o.proceso_id = p.id "
            "LEFT JOIN contribuyentes c ON c.id = p.contribuyente_id "
            "ORDER BY p.id"
        )
        return [CaseReference(*r) for r in self.cursor.fetchall()]

    def fetch_agreement_keys(self) -> list[AgreementKeyRow]:
        self.cursor.execute(
            "SELECT proceso_id, numero_acuerdo, clave_idempotencia FROM acuerdos_pago"
        )
        return [AgreementKeyRow(*r) for r in self.cursor.fetchall()]

    # ─── batch writes (inside transaction()) ───────────────────────────────

    def _insert(self, table: str, columns: tuple[str, ...], rows: list[Any], returning: bool) -> list[int]:
        result = batch_insert(
            self.cursor,
            table,
            columns,
            [astuple(r) for r in rows],
            returning="id" if returning else None,
            page_size=self.page_size,
        )
        return list(result.returned_values or [])

    def insert_taxpayers(self, rows: list[NewTaxpayer]) -> list[int]:
        return self._insert("contribuyentes", TAXPAYER_COLUMNS, rows, returning=True)

    def insert_cases(self, rows: list[NewCase]) -> list[int]:
        return self._insert("procesos", CASE_COLUMNS, rows, returning=True)

    def insert_history(self, rows: list[HistoryEntry]) -> None:
        self._insert("historial_proceso", HISTORY_COLUMNS, rows, returning=False)

    def insert_resolution_orders(self, rows: list[NewResolutionOrder]) -> None:
        self._insert("ordenes_resolucion", RESOLUTION_COLUMNS, rows, returning=False)

    def insert_enforcement_collections(self, rows: list[NewEnforcementCollection]) -> None:
        self._insert("cobros_coactivos", ENFORCEMENT_COLUMNS, rows, returning=False)

    def insert_agreements(self, rows: list[NewAgreement]) -> list[int]:
        return self._insert("acuerdos_pago", AGREEMENT_COLUMNS, rows, returning=True)

    def insert_installments(self, rows: list[NewInstallment]) -> None:
        self._insert("cuotas_acuerdo", INSTALLMENT_COLUMNS, rows, returning=False)

    def update_cases(self, updates: list[CaseStatusUpdate]) -> None:
        if not updates:
            return
        execute_batch(
            self.cursor,
            "UPDATE procesos SET estado_actual = %s, "
            "fecha_limite = COALESCE(%s, fecha_limite), actualizado_en = %s "
            "WHERE id = %s",
            [(u.status, u.deadline, u.updated_at, u.case_id) for u in updates],
            page_size=self.page_size,
        )

    # ─── import-run ledger ─────────────────────────────────────────────────

    def create_import_run(
        self,
        kind: ImportKind,
        file_name: str,
        operator_id: int | None,
        total: int,
        submitted_at: datetime,
    ) -> int:
        self.cursor.execute(
            f"INSERT INTO {LEDGER_TABLES[kind]} "
            "(nombre_archivo, usuario_id, total_registros, estado, creado_en) "
            "VALUES (%s, %s, %s, %s, %s) RETURNING id",
            (file_name, operator_id, total, RunStatus.RUNNING.value, submitted_at),
        )
        row = self.cursor.fetchone()
        if row is None:
            raise RuntimeError(f"{LEDGER_TABLES[kind]} insert returned no id")
        return int(row[0])

    def finish_import_run(self, run: ImportRun) -> None:
        self.cursor.execute(
            f"UPDATE {LEDGER_TABLES[run.kind]} "
            "SET exitosos = %s, fallidos = %s, omitidos = %s, estado = %s WHERE id = %s",
            (run.success, run.failure, run.skipped, run.status.value, run.id),
        )

    def set_import_run_status(self, kind: ImportKind, run_id: int, status: RunStatus) -> None:
        self.cursor.execute(
            f"UPDATE {LEDGER_TABLES[kind]} SET estado = %s WHERE id = %s",
            (status.value, run_id),
        )
