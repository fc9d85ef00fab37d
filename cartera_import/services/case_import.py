from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from ..config.loader import CaseImportSettings
from ..keys.builder import canonical_document, idempotency_key, taxpayer_key_variants
from ..keys.index import MatchingIndex
from ..models.classified_row import ClassifiedRow
from ..models.import_run import ImportKind, ImportRun
from ..models.records import CaseRecord, RowRejection
from ..models.source_row import SourceRow
from ..models.writes import (
    HistoryEntry,
    NewCase,
    NewEnforcementCollection,
    NewResolutionOrder,
    NewTaxpayer,
)
from ..normalize.fields import (
    clean_cell,
    map_document_type,
    normalize_identifier,
    parse_amount,
    parse_date,
    resolution_type_from_label,
)
from ..tabular.columns import ColumnLayout, ColumnSpec, resolve_columns
from ..tabular.reader import CellRendering, TableData
from .classifier import RowClassifier
from .derived import case_deadline, case_status_from_label
from .pipeline import ImportPipeline, ParseOutcome

"""Case ("proceso") import.

Each row is one fine/tax case owned by a taxpayer. Rows are matched to the
taxpayer by document type and number; unknown taxpayers are created inside
the batch that first needs them.
"""

__all__ = [
    "CASE_COLUMNS",
    "CaseContext",
    "CaseImportPipeline",
]

logger = logging.getLogger(__name__)

MISSING_DOCUMENT = "SIN-DOC"
MISSING_NAME = "Sin nombre"
ENFORCEMENT_FLAG = "S"

CASE_COLUMNS = [
    ColumnSpec(
        "comparendo",
        ("nro comparendo", "no comparendo", "numero comparendo", "n comparendo"),
        required=True,
    ),
    ColumnSpec("comparendo_date", ("fecha comparendo",), required=True),
    ColumnSpec(
        "resolution_number",
        ("nro resolucion", "no resolucion", "numero resolucion", "n resolucion"),
    ),
    ColumnSpec("resolution_date", ("fecha resolucion",)),
    ColumnSpec("document_type", ("tipo documento",)),
    ColumnSpec("document_number", ("identificacion infractor", "identificacion"), required=True),
    ColumnSpec("offender_name", ("nombre infractor",)),
    ColumnSpec("infraction_code", ("codigo infraccion",)),
    ColumnSpec("fine", ("valor multa",), required=True),
    ColumnSpec("resolution_type", ("tipo resolucion",)),
    ColumnSpec("portfolio_status", ("estado cartera",)),
    ColumnSpec("debt", ("valor deuda",)),
    ColumnSpec("interest", ("valor intereses",)),
    ColumnSpec("polca", ("polca",), exact=True),
    ColumnSpec("enforcement_number", ("nro coactivo", "no coactivo", "n coactivo")),
    ColumnSpec("enforcement_date", ("fecha coactivo",)),
]


@dataclass
class CaseContext:
    taxpayers: MatchingIndex
    taxpayer_names: dict[int, str]
    known_keys: set[str]
    # taxpayers inserted by the batch in progress, published after commit
    staged_taxpayers: dict[str, tuple[int, tuple[str, ...]]] = field(default_factory=dict)


class CaseImportPipeline(ImportPipeline):
    kind = ImportKind.CASES

    @property
    def settings(self) -> CaseImportSettings:
        return self.config.cases

    @property
    def rendering(self) -> CellRendering:
        return CellRendering(
            date_order=self.settings.date_order,
            decimal_separator=self.settings.amount_format.decimal_separator,
        )

    # ─── parsing ───────────────────────────────────────────────────────────

    def parse_table(self, table: TableData) -> ParseOutcome:
        layout = resolve_columns(table.headers, CASE_COLUMNS)
        outcome = ParseOutcome()
        for row in table.rows:
            parsed = self.parse_row(row, layout)
            if isinstance(parsed, RowRejection):
                outcome.rejections.append(parsed)
            else:
                outcome.records.append(parsed)
        return outcome

    def parse_row(self, row: SourceRow, layout: ColumnLayout) -> CaseRecord | RowRejection:
        s = self.settings

        def get(name: str) -> str | None:
            return row.get(layout.header(name))

        comparendo = normalize_identifier(get("comparendo"))
        resolution_number = normalize_identifier(get("resolution_number"))
        if comparendo is None and resolution_number is None:
            return RowRejection(row.row_number, "empty comparendo and resolution number")

        comparendo_date = parse_date(get("comparendo_date"), s.date_order)
        resolution_date = parse_date(get("resolution_date"), s.date_order)
        application_date = comparendo_date or resolution_date
        fiscal_year = application_date.year if application_date else date.today().year
        if not s.min_year <= fiscal_year <= s.max_year:
            return RowRejection(
                row.row_number,
                f"fiscal year {fiscal_year} outside {s.min_year}-{s.max_year}",
                comparendo or resolution_number or "",
            )

        fine = parse_amount(get("fine"), s.amount_format)
        interest = parse_amount(get("interest"), s.amount_format)
        debt = parse_amount(get("debt"), s.amount_format)
        if debt is not None and debt > 0:
            total = debt
        else:
            total = (fine or Decimal("0.00")) + (interest or Decimal("0.00"))

        document_number = normalize_identifier(get("document_number")) or MISSING_DOCUMENT
        enforcement_date = parse_date(get("enforcement_date"), s.date_order)
        polca = normalize_identifier(get("polca")) == ENFORCEMENT_FLAG

        return CaseRecord(
            row_number=row.row_number,
            comparendo=comparendo,
            comparendo_date=comparendo_date,
            resolution_number=resolution_number,
            resolution_date=resolution_date,
            document_type=map_document_type(get("document_type")),
            document_number=document_number,
            offender_name=clean_cell(get("offender_name")),
            infraction_code=normalize_identifier(get("infraction_code")),
            fine_amount=fine,
            interest_amount=interest,
            debt_amount=debt,
            total_amount=total,
            fiscal_year=fiscal_year,
            resolution_type_label=clean_cell(get("resolution_type")),
            portfolio_status_label=clean_cell(get("portfolio_status")),
            has_enforcement=polca and enforcement_date is not None,
            enforcement_number=normalize_identifier(get("enforcement_number")),
            enforcement_date=enforcement_date,
            idempotency_key=idempotency_key(
                comparendo, application_date, total, canonical_document(document_number)
            ),
        )

    # ─── classification ────────────────────────────────────────────────────

    def build_context(self) -> CaseContext:
        taxpayers = self.repository.fetch_taxpayers()
        index = MatchingIndex.build(
            (t.id, taxpayer_key_variants(t.document_type, t.document_number)) for t in taxpayers
        )
        known_keys = {
            idempotency_key(
                normalize_identifier(k.comparendo),
                k.application_date,
                k.amount,
                canonical_document(normalize_identifier(k.document_number) or MISSING_DOCUMENT),
            )
            for k in self.repository.fetch_case_keys()
        }
        logger.debug("case context taxpayers=%d keys=%d", len(taxpayers), len(known_keys))
        return CaseContext(
            taxpayers=index,
            taxpayer_names={t.id: t.name for t in taxpayers},
            known_keys=known_keys,
        )

    def make_classifier(self, context: CaseContext) -> RowClassifier:
        def resolve(record: CaseRecord) -> int | None:
            return context.taxpayers.lookup(
                taxpayer_key_variants(record.document_type, record.document_number)
            )

        def describe(record: CaseRecord, target_id: int | None) -> tuple[str, str]:
            name = context.taxpayer_names.get(target_id) if target_id is not None else None
            return (name or record.offender_name, record.natural_id)

        return RowClassifier(
            context.known_keys,
            resolve,
            accept_unresolved=self.settings.create_missing_taxpayers,
            describe=describe,
        )

    # ─── batch writes ──────────────────────────────────────────────────────

    def commit_batch(
        self, rows: list[ClassifiedRow[Any]], context: CaseContext, run: ImportRun
    ) -> None:
        now = datetime.now(UTC)
        taxpayer_ids = self._resolve_taxpayers(rows, context)

        cases: list[NewCase] = []
        for row, taxpayer_id in zip(rows, taxpayer_ids):
            record: CaseRecord = row.record
            cases.append(
                NewCase(
                    taxpayer_id=taxpayer_id,
                    fiscal_year=record.fiscal_year,
                    comparendo=record.comparendo,
                    amount=record.total_amount,
                    fine_amount=_positive(record.fine_amount),
                    interest_amount=_positive(record.interest_amount),
                    status=case_status_from_label(record.portfolio_status_label),
                    deadline=case_deadline(
                        record.enforcement_date if record.has_enforcement else None,
                        record.application_date,
                        self.settings.prescription_years,
                    ),
                    application_date=record.application_date,
                    imported_at=now,
                    import_run_id=run.id,
                )
            )
        case_ids = self.repository.insert_cases(cases)

        self.repository.insert_history(
            [
                HistoryEntry(
                    case_id=case_id,
                    user_id=run.operator_id,
                    new_status=case.status,
                    comment=f"Importado desde archivo: {run.file_name}",
                )
                for case_id, case in zip(case_ids, cases)
            ]
        )

        orders: list[NewResolutionOrder] = []
        enforcements: list[NewEnforcementCollection] = []
        for row, case_id in zip(rows, case_ids):
            record = row.record
            number = record.resolution_number or record.comparendo
            if number:
                orders.append(
                    NewResolutionOrder(
                        case_id=case_id,
                        resolution_number=number,
                        resolution_date=record.resolution_date,
                        infraction_code=record.infraction_code,
                        resolution_type=resolution_type_from_label(record.resolution_type_label),
                    )
                )
            if record.has_enforcement:
                enforcements.append(
                    NewEnforcementCollection(
                        case_id=case_id,
                        enforcement_number=record.enforcement_number,
                        start_date=record.enforcement_date,
                    )
                )
        if orders:
            self.repository.insert_resolution_orders(orders)
        if enforcements:
            self.repository.insert_enforcement_collections(enforcements)

    def _resolve_taxpayers(self, rows: list[ClassifiedRow[Any]], context: CaseContext) -> list[int]:
        """Taxpayer id per row, inserting the ones neither the store nor an
        earlier batch of this run has."""
        context.staged_taxpayers.clear()
        pending: dict[str, tuple[NewTaxpayer, tuple[str, ...]]] = {}
        for row in rows:
            if row.target_id is not None:
                continue
            record: CaseRecord = row.record
            variants = taxpayer_key_variants(record.document_type, record.document_number)
            if context.taxpayers.lookup(variants) is not None or variants[0] in pending:
                continue
            pending[variants[0]] = (
                NewTaxpayer(
                    document_number=record.document_number,
                    document_type=record.document_type,
                    name=record.offender_name or MISSING_NAME,
                ),
                variants,
            )

        if pending:
            new_ids = self.repository.insert_taxpayers([t for t, _ in pending.values()])
            for (key, (_, variants)), new_id in zip(pending.items(), new_ids):
                context.staged_taxpayers[key] = (new_id, variants)

        ids: list[int] = []
        for row in rows:
            if row.target_id is not None:
                ids.append(row.target_id)
                continue
            record = row.record
            variants = taxpayer_key_variants(record.document_type, record.document_number)
            staged = context.staged_taxpayers.get(variants[0])
            ids.append(staged[0] if staged is not None else context.taxpayers.lookup(variants))
        return ids

    def after_commit(self, rows: list[ClassifiedRow[Any]], context: CaseContext) -> None:
        for taxpayer_id, variants in context.staged_taxpayers.values():
            context.taxpayers.add(taxpayer_id, variants)
        context.staged_taxpayers.clear()


def _positive(amount: Decimal | None) -> Decimal | None:
    return amount if amount is not None and amount > 0 else None
