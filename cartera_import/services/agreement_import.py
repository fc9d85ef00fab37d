from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from ..config.loader import AgreementImportSettings
from ..keys.builder import digits_only, idempotency_key, key_variants, strip_leading_zeros
from ..keys.index import MatchingIndex
from ..models.classified_row import ClassifiedRow
from ..models.import_run import ImportKind, ImportRun
from ..models.records import AgreementRecord, InstallmentDetail, RowRejection
from ..models.source_row import SourceRow
from ..models.writes import CaseStatusUpdate, HistoryEntry, NewAgreement, NewInstallment
from ..normalize.fields import (
    clean_cell,
    parse_amount,
    parse_count,
    parse_date,
    parse_percentage,
    split_multi,
    value_at,
)
from ..tabular.columns import ColumnLayout, ColumnSpec, resolve_columns
from ..tabular.reader import CellRendering, TableData
from .classifier import RowClassifier
from .derived import CASE_STATUS_AGREEMENT, agreement_deadline, installment_schedule
from .pipeline import ImportPipeline, ParseOutcome

"""Payment agreement ("acuerdo de pago") import.

Each agreement is attached to an existing case found through the case
matching index. A row may name several cases in one cell ("123-456"); it is
expanded into one record per case before classification.
"""

__all__ = [
    "AgreementContext",
    "AgreementImportPipeline",
    "agreement_columns",
    "normalize_agreement_number",
]

logger = logging.getLogger(__name__)


def agreement_columns(max_installments: int = 12) -> list[ColumnSpec]:
    specs = [
        ColumnSpec("case_reference", ("n comparendo", "no comparendo", "nro comparendo"), required=True),
        ColumnSpec("agreement_number", ("n acuerdo", "no acuerdo", "nro acuerdo"), required=True),
        ColumnSpec("debtor_name", ("nombre",), exact=True),
        ColumnSpec("agreement_date", ("fecha acuerdo",), required=True),
        ColumnSpec("initial_installment_date", ("fecha cuota inicial",)),
        ColumnSpec("installment_count", ("n cuotas", "no cuotas", "nro cuotas"), required=True),
        ColumnSpec("percentage", ("% cuota inicial", "cuota inicial"), required=True),
        ColumnSpec("first_installment_date", ("fecha cuota 1",), exact=True),
        ColumnSpec(
            "prescription_override",
            ("fecha inicio prescripcion", "fecha inicio preescripcion"),
        ),
        ColumnSpec("installment_value", ("valor de la cuota",)),
        ColumnSpec("last_payment_date", ("fecha de ultimo pago", "fecha ultimo pago")),
    ]
    for n in range(1, max_installments + 1):
        specs.append(ColumnSpec(f"installment_{n}", (f"cuota {n}",), exact=True))
        if n > 1:
            specs.append(ColumnSpec(f"installment_date_{n}", (f"fecha cuota {n}",), exact=True))
    return specs


def normalize_agreement_number(value: str | None) -> str:
    return clean_cell(value).casefold()


def _reference_key(reference: str) -> str:
    digits = digits_only(reference)
    return strip_leading_zeros(digits) if digits else reference


@dataclass
class AgreementContext:
    cases: MatchingIndex
    case_names: dict[int, str]
    known_keys: set[str]
    # normalized agreement numbers per case id, extended while classifying
    agreements_by_case: dict[int, set[str]]


class AgreementImportPipeline(ImportPipeline):
    kind = ImportKind.AGREEMENTS

    @property
    def settings(self) -> AgreementImportSettings:
        return self.config.agreements

    @property
    def rendering(self) -> CellRendering:
        return CellRendering(
            date_order=self.settings.date_order,
            decimal_separator=self.settings.amount_format.decimal_separator,
        )

    # ─── parsing ───────────────────────────────────────────────────────────

    def parse_table(self, table: TableData) -> ParseOutcome:
        layout = resolve_columns(table.headers, agreement_columns(self.settings.max_installments))
        outcome = ParseOutcome()
        for row in table.rows:
            parsed = self.parse_row(row, layout)
            if isinstance(parsed, RowRejection):
                outcome.rejections.append(parsed)
            else:
                outcome.records.extend(parsed)
        return outcome

    def parse_row(self, row: SourceRow, layout: ColumnLayout) -> list[AgreementRecord] | RowRejection:
        """One record per case reference packed in the row."""
        s = self.settings

        def get(name: str) -> str | None:
            return row.get(layout.header(name))

        def dates(name: str) -> list[date | None]:
            return [parse_date(v, s.date_order) for v in split_multi(get(name))]

        references = split_multi(get("case_reference"))
        if not references:
            return RowRejection(row.row_number, "empty case reference")

        installment_count = parse_count(get("installment_count"))
        percentage = parse_percentage(get("percentage"), Decimal(str(s.default_percentage)))
        installment_value = parse_amount(get("installment_value"), s.amount_format)
        details = tuple(self._installment_details(get, min(installment_count, s.max_installments)))

        agreement_dates = dates("agreement_date")
        initial_dates = dates("initial_installment_date")
        first_dates = dates(
            "first_installment_date" if layout.has("first_installment_date") else "initial_installment_date"
        )
        overrides = dates("prescription_override")
        raw_number = clean_cell(get("agreement_number"))

        records: list[AgreementRecord] = []
        for i, reference in enumerate(references):
            agreement_date = value_at(agreement_dates, i)
            first_date = value_at(first_dates, i)
            number = raw_number or f"Acuerdo {reference}"
            records.append(
                AgreementRecord(
                    row_number=row.row_number,
                    case_reference=reference,
                    agreement_number=number,
                    debtor_name=clean_cell(get("debtor_name")),
                    agreement_date=agreement_date,
                    initial_installment_date=value_at(initial_dates, i),
                    installment_count=installment_count,
                    initial_percentage=percentage,
                    billing_day=first_date.day if first_date else s.default_billing_day,
                    prescription_override=value_at(overrides, i),
                    installment_value=installment_value,
                    installments=details,
                    last_payment_date=parse_date(get("last_payment_date"), s.date_order),
                    idempotency_key=idempotency_key(
                        normalize_agreement_number(number),
                        agreement_date,
                        installment_value,
                        _reference_key(reference),
                    ),
                )
            )
        return records

    def _installment_details(self, get: Any, count: int) -> list[InstallmentDetail]:
        s = self.settings
        details: list[InstallmentDetail] = []
        for n in range(1, count + 1):
            # "Fecha cuota 1" doubles as the first installment date column
            date_field = "first_installment_date" if n == 1 else f"installment_date_{n}"
            details.append(
                InstallmentDetail(
                    number=n,
                    amount=parse_amount(get(f"installment_{n}"), s.amount_format),
                    paid_date=parse_date(get(date_field), s.date_order),
                )
            )
        return details

    # ─── classification ────────────────────────────────────────────────────

    def build_context(self) -> AgreementContext:
        references = self.repository.fetch_case_references()
        index = MatchingIndex.build(
            (r.id, key_variants(r.comparendo) + key_variants(r.resolution_number))
            for r in references
        )
        agreements_by_case: dict[int, set[str]] = {}
        known_keys: set[str] = set()
        for a in self.repository.fetch_agreement_keys():
            agreements_by_case.setdefault(a.case_id, set()).add(
                normalize_agreement_number(a.agreement_number)
            )
            if a.idempotency_key:
                known_keys.add(a.idempotency_key)
        logger.debug(
            "agreement context cases=%d index=%d keys=%d", len(references), len(index), len(known_keys)
        )
        return AgreementContext(
            cases=index,
            case_names={r.id: r.taxpayer_name or "" for r in references},
            known_keys=known_keys,
            agreements_by_case=agreements_by_case,
        )

    def make_classifier(self, context: AgreementContext) -> RowClassifier:
        def resolve(record: AgreementRecord) -> int | None:
            return context.cases.lookup(key_variants(record.case_reference))

        def already_on_case(record: AgreementRecord, case_id: int) -> bool:
            numbers = context.agreements_by_case.setdefault(case_id, set())
            number = normalize_agreement_number(record.agreement_number)
            if number in numbers:
                return True
            numbers.add(number)
            return False

        def describe(record: AgreementRecord, case_id: int | None) -> tuple[str, str]:
            name = context.case_names.get(case_id) if case_id is not None else None
            return (name or record.debtor_name, record.case_reference)

        return RowClassifier(
            context.known_keys,
            resolve,
            duplicate_of_target=already_on_case,
            describe=describe,
        )

    # ─── batch writes ──────────────────────────────────────────────────────

    def commit_batch(
        self, rows: list[ClassifiedRow[Any]], context: AgreementContext, run: ImportRun
    ) -> None:
        now = datetime.now(UTC)
        agreements = [
            NewAgreement(
                case_id=row.target_id,
                agreement_number=row.record.agreement_number,
                agreement_date=row.record.agreement_date,
                start_date=row.record.initial_installment_date,
                installments=row.record.installment_count,
                initial_percentage=row.record.initial_percentage,
                billing_day=row.record.billing_day,
                imported_at=now,
                import_run_id=run.id,
                idempotency_key=row.record.idempotency_key,
            )
            for row in rows
        ]
        agreement_ids = self.repository.insert_agreements(agreements)

        installments: list[NewInstallment] = []
        updates: list[CaseStatusUpdate] = []
        history: list[HistoryEntry] = []
        for row, agreement_id in zip(rows, agreement_ids):
            record: AgreementRecord = row.record
            schedule = installment_schedule(record)
            installments.extend(
                NewInstallment(
                    agreement_id=agreement_id,
                    number=item.number,
                    due_date=item.due_date,
                    expected_amount=item.expected_amount,
                    status=item.status.value,
                    paid_date=item.paid_date,
                )
                for item in schedule
            )
            updates.append(
                CaseStatusUpdate(
                    case_id=row.target_id,
                    status=CASE_STATUS_AGREEMENT,
                    deadline=agreement_deadline(record, schedule, self.settings.prescription_months),
                    updated_at=now,
                )
            )
            history.append(
                HistoryEntry(
                    case_id=row.target_id,
                    user_id=run.operator_id,
                    new_status=CASE_STATUS_AGREEMENT,
                    comment=f"Acuerdo de pago importado desde archivo: {record.agreement_number}",
                )
            )
        self.repository.insert_installments(installments)
        self.repository.update_cases(updates)
        self.repository.insert_history(history)
