from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

"""Typed projections of decoded rows (ParsedRecord family).

A ParsedRecord is immutable once built and always carries the spreadsheet
row number for error reporting. Absent values are ``None``, never sentinel
strings.
"""

__all__ = [
    "CaseRecord",
    "AgreementRecord",
    "InstallmentDetail",
    "InstallmentStatus",
    "RowRejection",
]


class InstallmentStatus(Enum):
    PAID = "pagada"
    PENDING = "pendiente"


@dataclass(frozen=True)
class InstallmentDetail:
    """Per-installment amount/paid-date pair taken from ``Cuota N`` columns."""
    number: int  # 1-based
    amount: Decimal | None
    paid_date: date | None

    @property
    def status(self) -> InstallmentStatus:
        if self.paid_date is not None and self.amount is not None and self.amount > 0:
            return InstallmentStatus.PAID
        return InstallmentStatus.PENDING


@dataclass(frozen=True)
class CaseRecord:
    """One fine/tax case row ("proceso") ready for classification."""
    row_number: int
    comparendo: str | None
    comparendo_date: date | None
    resolution_number: str | None
    resolution_date: date | None
    document_type: str
    document_number: str  # "SIN-DOC" when the source cell is empty
    offender_name: str
    infraction_code: str | None
    fine_amount: Decimal | None
    interest_amount: Decimal | None
    debt_amount: Decimal | None
    total_amount: Decimal
    fiscal_year: int
    resolution_type_label: str
    portfolio_status_label: str
    has_enforcement: bool
    enforcement_number: str | None
    enforcement_date: date | None
    idempotency_key: str

    @property
    def natural_id(self) -> str:
        return self.comparendo or self.resolution_number or ""

    @property
    def application_date(self) -> date | None:
        return self.comparendo_date or self.resolution_date


@dataclass(frozen=True)
class AgreementRecord:
    """One payment agreement for a single case reference ("acuerdo de pago")."""
    row_number: int
    case_reference: str
    agreement_number: str
    debtor_name: str
    agreement_date: date | None
    initial_installment_date: date | None
    installment_count: int
    initial_percentage: Decimal
    billing_day: int
    prescription_override: date | None
    installment_value: Decimal | None
    installments: tuple[InstallmentDetail, ...]
    last_payment_date: date | None
    idempotency_key: str

    @property
    def natural_id(self) -> str:
        return self.case_reference


@dataclass(frozen=True)
class RowRejection:
    """Row that could not become a record. Counted as skipped, never as an error."""
    row_number: int
    reason: str
    reference: str = ""
