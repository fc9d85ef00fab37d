from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

"""Write payloads handed to the repository inside a batch transaction.

Field order matches the column order the repository inserts.
"""

__all__ = [
    "CaseStatusUpdate",
    "HistoryEntry",
    "NewAgreement",
    "NewCase",
    "NewEnforcementCollection",
    "NewInstallment",
    "NewResolutionOrder",
    "NewTaxpayer",
]


@dataclass(frozen=True)
class NewTaxpayer:
    document_number: str
    document_type: str
    name: str


@dataclass(frozen=True)
class NewCase:
    taxpayer_id: int
    fiscal_year: int
    comparendo: str | None
    amount: Decimal
    fine_amount: Decimal | None
    interest_amount: Decimal | None
    status: str
    deadline: date | None
    application_date: date | None
    imported_at: datetime
    import_run_id: int
    imported: bool = True


@dataclass(frozen=True)
class HistoryEntry:
    case_id: int
    user_id: int | None
    new_status: str
    comment: str
    event_type: str = "cambio_estado"
    previous_status: str | None = None


@dataclass(frozen=True)
class NewResolutionOrder:
    case_id: int
    resolution_number: str
    resolution_date: date | None
    infraction_code: str | None
    resolution_type: str | None


@dataclass(frozen=True)
class NewEnforcementCollection:
    case_id: int
    enforcement_number: str | None
    start_date: date
    active: bool = True


@dataclass(frozen=True)
class NewAgreement:
    case_id: int
    agreement_number: str
    agreement_date: date | None
    start_date: date | None
    installments: int
    initial_percentage: Decimal
    billing_day: int
    imported_at: datetime
    import_run_id: int
    idempotency_key: str


@dataclass(frozen=True)
class NewInstallment:
    agreement_id: int
    number: int
    due_date: date | None
    expected_amount: Decimal | None
    status: str
    paid_date: date | None


@dataclass(frozen=True)
class CaseStatusUpdate:
    case_id: int
    status: str
    deadline: date | None  # None keeps the stored deadline
    updated_at: datetime
