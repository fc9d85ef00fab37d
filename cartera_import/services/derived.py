from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pandas as pd

from cartera_import.models.records import AgreementRecord, InstallmentStatus
from cartera_import.normalize.fields import normalize_text

"""Derived-state calculator.

Business fields computed from imported rows: case status, statute of
limitations ("prescripción") deadlines and installment schedules. Called from
inside the batch transaction that writes the records, never as a separate
pass.

Month arithmetic clamps to the end of the month (31/01 + 1 month = 28/02 or
29/02).
"""

__all__ = [
    "CASE_STATUS_AGREEMENT",
    "CASE_STATUS_ENFORCEMENT",
    "CASE_STATUS_PENDING",
    "ScheduleRow",
    "add_months",
    "add_years",
    "agreement_deadline",
    "case_deadline",
    "case_status_from_label",
    "installment_schedule",
]

CASE_STATUS_PENDING = "pendiente"
CASE_STATUS_ENFORCEMENT = "en_cobro_coactivo"
CASE_STATUS_AGREEMENT = "acuerdo_pago"

ENFORCEMENT_TERMS = ("cobro", "coactivo")


def add_months(base: date, months: int) -> date:
    return (pd.Timestamp(base) + pd.DateOffset(months=months)).date()


def add_years(base: date, years: int) -> date:
    return (pd.Timestamp(base) + pd.DateOffset(years=years)).date()


def case_status_from_label(label: str | None) -> str:
    """"En cobro coactivo" style labels map to enforcement, everything else to pending."""
    text = normalize_text(label)
    if all(term in text for term in ENFORCEMENT_TERMS):
        return CASE_STATUS_ENFORCEMENT
    return CASE_STATUS_PENDING


def case_deadline(
    enforcement_start: date | None, application_date: date | None, years: int
) -> date | None:
    """Enforcement start if present, else application date, plus ``years``."""
    base = enforcement_start or application_date
    if base is None:
        return None
    return add_years(base, years)


@dataclass(frozen=True)
class ScheduleRow:
    number: int
    expected_amount: Decimal | None
    due_date: date | None  # only for pending installments
    paid_date: date | None
    status: InstallmentStatus


def installment_schedule(record: AgreementRecord) -> list[ScheduleRow]:
    """One row per installment number 1..installment_count.

    Paid installments keep their paid date and carry no due date; pending
    ones are due ``start + index months`` where start is the initial
    installment date (fallback: agreement date).
    """
    start = record.initial_installment_date or record.agreement_date
    rows: list[ScheduleRow] = []
    for i in range(record.installment_count):
        detail = record.installments[i] if i < len(record.installments) else None
        amount = detail.amount if detail is not None and detail.amount is not None else record.installment_value
        if detail is not None and detail.status is InstallmentStatus.PAID:
            rows.append(ScheduleRow(i + 1, amount, None, detail.paid_date, InstallmentStatus.PAID))
            continue
        due = add_months(start, i) if start is not None else None
        rows.append(ScheduleRow(i + 1, amount, due, None, InstallmentStatus.PENDING))
    return rows


def agreement_deadline(
    record: AgreementRecord, schedule: list[ScheduleRow], months: int
) -> date | None:
    """New case deadline after importing an agreement.

    - some paid, some pending: latest paid installment date + ``months``
    - none paid: override column, else agreement date (or start) + ``months``
    - all paid: override column, else no change (``None``)
    """
    paid = [r for r in schedule if r.status is InstallmentStatus.PAID and r.paid_date is not None]
    pending = [r for r in schedule if r.status is InstallmentStatus.PENDING]

    if paid and pending:
        return add_months(max(r.paid_date for r in paid), months)  # type: ignore[type-var]
    if record.prescription_override is not None:
        return record.prescription_override
    if pending:
        base = record.agreement_date or record.initial_installment_date
        return add_months(base, months) if base is not None else None
    return None
