"""Ledger overviews, dashboard figures and daily cash closing."""

import calendar
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .balance import compute_balance, payments_for
from .models import (
    CASH_METHODS,
    Level,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    Representative,
    Money,
    ZERO,
    canonical_identifier,
    to_money,
)

DEFAULT_CRITICAL_DAYS = 5


def days_until_month_end(today: date) -> int:
    """Whole days left from ``today`` to the last day of its month."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return last_day - today.day


class LedgerEntry(BaseModel):
    """One line of the receivables ledger."""
    cedula: str
    full_name: str
    matricula: str
    student_count: int
    total_accrued: Money
    total_paid: Money
    in_transit: Money
    balance: Money
    last_payment_date: Optional[date] = None
    is_critical: bool = False


class LedgerOverview(BaseModel):
    """Receivables for the whole school."""
    as_of: date
    days_until_month_end: int
    entries: List[LedgerEntry] = Field(default_factory=list)

    @property
    def receivables_total(self) -> Decimal:
        return to_money(sum((e.balance for e in self.entries), ZERO))

    @property
    def in_arrears(self) -> int:
        return sum(1 for e in self.entries if e.balance > 0)


def ledger_overview(
    representatives: Iterable[Representative],
    payments: Iterable[PaymentRecord],
    today: date,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
) -> LedgerOverview:
    """Build the receivables ledger.

    A representative with a balance is critical when the month closes within
    ``critical_days`` days.

    Args:
        representatives: All representatives.
        payments: Full payment ledger.
        today: Reference date.
        critical_days: Days before month end at which debts become critical.

    Returns:
        LedgerOverview with one entry per representative.
    """
    payments = list(payments)
    days_left = days_until_month_end(today)
    urgent = days_left <= critical_days
    entries: List[LedgerEntry] = []

    for rep in representatives:
        summary = compute_balance(rep, payments)
        verified_dates = [
            p.payment_date for p in payments_for(rep, payments)
            if p.status == PaymentStatus.VERIFIED
        ]
        entries.append(LedgerEntry(
            cedula=rep.cedula,
            full_name=rep.full_name,
            matricula=rep.matricula,
            student_count=len(rep.students),
            total_accrued=rep.total_accrued_debt,
            total_paid=summary.verified_total,
            in_transit=summary.in_transit_total,
            balance=summary.outstanding,
            last_payment_date=max(verified_dates) if verified_dates else None,
            is_critical=summary.outstanding > 0 and urgent,
        ))

    return LedgerOverview(as_of=today, days_until_month_end=days_left, entries=entries)


class DashboardStats(BaseModel):
    """Headline figures for the administration dashboard."""
    verified_income: Money = ZERO
    pending_income: Money = ZERO
    representative_count: int = 0
    student_count: int = 0
    students_per_level: Dict[Level, int] = Field(default_factory=dict)
    cash_income: Money = ZERO
    electronic_income: Money = ZERO


def dashboard_stats(
    representatives: Iterable[Representative],
    payments: Iterable[PaymentRecord],
) -> DashboardStats:
    representatives = list(representatives)
    payments = list(payments)
    verified = [p for p in payments if p.status == PaymentStatus.VERIFIED]
    pending = [p for p in payments if p.status == PaymentStatus.PENDING]

    per_level = {level: 0 for level in Level}
    for rep in representatives:
        for student in rep.students:
            per_level[student.level] += 1

    return DashboardStats(
        verified_income=to_money(sum((p.amount for p in verified), ZERO)),
        pending_income=to_money(sum((p.amount for p in pending), ZERO)),
        representative_count=len(representatives),
        student_count=sum(per_level.values()),
        students_per_level=per_level,
        cash_income=to_money(sum((p.amount for p in verified if p.method in CASH_METHODS), ZERO)),
        electronic_income=to_money(
            sum((p.amount for p in verified if p.method not in CASH_METHODS), ZERO)
        ),
    )


class DailyClosing(BaseModel):
    """Cash register closing for one day of verified payments."""
    day: date
    cash_usd: Money = ZERO
    bolivares: Money = ZERO
    zelle: Money = ZERO
    others: Money = ZERO
    grand_total: Money = ZERO
    payments: List[PaymentRecord] = Field(default_factory=list)


# Bolivar-denominated instruments are closed together
BOLIVAR_METHODS = frozenset({PaymentMethod.CASH_BS, PaymentMethod.PAGO_MOVIL})


def daily_closing(payments: Iterable[PaymentRecord], day: date) -> DailyClosing:
    """Totals by instrument group for the verified payments dated ``day``."""
    todays = sorted(
        (p for p in payments if p.payment_date == day and p.status == PaymentStatus.VERIFIED),
        key=lambda p: p.timestamp,
    )
    closing = DailyClosing(day=day, payments=todays)
    for p in todays:
        closing.grand_total += p.amount
        if p.method == PaymentMethod.CASH_USD:
            closing.cash_usd += p.amount
        elif p.method in BOLIVAR_METHODS:
            closing.bolivares += p.amount
        elif p.method == PaymentMethod.ZELLE:
            closing.zelle += p.amount
        else:
            closing.others += p.amount
    return closing


def filter_payments(
    payments: Iterable[PaymentRecord],
    cedula: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[PaymentRecord]:
    """Payment history filtered for the general report.

    ``cedula`` matches as a substring of the canonical identification. The
    date range applies only when both ends are given.
    """
    result = list(payments)
    if cedula:
        needle = canonical_identifier(cedula)
        result = [p for p in result if needle in canonical_identifier(p.cedula_representative)]
    if status is not None:
        result = [p for p in result if p.status == PaymentStatus(status)]
    if start and end:
        result = [p for p in result if start <= p.payment_date <= end]
    return result
