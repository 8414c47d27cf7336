"""Ledger balance engine: projections of what a representative has paid and owes."""

from decimal import Decimal
from typing import Iterable, List

from .models import (
    BalanceSummary,
    PaymentRecord,
    PaymentStatus,
    Representative,
    ZERO,
    canonical_identifier,
    to_money,
)


def payments_for(
    representative: Representative,
    payments: Iterable[PaymentRecord],
) -> List[PaymentRecord]:
    """Select the payments that belong to a representative.

    Identification numbers are compared after canonicalisation, so records
    imported as "V-12.345.678" still count for representative "12345678".
    """
    key = canonical_identifier(representative.cedula)
    return [p for p in payments if canonical_identifier(p.cedula_representative) == key]


def _sum_status(payments: Iterable[PaymentRecord], status: PaymentStatus) -> Decimal:
    return to_money(sum((p.amount for p in payments if p.status == status), ZERO))


def compute_balance(
    representative: Representative,
    payments: Iterable[PaymentRecord],
) -> BalanceSummary:
    """Compute verified, in-transit and outstanding totals.

    Pure projection recomputed on every call; the pending_balance snapshot
    stored on payment records is never consulted.

    Args:
        representative: Representative whose balance is requested.
        payments: Full payment ledger (other representatives' records are ignored).

    Returns:
        BalanceSummary where outstanding = max(0, accrued - verified).
    """
    own = payments_for(representative, payments)
    verified = _sum_status(own, PaymentStatus.VERIFIED)
    in_transit = _sum_status(own, PaymentStatus.PENDING)
    outstanding = max(ZERO, to_money(representative.total_accrued_debt - verified))
    return BalanceSummary(
        verified_total=verified,
        in_transit_total=in_transit,
        outstanding=outstanding,
    )


def balance_after_payment(outstanding_before: Decimal, amount: Decimal) -> Decimal:
    """Outstanding balance immediately after applying a payment, floored at zero."""
    return max(ZERO, to_money(outstanding_before - amount))
