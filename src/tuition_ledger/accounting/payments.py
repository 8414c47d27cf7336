"""Creation of new payment records by the cashier and self-service flows."""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from .balance import balance_after_payment, compute_balance
from .models import (
    CASH_METHODS,
    EXTERNAL_ID_PREFIX,
    MAX_AMOUNT,
    NO_REFERENCE,
    POS_ID_PREFIX,
    PaymentMethod,
    PaymentOrigin,
    PaymentRecord,
    PaymentType,
    Representative,
    parse_decimal,
    to_money,
    utcnow,
)
from .workflow import initial_status

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    PaymentOrigin.POINT_OF_SALE: POS_ID_PREFIX,
    PaymentOrigin.VIRTUAL_OFFICE: EXTERNAL_ID_PREFIX,
}

PORTAL_NOTE = "Registro desde Oficina Virtual."


def generate_payment_id(origin: PaymentOrigin = PaymentOrigin.POINT_OF_SALE) -> str:
    """Generate a unique payment identifier carrying the origin's prefix."""
    return f"{ID_PREFIXES[PaymentOrigin(origin)]}{uuid.uuid4().hex[:16].upper()}"


def parse_payment_amount(amount: Any) -> Decimal:
    """Validate a payment amount entered by a cashier or a representative.

    Raises:
        ValueError: If the amount is not a positive number or exceeds MAX_AMOUNT.
    """
    value = parse_decimal(amount)
    if value is None or value <= 0:
        raise ValueError(f"Payment amount must be a positive number, got {amount!r}")
    if value > MAX_AMOUNT:
        raise ValueError(f"Payment amount exceeds {MAX_AMOUNT}, got {amount!r}")
    return to_money(value)


def portal_payment_type(amount: Decimal, outstanding: Decimal) -> PaymentType:
    """Self-service payments settle the balance when they cover it entirely."""
    return PaymentType.FULL if amount >= outstanding else PaymentType.PARTIAL


def record_payment(
    representative: Representative,
    amount: Any,
    method: PaymentMethod,
    reference: Optional[str] = None,
    payment_type: PaymentType = PaymentType.FULL,
    payments: Iterable[PaymentRecord] = (),
    notes: str = "",
    payment_date: Optional[date] = None,
    origin: PaymentOrigin = PaymentOrigin.POINT_OF_SALE,
    now: Optional[datetime] = None,
) -> PaymentRecord:
    """Create a new payment record for a representative.

    The initial status comes from the instrument table (cash is verified on
    the spot, everything else waits for review). The pending_balance snapshot
    is the outstanding balance immediately after applying this payment.

    Args:
        representative: Representative making the payment.
        amount: Amount paid.
        method: Payment instrument.
        reference: Bank or transfer reference, "N/A" when absent.
        payment_type: Full settlement or partial payment.
        payments: Current ledger, used for the pending_balance snapshot.
        notes: Free-text observations.
        payment_date: Date the payment was made (defaults to today).
        origin: Flow producing the record; selects the identifier prefix.
        now: Creation timestamp (defaults to the current UTC time).

    Returns:
        The new PaymentRecord. It is not added to any ledger.

    Raises:
        ValueError: If the amount is not positive or the method is unknown.
    """
    value = parse_payment_amount(amount)
    method = PaymentMethod(method)
    created = now or utcnow()
    outstanding = compute_balance(representative, payments).outstanding

    record = PaymentRecord(
        id=generate_payment_id(origin),
        timestamp=created,
        payment_date=payment_date or created.date(),
        cedula_representative=representative.cedula,
        matricula=representative.matricula,
        level=representative.primary_level,
        method=method,
        reference=(reference or "").strip() or NO_REFERENCE,
        amount=value,
        notes=notes,
        status=initial_status(method),
        payment_type=PaymentType(payment_type),
        pending_balance=balance_after_payment(outstanding, value),
    )

    logger.info(
        f"Recorded payment {record.id} of {record.amount} ({method.value}) "
        f"for {representative.cedula}: {record.status.value}"
    )
    return record


def is_cash(method: PaymentMethod) -> bool:
    return PaymentMethod(method) in CASH_METHODS
