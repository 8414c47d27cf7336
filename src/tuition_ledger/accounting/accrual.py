"""Accrual of monthly tuition charges."""

import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List

from ..exceptions import AccrualOrderError
from .fees import FeeSchedule
from .models import Representative, Student, ZERO, to_money

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_month_key(key: str) -> str:
    """Check a YYYY-MM month key.

    Raises:
        ValueError: If the key is malformed.
    """
    if not isinstance(key, str) or not MONTH_KEY_PATTERN.match(key):
        raise ValueError(f"Month key must have the form YYYY-MM, got {key!r}")
    return key


def initial_accrual(students: Iterable[Student], schedule: FeeSchedule) -> Decimal:
    """Sum of the monthly fees of all students at enrollment time.

    Raises:
        FeeConfigurationError: If a student's level has no fee.
    """
    total = sum((schedule.fee_for(s.level) for s in students), ZERO)
    return to_money(total)


def monthly_charge(representative: Representative, schedule: FeeSchedule) -> Decimal:
    """Sum of the current fees of the representative's active students."""
    return initial_accrual(representative.active_students, schedule)


def _check_order(representative: Representative, current_month_key: str) -> bool:
    """Return True when the month was already applied.

    Raises:
        AccrualOrderError: If the month is earlier than the last one applied.
    """
    last = representative.last_accrual_month
    if last == current_month_key:
        return True
    # YYYY-MM keys order lexicographically
    if last is not None and current_month_key < last:
        raise AccrualOrderError(
            f"Accrual for {current_month_key} requested for representative "
            f"{representative.cedula}, but {last} was already applied"
        )
    return False


def monthly_accrual(
    representative: Representative,
    schedule: FeeSchedule,
    current_month_key: str,
) -> Decimal:
    """Apply one month of charges to a representative.

    Idempotent per month: when ``current_month_key`` equals the last applied
    month nothing changes.

    Args:
        representative: Representative to charge (mutated in place).
        schedule: Fee schedule in force.
        current_month_key: Month being charged, as YYYY-MM.

    Returns:
        The amount added to total_accrued_debt (zero on the no-op path).

    Raises:
        ValueError: If the month key is malformed.
        AccrualOrderError: If the month precedes the last applied month.
        FeeConfigurationError: If an active student's level has no fee.
    """
    validate_month_key(current_month_key)
    if _check_order(representative, current_month_key):
        logger.debug(
            f"Accrual for {current_month_key} already applied to {representative.cedula}"
        )
        return ZERO

    charge = monthly_charge(representative, schedule)
    representative.total_accrued_debt = to_money(representative.total_accrued_debt + charge)
    representative.last_accrual_month = current_month_key

    logger.info(
        f"Accrued {charge} for representative {representative.cedula} "
        f"({current_month_key}), total {representative.total_accrued_debt}"
    )
    return charge


def run_monthly_accrual(
    representatives: List[Representative],
    schedule: FeeSchedule,
    current_month_key: str,
) -> Dict[str, Decimal]:
    """Apply the monthly accrual job to a population of representatives.

    Every representative is checked (month order and fees) before any is
    charged, so a failure leaves all of them untouched.

    Returns:
        Mapping of cedula to the amount charged this run.
    """
    validate_month_key(current_month_key)
    charges: Dict[str, Decimal] = {}
    for rep in representatives:
        if _check_order(rep, current_month_key):
            continue
        charges[rep.cedula] = monthly_charge(rep, schedule)

    for rep in representatives:
        if rep.cedula in charges:
            monthly_accrual(rep, schedule, current_month_key)

    logger.info(
        f"Monthly accrual {current_month_key}: charged {len(charges)} of "
        f"{len(representatives)} representatives"
    )
    return charges
