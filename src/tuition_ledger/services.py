"""Ledger service layer: in-memory state and the operations staff perform on it."""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from .accounting import (
    BalanceSummary,
    ConnectionStatus,
    DailyClosing,
    DashboardStats,
    FeeSchedule,
    Level,
    LedgerOverview,
    LedgerSnapshot,
    PaymentMethod,
    PaymentOrigin,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    Representative,
    Student,
    User,
    UserRole,
    VerificationWorkflow,
    WorkflowAction,
    canonical_identifier,
    month_key,
)
from .accounting import accrual, balance, reports
from .accounting.models import utcnow
from .accounting.payments import PORTAL_NOTE, is_cash, parse_payment_amount, portal_payment_type
from .accounting.payments import record_payment as create_payment_record
from .config import LedgerSettings
from .exceptions import (
    DuplicatePaymentError,
    PaymentNotFoundError,
    RepresentativeNotFoundError,
    UserNotFoundError,
)
from .reconciliation import MergeResult, ReconciliationMerger, FieldNormalizer, review_queue

logger = logging.getLogger(__name__)


def generate_matricula(cedula: str, today: date) -> str:
    """Enrollment code for the school year starting in ``today``'s year."""
    next_year_short = str(today.year + 1)[-2:]
    return f"mat-{today.year}-{next_year_short}-{cedula}"


class LedgerService:
    """Service class holding the ledger state.

    Mutations never edit the lists in place: every change builds a new list
    and swaps it in, so readers never observe a partially applied update.
    Payments are kept newest first.
    """

    def __init__(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
        fees: Optional[FeeSchedule] = None,
        settings: Optional[LedgerSettings] = None,
        workflow: Optional[VerificationWorkflow] = None,
    ):
        """Initialize the service.

        Args:
            snapshot: Initial state. Empty when not provided.
            fees: Fee schedule. Defaults to the snapshot's, else the default schedule.
            settings: Runtime settings. Defaults are used when not provided.
            workflow: Verification workflow. Created if not provided.
        """
        self.settings = settings or LedgerSettings()
        self.workflow = workflow or VerificationWorkflow()
        self.users: List[User] = []
        self.representatives: List[Representative] = []
        self.payments: List[PaymentRecord] = []
        self.fees: FeeSchedule = FeeSchedule.default()
        self.connection_status = ConnectionStatus.PENDING
        if snapshot is not None:
            self.load_snapshot(snapshot)
        if fees is not None:
            self.fees = fees

    # State

    def snapshot(self) -> LedgerSnapshot:
        """Current state as a snapshot (deep copies)."""
        return LedgerSnapshot(
            users=[u.model_copy(deep=True) for u in self.users],
            representatives=[r.model_copy(deep=True) for r in self.representatives],
            payments=list(self.payments),
            fees=self.fees.to_dict(),
        )

    def load_snapshot(self, snapshot: LedgerSnapshot) -> None:
        """Replace the whole state with a snapshot.

        An empty fee mapping keeps the current schedule.
        """
        fees = snapshot.fee_schedule() if snapshot.fees else self.fees
        self.users = list(snapshot.users)
        self.representatives = list(snapshot.representatives)
        self.payments = list(snapshot.payments)
        self.fees = fees
        logger.info(
            f"Loaded snapshot: {len(self.representatives)} representatives, "
            f"{len(self.payments)} payments"
        )

    def find_representative(self, cedula: str) -> Representative:
        """Look up a representative by identification, ignoring formatting.

        Raises:
            RepresentativeNotFoundError: If no representative matches.
        """
        key = canonical_identifier(cedula)
        for rep in self.representatives:
            if canonical_identifier(rep.cedula) == key:
                return rep
        raise RepresentativeNotFoundError(f"Representative {cedula} not found")

    def find_payment(self, payment_id: str) -> PaymentRecord:
        for record in self.payments:
            if record.id == payment_id:
                return record
        raise PaymentNotFoundError(f"Payment {payment_id} not found")

    # Representatives and fees

    def enroll_representative(
        self,
        cedula: str,
        first_name: str,
        last_name: str,
        students: Sequence[Union[Student, Dict[str, Any]]],
        phone: str = "",
        today: Optional[date] = None,
    ) -> Representative:
        """Register a representative with their students.

        The initial accrual (sum of the students' fees) covers the current
        month, which becomes the last accrued month.

        Args:
            cedula: National identification number.
            first_name: First name.
            last_name: Last name.
            students: At least one student, as Student or plain dicts.
            phone: Contact phone.
            today: Enrollment date (defaults to today, UTC).

        Returns:
            The new Representative.

        Raises:
            ValueError: If required fields are missing or the cedula is taken.
            FeeConfigurationError: If a student's level has no fee.
        """
        cedula = (cedula or "").strip()
        if not cedula or not first_name or not last_name:
            raise ValueError("cedula, first_name and last_name are required")
        if not students:
            raise ValueError("At least one student is required")
        try:
            self.find_representative(cedula)
        except RepresentativeNotFoundError:
            pass
        else:
            raise ValueError(f"Representative {cedula} is already registered")

        today = today or utcnow().date()
        parsed = [s if isinstance(s, Student) else Student.model_validate(s) for s in students]
        rep = Representative(
            cedula=cedula,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone.strip(),
            matricula=generate_matricula(cedula, today),
            students=parsed,
            total_accrued_debt=accrual.initial_accrual(parsed, self.fees),
            last_accrual_month=month_key(today),
        )
        self.representatives = self.representatives + [rep]
        logger.info(
            f"Enrolled representative {rep.cedula} ({rep.matricula}) with "
            f"{len(parsed)} students, initial debt {rep.total_accrued_debt}"
        )
        return rep

    def update_fee(self, level: Level, amount: Any) -> FeeSchedule:
        """Administrative settings action: change one level's monthly fee."""
        self.fees = self.fees.with_fee(level, amount)
        return self.fees

    # Staff accounts

    def find_user(self, cedula: str) -> User:
        """Look up a staff account by identification, ignoring formatting.

        Raises:
            UserNotFoundError: If no account matches.
        """
        key = canonical_identifier(cedula)
        for user in self.users:
            if canonical_identifier(user.cedula) == key:
                return user
        raise UserNotFoundError(f"User {cedula} not found")

    def register_user(self, cedula: str, full_name: str) -> User:
        """Create a staff account.

        The first account registered and the configured master identification
        are administrators; everyone else starts as a basic user.

        Raises:
            ValueError: If a field is missing or the cedula is taken.
        """
        cedula = (cedula or "").strip()
        full_name = (full_name or "").strip()
        if not cedula or not full_name:
            raise ValueError("cedula and full_name are required")
        try:
            self.find_user(cedula)
        except UserNotFoundError:
            pass
        else:
            raise ValueError(f"User {cedula} is already registered")

        master = self.settings.master_cedula
        is_master = bool(master) and canonical_identifier(master) == canonical_identifier(cedula)
        role = UserRole.ADMIN if is_master or not self.users else UserRole.BASIC
        user = User(cedula=cedula, full_name=full_name, role=role)
        self.users = self.users + [user]
        logger.info(f"Registered user {cedula} as {role.value}")
        return user

    def update_user_role(self, cedula: str, role: Union[UserRole, str]) -> User:
        """Change a staff account's role.

        Raises:
            UserNotFoundError: If no account matches.
            ValueError: If the role is unknown.
        """
        target = self.find_user(cedula)
        role = UserRole(role)
        updated = target.model_copy(update={"role": role})
        self.users = [updated if u is target else u for u in self.users]
        logger.info(f"User {target.cedula} is now {role.value}")
        return updated

    def delete_user(self, cedula: str) -> User:
        """Remove a staff account and return it.

        Raises:
            UserNotFoundError: If no account matches.
        """
        target = self.find_user(cedula)
        self.users = [u for u in self.users if u is not target]
        logger.info(f"Deleted user {target.cedula}")
        return target

    # Payments

    def _prepend(self, records: List[PaymentRecord]) -> None:
        existing = {p.id for p in self.payments}
        for record in records:
            if record.id in existing:
                raise DuplicatePaymentError(f"Payment {record.id} already exists")
            existing.add(record.id)
        self.payments = list(records) + self.payments

    def record_payment(
        self,
        cedula: str,
        amount: Any,
        method: PaymentMethod,
        reference: Optional[str] = None,
        payment_type: PaymentType = PaymentType.FULL,
        notes: str = "",
        payment_date: Optional[date] = None,
    ) -> PaymentRecord:
        """Cashier flow: record a payment with an explicit type."""
        rep = self.find_representative(cedula)
        record = create_payment_record(
            rep,
            amount,
            method,
            reference=reference,
            payment_type=payment_type,
            payments=self.payments,
            notes=notes,
            payment_date=payment_date,
        )
        self._prepend([record])
        return record

    def register_portal_payment(
        self,
        cedula: str,
        amount: Any,
        method: PaymentMethod,
        reference: str,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PaymentRecord:
        """Virtual office flow: a representative reports an electronic payment.

        The type is TOTAL when the amount covers the outstanding balance.

        Raises:
            ValueError: If the instrument is cash or the reference is missing.
        """
        method = PaymentMethod(method)
        if is_cash(method):
            raise ValueError(f"{method.value} cannot be reported through the virtual office")
        if not reference or not reference.strip():
            raise ValueError("A reference is required for electronic payments")

        rep = self.find_representative(cedula)
        value = parse_payment_amount(amount)
        outstanding = balance.compute_balance(rep, self.payments).outstanding
        record = create_payment_record(
            rep,
            value,
            method,
            reference=reference,
            payment_type=portal_payment_type(value, outstanding),
            payments=self.payments,
            notes=notes or PORTAL_NOTE,
            payment_date=payment_date,
            origin=PaymentOrigin.VIRTUAL_OFFICE,
        )
        self._prepend([record])
        return record

    def transition_payment(
        self,
        payment_id: str,
        action: Union[WorkflowAction, str],
        reason: Optional[str] = None,
    ) -> PaymentRecord:
        """Apply a verification action and swap the updated record into the ledger."""
        current = self.find_payment(payment_id)
        updated = self.workflow.transition(current, action, reason=reason)
        self.payments = [updated if p.id == payment_id else p for p in self.payments]
        return updated

    def compute_balance(self, cedula: str) -> BalanceSummary:
        return balance.compute_balance(self.find_representative(cedula), self.payments)

    def payments_for(self, cedula: str) -> List[PaymentRecord]:
        return balance.payments_for(self.find_representative(cedula), self.payments)

    # Reconciliation

    def _merger(self) -> ReconciliationMerger:
        return ReconciliationMerger(FieldNormalizer(fallback_method=self.settings.fallback_method))

    def merge_external(
        self,
        raw_records: Sequence[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> MergeResult:
        """Compute what a batch of external records would add, without applying it."""
        return self._merger().merge_detailed(
            self.payments, raw_records, representatives=self.representatives, now=now
        )

    def apply_external(
        self,
        raw_records: Sequence[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> MergeResult:
        """Merge a batch of external records and prepend the new ones."""
        result = self.merge_external(raw_records, now=now)
        if result.new_records:
            self._prepend(result.new_records)
        return result

    def review_queue(self, include_rejected: bool = True) -> List[PaymentRecord]:
        statuses = (PaymentStatus.PENDING, PaymentStatus.REJECTED) if include_rejected else (
            PaymentStatus.PENDING,
        )
        return review_queue(self.payments, statuses=statuses)

    # Accrual

    def run_monthly_accrual(self, current_month_key: Optional[str] = None) -> Dict[str, Any]:
        """Charge the month to every representative, all or nothing.

        Works on copies and swaps the list in only when every representative
        was charged successfully.
        """
        key = current_month_key or month_key(utcnow().date())
        updated = [r.model_copy(deep=True) for r in self.representatives]
        charges = accrual.run_monthly_accrual(updated, self.fees, key)
        self.representatives = updated
        return charges

    # Reports

    def ledger_overview(self, today: Optional[date] = None) -> LedgerOverview:
        return reports.ledger_overview(
            self.representatives,
            self.payments,
            today or utcnow().date(),
            critical_days=self.settings.critical_days,
        )

    def dashboard_stats(self) -> DashboardStats:
        return reports.dashboard_stats(self.representatives, self.payments)

    def daily_closing(self, day: Optional[date] = None) -> DailyClosing:
        return reports.daily_closing(self.payments, day or utcnow().date())

    def payment_history(
        self,
        cedula: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[PaymentRecord]:
        return reports.filter_payments(self.payments, cedula=cedula, status=status, start=start, end=end)
