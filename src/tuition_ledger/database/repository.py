"""Repository layer for ledger persistence operations."""

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..accounting import (
    LedgerSnapshot,
    PaymentRecord,
    Representative,
    Student,
    User,
)
from ..accounting.models import PaymentStatus, WorkflowAction
from .models import (
    FeeRow,
    PaymentRow,
    RepresentativeRow,
    StatusChange,
    StudentRow,
    UserRow,
    from_cents,
    to_cents,
    to_naive_utc,
)

logger = logging.getLogger(__name__)


def _payment_row(record: PaymentRecord, position: int) -> PaymentRow:
    return PaymentRow(
        id=record.id,
        timestamp=to_naive_utc(record.timestamp),
        payment_date=record.payment_date,
        cedula_representative=record.cedula_representative,
        matricula=record.matricula,
        level=record.level.value,
        method=record.method.value,
        reference=record.reference,
        amount=to_cents(record.amount),
        notes=record.notes,
        status=record.status.value,
        payment_type=record.payment_type.value,
        pending_balance=to_cents(record.pending_balance),
        rejection_reason=record.rejection_reason,
        position=position,
    )


def _payment_record(row: PaymentRow) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        timestamp=row.timestamp,
        payment_date=row.payment_date,
        cedula_representative=row.cedula_representative,
        matricula=row.matricula,
        level=row.level,
        method=row.method,
        reference=row.reference,
        amount=from_cents(row.amount),
        notes=row.notes,
        status=row.status,
        payment_type=row.payment_type,
        pending_balance=from_cents(row.pending_balance),
        rejection_reason=row.rejection_reason,
    )


def _representative_row(rep: Representative, position: int) -> RepresentativeRow:
    return RepresentativeRow(
        cedula=rep.cedula,
        first_name=rep.first_name,
        last_name=rep.last_name,
        phone=rep.phone,
        matricula=rep.matricula,
        total_accrued_debt=to_cents(rep.total_accrued_debt),
        last_accrual_month=rep.last_accrual_month,
        position=position,
        students=[
            StudentRow(
                student_id=s.id,
                full_name=s.full_name,
                level=s.level.value,
                section=s.section,
                active=s.active,
                position=i,
            )
            for i, s in enumerate(rep.students)
        ],
    )


def _representative(row: RepresentativeRow) -> Representative:
    return Representative(
        cedula=row.cedula,
        first_name=row.first_name,
        last_name=row.last_name,
        phone=row.phone,
        matricula=row.matricula,
        total_accrued_debt=from_cents(row.total_accrued_debt),
        last_accrual_month=row.last_accrual_month,
        students=[
            Student(
                id=s.student_id,
                full_name=s.full_name,
                level=s.level,
                section=s.section,
                active=s.active,
            )
            for s in row.students
        ],
    )


class LedgerRepository:
    """Repository for whole-ledger snapshots and the status change history."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def save_snapshot(self, snapshot: LedgerSnapshot) -> None:
        """Replace every stored user, representative, payment and fee.

        The status change history is kept.
        """
        for model in (StudentRow, RepresentativeRow, PaymentRow, FeeRow, UserRow):
            await self.session.execute(delete(model))

        self.session.add_all(
            UserRow(
                cedula=u.cedula,
                full_name=u.full_name,
                role=u.role.value,
                created_at=to_naive_utc(u.created_at),
            )
            for u in snapshot.users
        )
        self.session.add_all(
            _representative_row(rep, i) for i, rep in enumerate(snapshot.representatives)
        )
        self.session.add_all(_payment_row(p, i) for i, p in enumerate(snapshot.payments))
        schedule = snapshot.fee_schedule()
        self.session.add_all(
            FeeRow(level=level.value, amount=to_cents(schedule.fee_for(level)))
            for level in schedule.levels()
        )
        await self.session.flush()

        logger.info(
            f"Saved snapshot: {len(snapshot.representatives)} representatives, "
            f"{len(snapshot.payments)} payments"
        )

    async def load_snapshot(self) -> LedgerSnapshot:
        """Read the stored state back as a snapshot, in its original order."""
        users = await self.session.execute(select(UserRow).order_by(UserRow.cedula))
        reps = await self.session.execute(
            select(RepresentativeRow).order_by(RepresentativeRow.position)
        )
        payments = await self.session.execute(select(PaymentRow).order_by(PaymentRow.position))
        fees = await self.session.execute(select(FeeRow))

        return LedgerSnapshot(
            users=[
                User(cedula=u.cedula, full_name=u.full_name, role=u.role, created_at=u.created_at)
                for u in users.scalars().all()
            ],
            representatives=[_representative(r) for r in reps.scalars().all()],
            payments=[_payment_record(p) for p in payments.scalars().all()],
            fees={f.level: float(from_cents(f.amount)) for f in fees.scalars().all()},
        )

    async def record_status_change(
        self,
        payment_id: str,
        action: WorkflowAction,
        previous_status: PaymentStatus,
        new_status: PaymentStatus,
        reason: Optional[str] = None,
    ) -> StatusChange:
        """Append one workflow transition to the history.

        Args:
            payment_id: Payment that changed.
            action: verify, reject or reactivate.
            previous_status: Status before the action.
            new_status: Status after the action.
            reason: Rejection reason, when any.

        Returns:
            Created StatusChange instance.
        """
        change = StatusChange(
            payment_id=payment_id,
            action=WorkflowAction(action).value,
            previous_status=PaymentStatus(previous_status).value,
            new_status=PaymentStatus(new_status).value,
            reason=reason,
        )
        self.session.add(change)
        await self.session.flush()

        logger.debug(
            f"Recorded status change for payment {payment_id}: "
            f"{change.previous_status} -> {change.new_status}"
        )
        return change

    async def get_status_history(
        self,
        payment_id: str,
        limit: int = 100,
    ) -> List[StatusChange]:
        """Get the status history for a payment, most recent first."""
        result = await self.session.execute(
            select(StatusChange)
            .where(StatusChange.payment_id == payment_id)
            .order_by(StatusChange.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
