"""SQLAlchemy models for the ledger snapshot store."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..accounting.models import CENT, to_money


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def to_cents(amount: Decimal) -> int:
    """Money is stored in integer minor units."""
    return int(to_money(amount) / CENT)


def from_cents(cents: int) -> Decimal:
    return to_money(Decimal(cents) * CENT)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserRow(Base):
    """Staff account."""
    __tablename__ = "users"

    cedula: Mapped[str] = mapped_column(String(32), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow_naive)


class RepresentativeRow(Base):
    """Representative with accrued debt in cents."""
    __tablename__ = "representatives"

    cedula: Mapped[str] = mapped_column(String(32), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    matricula: Mapped[str] = mapped_column(String(64), nullable=False)
    total_accrued_debt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accrual_month: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    students: Mapped[List["StudentRow"]] = relationship(
        "StudentRow",
        back_populates="representative",
        cascade="all, delete-orphan",
        order_by="StudentRow.position",
        lazy="selectin",
    )


class StudentRow(Base):
    """Student owned by a representative."""
    __tablename__ = "students"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    representative_cedula: Mapped[str] = mapped_column(
        String(32), ForeignKey("representatives.cedula"), nullable=False, index=True
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    section: Mapped[str] = mapped_column(String(10), nullable=False, default="A")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    representative: Mapped["RepresentativeRow"] = relationship(
        "RepresentativeRow", back_populates="students"
    )


class PaymentRow(Base):
    """Payment record; amounts in cents, position keeps the ledger order."""
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    cedula_representative: Mapped[str] = mapped_column(String(32), nullable=False)
    matricula: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    reference: Mapped[str] = mapped_column(String(120), nullable=False, default="N/A")
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(10), nullable=False)
    pending_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_payments_status", "status"),
        Index("ix_payments_cedula_representative", "cedula_representative"),
        Index("ix_payments_payment_date", "payment_date"),
    )


class FeeRow(Base):
    """Monthly fee for one level, in cents."""
    __tablename__ = "fees"

    level: Mapped[str] = mapped_column(String(20), primary_key=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)


class StatusChange(Base):
    """History of verification workflow transitions.

    Not tied to the payments table by a foreign key: snapshots replace
    payments wholesale, the history outlives them.
    """
    __tablename__ = "status_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow_naive)

    __table_args__ = (
        Index("ix_status_changes_created_at", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the status change to dictionary representation."""
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
