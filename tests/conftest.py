"""Shared test fixtures and configuration."""

import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from tuition_ledger.accounting import (
    FeeSchedule,
    Level,
    LedgerSnapshot,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    Representative,
    Student,
)
from tuition_ledger.config import LedgerSettings
from tuition_ledger.database import Base, create_async_engine
from tuition_ledger.services import LedgerService

FIXED_NOW = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def fee_schedule() -> FeeSchedule:
    """Default fee schedule: 50 / 65 / 80 / 100."""
    return FeeSchedule.default()


@pytest.fixture
def representative() -> Representative:
    """Representative with a primary and a secondary student, 180.00 accrued."""
    return Representative(
        cedula="V-12345678",
        first_name="María",
        last_name="González",
        phone="0414-5550000",
        matricula="mat-2025-26-V-12345678",
        students=[
            Student(id="s1", full_name="Ana González", level=Level.PRIMARY),
            Student(id="s2", full_name="Luis González", level=Level.SECONDARY),
        ],
        total_accrued_debt=Decimal("180.00"),
        last_accrual_month="2025-03",
    )


@pytest.fixture
def other_representative() -> Representative:
    return Representative(
        cedula="9876543",
        first_name="Pedro",
        last_name="Pérez",
        matricula="mat-2025-26-9876543",
        students=[Student(id="s3", full_name="Sofía Pérez", level=Level.NURSERY)],
        total_accrued_debt=Decimal("50.00"),
        last_accrual_month="2025-03",
    )


@pytest.fixture
def make_payment() -> Callable[..., PaymentRecord]:
    """Factory for payment records with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides: Any) -> PaymentRecord:
        counter["n"] += 1
        fields: Dict[str, Any] = {
            "id": f"PAY-TEST{counter['n']:04d}",
            "timestamp": FIXED_NOW,
            "payment_date": FIXED_NOW.date(),
            "cedula_representative": "12345678",
            "matricula": "mat-2025-26-V-12345678",
            "level": Level.PRIMARY,
            "method": PaymentMethod.TRANSFER,
            "reference": "REF-1",
            "amount": Decimal("10.00"),
            "status": PaymentStatus.PENDING,
            "payment_type": PaymentType.PARTIAL,
        }
        fields.update(overrides)
        return PaymentRecord(**fields)

    return _make


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(remote_url="https://store.example.com/exec")


@pytest.fixture
def service(representative, other_representative, settings) -> LedgerService:
    """Service holding two representatives and an empty ledger."""
    snapshot = LedgerSnapshot(representatives=[representative, other_representative])
    return LedgerService(snapshot=snapshot, settings=settings)


@pytest.fixture
def raw_external_records() -> List[Dict[str, Any]]:
    """Virtual-office feed with inconsistent spellings."""
    return [
        {
            "Cédula": "V-12.345.678",
            "Monto": "25,50",
            "Método de pago": "Pago Móvil",
            "Referencia": "000123",
            "Fecha de pago": "13/03/2025",
            "Estatus": "Pendiente",
        },
        {
            "cedula_representante": "9876543",
            "MONTO ": "1.234,56",
            "metodo": "zelle",
            "ref": "ZL-77",
            "estado": "por verificar",
        },
        {
            "id": "OV-EXISTING0001",
            "cedula": "12345678",
            "monto": 40,
            "metodo": "Transferencia",
            "referencia": "TR-9",
            "status": "Verificado",
        },
    ]


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Return headers with authentication."""
    return {"Authorization": f"Bearer {os.environ['API_KEY']}"}


# Database fixtures
@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
