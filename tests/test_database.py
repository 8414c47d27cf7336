"""Tests for the database snapshot store."""

from datetime import datetime
from decimal import Decimal

import pytest

from tuition_ledger.accounting import (
    LedgerSnapshot,
    PaymentMethod,
    PaymentStatus,
    User,
    UserRole,
    WorkflowAction,
)
from tuition_ledger.database import (
    DatabaseManager,
    LedgerRepository,
    PaymentRow,
    close_db,
    get_async_session_factory,
    get_db,
    get_db_context,
    init_db,
)
from tuition_ledger.database.models import from_cents, to_cents


class TestMoneyColumns:
    """Tests for the cents conversion helpers."""

    def test_round_trip(self):
        assert to_cents(Decimal("25.50")) == 2550
        assert to_cents(Decimal("0.005")) == 1
        assert from_cents(2550) == Decimal("25.50")


class TestLedgerRepository:
    """Tests for LedgerRepository."""

    async def test_save_and_load_snapshot(self, db_session, service):
        service.record_payment("12345678", "25,50", PaymentMethod.PAGO_MOVIL, reference="PM-1")
        service.record_payment("9876543", 50, PaymentMethod.CASH_USD)
        snapshot = service.snapshot()
        snapshot.users = [User(cedula="1", full_name="Admin", role=UserRole.ADMIN)]

        repo = LedgerRepository(db_session)
        await repo.save_snapshot(snapshot)
        loaded = await repo.load_snapshot()

        assert [r.cedula for r in loaded.representatives] == ["V-12345678", "9876543"]
        assert loaded.representatives[0].students[1].full_name == "Luis González"
        assert loaded.representatives[0].total_accrued_debt == Decimal("180.00")
        assert [p.id for p in loaded.payments] == [p.id for p in snapshot.payments]
        assert loaded.payments[1].amount == Decimal("25.50")
        assert loaded.payments[1].timestamp.tzinfo is not None
        assert loaded.payments == snapshot.payments
        assert loaded.fee_schedule() == service.fees
        assert loaded.users[0].role == UserRole.ADMIN

    async def test_save_replaces_previous_state(self, db_session, service):
        repo = LedgerRepository(db_session)
        service.record_payment("12345678", 10, PaymentMethod.ZELLE, reference="Z")
        await repo.save_snapshot(service.snapshot())

        await repo.save_snapshot(LedgerSnapshot(fees=service.fees.to_dict()))
        loaded = await repo.load_snapshot()
        assert loaded.representatives == []
        assert loaded.payments == []

    async def test_status_history(self, db_session):
        repo = LedgerRepository(db_session)
        await repo.record_status_change(
            "OV-1", WorkflowAction.REJECT, PaymentStatus.PENDING, PaymentStatus.REJECTED,
            reason="Referencia inválida",
        )
        await repo.record_status_change(
            "OV-1", WorkflowAction.REACTIVATE, PaymentStatus.REJECTED, PaymentStatus.PENDING,
        )
        await repo.record_status_change(
            "OV-2", "verify", "Pendiente", "Verificado",
        )

        history = await repo.get_status_history("OV-1")
        assert len(history) == 2
        assert {h.action for h in history} == {"reject", "reactivate"}
        rejected = next(h for h in history if h.action == "reject")
        assert rejected.to_dict()["reason"] == "Referencia inválida"
        assert rejected.new_status == "Rechazado"

    async def test_history_survives_snapshot_replace(self, db_session, service):
        repo = LedgerRepository(db_session)
        await repo.record_status_change("PAY-1", "verify", "Pendiente", "Verificado")
        await repo.save_snapshot(service.snapshot())
        assert len(await repo.get_status_history("PAY-1")) == 1


class TestSessionManagement:
    """Tests for global and managed sessions."""

    async def test_init_and_close_db(self, service):
        await init_db("sqlite+aiosqlite:///:memory:")
        try:
            async with get_db_context() as session:
                await LedgerRepository(session).save_snapshot(service.snapshot())
            async with get_db_context() as session:
                loaded = await LedgerRepository(session).load_snapshot()
            assert len(loaded.representatives) == 2
        finally:
            await close_db()
        with pytest.raises(RuntimeError):
            get_async_session_factory()

    async def test_get_db_dependency_commits(self, service):
        await init_db("sqlite+aiosqlite:///:memory:")
        try:
            async for session in get_db():
                await LedgerRepository(session).save_snapshot(service.snapshot())
            async with get_db_context() as session:
                loaded = await LedgerRepository(session).load_snapshot()
            assert [r.cedula for r in loaded.representatives] == ["V-12345678", "9876543"]
        finally:
            await close_db()

    async def test_context_rolls_back_on_error(self):
        await init_db("sqlite+aiosqlite:///:memory:")
        try:
            with pytest.raises(ValueError):
                async with get_db_context() as session:
                    session.add(PaymentRow(
                        id="PAY-X",
                        timestamp=datetime(2025, 3, 1),
                        payment_date=datetime(2025, 3, 1).date(),
                        cedula_representative="1",
                        level="Primaria",
                        method="Zelle",
                        amount=100,
                        status="Pendiente",
                        payment_type="ABONO",
                    ))
                    await session.flush()
                    raise ValueError("abort")
            async with get_db_context() as session:
                assert await session.get(PaymentRow, "PAY-X") is None
        finally:
            await close_db()

    async def test_database_manager(self, service):
        manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
        with pytest.raises(RuntimeError):
            async with manager.session():
                pass

        await manager.initialize()
        assert manager.is_initialized
        async with manager.session() as session:
            await LedgerRepository(session).save_snapshot(service.snapshot())
        async with manager.session() as session:
            loaded = await LedgerRepository(session).load_snapshot()
        assert len(loaded.representatives) == 2
        await manager.shutdown()
        assert not manager.is_initialized
