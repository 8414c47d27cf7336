"""HTTP API for cashiers, administrators and the virtual office."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .accounting import (
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    Student,
    UserRole,
    WorkflowAction,
)
from .accounting.models import Level, parse_level
from .auth import limiter, portal_rate_limit, verify_api_key
from .config import LedgerSettings
from .database import DatabaseManager, LedgerRepository
from .exceptions import (
    AccrualOrderError,
    DuplicatePaymentError,
    FeeConfigurationError,
    InvalidTransitionError,
    LedgerError,
    PaymentNotFoundError,
    RepresentativeNotFoundError,
    UserNotFoundError,
)
from .reconciliation import ReportGenerator, daily_closing_text, ledger_csv
from .services import LedgerService

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    RepresentativeNotFoundError: 404,
    PaymentNotFoundError: 404,
    UserNotFoundError: 404,
    InvalidTransitionError: 409,
    DuplicatePaymentError: 409,
    AccrualOrderError: 409,
    FeeConfigurationError: 400,
}

router = APIRouter(dependencies=[Depends(verify_api_key)])


class StudentBody(BaseModel):
    """Student included in an enrollment."""
    id: str
    full_name: str
    level: Level
    section: str = "A"
    active: bool = True


class EnrollmentBody(BaseModel):
    """Request body for registering a representative."""
    cedula: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = ""
    students: List[StudentBody] = Field(..., min_length=1)


class PaymentBody(BaseModel):
    """Request body for a cashier payment."""
    cedula: str
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference: Optional[str] = None
    payment_type: PaymentType = PaymentType.FULL
    notes: str = ""
    payment_date: Optional[date] = None


class PortalPaymentBody(BaseModel):
    """Request body for a payment reported by a representative."""
    cedula: str
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference: str = Field(..., min_length=1)
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class TransitionBody(BaseModel):
    """Request body for a verification action."""
    action: WorkflowAction
    reason: Optional[str] = Field(None, description="Required when rejecting")


class MergeBody(BaseModel):
    """Raw external records to reconcile."""
    records: List[Dict[str, Any]]
    apply: bool = Field(True, description="Prepend the new records to the ledger")


class FeeBody(BaseModel):
    amount: Decimal = Field(..., ge=0)


class AccrualBody(BaseModel):
    month: Optional[str] = Field(None, description="Month to charge, YYYY-MM")


class UserBody(BaseModel):
    """Request body for creating a staff account."""
    cedula: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)


class RoleBody(BaseModel):
    role: UserRole


class BalanceResponse(BaseModel):
    """Balance projection for one representative."""
    cedula: str
    verified_total: float
    in_transit_total: float
    outstanding: float


def _payment_json(record: PaymentRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


def get_service(request: Request) -> LedgerService:
    return request.app.state.service


async def persist(request: Request, transition: Optional[Dict[str, Any]] = None) -> None:
    """Save the current state (and a status change) when a database is attached."""
    database: Optional[DatabaseManager] = request.app.state.database
    if database is None:
        return
    async with database.session() as session:
        repo = LedgerRepository(session)
        await repo.save_snapshot(request.app.state.service.snapshot())
        if transition:
            await repo.record_status_change(**transition)


@router.get("/representatives/{cedula}/balance", response_model=BalanceResponse)
async def get_balance(cedula: str, service: LedgerService = Depends(get_service)):
    """Verified, in-transit and outstanding totals for a representative."""
    rep = service.find_representative(cedula)
    summary = service.compute_balance(cedula)
    return BalanceResponse(
        cedula=rep.cedula,
        verified_total=float(summary.verified_total),
        in_transit_total=float(summary.in_transit_total),
        outstanding=float(summary.outstanding),
    )


@router.post("/representatives", status_code=201)
async def enroll_representative(
    body: EnrollmentBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    rep = service.enroll_representative(
        cedula=body.cedula,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        students=[Student(**s.model_dump()) for s in body.students],
    )
    await persist(request)
    return rep.model_dump(mode="json", by_alias=True)


@router.post("/payments", status_code=201)
async def create_payment(
    body: PaymentBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Record a payment taken at the cashier's desk."""
    record = service.record_payment(
        body.cedula,
        body.amount,
        body.method,
        reference=body.reference,
        payment_type=body.payment_type,
        notes=body.notes,
        payment_date=body.payment_date,
    )
    await persist(request)
    return _payment_json(record)


@router.post("/portal/payments", status_code=201)
@limiter.limit(portal_rate_limit)
async def create_portal_payment(
    body: PortalPaymentBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Payment reported through the virtual office; always starts Pending."""
    record = service.register_portal_payment(
        body.cedula,
        body.amount,
        body.method,
        body.reference,
        payment_date=body.payment_date,
        notes=body.notes,
    )
    await persist(request)
    return _payment_json(record)


@router.post("/payments/{payment_id}/transition")
async def transition_payment(
    payment_id: str,
    body: TransitionBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Verify, reject or reactivate a payment."""
    previous = service.find_payment(payment_id).status
    record = service.transition_payment(payment_id, body.action, reason=body.reason)
    await persist(request, transition={
        "payment_id": payment_id,
        "action": body.action,
        "previous_status": previous,
        "new_status": record.status,
        "reason": record.rejection_reason,
    })
    return _payment_json(record)


@router.get("/payments/review")
async def review_queue(
    include_rejected: bool = Query(default=True),
    service: LedgerService = Depends(get_service),
):
    """Payments awaiting review, virtual-office payments first."""
    return [_payment_json(p) for p in service.review_queue(include_rejected=include_rejected)]


@router.get("/payments")
async def list_payments(
    cedula: Optional[str] = Query(default=None, description="Representative ID substring"),
    status: Optional[PaymentStatus] = Query(default=None),
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    service: LedgerService = Depends(get_service),
):
    """General payment history, newest first."""
    records = service.payment_history(cedula=cedula, status=status, start=start, end=end)
    return [_payment_json(p) for p in records]


@router.get("/payments/{payment_id}/history")
async def payment_status_history(
    payment_id: str,
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    service: LedgerService = Depends(get_service),
):
    """Recorded workflow transitions for a payment, most recent first."""
    service.find_payment(payment_id)
    database: Optional[DatabaseManager] = request.app.state.database
    if database is None:
        return []
    async with database.session() as session:
        history = await LedgerRepository(session).get_status_history(payment_id, limit=limit)
    return [change.to_dict() for change in history]


@router.get("/dashboard")
async def dashboard(service: LedgerService = Depends(get_service)):
    return service.dashboard_stats().model_dump(mode="json")


@router.post("/reconciliation/merge")
async def merge_external(
    body: MergeBody,
    request: Request,
    format: str = Query(default="json", description="Output format: json, csv, text"),
    service: LedgerService = Depends(get_service),
):
    """Merge externally reported payments into the ledger."""
    if format not in ("json", "csv", "text"):
        raise HTTPException(status_code=400, detail="format must be one of: json, csv, text")

    if body.apply:
        result = service.apply_external(body.records)
        if result.new_records:
            await persist(request)
    else:
        result = service.merge_external(body.records)

    generator = ReportGenerator(result)
    if format == "csv":
        return PlainTextResponse(content=generator.to_csv(), media_type="text/csv")
    if format == "text":
        return PlainTextResponse(content=generator.to_detailed_text())
    return {
        "summary": result.to_summary_dict(),
        "new_records": [_payment_json(r) for r in result.new_records],
        "warnings": [w.model_dump(mode="json") for w in result.warnings],
    }


@router.get("/ledger")
async def get_ledger(
    today: Optional[date] = Query(default=None),
    format: str = Query(default="json", description="Output format: json, csv"),
    service: LedgerService = Depends(get_service),
):
    """Receivables for every representative."""
    overview = service.ledger_overview(today=today)
    if format == "csv":
        return PlainTextResponse(content=ledger_csv(overview), media_type="text/csv")
    data = overview.model_dump(mode="json")
    data["receivables_total"] = float(overview.receivables_total)
    data["in_arrears"] = overview.in_arrears
    return data


@router.get("/reports/daily")
async def daily_report(
    day: Optional[date] = Query(default=None),
    format: str = Query(default="json", description="Output format: json, text"),
    service: LedgerService = Depends(get_service),
):
    """Cash register closing for one day."""
    closing = service.daily_closing(day)
    if format == "text":
        return PlainTextResponse(content=daily_closing_text(closing))
    return closing.model_dump(mode="json", by_alias=True)


@router.put("/fees/{level}")
async def update_fee(
    level: str,
    body: FeeBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Administrative settings action: change one level's monthly fee."""
    parsed = parse_level(level)
    if parsed is None:
        raise HTTPException(status_code=404, detail=f"Unknown level: {level}")
    schedule = service.update_fee(parsed, body.amount)
    await persist(request)
    return schedule.to_dict()


@router.post("/accrual/run")
async def run_accrual(
    body: AccrualBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Charge the month to every representative."""
    charges = service.run_monthly_accrual(body.month)
    await persist(request)
    return {"charged": {cedula: float(amount) for cedula, amount in charges.items()}}


@router.get("/users")
async def list_users(service: LedgerService = Depends(get_service)):
    return [u.model_dump(mode="json", by_alias=True) for u in service.users]


@router.post("/users", status_code=201)
async def register_user(
    body: UserBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Create a staff account; the first one becomes administrator."""
    user = service.register_user(body.cedula, body.full_name)
    await persist(request)
    return user.model_dump(mode="json", by_alias=True)


@router.put("/users/{cedula}/role")
async def update_user_role(
    cedula: str,
    body: RoleBody,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    user = service.update_user_role(cedula, body.role)
    await persist(request)
    return user.model_dump(mode="json", by_alias=True)


@router.delete("/users/{cedula}", status_code=204)
async def delete_user(
    cedula: str,
    request: Request,
    service: LedgerService = Depends(get_service),
):
    """Remove a staff account."""
    service.delete_user(cedula)
    await persist(request)


async def _ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = 400
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def _value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app(
    service: Optional[LedgerService] = None,
    settings: Optional[LedgerSettings] = None,
    database: Optional[DatabaseManager] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        service: Ledger service to expose. Created from settings if not provided.
        settings: Runtime settings. Read from the environment if not provided.
        database: Snapshot store. When given, the stored state is loaded on
            startup and every change is saved.

    Returns:
        FastAPI application.
    """
    settings = settings or LedgerSettings.from_env()
    service = service or LedgerService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if database is not None:
            await database.initialize()
            async with database.session() as session:
                stored = await LedgerRepository(session).load_snapshot()
            if stored.representatives or stored.payments or stored.users:
                service.load_snapshot(stored)
        yield
        if database is not None:
            await database.shutdown()

    app = FastAPI(title="Tuition Ledger API", lifespan=lifespan)
    app.state.service = service
    app.state.database = database
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(LedgerError, _ledger_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "connection": service.connection_status.value}

    app.include_router(router)
    return app
