"""Accounting core: fees, accrual, balances and the verification workflow."""

from .models import (
    BalanceSummary,
    CASH_METHODS,
    ConnectionStatus,
    EXTERNAL_ID_PREFIX,
    Level,
    PaymentMethod,
    PaymentOrigin,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    POS_ID_PREFIX,
    Representative,
    Student,
    User,
    UserRole,
    WorkflowAction,
    canonical_identifier,
    month_key,
)
from .fees import DEFAULT_LEVEL_FEES, FeeSchedule
from .accrual import initial_accrual, monthly_accrual, run_monthly_accrual
from .balance import compute_balance, payments_for
from .workflow import INITIAL_STATUS_BY_METHOD, VerificationWorkflow, initial_status, transition
from .payments import generate_payment_id, record_payment
from .snapshot import LedgerSnapshot
from .reports import (
    DailyClosing,
    DashboardStats,
    LedgerEntry,
    LedgerOverview,
    daily_closing,
    dashboard_stats,
    filter_payments,
    ledger_overview,
)

__all__ = [
    # Models
    "BalanceSummary",
    "CASH_METHODS",
    "ConnectionStatus",
    "EXTERNAL_ID_PREFIX",
    "Level",
    "PaymentMethod",
    "PaymentOrigin",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentType",
    "POS_ID_PREFIX",
    "Representative",
    "Student",
    "User",
    "UserRole",
    "WorkflowAction",
    "canonical_identifier",
    "month_key",
    "LedgerSnapshot",
    # Fees and accrual
    "DEFAULT_LEVEL_FEES",
    "FeeSchedule",
    "initial_accrual",
    "monthly_accrual",
    "run_monthly_accrual",
    # Balances and payments
    "compute_balance",
    "payments_for",
    "generate_payment_id",
    "record_payment",
    # Workflow
    "INITIAL_STATUS_BY_METHOD",
    "VerificationWorkflow",
    "initial_status",
    "transition",
    # Reports
    "DailyClosing",
    "DashboardStats",
    "LedgerEntry",
    "LedgerOverview",
    "daily_closing",
    "dashboard_stats",
    "filter_payments",
    "ledger_overview",
]
