# tuition_ledger package
__version__ = "0.1.0"

from .accounting import (
    FeeSchedule,
    LedgerSnapshot,
    Level,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    Representative,
    Student,
    compute_balance,
    record_payment,
    transition,
)
from .config import LedgerSettings
from .exceptions import LedgerError

# Reconciliation exports
from .reconciliation import (
    FieldNormalizer,
    MergeResult,
    ReconciliationMerger,
    merge_external,
)
from .services import LedgerService
from .sync import SyncManager
