"""Domain models for the tuition ledger."""

import enum
import math
import re
import unicodedata
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_serializer, field_validator

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest amount that still fits the integer cents columns with headroom for sums
MAX_AMOUNT = Decimal("999999999999.99")

# Identifier prefixes tell the origin of a payment record apart
POS_ID_PREFIX = "PAY-"
EXTERNAL_ID_PREFIX = "OV-"

NO_REFERENCE = "N/A"


class Level(str, enum.Enum):
    """Enrollment levels, valued with the labels used by the school's records."""
    NURSERY = "Maternal"
    PRESCHOOL = "Pre-escolar"
    PRIMARY = "Primaria"
    SECONDARY = "Secundaria"


class PaymentMethod(str, enum.Enum):
    """Payment instruments accepted by the school."""
    CASH_BS = "Efectivo Bs"
    CASH_USD = "Efectivo $"
    CASH_EUR = "Efectivo Euro"
    CREDIT_CARD = "TDC"
    DEBIT_CARD = "TDD"
    PAGO_MOVIL = "Pago Móvil"
    TRANSFER = "Transferencia"
    ZELLE = "Zelle"


CASH_METHODS = frozenset({
    PaymentMethod.CASH_BS,
    PaymentMethod.CASH_USD,
    PaymentMethod.CASH_EUR,
})


class PaymentStatus(str, enum.Enum):
    """Verification status of a payment record."""
    PENDING = "Pendiente"
    VERIFIED = "Verificado"
    REJECTED = "Rechazado"


class PaymentType(str, enum.Enum):
    """Whether a payment settles the whole balance or only part of it."""
    FULL = "TOTAL"
    PARTIAL = "ABONO"


class PaymentOrigin(str, enum.Enum):
    """Flow that produced a payment record."""
    POINT_OF_SALE = "point_of_sale"
    VIRTUAL_OFFICE = "virtual_office"


class WorkflowAction(str, enum.Enum):
    """Actions an administrator can take on a payment under review."""
    VERIFY = "verify"
    REJECT = "reject"
    REACTIVATE = "reactivate"


class UserRole(str, enum.Enum):
    ADMIN = "Administrador"
    BASIC = "Usuario Básico"


class ConnectionStatus(str, enum.Enum):
    """Connectivity with the remote store, as last observed."""
    ONLINE = "online"
    OFFLINE = "offline"
    PENDING = "pending"


LEVEL_SYNONYMS = {
    Level.NURSERY: ("maternal", "nursery", "guarderia"),
    Level.PRESCHOOL: ("preescolar", "preschool", "kinder"),
    Level.SECONDARY: ("secundaria", "secondary", "bachillerato"),
    Level.PRIMARY: ("primaria", "primary", "basica"),
}


def fold(text: Any) -> str:
    """Fold text for loose comparison.

    Strips accents, lowercases, and drops whitespace, underscores, hyphens
    and dots, so "Pago Móvil", "pago_movil" and "PAGOMOVIL" all fold to
    "pagomovil".
    """
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[\s_\-.]+", "", stripped.casefold())


def parse_level(raw: Any) -> Optional[Level]:
    """Classify free text as an enrollment level, or None if unrecognised."""
    if raw is None:
        return None
    if isinstance(raw, Level):
        return raw
    folded = fold(raw)
    if not folded:
        return None
    for level, synonyms in LEVEL_SYNONYMS.items():
        if folded == fold(level.value) or folded in synonyms:
            return level
    for level, synonyms in LEVEL_SYNONYMS.items():
        if any(s in folded for s in synonyms):
            return level
    return None


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """Parse a loosely formatted number into a Decimal.

    Accepts comma as the decimal separator ("25,50"), either convention for
    thousands separators ("1.234,56" and "1,234.56") and surrounding currency
    symbols. Returns None when no number can be read.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        return Decimal(str(raw))

    # "Bs. 100" leaves a stray leading dot behind
    text = re.sub(r"[^\d,.\-]", "", str(raw)).strip(",.")
    if not re.search(r"\d", text):
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def canonical_identifier(raw: Any) -> str:
    """Reduce an identification number to its comparable core.

    Drops punctuation and leading nationality letters, so "V-12345678",
    "v12.345.678" and 12345678.0 all become "12345678".
    """
    if raw is None:
        return ""
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    text = re.sub(r"[^0-9A-Za-z]", "", str(raw))
    return re.sub(r"^[A-Za-z]+", "", text).upper()


def to_money(value: Any) -> Decimal:
    """Quantize a monetary value to cents.

    Raises:
        ValueError: If the value is not finite or exceeds MAX_AMOUNT.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite() or abs(value) > MAX_AMOUNT:
        raise ValueError(f"Monetary amount out of range: {value}")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def month_key(day: date) -> str:
    """Return the YYYY-MM key for the month containing ``day``."""
    return f"{day.year:04d}-{day.month:02d}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Decimal amounts rendered as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class LedgerModel(BaseModel):
    """Base model: accepts both snake_case names and the camelCase wire aliases."""
    model_config = ConfigDict(populate_by_name=True)


class Student(LedgerModel):
    """A student owned by a representative."""
    id: str = Field(..., description="Student identifier")
    full_name: str = Field(..., alias="fullName")
    level: Level = Field(..., description="Enrollment level")
    section: str = Field(default="A", description="Section label")
    active: bool = Field(default=True, description="Inactive students do not accrue fees")


class Representative(LedgerModel):
    """A guardian who owes tuition for one or more students."""
    cedula: str = Field(..., description="National identification number")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    phone: str = Field(default="")
    matricula: str = Field(..., description="School-assigned enrollment code")
    students: List[Student] = Field(default_factory=list)
    total_accrued_debt: Decimal = Field(default=ZERO, alias="totalAccruedDebt")
    last_accrual_month: Optional[str] = Field(default=None, alias="lastAccrualMonth")

    @field_validator("total_accrued_debt")
    @classmethod
    def _quantize_debt(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("total_accrued_debt cannot be negative")
        return to_money(value)

    @field_serializer("total_accrued_debt", when_used="json")
    def _debt_json(self, value: Decimal) -> float:
        return float(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def active_students(self) -> List[Student]:
        return [s for s in self.students if s.active]

    @property
    def primary_level(self) -> Level:
        """Level recorded on payments: the first student's, Primary if none."""
        return self.students[0].level if self.students else Level.PRIMARY


class PaymentRecord(LedgerModel):
    """A single payment against a representative's tuition debt."""
    id: str = Field(..., description="Globally unique payment identifier")
    timestamp: datetime = Field(default_factory=utcnow, description="Record creation time")
    payment_date: date = Field(..., alias="paymentDate")
    cedula_representative: str = Field(..., alias="cedulaRepresentative")
    matricula: str = Field(default="")
    level: Level = Field(default=Level.PRIMARY)
    method: PaymentMethod
    reference: str = Field(default=NO_REFERENCE)
    amount: Decimal
    notes: str = Field(default="", alias="observations")
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    payment_type: PaymentType = Field(default=PaymentType.PARTIAL, alias="type")
    pending_balance: Decimal = Field(default=ZERO, alias="pendingBalance")
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("amount", "pending_balance")
    @classmethod
    def _quantize_money(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("monetary amounts cannot be negative")
        return to_money(value)

    @field_serializer("amount", "pending_balance", when_used="json")
    def _money_json(self, value: Decimal) -> float:
        return float(value)

    @property
    def origin(self) -> PaymentOrigin:
        if self.id.startswith(EXTERNAL_ID_PREFIX):
            return PaymentOrigin.VIRTUAL_OFFICE
        return PaymentOrigin.POINT_OF_SALE

    @property
    def is_external(self) -> bool:
        return self.origin == PaymentOrigin.VIRTUAL_OFFICE


class User(LedgerModel):
    """A staff account (cashier or administrator)."""
    cedula: str
    full_name: str = Field(..., alias="fullName")
    role: UserRole = Field(default=UserRole.BASIC)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")


class BalanceSummary(BaseModel):
    """Balance projection for one representative."""
    verified_total: Money = Field(default=ZERO, description="Sum of verified payments")
    in_transit_total: Money = Field(default=ZERO, description="Sum of pending payments")
    outstanding: Money = Field(default=ZERO, description="Accrued debt not yet covered")
