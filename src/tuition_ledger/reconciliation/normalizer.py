"""Field normalization for loosely structured external payment records.

External feeds (spreadsheets behind the virtual office, manual exports) spell
their columns in many ways: "Monto", "monto ", "MONTO", "Cédula", "cedula_representante".
Keys are resolved through an explicit table of canonical field names and
accepted synonyms, compared after folding (accents, case and whitespace
removed). Values are coerced by helpers that never raise: unparseable input
falls back to a documented default and is recorded as a data-quality warning.
"""

import logging
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..accounting.models import (
    Level,
    MAX_AMOUNT,
    NO_REFERENCE,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ZERO,
    canonical_identifier,
    fold,
    parse_decimal,
    parse_level,
    to_money,
)

logger = logging.getLogger(__name__)


class _NotFound:
    """Sentinel returned by lookup() when no key matches."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


# Canonical field -> accepted spellings (compared after folding)
FIELD_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "identificador", "codigo", "codigo pago", "payment id"),
    "timestamp": (
        "timestamp", "marca temporal", "fecha registro", "fecha de registro",
        "created at", "registrado",
    ),
    "payment_date": ("paymentDate", "payment date", "fecha de pago", "fecha pago", "fecha"),
    "cedula_representative": (
        "cedulaRepresentative", "cedula representante", "cedula del representante",
        "cedula", "ci", "documento", "representative id",
    ),
    "matricula": ("matricula", "enrollment code", "codigo matricula"),
    "level": ("level", "nivel", "nivel educativo", "grado"),
    "method": (
        "method", "metodo", "metodo de pago", "forma de pago", "instrumento",
        "payment method",
    ),
    "reference": (
        "reference", "referencia", "ref", "nro referencia", "numero de referencia",
        "comprobante",
    ),
    "amount": ("amount", "monto", "importe", "cantidad", "total pagado"),
    "notes": ("notes", "observations", "observaciones", "comentarios", "nota"),
    "status": ("status", "estatus", "estado"),
    "payment_type": ("type", "tipo", "tipo de pago", "payment type"),
}

# Checked in order, so "Por verificar", "Sin verificar" and "No aprobado" never
# fall through to the verified row
STATUS_SYNONYMS: Sequence[Tuple[PaymentStatus, Tuple[str, ...]]] = (
    (PaymentStatus.PENDING, (
        "pend", "porverificar", "sinverific", "noverific", "sinconfirm", "noconfirm",
        "unverified", "notverified", "revision", "espera", "review",
    )),
    (PaymentStatus.REJECTED, (
        "rechaz", "anulad", "reject", "denegad", "denied", "declin",
        "noaprob", "desaprob", "notapproved", "disapprov",
    )),
    (PaymentStatus.VERIFIED, ("verific", "aprobad", "confirmad", "approved", "conciliad")),
)

METHOD_SYNONYMS: Sequence[Tuple[PaymentMethod, Tuple[str, ...]]] = (
    (PaymentMethod.ZELLE, ("zelle",)),
    (PaymentMethod.PAGO_MOVIL, ("movil", "mobile")),
    (PaymentMethod.TRANSFER, ("transfer", "deposito", "wire")),
    (PaymentMethod.CREDIT_CARD, ("tdc", "credito", "credit")),
    (PaymentMethod.DEBIT_CARD, ("tdd", "debito", "debit", "puntodeventa")),
)

CASH_WORDS = ("efectivo", "cash", "contado")
BOLIVAR_WORDS = ("bs", "bolivar", "ves")
EURO_WORDS = ("eur",)

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d", "%d/%m/%y")


def normalize_key(key: Any) -> str:
    """Fold a mapping key for comparison."""
    return fold(key)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def lookup(
    record: Mapping[str, Any],
    canonical_name: str,
    table: Mapping[str, Sequence[str]] = FIELD_SYNONYMS,
) -> Any:
    """Find a field in a loosely keyed record.

    The canonical name is tried first, then its synonyms in table order.
    Blank values count as absent.

    Args:
        record: Raw mapping from an external source.
        canonical_name: Canonical field name, e.g. "amount".
        table: Synonym table to resolve against.

    Returns:
        The matched value, or NOT_FOUND. Never raises on missing keys.
    """
    folded_record: Dict[str, Any] = {}
    for key, value in record.items():
        folded_record.setdefault(normalize_key(key), value)

    candidates = (canonical_name,) + tuple(table.get(canonical_name, ()))
    for candidate in candidates:
        value = folded_record.get(normalize_key(candidate), NOT_FOUND)
        if value is not NOT_FOUND and not _is_blank(value):
            return value
    return NOT_FOUND


def lookup_or(record: Mapping[str, Any], canonical_name: str, fallback: Any = None) -> Any:
    """lookup() with a caller-supplied fallback for absent fields."""
    value = lookup(record, canonical_name)
    return fallback if value is NOT_FOUND else value


class DataQualityWarning(BaseModel):
    """A value that could not be read and was replaced by a fallback."""
    field: str = Field(..., description="Canonical field name")
    raw_value: Any = Field(None, description="Value as received")
    message: str
    record_index: Optional[int] = Field(None, description="Position of the record in its batch")


class FieldNormalizer:
    """Coerces raw values into canonical types, collecting data-quality warnings."""

    def __init__(self, fallback_method: PaymentMethod = PaymentMethod.TRANSFER):
        """Initialize the normalizer.

        Args:
            fallback_method: Instrument assigned when the text is unrecognised.
        """
        self.fallback_method = PaymentMethod(fallback_method)
        self.warnings: List[DataQualityWarning] = []
        self._record_index: Optional[int] = None

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def begin_record(self, index: Optional[int]) -> None:
        """Tag subsequent warnings with the batch position of the record being read."""
        self._record_index = index

    def reset(self) -> None:
        self.warnings = []
        self._record_index = None

    def _warn(self, field: str, raw: Any, message: str) -> None:
        warning = DataQualityWarning(
            field=field,
            raw_value=raw if isinstance(raw, (str, int, float, bool)) or raw is None else str(raw),
            message=message,
            record_index=self._record_index,
        )
        self.warnings.append(warning)
        where = f" (record {self._record_index})" if self._record_index is not None else ""
        logger.warning(f"Data quality{where}: {field}={raw!r}: {message}")

    def to_amount(self, raw: Any) -> Decimal:
        """Parse an amount, tolerating comma decimals; 0 with a warning when unreadable."""
        if raw is NOT_FOUND or _is_blank(raw):
            self._warn("amount", None, "missing amount, using 0")
            return ZERO
        value = parse_decimal(raw)
        if value is None:
            self._warn("amount", raw, "unparseable amount, using 0")
            return ZERO
        if value < 0:
            self._warn("amount", raw, "negative amount, using 0")
            return ZERO
        if value > MAX_AMOUNT:
            self._warn("amount", raw, "amount out of range, using 0")
            return ZERO
        return to_money(value)

    def to_status(self, raw: Any) -> PaymentStatus:
        """Classify free-text status; Pending when absent or unrecognised."""
        if raw is NOT_FOUND or _is_blank(raw):
            return PaymentStatus.PENDING
        folded = fold(raw)
        for status in PaymentStatus:
            if folded == fold(status.value):
                return status
        for status, synonyms in STATUS_SYNONYMS:
            if any(s in folded for s in synonyms):
                return status
        self._warn("status", raw, "unrecognised status, using Pendiente")
        return PaymentStatus.PENDING

    def to_method(self, raw: Any) -> PaymentMethod:
        """Classify free-text instrument descriptions; fallback when unrecognised."""
        if raw is NOT_FOUND or _is_blank(raw):
            self._warn("method", None, f"missing method, using {self.fallback_method.value}")
            return self.fallback_method
        folded = fold(raw)
        for method in PaymentMethod:
            if folded == fold(method.value):
                return method
        for method, synonyms in METHOD_SYNONYMS:
            if any(s in folded for s in synonyms):
                return method
        if any(w in folded for w in CASH_WORDS):
            if any(w in folded for w in EURO_WORDS):
                return PaymentMethod.CASH_EUR
            if any(w in folded for w in BOLIVAR_WORDS):
                return PaymentMethod.CASH_BS
            return PaymentMethod.CASH_USD
        self._warn("method", raw, f"unrecognised method, using {self.fallback_method.value}")
        return self.fallback_method

    def to_identifier(self, raw: Any) -> str:
        """Canonical identification: "V-12345678" and "12.345.678" compare equal."""
        if raw is NOT_FOUND or _is_blank(raw):
            return ""
        return canonical_identifier(raw)

    def to_level(self, raw: Any, default: Optional[Level] = None) -> Optional[Level]:
        if raw is NOT_FOUND or _is_blank(raw):
            return default
        level = parse_level(raw)
        if level is None:
            self._warn("level", raw, "unrecognised level")
            return default
        return level

    def to_payment_type(self, raw: Any) -> PaymentType:
        """TOTAL or ABONO; partial when absent or unrecognised."""
        if raw is NOT_FOUND or _is_blank(raw):
            return PaymentType.PARTIAL
        folded = fold(raw)
        if any(w in folded for w in ("abono", "parcial", "partial")):
            return PaymentType.PARTIAL
        if any(w in folded for w in ("total", "full", "complet")):
            return PaymentType.FULL
        self._warn("payment_type", raw, "unrecognised payment type, using ABONO")
        return PaymentType.PARTIAL

    def to_text(self, raw: Any, default: str = "") -> str:
        if raw is NOT_FOUND or _is_blank(raw):
            return default
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        return str(raw).strip()

    def to_reference(self, raw: Any) -> str:
        return self.to_text(raw, default=NO_REFERENCE)

    def to_date(self, raw: Any, default: date) -> date:
        """Parse a payment date in ISO or day-first notation."""
        if raw is NOT_FOUND or _is_blank(raw):
            return default
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        text = str(raw).strip()
        # Datetime strings carry the date in their first ten characters
        if re.match(r"^\d{4}-\d{2}-\d{2}[T ]", text):
            text = text[:10]
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        self._warn("payment_date", raw, f"unparseable date, using {default.isoformat()}")
        return default

    def to_timestamp(self, raw: Any, default: datetime) -> datetime:
        """Parse a creation timestamp; naive values are taken as UTC."""
        if raw is NOT_FOUND or _is_blank(raw):
            return default
        if isinstance(raw, datetime):
            parsed = raw
        elif isinstance(raw, date):
            parsed = datetime.combine(raw, time.min)
        else:
            text = str(raw).strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                parsed = None
                for fmt in DATE_FORMATS:
                    try:
                        parsed = datetime.strptime(text, fmt)
                        break
                    except ValueError:
                        continue
                if parsed is None:
                    self._warn("timestamp", raw, "unparseable timestamp, using fetch time")
                    return default
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
