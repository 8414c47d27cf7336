"""Reconciliation of externally reported payments into the local ledger."""

import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from pydantic import BaseModel, Field

from ..accounting.balance import balance_after_payment, compute_balance
from ..accounting.models import (
    EXTERNAL_ID_PREFIX,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    Representative,
    ZERO,
    canonical_identifier,
    utcnow,
)
from ..accounting.payments import PORTAL_NOTE
from .normalizer import DataQualityWarning, FieldNormalizer, lookup

logger = logging.getLogger(__name__)

REVIEW_STATUSES = (PaymentStatus.PENDING, PaymentStatus.REJECTED)


class MergeResult(BaseModel):
    """Outcome of merging one batch of external records."""
    new_records: List[PaymentRecord] = Field(default_factory=list)
    total_received: int = Field(default=0, description="Raw records in the batch")
    duplicates: int = Field(default=0, description="Skipped: identifier already in the ledger")
    already_resolved: int = Field(default=0, description="Skipped: not pending at the source")
    invalid: int = Field(default=0, description="Skipped: no representative identification")
    warnings: List[DataQualityWarning] = Field(default_factory=list)

    @property
    def total_new(self) -> int:
        return len(self.new_records)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return the counters without the records themselves."""
        return {
            "total_received": self.total_received,
            "total_new": self.total_new,
            "duplicates": self.duplicates,
            "already_resolved": self.already_resolved,
            "invalid": self.invalid,
            "warnings": len(self.warnings),
        }


def synthesize_id(reference: str, index: int) -> str:
    """Deterministic identifier for an external record that lacks one.

    Derived from the reference and the record's position in its batch, so
    fetching the same unchanged data again reproduces the same identifiers.
    """
    digest = hashlib.sha256(f"{index}|{reference}".encode("utf-8")).hexdigest()
    return f"{EXTERNAL_ID_PREFIX}{digest[:16].upper()}"


def review_order(records: Iterable[PaymentRecord]) -> List[PaymentRecord]:
    """Externally sourced records first, then point-of-sale; newest first within each."""
    return sorted(
        records,
        key=lambda p: (0 if p.is_external else 1, -p.timestamp.timestamp()),
    )


def review_queue(
    payments: Iterable[PaymentRecord],
    statuses: Sequence[PaymentStatus] = REVIEW_STATUSES,
) -> List[PaymentRecord]:
    """Records awaiting (or excluded from) verification, in review order."""
    return review_order(p for p in payments if p.status in statuses)


class ReconciliationMerger:
    """Merges loosely typed external payment records into the ledger.

    The merge is a pure computation: it returns the records to add and never
    touches the ledger it is given. Repeating a merge with the same input
    yields no new records once the first result has been applied.
    """

    def __init__(
        self,
        normalizer: Optional[FieldNormalizer] = None,
        fallback_method: PaymentMethod = PaymentMethod.TRANSFER,
    ):
        """Initialize the merger.

        Args:
            normalizer: Field normalizer to use. Created if not provided.
            fallback_method: Instrument for unrecognised method text, when
                no normalizer is given.
        """
        self.normalizer = normalizer or FieldNormalizer(fallback_method=fallback_method)

    def _resolve_id(self, raw: Mapping[str, Any], reference: str, index: int) -> str:
        supplied = self.normalizer.to_text(lookup(raw, "id"))
        if supplied.upper().startswith(EXTERNAL_ID_PREFIX):
            return EXTERNAL_ID_PREFIX + supplied[len(EXTERNAL_ID_PREFIX):]
        return synthesize_id(reference, index)

    def normalize(
        self,
        raw: Mapping[str, Any],
        index: int,
        fetched_at: datetime,
        representative: Optional[Representative] = None,
        ledger: Sequence[PaymentRecord] = (),
    ) -> Optional[PaymentRecord]:
        """Build a canonical PaymentRecord from one raw record.

        Args:
            raw: Raw mapping from the external source.
            index: Position of the record in its batch.
            fetched_at: Fallback creation time and payment date.
            representative: Known representative, used to fill in the
                enrollment code, level and pending balance.
            ledger: Current ledger, for the pending balance snapshot.

        Returns:
            PaymentRecord, or None when the record names no representative.
        """
        n = self.normalizer
        n.begin_record(index)

        cedula = n.to_identifier(lookup(raw, "cedula_representative"))
        if not cedula:
            n._warn("cedula_representative", None, "record has no representative identification")
            return None

        reference = n.to_reference(lookup(raw, "reference"))
        amount = n.to_amount(lookup(raw, "amount"))
        default_level = representative.primary_level if representative else None
        level = n.to_level(lookup(raw, "level"), default=default_level)

        pending_balance = ZERO
        if representative is not None:
            outstanding = compute_balance(representative, ledger).outstanding
            pending_balance = balance_after_payment(outstanding, amount)

        fields: Dict[str, Any] = {
            "id": self._resolve_id(raw, reference, index),
            "timestamp": n.to_timestamp(lookup(raw, "timestamp"), default=fetched_at),
            "payment_date": n.to_date(lookup(raw, "payment_date"), default=fetched_at.date()),
            "cedula_representative": cedula,
            "matricula": n.to_text(
                lookup(raw, "matricula"),
                default=representative.matricula if representative else "",
            ),
            "method": n.to_method(lookup(raw, "method")),
            "reference": reference,
            "amount": amount,
            "notes": n.to_text(lookup(raw, "notes"), default=PORTAL_NOTE),
            "status": n.to_status(lookup(raw, "status")),
            "payment_type": n.to_payment_type(lookup(raw, "payment_type")),
            "pending_balance": pending_balance,
        }
        if level is not None:
            fields["level"] = level
        return PaymentRecord(**fields)

    def merge_detailed(
        self,
        local_ledger: Sequence[PaymentRecord],
        raw_records: Sequence[Mapping[str, Any]],
        representatives: Optional[Iterable[Representative]] = None,
        now: Optional[datetime] = None,
    ) -> MergeResult:
        """Merge a batch of raw records, reporting what was skipped and why.

        Args:
            local_ledger: Payments already in the ledger.
            raw_records: Raw records as fetched from the external source.
            representatives: Known representatives, to enrich imported records.
            now: Fetch time used when a record carries no timestamp or date.

        Returns:
            MergeResult whose new_records are the genuinely new Pending records,
            in batch order.
        """
        fetched_at = now or utcnow()
        by_cedula = {
            canonical_identifier(r.cedula): r for r in (representatives or [])
        }
        existing_ids: Set[str] = {p.id for p in local_ledger}
        self.normalizer.reset()

        result = MergeResult(total_received=len(raw_records))
        logger.info(
            f"Merging {len(raw_records)} external records into a ledger of "
            f"{len(local_ledger)} payments"
        )

        for index, raw in enumerate(raw_records):
            if not isinstance(raw, Mapping):
                self.normalizer.begin_record(index)
                self.normalizer._warn("record", str(raw)[:80], "record is not a mapping")
                result.invalid += 1
                continue

            cedula = self.normalizer.to_identifier(lookup(raw, "cedula_representative"))
            record = self.normalize(
                raw,
                index,
                fetched_at,
                representative=by_cedula.get(cedula),
                ledger=local_ledger,
            )
            if record is None:
                result.invalid += 1
                continue

            if record.id in existing_ids:
                result.duplicates += 1
                continue

            if record.status != PaymentStatus.PENDING:
                result.already_resolved += 1
                logger.debug(
                    f"Skipping external record {record.id}: already {record.status.value}"
                )
                continue

            existing_ids.add(record.id)
            result.new_records.append(record)

        self.normalizer.begin_record(None)
        result.warnings = list(self.normalizer.warnings)

        logger.info(
            f"Merge complete: {result.total_new} new, {result.duplicates} duplicates, "
            f"{result.already_resolved} already resolved, {result.invalid} invalid, "
            f"{len(result.warnings)} data quality warnings"
        )
        return result

    def merge(
        self,
        local_ledger: Sequence[PaymentRecord],
        raw_records: Sequence[Mapping[str, Any]],
        representatives: Optional[Iterable[Representative]] = None,
        now: Optional[datetime] = None,
    ) -> List[PaymentRecord]:
        """Return exactly the new Pending records; the caller prepends them."""
        return self.merge_detailed(
            local_ledger, raw_records, representatives=representatives, now=now
        ).new_records


def merge_external(
    local_payments: Sequence[PaymentRecord],
    raw_external_records: Sequence[Mapping[str, Any]],
    fallback_method: PaymentMethod = PaymentMethod.TRANSFER,
) -> List[PaymentRecord]:
    """Merge external records with a fresh merger."""
    return ReconciliationMerger(fallback_method=fallback_method).merge(
        local_payments, raw_external_records
    )
