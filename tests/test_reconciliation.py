"""Tests for the reconciliation module."""

import csv
import io
import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from tuition_ledger.accounting import Level, PaymentMethod, PaymentStatus, PaymentType
from tuition_ledger.reconciliation import (
    NOT_FOUND,
    FieldNormalizer,
    ReconciliationMerger,
    ReportGenerator,
    lookup,
    lookup_or,
    merge_external,
    review_order,
    review_queue,
    synthesize_id,
)

FETCHED_AT = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def normalizer():
    return FieldNormalizer()


class TestLookup:
    """Tests for synonym-tolerant field lookup."""

    def test_canonical_name_first(self):
        assert lookup({"amount": 5, "monto": 7}, "amount") == 5

    def test_case_accent_whitespace_insensitive(self):
        record = {" MONTO ": "25,50", "Cédula": "V-1", "Método de Pago": "Zelle"}
        assert lookup(record, "amount") == "25,50"
        assert lookup(record, "cedula_representative") == "V-1"
        assert lookup(record, "method") == "Zelle"

    def test_missing_key_returns_sentinel(self):
        assert lookup({"foo": 1}, "amount") is NOT_FOUND
        assert not NOT_FOUND

    def test_blank_counts_as_absent(self):
        """A blank canonical column falls through to the next synonym."""
        assert lookup({"amount": "  ", "monto": "12"}, "amount") == "12"
        assert lookup({"monto": None}, "amount") is NOT_FOUND

    def test_lookup_or(self):
        assert lookup_or({}, "reference", "N/A") == "N/A"


class TestFieldNormalizer:
    """Tests for value coercion and data quality warnings."""

    @pytest.mark.parametrize("raw,expected", [
        ("25,50", Decimal("25.50")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("Bs. 100", Decimal("100.00")),
        (40, Decimal("40.00")),
    ])
    def test_to_amount(self, normalizer, raw, expected):
        assert normalizer.to_amount(raw) == expected
        assert normalizer.warning_count == 0

    @pytest.mark.parametrize("raw", ["abc", "-5", NOT_FOUND, 1e30, "1" * 30, Decimal("1E+400")])
    def test_to_amount_fallback_warns(self, normalizer, raw):
        assert normalizer.to_amount(raw) == Decimal("0.00")
        assert normalizer.warnings[0].field == "amount"

    @pytest.mark.parametrize("raw,expected", [
        ("Pendiente", PaymentStatus.PENDING),
        ("por verificar", PaymentStatus.PENDING),
        ("VERIFICADO", PaymentStatus.VERIFIED),
        ("Aprobado", PaymentStatus.VERIFIED),
        ("rechazado", PaymentStatus.REJECTED),
        ("Sin verificar", PaymentStatus.PENDING),
        ("No verificado", PaymentStatus.PENDING),
        ("sin confirmar", PaymentStatus.PENDING),
        ("Unverified", PaymentStatus.PENDING),
        ("No aprobado", PaymentStatus.REJECTED),
        ("Desaprobado", PaymentStatus.REJECTED),
        ("Not approved", PaymentStatus.REJECTED),
        (NOT_FOUND, PaymentStatus.PENDING),
    ])
    def test_to_status(self, normalizer, raw, expected):
        assert normalizer.to_status(raw) == expected

    def test_to_status_unrecognised(self, normalizer):
        assert normalizer.to_status("???") == PaymentStatus.PENDING
        assert normalizer.warning_count == 1

    @pytest.mark.parametrize("raw,expected", [
        ("Pago Móvil", PaymentMethod.PAGO_MOVIL),
        ("pago movil", PaymentMethod.PAGO_MOVIL),
        ("ZELLE", PaymentMethod.ZELLE),
        ("transferencia bancaria", PaymentMethod.TRANSFER),
        ("Efectivo $", PaymentMethod.CASH_USD),
        ("efectivo bolivares", PaymentMethod.CASH_BS),
        ("efectivo euros", PaymentMethod.CASH_EUR),
        ("tdd", PaymentMethod.DEBIT_CARD),
    ])
    def test_to_method(self, normalizer, raw, expected):
        assert normalizer.to_method(raw) == expected

    def test_to_method_fallback(self):
        normalizer = FieldNormalizer(fallback_method=PaymentMethod.ZELLE)
        assert normalizer.to_method("cheque") == PaymentMethod.ZELLE
        assert normalizer.warnings[0].field == "method"

    def test_to_identifier(self, normalizer):
        assert normalizer.to_identifier("V-12345678") == normalizer.to_identifier("12.345.678")
        assert normalizer.to_identifier(NOT_FOUND) == ""

    def test_to_level_and_type(self, normalizer):
        assert normalizer.to_level("secundaria") == Level.SECONDARY
        assert normalizer.to_level(NOT_FOUND, default=Level.PRIMARY) == Level.PRIMARY
        assert normalizer.to_payment_type("Total") == PaymentType.FULL
        assert normalizer.to_payment_type("abono") == PaymentType.PARTIAL
        assert normalizer.to_payment_type(NOT_FOUND) == PaymentType.PARTIAL

    def test_to_date(self, normalizer):
        default = date(2025, 1, 1)
        assert normalizer.to_date("2025-03-13", default) == date(2025, 3, 13)
        assert normalizer.to_date("13/03/2025", default) == date(2025, 3, 13)
        assert normalizer.to_date("2025-03-13T10:00:00Z", default) == date(2025, 3, 13)
        assert normalizer.to_date("mañana", default) == default
        assert normalizer.warning_count == 1

    def test_to_timestamp(self, normalizer):
        parsed = normalizer.to_timestamp("2025-03-13T10:00:00Z", FETCHED_AT)
        assert parsed == datetime(2025, 3, 13, 10, 0, tzinfo=timezone.utc)
        naive = normalizer.to_timestamp("13/03/2025", FETCHED_AT)
        assert naive.tzinfo is not None
        assert normalizer.to_timestamp("garbage", FETCHED_AT) == FETCHED_AT


class TestReconciliationMerger:
    """Tests for merging external records into the ledger."""

    def test_merge_normalizes_records(self, raw_external_records):
        merger = ReconciliationMerger()
        result = merger.merge_detailed([], raw_external_records, now=FETCHED_AT)

        assert result.total_received == 3
        assert result.total_new == 2
        assert result.already_resolved == 1

        first, second = result.new_records
        assert first.id.startswith("OV-")
        assert first.amount == Decimal("25.50")
        assert first.method == PaymentMethod.PAGO_MOVIL
        assert first.cedula_representative == "12345678"
        assert first.payment_date == date(2025, 3, 13)
        assert first.status == PaymentStatus.PENDING
        assert first.timestamp == FETCHED_AT
        assert second.amount == Decimal("1234.56")
        assert second.method == PaymentMethod.ZELLE
        assert second.payment_date == FETCHED_AT.date()

    def test_merge_is_idempotent(self, raw_external_records):
        """Applying a merge and repeating it yields nothing new."""
        ledger = []
        new = merge_external(ledger, raw_external_records)
        ledger = new + ledger
        assert merge_external(ledger, raw_external_records) == []

    def test_synthesized_ids_are_deterministic(self, raw_external_records):
        first = merge_external([], raw_external_records)
        second = merge_external([], raw_external_records)
        assert [r.id for r in first] == [r.id for r in second]
        assert first[0].id == synthesize_id("000123", 0)
        assert len(first[0].id) == len("OV-") + 16

    def test_supplied_external_id_kept(self):
        raw = [{"id": "OV-ABC123", "cedula": "1", "monto": 5, "metodo": "zelle"}]
        assert merge_external([], raw)[0].id == "OV-ABC123"

    def test_non_prefixed_id_replaced(self):
        raw = [{"id": "PAY-123", "cedula": "1", "monto": 5, "referencia": "R1"}]
        assert merge_external([], raw)[0].id == synthesize_id("R1", 0)

    def test_existing_ids_skipped(self, make_payment):
        existing = make_payment(id="OV-ABC123")
        raw = [{"id": "OV-ABC123", "cedula": "1", "monto": 5}]
        result = ReconciliationMerger().merge_detailed([existing], raw)
        assert result.new_records == []
        assert result.duplicates == 1

    def test_duplicates_within_batch_skipped(self):
        raw = [
            {"id": "OV-SAME", "cedula": "1", "monto": 5},
            {"id": "OV-SAME", "cedula": "1", "monto": 5},
        ]
        result = ReconciliationMerger().merge_detailed([], raw)
        assert result.total_new == 1
        assert result.duplicates == 1

    def test_records_without_representative_skipped(self):
        raw = [{"monto": 5, "metodo": "zelle"}, "not a record"]
        result = ReconciliationMerger().merge_detailed([], raw)
        assert result.total_new == 0
        assert result.invalid == 2
        assert any(w.field == "cedula_representative" for w in result.warnings)

    def test_bad_values_fall_back_with_warnings(self):
        raw = [{"cedula": "1", "monto": "n/a", "metodo": "trueque", "fecha": "ayer"}]
        result = ReconciliationMerger().merge_detailed([], raw, now=FETCHED_AT)
        record = result.new_records[0]
        assert record.amount == Decimal("0.00")
        assert record.method == PaymentMethod.TRANSFER
        assert record.payment_date == FETCHED_AT.date()
        assert {w.field for w in result.warnings} >= {"amount", "method", "payment_date"}
        assert all(w.record_index == 0 for w in result.warnings)

    def test_oversized_amount_does_not_abort_batch(self):
        raw = [
            {"cedula": "1", "monto": "1" * 30, "referencia": "A"},
            {"cedula": "2", "monto": "40", "referencia": "B"},
        ]
        result = ReconciliationMerger().merge_detailed([], raw, now=FETCHED_AT)
        assert [r.amount for r in result.new_records] == [Decimal("0.00"), Decimal("40.00")]
        assert [w.record_index for w in result.warnings if w.field == "amount"] == [0]

    def test_known_representative_enriches_record(self, representative):
        raw = [{"cedula": "12345678", "monto": "30", "metodo": "zelle", "ref": "Z1"}]
        result = ReconciliationMerger().merge_detailed([], raw, representatives=[representative])
        record = result.new_records[0]
        assert record.matricula == representative.matricula
        assert record.level == Level.PRIMARY
        assert record.pending_balance == Decimal("150.00")

    def test_merge_does_not_touch_ledger(self, make_payment, raw_external_records):
        ledger = [make_payment()]
        before = list(ledger)
        merge_external(ledger, raw_external_records)
        assert ledger == before


class TestReviewOrder:
    """Tests for the verification queue ordering."""

    def test_external_first_then_newest(self, make_payment):
        early = datetime(2025, 3, 1, tzinfo=timezone.utc)
        late = datetime(2025, 3, 10, tzinfo=timezone.utc)
        pos_late = make_payment(id="PAY-2", timestamp=late)
        ov_early = make_payment(id="OV-1", timestamp=early)
        ov_late = make_payment(id="OV-2", timestamp=late)
        pos_early = make_payment(id="PAY-1", timestamp=early)

        ordered = review_order([pos_early, ov_early, pos_late, ov_late])
        assert [p.id for p in ordered] == ["OV-2", "OV-1", "PAY-2", "PAY-1"]

    def test_queue_excludes_verified(self, make_payment):
        payments = [
            make_payment(id="PAY-1", status=PaymentStatus.VERIFIED),
            make_payment(id="PAY-2", status=PaymentStatus.REJECTED),
            make_payment(id="OV-3"),
        ]
        assert [p.id for p in review_queue(payments)] == ["OV-3", "PAY-2"]


class TestReportGenerator:
    """Tests for merge report output."""

    @pytest.fixture
    def result(self, raw_external_records):
        return ReconciliationMerger().merge_detailed([], raw_external_records, now=FETCHED_AT)

    def test_to_json(self, result):
        data = json.loads(ReportGenerator(result).to_json())
        assert data["summary"]["total_new"] == 2
        assert data["new_records"][0]["amount"] == 25.5
        assert data["new_records"][0]["method"] == "Pago Móvil"

    def test_to_json_summary_only(self, result):
        data = json.loads(ReportGenerator(result).to_json(include_details=False))
        assert set(data) == {"summary"}

    def test_to_csv(self, result):
        rows = list(csv.reader(io.StringIO(ReportGenerator(result).to_csv())))
        assert rows[0][0] == "id"
        assert len(rows) == 3
        assert rows[1][8] == "25.50"

    def test_to_csv_unknown_type(self, result):
        with pytest.raises(ValueError):
            ReportGenerator(result).to_csv("matched")

    def test_text_reports(self, result):
        text = ReportGenerator(result).to_detailed_text()
        assert "EXTERNAL PAYMENTS MERGE SUMMARY" in text
        assert "New Pending Records: 2" in text
        assert "NEW RECORDS" in text
