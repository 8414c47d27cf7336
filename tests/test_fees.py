"""Tests for the fee schedule and monthly accrual."""

from decimal import Decimal

import pytest

from tuition_ledger.accounting import (
    FeeSchedule,
    Level,
    Student,
    initial_accrual,
    monthly_accrual,
    run_monthly_accrual,
)
from tuition_ledger.accounting.accrual import validate_month_key
from tuition_ledger.exceptions import AccrualOrderError, FeeConfigurationError


class TestFeeSchedule:
    """Tests for FeeSchedule."""

    def test_default_fees(self, fee_schedule):
        """Test the default amounts per level."""
        assert fee_schedule.fee_for(Level.NURSERY) == Decimal("50.00")
        assert fee_schedule.fee_for(Level.PRESCHOOL) == Decimal("65.00")
        assert fee_schedule.fee_for(Level.PRIMARY) == Decimal("80.00")
        assert fee_schedule.fee_for(Level.SECONDARY) == Decimal("100.00")
        assert fee_schedule.validate() is fee_schedule

    def test_missing_level_raises(self):
        """A missing level is a configuration error, never a silent zero."""
        schedule = FeeSchedule({Level.PRIMARY: 80})
        with pytest.raises(FeeConfigurationError):
            schedule.fee_for(Level.SECONDARY)
        with pytest.raises(FeeConfigurationError, match="Maternal"):
            schedule.validate()

    def test_negative_fee_rejected(self):
        with pytest.raises(FeeConfigurationError):
            FeeSchedule({Level.PRIMARY: -1})

    def test_oversized_fee_rejected(self, fee_schedule):
        with pytest.raises(FeeConfigurationError):
            FeeSchedule({Level.PRIMARY: "1" * 30})
        with pytest.raises(ValueError):
            fee_schedule.with_fee(Level.PRIMARY, 1e30)

    def test_with_fee_returns_new_schedule(self, fee_schedule):
        """Test that updating a fee leaves the original schedule untouched."""
        updated = fee_schedule.with_fee(Level.PRIMARY, "90,50")
        assert updated.fee_for(Level.PRIMARY) == Decimal("90.50")
        assert fee_schedule.fee_for(Level.PRIMARY) == Decimal("80.00")

    def test_with_fee_rejects_negative(self, fee_schedule):
        with pytest.raises(ValueError):
            fee_schedule.with_fee(Level.PRIMARY, -5)

    def test_from_mapping_loose_keys(self):
        """Test level names matched ignoring case and accents."""
        schedule = FeeSchedule.from_mapping({
            "maternal": 50,
            "PRE-ESCOLAR": "65,00",
            "Primaria": 80.0,
            "secundaria ": "100",
            "Universidad": 500,
        })
        assert schedule.validate() == FeeSchedule.default()

    def test_to_dict_uses_level_labels(self, fee_schedule):
        assert fee_schedule.to_dict()["Pre-escolar"] == 65.0
        assert fee_schedule.levels() == list(Level)


class TestAccrual:
    """Tests for initial and monthly accrual."""

    def test_initial_accrual_sums_student_fees(self, fee_schedule):
        students = [
            Student(id="a", full_name="A", level=Level.NURSERY),
            Student(id="b", full_name="B", level=Level.SECONDARY),
        ]
        assert initial_accrual(students, fee_schedule) == Decimal("150.00")

    def test_monthly_accrual_charges_active_students(self, representative, fee_schedule):
        """Test a new month adds the current fees and advances the month key."""
        charged = monthly_accrual(representative, fee_schedule, "2025-04")
        assert charged == Decimal("180.00")
        assert representative.total_accrued_debt == Decimal("360.00")
        assert representative.last_accrual_month == "2025-04"

    def test_monthly_accrual_same_month_charges_once(self, representative, fee_schedule):
        """Running the job twice with the same key charges once."""
        first = monthly_accrual(representative, fee_schedule, "2025-04")
        second = monthly_accrual(representative, fee_schedule, "2025-04")
        assert first == Decimal("180.00")
        assert second == Decimal("0.00")
        assert representative.total_accrued_debt == Decimal("360.00")

    def test_inactive_students_do_not_accrue(self, representative, fee_schedule):
        representative.students[1].active = False
        assert monthly_accrual(representative, fee_schedule, "2025-04") == Decimal("80.00")

    def test_earlier_month_raises(self, representative, fee_schedule):
        with pytest.raises(AccrualOrderError):
            monthly_accrual(representative, fee_schedule, "2025-02")
        assert representative.total_accrued_debt == Decimal("180.00")

    def test_fee_change_affects_future_accrual_only(self, representative, fee_schedule):
        raised = fee_schedule.with_fee(Level.PRIMARY, 90)
        monthly_accrual(representative, raised, "2025-04")
        assert representative.total_accrued_debt == Decimal("370.00")

    @pytest.mark.parametrize("key", ["2025-13", "2025-4", "March", "", None])
    def test_malformed_month_key(self, key):
        with pytest.raises(ValueError):
            validate_month_key(key)

    def test_run_is_all_or_nothing(self, representative, other_representative, fee_schedule):
        """A representative ahead of the requested month blocks the whole run."""
        other_representative.last_accrual_month = "2025-05"
        with pytest.raises(AccrualOrderError):
            run_monthly_accrual([representative, other_representative], fee_schedule, "2025-04")
        assert representative.total_accrued_debt == Decimal("180.00")
        assert representative.last_accrual_month == "2025-03"

    def test_run_missing_fee_charges_nobody(self, representative, other_representative):
        partial = FeeSchedule({Level.PRIMARY: 80, Level.SECONDARY: 100})
        with pytest.raises(FeeConfigurationError):
            run_monthly_accrual([representative, other_representative], partial, "2025-04")
        assert representative.total_accrued_debt == Decimal("180.00")

    def test_run_returns_charges(self, representative, other_representative, fee_schedule):
        charges = run_monthly_accrual(
            [representative, other_representative], fee_schedule, "2025-04"
        )
        assert charges == {"V-12345678": Decimal("180.00"), "9876543": Decimal("50.00")}
