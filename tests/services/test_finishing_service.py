"""
Tests for the finishing stage: teching entry, full and split returns,
edits that re-derive amounts, and department totals.
"""

from decimal import Decimal

import pytest

from kapan_kernel.domain.records import FINISHING_LOTS, LotState


@pytest.fixture
def teching_entry(plant, returned_sarin_lot):
    """A 12-piece finishing record (2 blocked, 10 final) at 0.015 ct."""
    returned_sarin_lot("77", "10", 12)
    return plant.finishing.create_teching_entry("77-B-10", 12, 2, Decimal("0.015"), "Mahesh").unwrap()


class TestTechingEntry:
    """Entry guards and derived values."""

    def test_derived_values(self, teching_entry):
        assert teching_entry.bunch_code == "B"
        assert teching_entry.final_pcs == 10
        assert teching_entry.teching_amount == Decimal("15.00")
        assert teching_entry.department == "Big Dept"
        assert teching_entry.state == LotState.CREATED

    def test_small_department_at_threshold(self, plant, returned_sarin_lot):
        returned_sarin_lot("78", "1", 4)
        record = plant.finishing.create_teching_entry("78-A-1", 4, 0, Decimal("0.009"), "Mahesh").unwrap()
        assert record.department == "Small Dept"

    def test_requires_returned_sarin_lot(self, plant, returned_laser_lot, store):
        returned_laser_lot("77", "10")
        outcome = plant.finishing.create_teching_entry("77-B-10", 5, 0, Decimal("0.02"), "Mahesh")
        assert outcome.code == "PREREQUISITE_NOT_RETURNED"
        assert outcome.error.prerequisite == "sarin"
        assert store.read(FINISHING_LOTS) == []

    def test_bad_lot_barcode(self, plant):
        assert plant.finishing.create_teching_entry("77-b-10", 5, 0, Decimal("0.02"), "M").code == "BARCODE_FORMAT"

    def test_operator_required(self, plant):
        outcome = plant.finishing.create_teching_entry("77-B-10", 5, 0, Decimal("0.02"), " ")
        assert outcome.code == "MISSING_OPERATOR"

    def test_blocking_above_pcs(self, plant):
        outcome = plant.finishing.create_teching_entry("77-B-10", 5, 6, Decimal("0.02"), "Mahesh")
        assert outcome.code == "QUANTITY_OUT_OF_RANGE"
        assert outcome.error.field == "blocking"

    def test_duplicate_lot(self, plant, teching_entry):
        outcome = plant.finishing.create_teching_entry("77-C-10", 5, 0, Decimal("0.02"), "Mahesh")
        assert outcome.code == "DUPLICATE_LOT"


class TestUnitRate:
    @pytest.mark.parametrize(
        "carat,rate",
        [("0.005", "3.00"), ("0.009", "3.00"), ("0.010", "4.00"), ("0.049", "4.00"), ("0.300", "6.00")],
    )
    def test_weight_bands(self, plant, carat, rate):
        assert plant.finishing.unit_rate_for(Decimal(carat)) == Decimal(rate)


class TestReturnToFinishing:
    """Full and split allocation."""

    def test_full_return(self, plant, teching_entry, captured_logs):
        returned = plant.finishing.return_to_finishing(teching_entry.record_id, "Amit").unwrap()
        assert returned.is_returned
        assert returned.unit_rate == Decimal("4.00")
        assert [(s.operator, s.quantity, s.amount) for s in returned.shares] == [
            ("Amit", 10, Decimal("40.00"))
        ]
        assert plant.finishing.pending_returns() == []
        assert any(r["message"] == "finishing_returned" for r in captured_logs())

    def test_split_return(self, plant, teching_entry):
        returned = plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 4).unwrap()
        stored = plant.finishing.records()[0]
        assert [(s.operator, s.quantity) for s in stored.shares] == [("Amit", 6), ("Bhavesh", 4)]
        assert stored.allocation == returned.allocation

    def test_invalid_split_leaves_record_pending(self, plant, teching_entry):
        outcome = plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 10)
        assert outcome.code == "INVALID_SPLIT"
        assert len(plant.finishing.pending_returns()) == 1

    def test_second_return_rejected(self, plant, teching_entry):
        plant.finishing.return_to_finishing(teching_entry.record_id, "Amit").unwrap()
        outcome = plant.finishing.return_to_finishing(teching_entry.record_id, "Other")
        assert outcome.code == "LOT_ALREADY_RETURNED"
        assert outcome.error.returned_by == "Amit"

    def test_unknown_record(self, plant):
        assert plant.finishing.return_to_finishing("nope", "Amit").code == "RECORD_NOT_FOUND"


class TestEditReturn:
    """Edits re-derive every dependent value."""

    def test_carat_change_rederives_amounts(self, plant, teching_entry):
        plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 4).unwrap()
        edited = plant.finishing.edit_return(teching_entry.record_id, carat=Decimal("0.060")).unwrap()
        assert edited.unit_rate == Decimal("6.00")
        assert [s.amount for s in edited.shares] == [Decimal("36.00"), Decimal("24.00")]

    def test_pcs_change_resplits_with_existing_operators(self, plant, teching_entry):
        plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 4).unwrap()
        edited = plant.finishing.edit_return(teching_entry.record_id, pcs=14).unwrap()
        assert edited.final_pcs == 12
        assert edited.teching_amount == Decimal("18.00")
        assert [(s.operator, s.quantity) for s in edited.shares] == [("Amit", 8), ("Bhavesh", 4)]

    def test_edit_that_breaks_split_rejected(self, plant, teching_entry):
        plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 4).unwrap()
        outcome = plant.finishing.edit_return(teching_entry.record_id, blocking=8)
        assert outcome.code == "INVALID_SPLIT"
        assert plant.finishing.records()[0].final_pcs == 10

    def test_blank_secondary_collapses_split(self, plant, teching_entry):
        plant.finishing.return_to_finishing(teching_entry.record_id, "Amit", "Bhavesh", 4).unwrap()
        edited = plant.finishing.edit_return(teching_entry.record_id, secondary_operator="").unwrap()
        assert [(s.operator, s.quantity, s.amount) for s in edited.shares] == [
            ("Amit", 10, Decimal("40.00"))
        ]
        assert plant.finishing.records()[0].shares == edited.shares

    def test_edit_pending_record(self, plant, teching_entry):
        edited = plant.finishing.edit_return(teching_entry.record_id, carat=Decimal("0.005")).unwrap()
        assert edited.department == "Small Dept"
        assert edited.allocation is None
        assert edited.unit_rate is None


class TestDepartmentSummary:
    def test_totals_by_department(self, plant, teching_entry, returned_sarin_lot):
        returned_sarin_lot("78", "1", 4)
        plant.finishing.create_teching_entry("78-A-1", 4, 1, Decimal("0.005"), "Mahesh").unwrap()
        summary = plant.finishing.department_summary()
        assert [(t.department, t.lots, t.final_pcs) for t in summary] == [
            ("Big Dept", 1, 10),
            ("Small Dept", 1, 3),
        ]
        assert summary[0].teching_amount == Decimal("15.00")
