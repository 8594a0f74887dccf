"""
Tests for the split allocator, rate tables, departments and box ranges.

Covers:
- Full and split allocation modes with field-specific errors
- Share quantities always summing to the total (property test)
- Re-derivation of legacy and split allocations
- Inclusive weight bands, department threshold, first-match box ranges
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from kapan_engines.allocation import (
    RateBand,
    RateTable,
    allocate,
    department_for,
    rederive,
    resolve_unit_rate,
)
from kapan_engines.sorting import BoxRange, assign_box, summarize_by_shape
from kapan_kernel.domain.records import (
    AllocationShare,
    BoxSortedPacket,
    LegacySingleAllocation,
    SplitAllocation,
)

RATE = Decimal("4.00")


class TestAllocate:
    """Full and split modes."""

    def test_full_mode_single_share(self):
        allocation = allocate(10, "Amit", RATE).unwrap()
        assert allocation.shares == (AllocationShare("Amit", 10, Decimal("40.00")),)

    def test_split_mode(self):
        allocation = allocate(10, "Amit", RATE, "Bhavesh", 3).unwrap()
        assert [(s.operator, s.quantity) for s in allocation.shares] == [
            ("Amit", 7),
            ("Bhavesh", 3),
        ]
        assert allocation.total_amount == Decimal("40.00")

    def test_primary_required(self):
        assert allocate(10, " ", RATE).code == "MISSING_OPERATOR"

    def test_split_without_operator(self):
        outcome = allocate(10, "Amit", RATE, None, 3)
        assert outcome.code == "INVALID_SPLIT"
        assert outcome.error.field == "secondary_operator"

    def test_split_without_quantity(self):
        outcome = allocate(10, "Amit", RATE, "Bhavesh", None)
        assert outcome.code == "INVALID_SPLIT"
        assert outcome.error.field == "secondary_quantity"

    def test_split_same_operator(self):
        outcome = allocate(10, "Amit", RATE, "Amit", 3)
        assert outcome.error.field == "secondary_operator"

    @pytest.mark.parametrize("secondary", [0, 10, 11, -1])
    def test_split_quantity_bounds(self, secondary):
        outcome = allocate(10, "Amit", RATE, "Bhavesh", secondary)
        assert outcome.code == "INVALID_SPLIT"
        assert outcome.error.field == "secondary_quantity"
        assert "between 1 and 9" in outcome.error.rule

    def test_split_of_one_piece_impossible(self):
        assert allocate(1, "Amit", RATE, "Bhavesh", 1).code == "INVALID_SPLIT"

    @given(
        total=st.integers(min_value=2, max_value=10_000),
        data=st.data(),
        rate=st.decimals(min_value=0, max_value=100, places=2),
    )
    def test_shares_always_sum_to_total(self, total, data, rate):
        """Every accepted split is two positive shares summing to the total."""
        secondary = data.draw(st.integers(min_value=1, max_value=total - 1))
        allocation = allocate(total, "Amit", rate, "Bhavesh", secondary).unwrap()
        quantities = [s.quantity for s in allocation.shares]
        assert sum(quantities) == total
        assert all(q >= 1 for q in quantities)
        assert allocation.total_amount == rate * total

    @given(
        total=st.integers(min_value=0, max_value=50),
        secondary=st.integers(min_value=-5, max_value=60),
    )
    def test_out_of_range_split_never_accepted(self, total, secondary):
        outcome = allocate(total, "Amit", RATE, "Bhavesh", secondary)
        assert outcome.ok == (1 <= secondary <= total - 1)


class TestRederive:
    """Amounts recomputed at a new rate."""

    def test_split_rederived(self):
        allocation = allocate(10, "Amit", RATE, "Bhavesh", 3).unwrap()
        rederived = rederive(allocation, 10, Decimal("6.00"))
        assert [s.amount for s in rederived.shares] == [Decimal("42.00"), Decimal("18.00")]

    def test_legacy_becomes_one_share(self):
        rederived = rederive(LegacySingleAllocation("Amit", Decimal("1")), 10, RATE)
        assert rederived == SplitAllocation(shares=(AllocationShare("Amit", 10, Decimal("40.00")),))

    def test_none_stays_none(self):
        assert rederive(None, 10, RATE) is None


class TestRateTable:
    """Inclusive bands."""

    TABLE = RateTable(
        "finishing",
        (
            RateBand(Decimal("0.050"), Decimal("9.999"), Decimal("6.00")),
            RateBand(Decimal("0.000"), Decimal("0.009"), Decimal("3.00")),
            RateBand(Decimal("0.010"), Decimal("0.049"), Decimal("4.00")),
        ),
    )

    def test_bands_sorted(self):
        assert [b.rate for b in self.TABLE.bands] == [Decimal("3.00"), Decimal("4.00"), Decimal("6.00")]

    @pytest.mark.parametrize(
        "weight,rate",
        [("0.000", "3.00"), ("0.009", "3.00"), ("0.010", "4.00"), ("0.049", "4.00"), ("0.050", "6.00")],
    )
    def test_boundaries_inclusive(self, weight, rate):
        assert self.TABLE.rate_for(Decimal(weight)) == Decimal(rate)

    def test_gap_between_bands_is_zero(self):
        assert self.TABLE.rate_for(Decimal("0.0095")) == Decimal("0")

    def test_inverted_band_rejected(self):
        with pytest.raises(ValueError):
            RateBand(Decimal("2"), Decimal("1"), Decimal("1"))

    def test_flat_rate_without_bands(self):
        assert resolve_unit_rate(Decimal("0.02"), RateTable("finishing"), RATE) == RATE
        assert resolve_unit_rate(Decimal("0.02"), None, RATE) == RATE
        assert resolve_unit_rate(Decimal("0.02"), self.TABLE, RATE) == Decimal("4.00")


class TestDepartment:
    def test_threshold_is_below(self):
        assert department_for(Decimal("0.009"), Decimal("0.009"), "Big", "Small") == "Small"
        assert department_for(Decimal("0.010"), Decimal("0.009"), "Big", "Small") == "Big"


class TestBoxRanges:
    """First configured match wins."""

    RANGES = (
        BoxRange("BOX-1", Decimal("0.000"), Decimal("0.049")),
        BoxRange("BOX-2", Decimal("0.050"), Decimal("0.099")),
        BoxRange("OVERLAP", Decimal("0.050"), Decimal("0.500")),
    )

    def test_first_match(self):
        assert assign_box(Decimal("0.075"), self.RANGES).value.label == "BOX-2"
        assert assign_box(Decimal("0.200"), self.RANGES).value.label == "OVERLAP"

    def test_no_match(self):
        outcome = assign_box(Decimal("0.600"), self.RANGES)
        assert outcome.code == "NO_MATCHING_RANGE"
        assert outcome.error.weight == "0.600"

    def test_shape_summary(self):
        def packet(n, shape, box, rough, polish):
            return BoxSortedPacket(
                f"b-{n}", f"raw-{n}", str(n), shape, Decimal(rough), Decimal(polish), box, "t"
            )

        summaries = summarize_by_shape(
            [
                packet(1, "RBC", "BOX-1", "0.10", "0.04"),
                packet(2, "RBC", "BOX-2", "0.20", "0.07"),
                packet(3, "PEAR", "BOX-1", "0.05", "0.02"),
            ]
        )
        assert [s.shape for s in summaries] == ["PEAR", "RBC"]
        rbc = summaries[1]
        assert rbc.totals.count == 2
        assert rbc.totals.polish_weight == Decimal("0.11")
        assert set(rbc.boxes) == {"BOX-1", "BOX-2"}
