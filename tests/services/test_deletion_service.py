"""
Tests for cascading kapan deletion over a populated store.

Covers:
- Explicit confirmation required before anything is removed
- Every kapan-scoped collection purged, other kapans untouched
- Audit log and box-sorting packets survive
- The integrity-risk warning is logged and returned
- Packets of the purged kapan stripped from surviving laser lots
"""

from decimal import Decimal

import pytest

from kapan_kernel.domain.records import (
    BOX_SORTING_PACKETS,
    FINISHING_LOTS,
    JIRAM_SCANS,
    KAPANS,
    LASER_LOTS,
    REASSIGN_LOGS,
    SARIN_LOTS,
    UDHDA_PACKETS,
)
from kapan_kernel.store import snapshot_all


@pytest.fixture
def populated(plant, returned_sarin_lot):
    returned_sarin_lot("77", "10", 6, jiram=1)
    returned_sarin_lot("78", "1", 4)
    plant.finishing.create_teching_entry("77-A-10", 6, 0, Decimal("0.02"), "Mahesh").unwrap()
    plant.single_packets.assign("R77-5", "Kishan", "sarin").unwrap()
    plant.single_packets.assign("78-5", "Kishan", "sarin").unwrap()
    plant.verification.scan_jiram("77-12-X").unwrap()
    plant.box_sorting.scan(",".join(["0.050" if i in (8, 9) else "x" for i in range(1, 16)])).unwrap()

    return plant


class TestDeleteKapan:
    """Confirmed cascading purge."""

    def test_requires_confirmation(self, populated, store):
        before = snapshot_all(store)
        outcome = populated.deletion.delete_kapan("77")
        assert outcome.code == "CONFIRMATION_REQUIRED"
        assert snapshot_all(store) == before

    def test_preview_counts_without_writing(self, populated, store):
        plan = populated.deletion.preview("77").unwrap()
        assert plan.removed[LASER_LOTS] == 1
        assert plan.removed[SARIN_LOTS] == 1
        assert len(store.read(LASER_LOTS)) == 2

    def test_purges_kapan_scoped_collections(self, populated, store):
        plan = populated.deletion.delete_kapan("77", confirmed=True).unwrap()
        assert plan.removed == {
            KAPANS: 1,
            LASER_LOTS: 1,
            SARIN_LOTS: 1,
            FINISHING_LOTS: 1,
            UDHDA_PACKETS: 1,
            JIRAM_SCANS: 1,
        }
        assert [k["kapan_id"] for k in store.read(KAPANS)] == ["78"]
        assert [l["kapan_id"] for l in store.read(LASER_LOTS)] == ["78"]
        assert [p["barcode"] for p in store.read(UDHDA_PACKETS)] == ["78-5"]
        assert store.read(FINISHING_LOTS) == []
        assert store.read(JIRAM_SCANS) == []
        assert len(store.read(BOX_SORTING_PACKETS)) == 1

    def test_reassignment_log_survives(self, populated, store, returned_laser_lot):
        returned_laser_lot("77", "11", 4)
        lot = populated.stages.create_sarin_lot("77", "11", "Suresh", "S1", 1, 4).unwrap()
        populated.reassignment.reassign("Suresh", "Mahesh", {lot.record_id: 2}).unwrap()

        populated.deletion.delete_kapan("77", confirmed=True).unwrap()
        assert len(store.read(REASSIGN_LOGS)) == 1
        assert all(l["kapan_id"] == "78" for l in store.read(SARIN_LOTS))

    def test_integrity_warning_logged(self, populated, captured_logs):
        outcome = populated.deletion.delete_kapan("77", confirmed=True)
        assert outcome.warnings
        assert "Kapan 77 purged" in outcome.warnings[0]

        record = [r for r in captured_logs() if r["message"] == "kapan_cascade_deleted"][0]
        assert record["level"] == "WARNING"
        assert record["code"] == "INTEGRITY_RISK"
        assert record["kapan_id"] == "77"
        assert record["total_removed"] == 6

    def test_unknown_kapan_removes_nothing(self, populated, store):
        before = snapshot_all(store)
        plan = populated.deletion.delete_kapan("999", confirmed=True).unwrap()
        assert plan.total_removed == 0
        assert snapshot_all(store) == before


class TestNestedPacketReferences:
    """A laser lot holding another kapan's packet after a confirmed mismatch."""

    def test_deleting_foreign_kapan_strips_its_packets(self, plant, store, captured_logs):
        plant.stages.create_laser_lot(
            "77",
            "10",
            2,
            machine="L1",
            packet_barcodes=["R77-1-A", "R78-5-A"],
            confirm_kapan_mismatch=True,
        ).unwrap()

        plan = plant.deletion.delete_kapan("78", confirmed=True).unwrap()
        assert plan.pruned[LASER_LOTS] == 1

        lots = store.read(LASER_LOTS)
        assert len(lots) == 1
        packets = lots[0]["packets"]
        assert [p["full_barcode"] for p in packets] == ["R77-1-A"]
        assert all(p["kapan_id"] != "78" for p in packets)

        record = [r for r in captured_logs() if r["message"] == "kapan_cascade_deleted"][0]
        assert record["pruned"] == {LASER_LOTS: 1}

    def test_pruned_lot_still_loads(self, plant):
        plant.stages.create_laser_lot(
            "77",
            "10",
            2,
            machine="L1",
            packet_barcodes=["R77-1-A", "R78-5-A"],
            confirm_kapan_mismatch=True,
        ).unwrap()
        plant.deletion.delete_kapan("78", confirmed=True).unwrap()

        hits = plant.lookup.search("78-5-A")
        assert hits == []
        assert len(plant.lookup.search("77-1-A")) == 1
