"""Tests for cross-collection lookup and report rendering."""

from kapan_engines.reconciliation import check_gaps, verify_manifest
from kapan_kernel.domain.records import LASER_LOTS, SARIN_LOTS, UDHDA_PACKETS
from kapan_services import gap_report_csv, manifest_report_text, write_report


class TestLookup:
    """Kapan and identifier searches, newest first."""

    def test_kapan_search_reports_laser_lot_once(self, plant, clock):
        plant.stages.create_laser_lot(
            "77", "10", 2, machine="L1", packet_barcodes=["R77-1-A", "R77-2-A"]
        ).unwrap()
        clock.advance(10)
        plant.single_packets.assign("77-185", "Kishan", "sarin").unwrap()
        plant.single_packets.assign("78-1", "Kishan", "sarin").unwrap()

        hits = plant.lookup.search("77")
        assert [h.source for h in hits] == [UDHDA_PACKETS, LASER_LOTS]

    def test_packet_identifier_ignores_reissue_marker(self, plant):
        plant.stages.create_laser_lot(
            "77", "10", 2, machine="L1", packet_barcodes=["R77-1-A", "R77-2-A"]
        ).unwrap()
        hits = plant.lookup.search("77-2-A")
        assert len(hits) == 1
        assert hits[0].record.lot_number == "10"

    def test_sarin_lot_by_kapan_and_lot(self, plant, returned_laser_lot, clock):
        returned_laser_lot("77", "10")
        clock.advance(5)
        plant.stages.create_sarin_lot("77", "10", "Suresh", "S1", 2, 5).unwrap()
        hits = plant.lookup.search("77-10")
        assert [h.source for h in hits] == [SARIN_LOTS, LASER_LOTS]

    def test_blank_and_unknown_terms(self, plant):
        assert plant.lookup.search("  ") == []
        assert plant.lookup.search("99-1") == []


class TestReports:
    """CSV and text renderings."""

    def test_gap_report_csv(self):
        report = check_gaps("1\ta\n3\tc\nx\tjunk", data_columns=1).unwrap()
        text = gap_report_csv(report, ["SR", "DATA"])
        assert text.splitlines() == [
            "SR,DATA,Status",
            "1,a,OK",
            "2,,MISSING",
            "3,c,OK",
            "JUNK-1,junk,JUNK",
        ]

    def test_manifest_report(self):
        result = verify_manifest(["77-1", "77-2"], ["77-1", "77-9"])
        text = manifest_report_text(result)
        assert text.splitlines()[:4] == [
            "--- PACKET VERIFICATION REPORT ---",
            "Matched: 1",
            "Missing: 1",
            "Extra: 1",
        ]
        assert "--- MISSING (1) ---\n77-2\n" in text
        assert "--- EXTRA SCANNED (1) ---\n77-9\n" in text

    def test_write_report(self, tmp_path, captured_logs):
        target = write_report(tmp_path / "report.txt", "hello\n")
        assert target.read_text(encoding="utf-8") == "hello\n"
        assert any(r["message"] == "report_written" for r in captured_logs())
