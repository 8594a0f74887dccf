"""
Tests for manifest verification and quantity reconciliation.

Covers:
- matched / missing / extra partition and natural ordering
- Manifest parsing and scan sessions
- Reference list comparison by leading number
- Per-group expected vs scanned classification
"""

from kapan_engines.reconciliation import (
    QuantityStatus,
    ScanSession,
    compare_lists,
    parse_manifest,
    reconcile_quantities,
    sum_by_key,
    verify_manifest,
)


class TestVerifyManifest:
    """Set partition."""

    def test_partition(self):
        result = verify_manifest(["77-1", "77-2", "77-3"], ["77-2", "77-3", "77-9"])
        assert result.matched == ("77-2", "77-3")
        assert result.missing == ("77-1",)
        assert result.extra == ("77-9",)
        assert not result.is_complete

    def test_natural_order(self):
        result = verify_manifest(["77-10", "77-9", "77-100"], [])
        assert result.missing == ("77-9", "77-10", "77-100")

    def test_complete(self):
        assert verify_manifest(["a"], ["a"]).is_complete

    def test_partition_covers_union_exactly(self):
        expected = {"1", "2", "3", "4"}
        scanned = {"3", "4", "5"}
        result = verify_manifest(expected, scanned)
        assert set(result.matched) | set(result.missing) | set(result.extra) == expected | scanned
        assert not set(result.matched) & set(result.missing)
        assert not set(result.matched) & set(result.extra)


class TestParseManifest:
    def test_strips_marker_and_deduplicates(self):
        text = "R77-185\n77-185\n\n 77-186 \n"
        assert parse_manifest(text) == ("77-185", "77-186")


class TestScanSession:
    """Locked manifest scanning."""

    def test_scan_flow(self):
        session = ScanSession.lock(["77-1", "R77-2"])
        session = session.scan("R77-1").unwrap()
        outcome = session.scan("77-5")
        assert outcome.ok
        assert outcome.warnings == ("77-5 is not in the manifest",)
        result = outcome.value.result
        assert result.matched == ("77-1",)
        assert result.missing == ("77-2",)
        assert result.extra == ("77-5",)

    def test_duplicate_scan_rejected(self):
        session = ScanSession.lock(["77-1"]).scan("77-1").unwrap()
        outcome = session.scan("R77-1")
        assert outcome.code == "DUPLICATE_SCAN"
        assert session.scanned == ("77-1",)

    def test_blank_scan_rejected(self):
        assert ScanSession.lock(["77-1"]).scan("   ").code == "BARCODE_FORMAT"

    def test_sessions_are_immutable(self):
        session = ScanSession.lock(["77-1"])
        session.scan("77-1")
        assert session.scanned == ()


class TestCompareLists:
    def test_leading_numbers_of_data_lines(self):
        reference = "101\n102\n103"
        data = "101 0.25 ok\n103\tx\n200 extra"
        result = compare_lists(reference, data)
        assert result.matched == ("101", "103")
        assert result.missing == ("102",)
        assert result.extra == ("200",)


class TestQuantityReconciliation:
    """Expected vs scanned per group."""

    def test_classification(self):
        rows = reconcile_quantities({"77": 3, "78": 2, "79": 1}, {"77": 3, "78": 1, "80": 2})
        by_key = {r.key: r for r in rows}
        assert by_key["77"].status == QuantityStatus.MATCH
        assert by_key["78"].status == QuantityStatus.LESS
        assert by_key["78"].missing == 1
        assert by_key["79"].scanned == 0
        assert by_key["80"].status == QuantityStatus.EXTRA
        assert by_key["80"].extra == 2

    def test_groups_with_nothing_expected_or_scanned_omitted(self):
        rows = reconcile_quantities({"77": 0, "78": 1}, {})
        assert [r.key for r in rows] == ["78"]

    def test_sum_by_key_ignores_zero(self):
        items = [("77", 2), ("77", 0), ("78", 1), (None, 5)]
        totals = sum_by_key(items, key=lambda i: i[0], quantity=lambda i: i[1])
        assert totals == {"77": 2, "78": 1}

    def test_natural_order(self):
        rows = reconcile_quantities({"100": 1, "9": 1}, {})
        assert [r.key for r in rows] == ["9", "100"]
