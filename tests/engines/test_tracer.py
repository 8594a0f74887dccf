"""Tests for the engine tracer and input fingerprinting."""

from decimal import Decimal

from kapan_engines.parser import parse_lot_barcode
from kapan_engines.tracer import compute_input_fingerprint, traced_engine
from kapan_kernel.domain.records import Stage


@traced_engine("sample", "2.1", fingerprint_fields=("a", "b"))
def _sample(a, b=None, c=None):
    return (a, b, c)


class TestFingerprint:
    """Deterministic input hashes."""

    def test_stable_and_short(self):
        fp1 = compute_input_fingerprint(("a",), {"a": Decimal("1.50")})
        fp2 = compute_input_fingerprint(("a",), {"a": Decimal("1.50")})
        assert fp1 == fp2
        assert len(fp1) == 16

    def test_dict_key_order_irrelevant(self):
        fp1 = compute_input_fingerprint(("m",), {"m": {"x": 1, "y": 2}})
        fp2 = compute_input_fingerprint(("m",), {"m": {"y": 2, "x": 1}})
        assert fp1 == fp2

    def test_different_inputs_differ(self):
        assert compute_input_fingerprint(("s",), {"s": Stage.LASER}) != compute_input_fingerprint(
            ("s",), {"s": Stage.SARIN}
        )


class TestTracedEngine:
    """KAPAN_ENGINE_TRACE records."""

    def test_emits_trace(self, captured_logs):
        assert _sample(1, b=2) == (1, 2, None)
        traces = [r for r in captured_logs() if r["message"] == "KAPAN_ENGINE_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert len(trace["input_fingerprint"]) == 16
        assert "duration_ms" in trace

    def test_positional_and_keyword_calls_hash_alike(self, captured_logs):
        _sample(1, 2)
        _sample(a=1, b=2)
        fps = [r["input_fingerprint"] for r in captured_logs() if r["message"] == "KAPAN_ENGINE_TRACE"]
        assert fps[0] == fps[1]

    def test_outcome_fields(self, captured_logs):
        parse_lot_barcode("bad")
        trace = [r for r in captured_logs() if r["message"] == "KAPAN_ENGINE_TRACE"][-1]
        assert trace["engine_name"] == "barcode_parser"
        assert trace["accepted"] is False
        assert trace["rejection_code"] == "BARCODE_FORMAT"
