"""Tests for the Outcome result type and the exception hierarchy."""

import pytest

from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.exceptions import (
    BarcodeFormatError,
    DuplicateLotError,
    FieldValueError,
    IntegrityRisk,
    KapanKernelError,
    NotFoundError,
    ParseError,
    RecordNotFoundError,
    RemoteWriteError,
    StoreError,
    UnregisteredCollectionError,
    ValidationError,
)


class TestOutcome:
    """Accept / reject semantics."""

    def test_accept_carries_value_and_warnings(self):
        outcome = Outcome.accept(5, warnings=["careful"])
        assert outcome.ok
        assert outcome.value == 5
        assert outcome.warnings == ("careful",)
        assert outcome.code is None

    def test_reject_carries_error_code(self):
        outcome = Outcome.reject(BarcodeFormatError("x", "lot", "<kapan>-<LETTER>-<lot>"))
        assert not outcome.ok
        assert outcome.value is None
        assert outcome.code == "BARCODE_FORMAT"

    def test_reject_requires_error(self):
        with pytest.raises(ValueError):
            Outcome.reject(None)

    def test_unwrap_raises_carried_error(self):
        error = RecordNotFoundError("sarin_lots", "rec-9")
        with pytest.raises(RecordNotFoundError) as exc_info:
            Outcome.reject(error).unwrap()
        assert exc_info.value is error

    def test_map_transforms_only_accepted(self):
        assert Outcome.accept(2).map(lambda v: v * 3).value == 6
        rejected = Outcome.reject(RecordNotFoundError("x", "y"))
        assert rejected.map(lambda v: v * 3) == rejected

    def test_map_keeps_warnings(self):
        mapped = Outcome.accept(1, warnings=("w",)).map(str)
        assert mapped.warnings == ("w",)


class TestExceptionHierarchy:
    """Every kernel error has a code and a category base."""

    def test_categories(self):
        assert issubclass(BarcodeFormatError, ParseError)
        assert issubclass(DuplicateLotError, ValidationError)
        assert issubclass(RecordNotFoundError, NotFoundError)
        assert issubclass(UnregisteredCollectionError, IntegrityRisk)
        assert issubclass(RemoteWriteError, StoreError)
        for cls in (ParseError, ValidationError, NotFoundError, IntegrityRisk, StoreError):
            assert issubclass(cls, KapanKernelError)

    def test_field_value_error_message_names_field(self):
        error = FieldValueError("a,b", "polish_weight", "abc", "decimal number")
        assert error.field == "polish_weight"
        assert "'abc' is not a valid decimal number" in str(error)

    def test_duplicate_lot_records_state(self):
        error = DuplicateLotError("sarin", "77", "10", True)
        assert error.code == "DUPLICATE_LOT"
        assert error.is_returned is True

    def test_integrity_risk_totals_removed(self):
        risk = IntegrityRisk("77", {"laser_lots": 2, "sarin_lots": 1})
        assert risk.removed == {"laser_lots": 2, "sarin_lots": 1}
        assert "3 record(s)" in str(risk)
