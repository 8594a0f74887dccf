"""
kapan_services.finishing_service -- 4P teching entry and finishing returns.

Responsibility:
    Creates the finishing-stage record from a scanned lot barcode, returns
    the finished pieces to one or two operators through the split
    allocator, and re-derives every share when a return is edited.

Architecture position:
    Services -- imperative shell over ``kapan_engines.allocation`` and the
    lifecycle prerequisite guard.

Invariants enforced:
    - The lot must have a RETURNED sarin lot with the same
      ``(kapan_id, lot_number)`` (configurable prerequisite).
    - ``(kapan_id, lot_number)`` is unique in ``finishing_lots``.
    - ``0 <= blocking <= pcs``; ``final_pcs = pcs - blocking``.
    - Share quantities always sum to ``final_pcs``; amounts are
      ``quantity * unit_rate`` in Decimal.

Failure modes (returned as ``Outcome.reject``):
    - BarcodeFormatError, DuplicateLotError, PrerequisiteNotReturnedError
    - QuantityOutOfRangeError, MissingOperatorError, InvalidSplitError
    - RecordNotFoundError, LotAlreadyReturnedError
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from kapan_engines.allocation import (
    allocate,
    department_for,
    rederive,
    resolve_unit_rate,
)
from kapan_engines.lifecycle import prerequisite_error
from kapan_engines.parser import parse_lot_barcode
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import (
    FINISHING_LOTS,
    STAGE_COLLECTIONS,
    LotRecord,
    LotState,
    Stage,
    StageTransferRecord,
)
from kapan_kernel.exceptions import (
    DuplicateLotError,
    LotAlreadyReturnedError,
    MissingOperatorError,
    QuantityOutOfRangeError,
    RecordNotFoundError,
)
from kapan_kernel.logging_config import get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.finishing")

FINISHING_RATE_TABLE = "finishing"


@dataclass(frozen=True)
class DepartmentTotals:
    department: str
    lots: int
    final_pcs: int
    teching_amount: Decimal


class FinishingService(CollectionService):
    """
    Finishing stage workflows.

    Contract:
        Mutating methods return ``Outcome[StageTransferRecord]`` with the
        stored record.
    """

    def records(self) -> list[StageTransferRecord]:
        return self._load(FINISHING_LOTS, StageTransferRecord)

    def pending_returns(self) -> list[StageTransferRecord]:
        return [r for r in self.records() if not r.is_returned]

    def unit_rate_for(self, carat: Decimal) -> Decimal:
        return resolve_unit_rate(
            carat,
            self._settings.rate_table(FINISHING_RATE_TABLE),
            self._settings.rates.finishing,
        )

    def create_teching_entry(
        self,
        lot_barcode: str,
        pcs: int,
        blocking: int,
        carat: Decimal,
        teching_operator: str,
    ) -> Outcome[StageTransferRecord]:
        """Record a lot arriving for 4P teching."""
        parsed = parse_lot_barcode(lot_barcode)
        if not parsed.ok:
            return Outcome.reject(parsed.error)
        lot = parsed.value

        if not (teching_operator or "").strip():
            return Outcome.reject(MissingOperatorError("teching_operator"))
        if pcs < 0:
            return Outcome.reject(QuantityOutOfRangeError("pcs", pcs, "lower", 0))
        if blocking < 0:
            return Outcome.reject(QuantityOutOfRangeError("blocking", blocking, "lower", 0))
        if blocking > pcs:
            return Outcome.reject(QuantityOutOfRangeError("blocking", blocking, "upper", pcs))
        if carat < 0:
            return Outcome.reject(QuantityOutOfRangeError("carat", carat, "lower", 0))

        records = self.records()
        duplicates = [
            r for r in records if r.kapan_id == lot.kapan_id and r.lot_number == lot.lot_number
        ]
        if duplicates:
            return Outcome.reject(
                DuplicateLotError(
                    Stage.FINISHING.value,
                    lot.kapan_id,
                    lot.lot_number,
                    any(d.is_returned for d in duplicates),
                )
            )

        prerequisite = self._settings.prerequisite_for(Stage.FINISHING)
        if prerequisite is not None:
            upstream = self._load(STAGE_COLLECTIONS[prerequisite], LotRecord)
            error = prerequisite_error(prerequisite, upstream, lot.kapan_id, lot.lot_number)
            if error is not None:
                return Outcome.reject(error)

        departments = self._settings.departments
        final_pcs = pcs - blocking
        record = StageTransferRecord(
            record_id=self._new_id(),
            kapan_id=lot.kapan_id,
            bunch_code=lot.bunch_code,
            lot_number=lot.lot_number,
            carat=carat,
            department=department_for(
                carat,
                departments.carat_threshold,
                departments.above_threshold_name,
                departments.below_threshold_name,
            ),
            pcs=pcs,
            blocking=blocking,
            final_pcs=final_pcs,
            teching_operator=teching_operator.strip(),
            teching_amount=self._settings.rates.teching * final_pcs,
            entry_timestamp=self._now(),
        )
        self._save(FINISHING_LOTS, records + [record])
        self._ensure_kapan(record.kapan_id)
        logger.info(
            "teching_entry_created",
            extra={
                "record_id": record.record_id,
                "kapan_id": record.kapan_id,
                "lot_number": record.lot_number,
                "final_pcs": final_pcs,
                "department": record.department,
            },
        )
        return Outcome.accept(record)

    def _locate(
        self, record_id: str
    ) -> tuple[list[StageTransferRecord], int | None]:
        records = self.records()
        index = next((i for i, r in enumerate(records) if r.record_id == record_id), None)
        return records, index

    def return_to_finishing(
        self,
        record_id: str,
        primary_operator: str,
        secondary_operator: str | None = None,
        secondary_quantity: int | None = None,
    ) -> Outcome[StageTransferRecord]:
        """Return the finished pieces in full or split between two operators."""
        records, index = self._locate(record_id)
        if index is None:
            return Outcome.reject(RecordNotFoundError(FINISHING_LOTS, record_id))
        record = records[index]
        if record.is_returned:
            return Outcome.reject(
                LotAlreadyReturnedError(
                    record.record_id,
                    record.kapan_id,
                    record.lot_number,
                    record.shares[0].operator if record.shares else None,
                )
            )

        unit_rate = self.unit_rate_for(record.carat)
        outcome = allocate(
            record.final_pcs, primary_operator, unit_rate, secondary_operator, secondary_quantity
        )
        if not outcome.ok:
            return Outcome.reject(outcome.error)

        returned = replace(
            record,
            state=LotState.RETURNED,
            return_timestamp=self._now(),
            unit_rate=unit_rate,
            allocation=outcome.value,
        )
        records[index] = returned
        self._save(FINISHING_LOTS, records)
        logger.info(
            "finishing_returned",
            extra={
                "record_id": record_id,
                "unit_rate": str(unit_rate),
                "shares": len(outcome.value.shares),
                "total_amount": str(outcome.value.total_amount),
            },
        )
        return Outcome.accept(returned)

    def edit_return(
        self,
        record_id: str,
        pcs: int | None = None,
        blocking: int | None = None,
        carat: Decimal | None = None,
        primary_operator: str | None = None,
        secondary_operator: str | None = None,
        secondary_quantity: int | None = None,
    ) -> Outcome[StageTransferRecord]:
        """
        Correct a returned record and re-derive every dependent value.

        Omitted operators keep the existing shares' operators; when the
        operators and split are unchanged only the amounts are recomputed.
        A blank ``secondary_operator`` turns a split back into a full return.
        """
        records, index = self._locate(record_id)
        if index is None:
            return Outcome.reject(RecordNotFoundError(FINISHING_LOTS, record_id))
        record = records[index]

        pcs = record.pcs if pcs is None else pcs
        blocking = record.blocking if blocking is None else blocking
        carat = record.carat if carat is None else carat
        if pcs < 0:
            return Outcome.reject(QuantityOutOfRangeError("pcs", pcs, "lower", 0))
        if blocking < 0:
            return Outcome.reject(QuantityOutOfRangeError("blocking", blocking, "lower", 0))
        if blocking > pcs:
            return Outcome.reject(QuantityOutOfRangeError("blocking", blocking, "upper", pcs))
        final_pcs = pcs - blocking
        unit_rate = self.unit_rate_for(carat)

        existing = record.shares
        resplit = (
            primary_operator is not None
            or secondary_operator is not None
            or secondary_quantity is not None
            or final_pcs != record.final_pcs
        )
        allocation = None
        if existing and resplit:
            primary = primary_operator if primary_operator is not None else existing[0].operator
            secondary = secondary_operator
            quantity = secondary_quantity
            if secondary is not None and not secondary.strip():
                # explicit blank secondary collapses a split to a full return
                secondary, quantity = None, None
            elif len(existing) > 1:
                if secondary is None:
                    secondary = existing[1].operator
                if quantity is None:
                    quantity = existing[1].quantity
            outcome = allocate(final_pcs, primary, unit_rate, secondary, quantity)
            if not outcome.ok:
                return Outcome.reject(outcome.error)
            allocation = outcome.value
        elif existing:
            allocation = rederive(record.allocation, final_pcs, unit_rate)

        departments = self._settings.departments
        edited = replace(
            record,
            pcs=pcs,
            blocking=blocking,
            final_pcs=final_pcs,
            carat=carat,
            department=department_for(
                carat,
                departments.carat_threshold,
                departments.above_threshold_name,
                departments.below_threshold_name,
            ),
            teching_amount=self._settings.rates.teching * final_pcs,
            unit_rate=unit_rate if record.is_returned else record.unit_rate,
            allocation=allocation if record.is_returned else record.allocation,
        )
        records[index] = edited
        self._save(FINISHING_LOTS, records)
        logger.info(
            "finishing_record_edited",
            extra={"record_id": record_id, "final_pcs": final_pcs, "unit_rate": str(unit_rate)},
        )
        return Outcome.accept(edited)

    def department_summary(self) -> list[DepartmentTotals]:
        totals: dict[str, DepartmentTotals] = {}
        for record in self.records():
            current = totals.get(record.department)
            if current is None:
                current = DepartmentTotals(record.department, 0, 0, Decimal("0"))
            totals[record.department] = DepartmentTotals(
                department=record.department,
                lots=current.lots + 1,
                final_pcs=current.final_pcs + record.final_pcs,
                teching_amount=current.teching_amount + record.teching_amount,
            )
        return [totals[name] for name in sorted(totals)]
