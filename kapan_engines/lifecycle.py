"""
kapan_engines.lifecycle -- Lot and single-packet state machine.

Responsibility:
    Guarded transitions for stage lots (CREATED -> ACTIVE -> RETURNED) and
    individually barcoded packets (ASSIGNED -> RETURNED, optionally
    RE_ENTERED -> RETURNED), plus batch reassignment of not-yet-returned
    lots between operators with one audit entry per batch.

Architecture position:
    Engines -- pure state machine, zero I/O.
    Operates on snapshots passed in by the caller and returns new records;
    never reads the clock (timestamps and new ids are arguments).

Invariants enforced:
    - ``(kapan_id, lot_number)`` is unique per collection regardless of the
      existing record's state.
    - A downstream lot requires a RETURNED prerequisite lot with the same
      ``(kapan_id, lot_number)``.
    - RETURNED is terminal for lots; returning needs an operator identity.
    - ``0 <= completed <= quantity``; violations name the bound.
    - Every guard is evaluated before any record is changed, so a rejected
      reassignment leaves every lot untouched.

Failure modes (all returned as ``Outcome.reject``):
    - DuplicateLotError, PrerequisiteNotReturnedError
    - QuantityOutOfRangeError, LotAlreadyReturnedError, MissingOperatorError
    - SameOperatorError, EmptySelectionError, OperatorMismatchError,
      RecordNotFoundError (reassignment)
    - PacketAlreadyAssignedError, DuplicateReturnError, PacketNotFoundError
      (single packets)

Audit relevance:
    ``reassign`` produces the ``ReassignmentLogEntry`` that the caller must
    append to the audit collection together with the updated lots.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.identifiers import PacketBarcode
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import (
    LotRecord,
    LotState,
    PacketAssignment,
    PacketDescriptor,
    PacketState,
    ReassignmentLogEntry,
    Stage,
)
from kapan_kernel.exceptions import (
    DuplicateLotError,
    DuplicateReturnError,
    EmptySelectionError,
    LotAlreadyReturnedError,
    MissingOperatorError,
    OperatorMismatchError,
    PacketAlreadyAssignedError,
    PacketNotFoundError,
    PrerequisiteNotReturnedError,
    QuantityOutOfRangeError,
    RecordNotFoundError,
    SameOperatorError,
)
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.lifecycle")


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------


def find_lot(
    lots: Sequence[LotRecord], kapan_id: str, lot_number: str
) -> list[LotRecord]:
    """Every lot with the given ``(kapan_id, lot_number)``."""
    return [l for l in lots if l.kapan_id == kapan_id and l.lot_number == lot_number]


def _check_quantity(field: str, value: int, upper: int | None = None, lower: int = 0):
    if value < lower:
        return QuantityOutOfRangeError(field, value, "lower", lower)
    if upper is not None and value > upper:
        return QuantityOutOfRangeError(field, value, "upper", upper)
    return None


def prerequisite_error(
    prerequisite_stage: Stage | None,
    prerequisite_lots: Sequence[LotRecord],
    kapan_id: str,
    lot_number: str,
) -> PrerequisiteNotReturnedError | None:
    """The guard error when no upstream lot for ``(kapan_id, lot_number)`` is RETURNED."""
    if prerequisite_stage is None:
        return None
    upstream = find_lot(prerequisite_lots, kapan_id, lot_number)
    if any(l.is_returned for l in upstream):
        return None
    return PrerequisiteNotReturnedError(
        prerequisite_stage.value, kapan_id, lot_number, bool(upstream)
    )


@traced_engine("lot_lifecycle", "1.0", fingerprint_fields=("draft", "prerequisite_stage"))
def create_lot(
    existing: Sequence[LotRecord],
    draft: LotRecord,
    prerequisite_stage: Stage | None = None,
    prerequisite_lots: Sequence[LotRecord] = (),
) -> Outcome[LotRecord]:
    """
    Validate a new lot against its collection and its prerequisite stage.

    Args:
        existing: Current snapshot of the target collection.
        draft: The lot to create (its ``stage`` names the collection).
        prerequisite_stage: Upstream stage that must hold a RETURNED lot
            with the same ``(kapan_id, lot_number)``; None for no guard.
        prerequisite_lots: Snapshot of the upstream collection.
    """
    duplicates = find_lot(existing, draft.kapan_id, draft.lot_number)
    if duplicates:
        return Outcome.reject(
            DuplicateLotError(
                draft.stage.value,
                draft.kapan_id,
                draft.lot_number,
                any(d.is_returned for d in duplicates),
            )
        )

    error = prerequisite_error(
        prerequisite_stage, prerequisite_lots, draft.kapan_id, draft.lot_number
    )
    if error is not None:
        return Outcome.reject(error)

    error = _check_quantity("quantity", draft.quantity)
    if error is not None:
        return Outcome.reject(error)

    return Outcome.accept(
        replace(draft, state=LotState.CREATED, completed=0, returned_by=None, return_timestamp=None)
    )


@traced_engine("lot_lifecycle", "1.0", fingerprint_fields=("lot", "completed"))
def record_progress(lot: LotRecord, completed: int) -> Outcome[LotRecord]:
    """Set the chalu counter; the lot becomes ACTIVE."""
    if lot.is_returned:
        return Outcome.reject(
            LotAlreadyReturnedError(lot.record_id, lot.kapan_id, lot.lot_number, lot.returned_by)
        )
    error = _check_quantity("completed", completed, upper=lot.quantity)
    if error is not None:
        return Outcome.reject(error)
    return Outcome.accept(replace(lot, completed=completed, state=LotState.ACTIVE))


def adjust_progress(lot: LotRecord, delta: int) -> Outcome[LotRecord]:
    """Move the chalu counter by a signed delta, same bounds as ``record_progress``."""
    return record_progress(lot, lot.completed + delta)


@traced_engine("lot_lifecycle", "1.0", fingerprint_fields=("lot", "operator", "timestamp"))
def return_lot(lot: LotRecord, operator: str, timestamp: str) -> Outcome[LotRecord]:
    """One-way transition to RETURNED."""
    if not (operator or "").strip():
        return Outcome.reject(MissingOperatorError("returned_by"))
    if lot.is_returned:
        return Outcome.reject(
            LotAlreadyReturnedError(lot.record_id, lot.kapan_id, lot.lot_number, lot.returned_by)
        )
    return Outcome.accept(
        replace(
            lot,
            state=LotState.RETURNED,
            returned_by=operator.strip(),
            return_timestamp=timestamp,
        )
    )


# ---------------------------------------------------------------------------
# Reassignment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReassignmentResult:
    """Full updated collection plus the single audit entry for the batch."""

    lots: tuple[LotRecord, ...]
    entry: ReassignmentLogEntry
    changed_ids: tuple[str, ...]
    created_ids: tuple[str, ...]


def reassignable_lots(lots: Sequence[LotRecord], operator: str) -> list[LotRecord]:
    """Not-yet-returned lots with packets, held by ``operator``."""
    return [l for l in lots if l.operator == operator and not l.is_returned and l.quantity > 0]


@traced_engine(
    "reassignment",
    "1.0",
    fingerprint_fields=("from_operator", "to_operator", "selections", "timestamp"),
)
def reassign(
    lots: Sequence[LotRecord],
    from_operator: str,
    to_operator: str,
    selections: Mapping[str, int | None],
    *,
    stage: Stage,
    entry_id: str,
    timestamp: str,
    id_factory: Callable[[], str],
) -> Outcome[ReassignmentResult]:
    """
    Move selected lots (or part of their packets) between operators.

    ``selections`` maps record id to a quantity; None or the lot's full
    quantity moves the whole lot (operator changes in place), a smaller
    quantity splits off a new record for ``to_operator``.
    """
    if not (from_operator or "").strip():
        return Outcome.reject(MissingOperatorError("from_operator"))
    if not (to_operator or "").strip():
        return Outcome.reject(MissingOperatorError("to_operator"))
    if from_operator == to_operator:
        return Outcome.reject(SameOperatorError(from_operator, "reassignment"))
    if not selections:
        return Outcome.reject(EmptySelectionError("reassignment"))

    by_id = {l.record_id: l for l in lots}
    plan: list[tuple[LotRecord, int]] = []
    for record_id, requested in selections.items():
        lot = by_id.get(record_id)
        if lot is None:
            return Outcome.reject(RecordNotFoundError(stage.value, record_id))
        if lot.is_returned:
            return Outcome.reject(
                LotAlreadyReturnedError(lot.record_id, lot.kapan_id, lot.lot_number, lot.returned_by)
            )
        if lot.operator != from_operator:
            return Outcome.reject(OperatorMismatchError(lot.record_id, from_operator, lot.operator))
        quantity = lot.quantity if requested is None else requested
        error = _check_quantity("quantity", quantity, upper=lot.quantity, lower=1)
        if error is not None:
            return Outcome.reject(error)
        plan.append((lot, quantity))

    updated = dict(by_id)
    created: list[LotRecord] = []
    descriptors: list[PacketDescriptor] = []
    for lot, quantity in plan:
        descriptors.append(
            PacketDescriptor(
                record_id=lot.record_id,
                kapan_id=lot.kapan_id,
                lot_number=lot.lot_number,
                main_packet_count=lot.main_packet_count,
                quantity=quantity,
            )
        )
        if quantity == lot.quantity:
            updated[lot.record_id] = replace(lot, operator=to_operator)
            continue
        remaining = lot.quantity - quantity
        updated[lot.record_id] = replace(
            lot, quantity=remaining, completed=min(lot.completed, remaining)
        )
        created.append(
            replace(
                lot,
                record_id=id_factory(),
                operator=to_operator,
                quantity=quantity,
                completed=0,
                jiram_count=0,
                state=LotState.CREATED,
                entry_timestamp=timestamp,
                packets=(),
            )
        )

    entry = ReassignmentLogEntry(
        entry_id=entry_id,
        timestamp=timestamp,
        stage=stage,
        from_operator=from_operator,
        to_operator=to_operator,
        packets=tuple(descriptors),
    )
    ordered = tuple(updated[l.record_id] for l in lots) + tuple(created)
    return Outcome.accept(
        ReassignmentResult(
            lots=ordered,
            entry=entry,
            changed_ids=tuple(lot.record_id for lot, _ in plan),
            created_ids=tuple(c.record_id for c in created),
        )
    )


# ---------------------------------------------------------------------------
# Single packets
# ---------------------------------------------------------------------------


def find_assignment(
    assignments: Sequence[PacketAssignment], packet_key: str
) -> PacketAssignment | None:
    for assignment in assignments:
        if assignment.packet_key == packet_key:
            return assignment
    return None


@traced_engine("packet_lifecycle", "1.0", fingerprint_fields=("packet", "operator", "confirm_reentry"))
def assign_packet(
    assignments: Sequence[PacketAssignment],
    packet: PacketBarcode,
    operator: str,
    process_type: str,
    *,
    record_id: str,
    timestamp: str,
    confirm_reentry: bool = False,
) -> Outcome[PacketAssignment]:
    """
    Hand a packet to an operator.

    A packet that is out with someone is rejected naming that operator. A
    packet already returned is a duplicate unless ``confirm_reentry``; a
    confirmed re-entry reuses the existing record in RE_ENTERED state.
    """
    if not (operator or "").strip():
        return Outcome.reject(MissingOperatorError("operator"))
    current = find_assignment(assignments, packet.key)
    if current is None:
        return Outcome.accept(
            PacketAssignment(
                record_id=record_id,
                barcode=packet.full_barcode,
                packet_key=packet.key,
                kapan_id=packet.kapan_id,
                operator=operator,
                process_type=process_type,
                assigned_at=timestamp,
            )
        )
    if not current.is_returned:
        return Outcome.reject(PacketAlreadyAssignedError(packet.full_barcode, current.operator))
    if not confirm_reentry:
        return Outcome.reject(DuplicateReturnError(packet.full_barcode, current.returned_at))
    return Outcome.accept(
        replace(
            current,
            barcode=packet.full_barcode,
            operator=operator,
            process_type=process_type,
            assigned_at=timestamp,
            state=PacketState.RE_ENTERED,
            returned_at=None,
            reentry_count=current.reentry_count + 1,
        ),
        warnings=(f"Packet {packet.full_barcode} re-entered after return",),
    )


@traced_engine("packet_lifecycle", "1.0", fingerprint_fields=("packet_key", "confirm_duplicate"))
def return_packet(
    assignments: Sequence[PacketAssignment],
    packet_key: str,
    *,
    timestamp: str,
    collection: str,
    confirm_duplicate: bool = False,
) -> Outcome[PacketAssignment]:
    """Mark an assigned packet returned; unknown keys are NotFound."""
    current = find_assignment(assignments, packet_key)
    if current is None:
        return Outcome.reject(PacketNotFoundError(collection, packet_key))
    if current.is_returned:
        if not confirm_duplicate:
            return Outcome.reject(DuplicateReturnError(current.barcode, current.returned_at))
        return Outcome.accept(
            current, warnings=(f"Packet {current.barcode} was already returned",)
        )
    return Outcome.accept(
        replace(current, state=PacketState.RETURNED, returned_at=timestamp)
    )


def overdue_packets(
    assignments: Sequence[PacketAssignment], now: datetime, limit_minutes: int
) -> list[PacketAssignment]:
    """Packets still out longer than ``limit_minutes``, oldest first."""
    limit = timedelta(minutes=limit_minutes)
    overdue = [
        a
        for a in assignments
        if not a.is_returned and now - datetime.fromisoformat(a.assigned_at) > limit
    ]
    return sorted(overdue, key=lambda a: a.assigned_at)
