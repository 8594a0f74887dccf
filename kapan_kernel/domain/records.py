"""
Records -- persisted entity types for every collection.

Responsibility:
    Frozen dataclasses for lots, single packets, finishing transfers,
    reassignment audit entries, jiram scans, box-sorted packets and kapan
    index entries, plus their JSON-safe ``to_dict`` / ``from_dict``
    conversion for whole-collection storage.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Records are immutable; state changes produce a new record via
      ``dataclasses.replace``.
    - Decimal amounts and weights are stored as strings, never floats.
    - Finishing allocations are a tagged variant
      (``LegacySingleAllocation | SplitAllocation``); callers read them
      through ``normalize_allocation`` instead of probing stored keys.
    - Cross-collection references are by value (kapan id plus lot or
      packet identifier), never by record pointer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum
from typing import Any, Union

from kapan_kernel.domain.identifiers import PacketBarcode

# Collection slot names
KAPANS = "kapans"
LASER_LOTS = "laser_lots"
SARIN_LOTS = "sarin_lots"
FINISHING_LOTS = "finishing_lots"
UDHDA_PACKETS = "udhda_packets"
JIRAM_SCANS = "jiram_scans"
BOX_SORTING_PACKETS = "box_sorting_packets"
REASSIGN_LOGS = "reassign_logs"


class Stage(str, Enum):
    LASER = "laser"
    SARIN = "sarin"
    FINISHING = "finishing"
    UDHDA = "udhda"


STAGE_COLLECTIONS: dict[Stage, str] = {
    Stage.LASER: LASER_LOTS,
    Stage.SARIN: SARIN_LOTS,
    Stage.FINISHING: FINISHING_LOTS,
    Stage.UDHDA: UDHDA_PACKETS,
}


class LotState(str, Enum):
    """Lot lifecycle: CREATED -> ACTIVE (chalu) -> RETURNED."""

    CREATED = "created"
    ACTIVE = "active"
    RETURNED = "returned"


class PacketState(str, Enum):
    """Single-packet lifecycle: ASSIGNED -> RETURNED -> (RE_ENTERED -> RETURNED)*."""

    ASSIGNED = "assigned"
    RETURNED = "returned"
    RE_ENTERED = "re_entered"


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _shallow_dict(obj: Any) -> dict[str, Any]:
    return {f.name: _encode(getattr(obj, f.name)) for f in fields(obj)}


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# Kapan index
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KapanEntry:
    """A batch known to exist; created implicitly on first reference."""

    kapan_id: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KapanEntry:
        return cls(kapan_id=str(data["kapan_id"]), created_at=data.get("created_at", ""))


# ---------------------------------------------------------------------------
# Lots (laser / sarin)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LotRecord:
    """
    A lot created at one cutting stage.

    ``quantity`` is the packet count carried by the lot; ``completed`` is
    the chalu counter bounded by ``0 <= completed <= quantity``.
    ``packets`` holds individually scanned packets when the entry flow
    captured them.
    """

    record_id: str
    stage: Stage
    kapan_id: str
    lot_number: str
    quantity: int
    operator: str
    entry_timestamp: str
    state: LotState = LotState.CREATED
    completed: int = 0
    machine: str | None = None
    main_packet_count: int | None = None
    jiram_count: int = 0
    returned_by: str | None = None
    return_timestamp: str | None = None
    packets: tuple[PacketBarcode, ...] = ()
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def is_returned(self) -> bool:
        return self.state == LotState.RETURNED

    def to_dict(self) -> dict[str, Any]:
        data = _shallow_dict(self)
        data["is_returned"] = self.is_returned
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LotRecord:
        state = data.get("state")
        if state is None:
            state = LotState.RETURNED if data.get("is_returned") else LotState.CREATED
        main = data.get("main_packet_count")
        return cls(
            record_id=data["record_id"],
            stage=Stage(data["stage"]),
            kapan_id=str(data["kapan_id"]),
            lot_number=str(data["lot_number"]),
            quantity=int(data["quantity"]),
            operator=data.get("operator", ""),
            entry_timestamp=data.get("entry_timestamp", ""),
            state=LotState(state),
            completed=int(data.get("completed", 0)),
            machine=data.get("machine"),
            main_packet_count=int(main) if main is not None else None,
            jiram_count=int(data.get("jiram_count", 0)),
            returned_by=data.get("returned_by"),
            return_timestamp=data.get("return_timestamp"),
            packets=tuple(PacketBarcode.from_dict(p) for p in data.get("packets", ())),
            attributes=dict(data.get("attributes", {})),
        )


# ---------------------------------------------------------------------------
# Single-packet stage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PacketAssignment:
    """An individually barcoded packet handed to one operator."""

    record_id: str
    barcode: str
    packet_key: str
    kapan_id: str
    operator: str
    process_type: str
    assigned_at: str
    state: PacketState = PacketState.ASSIGNED
    returned_at: str | None = None
    reentry_count: int = 0

    @property
    def is_returned(self) -> bool:
        return self.state == PacketState.RETURNED

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PacketAssignment:
        return cls(
            record_id=data["record_id"],
            barcode=data["barcode"],
            packet_key=data["packet_key"],
            kapan_id=str(data["kapan_id"]),
            operator=data["operator"],
            process_type=data.get("process_type", ""),
            assigned_at=data["assigned_at"],
            state=PacketState(data.get("state", PacketState.ASSIGNED.value)),
            returned_at=data.get("returned_at"),
            reentry_count=int(data.get("reentry_count", 0)),
        )


# ---------------------------------------------------------------------------
# Finishing allocations (tagged variant)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationShare:
    operator: str
    quantity: int
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AllocationShare:
        return cls(
            operator=data["operator"],
            quantity=int(data["quantity"]),
            amount=_decimal(data.get("amount")) or Decimal("0"),
        )


@dataclass(frozen=True)
class LegacySingleAllocation:
    """Whole quantity credited to one operator; quantity is implied."""

    operator: str
    amount: Decimal
    kind: str = "legacy_single"

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)


@dataclass(frozen=True)
class SplitAllocation:
    """Explicit shares; the first share is the primary operator."""

    shares: tuple[AllocationShare, ...]
    kind: str = "split"

    @property
    def total_quantity(self) -> int:
        return sum(s.quantity for s in self.shares)

    @property
    def total_amount(self) -> Decimal:
        return sum((s.amount for s in self.shares), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "shares": [s.to_dict() for s in self.shares]}


Allocation = Union[LegacySingleAllocation, SplitAllocation]


def allocation_from_dict(data: dict[str, Any] | None) -> Allocation | None:
    if not data:
        return None
    if data.get("kind") == "split" or "shares" in data:
        return SplitAllocation(
            shares=tuple(AllocationShare.from_dict(s) for s in data["shares"])
        )
    return LegacySingleAllocation(
        operator=data["operator"],
        amount=_decimal(data.get("amount")) or Decimal("0"),
    )


def normalize_allocation(
    allocation: Allocation | None, total_quantity: int
) -> tuple[AllocationShare, ...]:
    """
    Uniform share view of either allocation variant.

    A legacy allocation becomes a single share of ``total_quantity``; an
    absent allocation has no shares.
    """
    if allocation is None:
        return ()
    if isinstance(allocation, SplitAllocation):
        return allocation.shares
    return (
        AllocationShare(
            operator=allocation.operator,
            quantity=total_quantity,
            amount=allocation.amount,
        ),
    )


@dataclass(frozen=True)
class StageTransferRecord:
    """
    A lot moved into the sub-contracted finishing stage.

    Created at teching entry; ``allocation`` is filled when the finished
    quantity is returned to one or two finishing operators.
    """

    record_id: str
    kapan_id: str
    bunch_code: str
    lot_number: str
    carat: Decimal
    department: str
    pcs: int
    blocking: int
    final_pcs: int
    teching_operator: str
    teching_amount: Decimal
    entry_timestamp: str
    state: LotState = LotState.CREATED
    return_timestamp: str | None = None
    unit_rate: Decimal | None = None
    allocation: Allocation | None = None

    @property
    def is_returned(self) -> bool:
        return self.state == LotState.RETURNED

    @property
    def shares(self) -> tuple[AllocationShare, ...]:
        return normalize_allocation(self.allocation, self.final_pcs)

    def to_dict(self) -> dict[str, Any]:
        data = _shallow_dict(self)
        data["allocation"] = self.allocation.to_dict() if self.allocation else None
        data["is_returned"] = self.is_returned
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageTransferRecord:
        return cls(
            record_id=data["record_id"],
            kapan_id=str(data["kapan_id"]),
            bunch_code=data.get("bunch_code", ""),
            lot_number=str(data["lot_number"]),
            carat=_decimal(data.get("carat")) or Decimal("0"),
            department=data.get("department", ""),
            pcs=int(data["pcs"]),
            blocking=int(data.get("blocking", 0)),
            final_pcs=int(data["final_pcs"]),
            teching_operator=data.get("teching_operator", ""),
            teching_amount=_decimal(data.get("teching_amount")) or Decimal("0"),
            entry_timestamp=data.get("entry_timestamp", ""),
            state=LotState(data.get("state", LotState.CREATED.value)),
            return_timestamp=data.get("return_timestamp"),
            unit_rate=_decimal(data.get("unit_rate")),
            allocation=allocation_from_dict(data.get("allocation")),
        )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PacketDescriptor:
    """One lot's share of a reassignment batch."""

    record_id: str
    kapan_id: str
    lot_number: str
    main_packet_count: int | None
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PacketDescriptor:
        main = data.get("main_packet_count")
        return cls(
            record_id=data["record_id"],
            kapan_id=str(data["kapan_id"]),
            lot_number=str(data["lot_number"]),
            main_packet_count=int(main) if main is not None else None,
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class ReassignmentLogEntry:
    """Append-only audit record; survives cascading deletion."""

    entry_id: str
    timestamp: str
    stage: Stage
    from_operator: str
    to_operator: str
    packets: tuple[PacketDescriptor, ...]

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReassignmentLogEntry:
        return cls(
            entry_id=data["entry_id"],
            timestamp=data["timestamp"],
            stage=Stage(data["stage"]),
            from_operator=data["from_operator"],
            to_operator=data["to_operator"],
            packets=tuple(PacketDescriptor.from_dict(p) for p in data["packets"]),
        )


# ---------------------------------------------------------------------------
# Verification and sorting scans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JiramScan:
    scan_id: str
    barcode: str
    packet_key: str
    kapan_id: str
    scanned_at: str

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JiramScan:
        return cls(
            scan_id=data["scan_id"],
            barcode=data["barcode"],
            packet_key=data["packet_key"],
            kapan_id=str(data["kapan_id"]),
            scanned_at=data["scanned_at"],
        )


@dataclass(frozen=True)
class BoxSortedPacket:
    """A packet placed into a polish-weight box. Not kapan-scoped."""

    record_id: str
    barcode: str
    packet_number: str
    shape: str
    rough_weight: Decimal
    polish_weight: Decimal
    box_label: str
    scanned_at: str

    def to_dict(self) -> dict[str, Any]:
        return _shallow_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoxSortedPacket:
        return cls(
            record_id=data["record_id"],
            barcode=data["barcode"],
            packet_number=str(data["packet_number"]),
            shape=data.get("shape", ""),
            rough_weight=_decimal(data.get("rough_weight")) or Decimal("0"),
            polish_weight=_decimal(data.get("polish_weight")) or Decimal("0"),
            box_label=data["box_label"],
            scanned_at=data["scanned_at"],
        )
