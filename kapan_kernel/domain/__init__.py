"""
Pure domain layer.

Value objects and records with NO dependencies on:
- ORM (SQLAlchemy)
- Storage
- Time/clock (except the injectable Clock itself)

All domain objects are immutable and deterministic.
"""

from kapan_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from kapan_kernel.domain.identifiers import (
    DelimitedRecord,
    LotIdentifier,
    PacketBarcode,
    natural_key,
    strip_reissue_marker,
)
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import (
    BOX_SORTING_PACKETS,
    FINISHING_LOTS,
    JIRAM_SCANS,
    KAPANS,
    LASER_LOTS,
    REASSIGN_LOGS,
    SARIN_LOTS,
    STAGE_COLLECTIONS,
    UDHDA_PACKETS,
    Allocation,
    AllocationShare,
    BoxSortedPacket,
    JiramScan,
    KapanEntry,
    LegacySingleAllocation,
    LotRecord,
    LotState,
    PacketAssignment,
    PacketDescriptor,
    PacketState,
    ReassignmentLogEntry,
    SplitAllocation,
    Stage,
    StageTransferRecord,
    normalize_allocation,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Outcome",
    # Identifiers
    "DelimitedRecord",
    "LotIdentifier",
    "PacketBarcode",
    "natural_key",
    "strip_reissue_marker",
    # Collection slots
    "KAPANS",
    "LASER_LOTS",
    "SARIN_LOTS",
    "FINISHING_LOTS",
    "UDHDA_PACKETS",
    "JIRAM_SCANS",
    "BOX_SORTING_PACKETS",
    "REASSIGN_LOGS",
    "STAGE_COLLECTIONS",
    # Records
    "Stage",
    "LotState",
    "PacketState",
    "KapanEntry",
    "LotRecord",
    "PacketAssignment",
    "AllocationShare",
    "LegacySingleAllocation",
    "SplitAllocation",
    "Allocation",
    "normalize_allocation",
    "StageTransferRecord",
    "PacketDescriptor",
    "ReassignmentLogEntry",
    "JiramScan",
    "BoxSortedPacket",
]
