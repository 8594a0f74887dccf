"""
Module: kapan_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    engine sub-modules.  This is the canonical import surface for
    kapan_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import kapan_kernel (domain, exceptions, logging) and sibling
    engine modules.  MUST NOT import kapan_services or kapan_config.

Invariants enforced:
    - Purity: engines NEVER read the clock.  Timestamps, new record ids
      and "now" are passed in by the calling service.
    - Decimal-only arithmetic for weights, rates and amounts.
    - Determinism: identical inputs always produce identical outputs.
    - Expected failures come back as ``Outcome.reject``; engines do not
      raise for malformed scans or rule violations.

Audit relevance:
    Engine entrypoints are traced via ``@traced_engine`` (see
    ``kapan_engines.tracer``), emitting KAPAN_ENGINE_TRACE records with
    engine name, version, input fingerprint and duration.

Usage:
    from kapan_engines import parse_lot_barcode, check_gaps, allocate
"""

from kapan_kernel.logging_config import get_logger

logger = get_logger("engines")

from kapan_engines.allocation import (
    RateBand,
    RateTable,
    allocate,
    department_for,
    rederive,
    resolve_unit_rate,
)
from kapan_engines.cascade import (
    CollectionRegistry,
    CollectionScope,
    CollectionSpec,
    DeletionPlan,
    barcode_extractor,
    default_registry,
    field_extractor,
    plan_kapan_deletion,
)
from kapan_engines.lifecycle import (
    ReassignmentResult,
    adjust_progress,
    assign_packet,
    create_lot,
    find_assignment,
    find_lot,
    overdue_packets,
    prerequisite_error,
    reassign,
    reassignable_lots,
    record_progress,
    return_lot,
    return_packet,
)
from kapan_engines.parser import (
    DelimitedLayout,
    FieldKind,
    FieldSpec,
    PacketShape,
    extract_kapan,
    extract_leading_number,
    normalize_packet_identifier,
    packet_key,
    parse_delimited,
    parse_lot_barcode,
    parse_packet_barcode,
    parse_serial,
    split_row,
)
from kapan_engines.reconciliation import (
    GapReport,
    GapRow,
    GapStatus,
    GroupReconciliation,
    ManifestResult,
    QuantityStatus,
    ScanSession,
    check_gaps,
    compare_lists,
    parse_manifest,
    reconcile_quantities,
    sum_by_key,
    verify_manifest,
)
from kapan_engines.sorting import BoxRange, assign_box, summarize_by_shape
from kapan_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Parser
    "DelimitedLayout",
    "FieldKind",
    "FieldSpec",
    "PacketShape",
    "extract_kapan",
    "extract_leading_number",
    "normalize_packet_identifier",
    "packet_key",
    "parse_delimited",
    "parse_lot_barcode",
    "parse_packet_barcode",
    "parse_serial",
    "split_row",
    # Lifecycle
    "ReassignmentResult",
    "adjust_progress",
    "assign_packet",
    "create_lot",
    "find_assignment",
    "find_lot",
    "overdue_packets",
    "prerequisite_error",
    "reassign",
    "reassignable_lots",
    "record_progress",
    "return_lot",
    "return_packet",
    # Reconciliation
    "GapReport",
    "GapRow",
    "GapStatus",
    "GroupReconciliation",
    "ManifestResult",
    "QuantityStatus",
    "ScanSession",
    "check_gaps",
    "compare_lists",
    "parse_manifest",
    "reconcile_quantities",
    "sum_by_key",
    "verify_manifest",
    # Allocation
    "RateBand",
    "RateTable",
    "allocate",
    "department_for",
    "rederive",
    "resolve_unit_rate",
    # Sorting
    "BoxRange",
    "assign_box",
    "summarize_by_shape",
    # Cascade
    "CollectionRegistry",
    "CollectionScope",
    "CollectionSpec",
    "DeletionPlan",
    "barcode_extractor",
    "default_registry",
    "field_extractor",
    "plan_kapan_deletion",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
