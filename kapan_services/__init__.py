"""
kapan_services -- Package init and public API.

Responsibility:
    Stateful workflow services that compose the pure engines
    (kapan_engines/) with the collection store, plant settings and the
    clock.  This is the **only** layer that reads or writes collections or
    reads wall-clock time.

Architecture position:
    Services -- imperative shell over engines + kernel + config.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        kapan_services/ -> kapan_engines/  (allowed)
        kapan_services/ -> kapan_config/   (allowed)
        kapan_services/ -> kapan_kernel/   (allowed)
        kapan_engines/  -> kapan_services/ (FORBIDDEN)
        kapan_kernel/   -> kapan_services/ (FORBIDDEN)

Invariants enforced:
    - Whole-collection reads and writes only; no partial record updates.
    - A rejected outcome never writes to the store.

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from kapan_kernel.logging_config import get_logger

logger = get_logger("services")

from kapan_services.box_sorting_service import BoxSortingService
from kapan_services.deletion_service import KapanDeletionService
from kapan_services.finishing_service import DepartmentTotals, FinishingService
from kapan_services.lookup import LookupHit, LookupService
from kapan_services.plant import KapanPlant
from kapan_services.reassignment_service import ReassignmentService
from kapan_services.report_export import (
    gap_report_csv,
    manifest_report_text,
    write_report,
)
from kapan_services.single_packet_service import SinglePacketService
from kapan_services.stage_service import StageService
from kapan_services.verification_service import VerificationService

__all__ = [
    "BoxSortingService",
    "DepartmentTotals",
    "FinishingService",
    "KapanDeletionService",
    "KapanPlant",
    "LookupHit",
    "LookupService",
    "ReassignmentService",
    "SinglePacketService",
    "StageService",
    "VerificationService",
    "gap_report_csv",
    "manifest_report_text",
    "write_report",
]
