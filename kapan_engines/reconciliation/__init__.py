"""
Reconciliation - pure expected-vs-actual checks.

Gap/sequence check over pasted serial rows, manifest-vs-scan partition,
and per-group quantity reconciliation.  Stateful scanning flows live in
kapan_services.verification_service.
"""

from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

from kapan_engines.reconciliation.gaps import (
    JUNK_LABEL_PREFIX,
    GapReport,
    GapRow,
    GapStatus,
    check_gaps,
    split_pasted_lines,
)
from kapan_engines.reconciliation.manifest import (
    ManifestResult,
    ScanSession,
    compare_lists,
    parse_manifest,
    verify_manifest,
)
from kapan_engines.reconciliation.quantity import (
    GroupReconciliation,
    QuantityStatus,
    classify,
    reconcile_quantities,
    sum_by_key,
)

__all__ = [
    # Gap check
    "JUNK_LABEL_PREFIX",
    "GapReport",
    "GapRow",
    "GapStatus",
    "check_gaps",
    "split_pasted_lines",
    # Manifest
    "ManifestResult",
    "ScanSession",
    "compare_lists",
    "parse_manifest",
    "verify_manifest",
    # Quantity
    "GroupReconciliation",
    "QuantityStatus",
    "classify",
    "reconcile_quantities",
    "sum_by_key",
]
