"""
kapan_engines.reconciliation.quantity -- Expected vs scanned count per group.

Responsibility:
    Sum an expected quantity per group key from one source and a scanned
    count per key from another, then classify each group as match, extra
    or less with non-negative ``extra`` / ``missing`` differences.

Invariants enforced:
    - ``extra = max(0, scanned - expected)``, ``missing = max(0, expected - scanned)``.
    - A group with scans but no expected quantity is still reported.
    - Groups are ordered by natural key, so kapan "9" precedes "10".
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.identifiers import natural_key

T = TypeVar("T")


class QuantityStatus(str, Enum):
    MATCH = "match"
    EXTRA = "extra"
    LESS = "less"


@dataclass(frozen=True)
class GroupReconciliation:
    key: str
    expected: int
    scanned: int
    status: QuantityStatus
    extra: int
    missing: int


def classify(key: str, expected: int, scanned: int) -> GroupReconciliation:
    diff = scanned - expected
    if diff > 0:
        status = QuantityStatus.EXTRA
    elif diff < 0:
        status = QuantityStatus.LESS
    else:
        status = QuantityStatus.MATCH
    return GroupReconciliation(
        key=key,
        expected=expected,
        scanned=scanned,
        status=status,
        extra=max(0, diff),
        missing=max(0, -diff),
    )


def sum_by_key(
    items: Iterable[T], key: Callable[[T], str | None], quantity: Callable[[T], int]
) -> dict[str, int]:
    """Positive quantities summed per key; items with no key or zero quantity are ignored."""
    totals: dict[str, int] = {}
    for item in items:
        k = key(item)
        q = quantity(item)
        if k is None or q <= 0:
            continue
        totals[k] = totals.get(k, 0) + q
    return totals


@traced_engine("quantity_reconciliation", "1.0", fingerprint_fields=("expected", "scanned"))
def reconcile_quantities(
    expected: Mapping[str, int], scanned: Mapping[str, int]
) -> tuple[GroupReconciliation, ...]:
    """Classify every group that has an expected quantity or at least one scan."""
    keys = {k for k, v in expected.items() if v > 0} | {k for k, v in scanned.items() if v > 0}
    return tuple(
        classify(k, expected.get(k, 0), scanned.get(k, 0))
        for k in sorted(keys, key=natural_key)
    )
