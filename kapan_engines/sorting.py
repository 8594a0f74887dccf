"""
kapan_engines.sorting -- Polish-weight box assignment and shape summary.

Responsibility:
    Place a packet into the first configured box whose inclusive
    polish-weight range contains it, and summarise sorted packets per
    shape and box.

Invariants enforced:
    - Ranges are tried in configured order; the first match wins.
    - No matching range is a ``NoMatchingRangeError``, never a guess.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import BoxSortedPacket
from kapan_kernel.exceptions import NoMatchingRangeError


@dataclass(frozen=True)
class BoxRange:
    label: str
    from_weight: Decimal
    to_weight: Decimal

    def contains(self, weight: Decimal) -> bool:
        return self.from_weight <= weight <= self.to_weight


def assign_box(polish_weight: Decimal, ranges: Sequence[BoxRange]) -> Outcome[BoxRange]:
    for box in ranges:
        if box.contains(polish_weight):
            return Outcome.accept(box)
    return Outcome.reject(NoMatchingRangeError(str(polish_weight), "box_ranges"))


@dataclass
class BoxTotals:
    count: int = 0
    rough_weight: Decimal = Decimal("0")
    polish_weight: Decimal = Decimal("0")

    def add(self, packet: BoxSortedPacket) -> None:
        self.count += 1
        self.rough_weight += packet.rough_weight
        self.polish_weight += packet.polish_weight


@dataclass
class ShapeSummary:
    shape: str
    totals: BoxTotals = field(default_factory=BoxTotals)
    boxes: dict[str, BoxTotals] = field(default_factory=dict)


def summarize_by_shape(packets: Sequence[BoxSortedPacket]) -> list[ShapeSummary]:
    """Per-shape totals with a per-box breakdown, shapes alphabetical."""
    summaries: dict[str, ShapeSummary] = {}
    for packet in packets:
        summary = summaries.setdefault(packet.shape, ShapeSummary(shape=packet.shape))
        summary.totals.add(packet)
        summary.boxes.setdefault(packet.box_label, BoxTotals()).add(packet)
    return [summaries[k] for k in sorted(summaries)]
