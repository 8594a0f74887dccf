"""
kapan_engines.allocation -- Split/partial return allocator and rate lookup.

Responsibility:
    Distribute a finished quantity across one primary and at most one
    secondary operator, price each share with a unit rate, and resolve
    that unit rate from a weight-banded rate table.  Also maps a carat
    weight to its department by a configured threshold.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Full mode credits the whole quantity ``T`` to the primary operator.
    - Split mode requires ``1 <= s <= T - 1`` and a secondary operator
      distinct from the primary; the primary receives ``T - s``.
    - Share quantities always sum to ``T``.
    - ``amount = quantity * unit_rate`` in Decimal; no floats.
    - Rate bands are scanned lowest ``from`` first; the first band with
      ``from <= weight <= to`` wins; no band gives rate 0 (not an error).
    - Re-deriving an allocation recomputes every amount from quantities.

Failure modes (returned as ``Outcome.reject``):
    - MissingOperatorError: no primary operator.
    - QuantityOutOfRangeError: negative total quantity.
    - InvalidSplitError: bad secondary quantity or secondary operator,
      naming the field.

Usage:
    table = RateTable("finishing", bands=(RateBand(Decimal("0"), Decimal("0.5"), Decimal("12")),))
    rate = table.rate_for(Decimal("0.3"))
    outcome = allocate(10, "Ramesh", rate, secondary_operator="Suresh", secondary_quantity=4)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import (
    Allocation,
    AllocationShare,
    SplitAllocation,
    normalize_allocation,
)
from kapan_kernel.exceptions import (
    InvalidSplitError,
    MissingOperatorError,
    QuantityOutOfRangeError,
)
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

ZERO = Decimal("0")


@dataclass(frozen=True)
class RateBand:
    """Inclusive weight band ``[from_weight, to_weight]`` with its unit rate."""

    from_weight: Decimal
    to_weight: Decimal
    rate: Decimal

    def __post_init__(self) -> None:
        if self.from_weight > self.to_weight:
            raise ValueError(
                f"Rate band from {self.from_weight} is above to {self.to_weight}"
            )

    def contains(self, weight: Decimal) -> bool:
        return self.from_weight <= weight <= self.to_weight


@dataclass(frozen=True)
class RateTable:
    """Weight-banded unit rates; bands are kept sorted ascending by ``from_weight``."""

    name: str
    bands: tuple[RateBand, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "bands", tuple(sorted(self.bands, key=lambda b: (b.from_weight, b.to_weight)))
        )

    def match(self, weight: Decimal) -> RateBand | None:
        for band in self.bands:
            if band.contains(weight):
                return band
        return None

    def rate_for(self, weight: Decimal) -> Decimal:
        """Unit rate for ``weight``; 0 when no band matches."""
        band = self.match(weight)
        if band is None:
            logger.debug(
                "rate_band_not_matched",
                extra={"table": self.name, "weight": str(weight)},
            )
            return ZERO
        return band.rate


def resolve_unit_rate(
    weight: Decimal, table: RateTable | None, flat_rate: Decimal
) -> Decimal:
    """Banded rate when the table has bands, otherwise the flat rate."""
    if table is not None and table.bands:
        return table.rate_for(weight)
    return flat_rate


def department_for(
    carat: Decimal, threshold: Decimal, above_name: str, below_name: str
) -> str:
    """Department by carat weight; a weight equal to the threshold is below."""
    return above_name if carat > threshold else below_name


def _share(operator: str, quantity: int, unit_rate: Decimal) -> AllocationShare:
    return AllocationShare(operator=operator, quantity=quantity, amount=unit_rate * quantity)


@traced_engine(
    "split_allocator",
    "1.0",
    fingerprint_fields=(
        "total_quantity",
        "primary_operator",
        "unit_rate",
        "secondary_operator",
        "secondary_quantity",
    ),
)
def allocate(
    total_quantity: int,
    primary_operator: str,
    unit_rate: Decimal,
    secondary_operator: str | None = None,
    secondary_quantity: int | None = None,
) -> Outcome[SplitAllocation]:
    """
    Allocate ``total_quantity`` in full or split mode.

    Split mode is selected when either ``secondary_operator`` or
    ``secondary_quantity`` is given; both must then be valid.
    """
    primary = (primary_operator or "").strip()
    if not primary:
        return Outcome.reject(MissingOperatorError("primary_operator"))
    if total_quantity < 0:
        return Outcome.reject(
            QuantityOutOfRangeError("total_quantity", total_quantity, "lower", 0)
        )

    secondary = (secondary_operator or "").strip()
    if not secondary and secondary_quantity is None:
        return Outcome.accept(
            SplitAllocation(shares=(_share(primary, total_quantity, unit_rate),))
        )

    if not secondary:
        return Outcome.reject(
            InvalidSplitError("secondary_operator", "a split needs a secondary operator")
        )
    if secondary == primary:
        return Outcome.reject(
            InvalidSplitError("secondary_operator", "must differ from the primary operator")
        )
    if secondary_quantity is None:
        return Outcome.reject(
            InvalidSplitError("secondary_quantity", "a split needs a secondary quantity")
        )
    if secondary_quantity < 1 or secondary_quantity > total_quantity - 1:
        return Outcome.reject(
            InvalidSplitError(
                "secondary_quantity",
                f"must be between 1 and {total_quantity - 1} (total {total_quantity})",
            )
        )

    return Outcome.accept(
        SplitAllocation(
            shares=(
                _share(primary, total_quantity - secondary_quantity, unit_rate),
                _share(secondary, secondary_quantity, unit_rate),
            )
        )
    )


def rederive(
    allocation: Allocation | None, total_quantity: int, unit_rate: Decimal
) -> SplitAllocation | None:
    """
    Recompute every share amount at ``unit_rate``.

    Legacy single-operator allocations come back as one explicit share of
    ``total_quantity``.
    """
    shares = normalize_allocation(allocation, total_quantity)
    if not shares:
        return None
    return SplitAllocation(
        shares=tuple(_share(s.operator, s.quantity, unit_rate) for s in shares)
    )
