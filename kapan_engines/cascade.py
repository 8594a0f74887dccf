"""
kapan_engines.cascade -- Cascading kapan deletion plan.

Responsibility:
    Given one kapan id and a raw snapshot of every stored collection,
    compute what each collection keeps once every record tied to that
    kapan is removed.  Which collections exist, and how each one yields a
    record's kapan id, comes from an explicit ``CollectionRegistry``.

Architecture position:
    Engines -- pure planning function, zero I/O.  The deletion service
    applies the plan to the store.

Invariants enforced:
    - Every stored collection must be registered; an unregistered slot
      rejects the whole plan before anything is removed, so a new stage
      collection cannot be silently left behind.
    - AUDIT collections (reassignment logs) are never touched.
    - GLOBAL collections (not kapan-scoped) are never touched.
    - Packet barcodes are mapped to their kapan with the parser's leading
      kapan rule (re-issue marker ignored).
    - A surviving record never keeps a nested packet of the purged kapan;
      specs with a nested pruner strip those entries (a laser lot created
      with a confirmed kapan mismatch holds packets of another kapan).

Failure modes:
    - UnregisteredCollectionError: snapshot holds an unknown collection.
    - EmptySelectionError: blank kapan id.

Audit relevance:
    Executing a plan is irreversible and is logged by the service as an
    IntegrityRisk event with the per-collection removal and prune counts.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from kapan_engines.parser import extract_kapan
from kapan_engines.tracer import traced_engine
from kapan_kernel.domain import records as r
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.exceptions import EmptySelectionError, UnregisteredCollectionError
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.cascade")

BatchIdExtractor = Callable[[dict[str, Any]], "str | None"]
# (record, kapan) -> (record without nested references to kapan, entries dropped)
NestedPruner = Callable[[dict[str, Any], str], "tuple[dict[str, Any], int]"]


class CollectionScope(str, Enum):
    KAPAN = "kapan"  # records belong to one kapan; deleted with it
    GLOBAL = "global"  # not kapan-scoped; never deleted by kapan
    AUDIT = "audit"  # append-only; kept even when the kapan is purged


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    scope: CollectionScope
    batch_id: BatchIdExtractor | None = None
    nested: NestedPruner | None = None

    def __post_init__(self) -> None:
        if self.scope == CollectionScope.KAPAN and self.batch_id is None:
            raise ValueError(f"Kapan-scoped collection {self.name!r} needs a batch id extractor")


def field_extractor(field: str) -> BatchIdExtractor:
    """Kapan id stored directly in ``field``."""

    def _extract(record: dict[str, Any]) -> str | None:
        value = record.get(field)
        return None if value is None else str(value)

    return _extract


def barcode_extractor(field: str) -> BatchIdExtractor:
    """Kapan id read from the leading number of a packet barcode in ``field``."""

    def _extract(record: dict[str, Any]) -> str | None:
        return extract_kapan(str(record.get(field) or ""))

    return _extract


def packet_list_pruner(field: str) -> NestedPruner:
    """Drop entries of the packet list in ``field`` that belong to the kapan."""

    def _packet_kapan(packet: Any) -> str | None:
        if isinstance(packet, dict):
            if packet.get("kapan_id") is not None:
                return str(packet["kapan_id"])
            return extract_kapan(str(packet.get("full_barcode") or ""))
        return extract_kapan(str(packet))

    def _prune(record: dict[str, Any], kapan: str) -> tuple[dict[str, Any], int]:
        packets = record.get(field) or []
        kept = [p for p in packets if _packet_kapan(p) != kapan]
        dropped = len(packets) - len(kept)
        if not dropped:
            return record, 0
        return {**record, field: kept}, dropped

    return _prune


class CollectionRegistry:
    """Ordered set of collection specs, unique by name."""

    def __init__(self, specs: Iterable[CollectionSpec] = ()):
        self._specs: dict[str, CollectionSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: CollectionSpec) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Collection {spec.name!r} is already registered")
        self._specs[spec.name] = spec

    def get(self, name: str) -> CollectionSpec | None:
        return self._specs.get(name)

    @property
    def specs(self) -> tuple[CollectionSpec, ...]:
        return tuple(self._specs.values())

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs


def default_registry() -> CollectionRegistry:
    """Every collection the plant stores, with its scope."""
    kapan_field = field_extractor("kapan_id")
    return CollectionRegistry(
        [
            CollectionSpec(r.KAPANS, CollectionScope.KAPAN, kapan_field),
            CollectionSpec(
                r.LASER_LOTS, CollectionScope.KAPAN, kapan_field, packet_list_pruner("packets")
            ),
            CollectionSpec(r.SARIN_LOTS, CollectionScope.KAPAN, kapan_field),
            CollectionSpec(r.FINISHING_LOTS, CollectionScope.KAPAN, kapan_field),
            CollectionSpec(r.UDHDA_PACKETS, CollectionScope.KAPAN, barcode_extractor("barcode")),
            CollectionSpec(r.JIRAM_SCANS, CollectionScope.KAPAN, barcode_extractor("barcode")),
            CollectionSpec(r.BOX_SORTING_PACKETS, CollectionScope.GLOBAL),
            CollectionSpec(r.REASSIGN_LOGS, CollectionScope.AUDIT),
        ]
    )


@dataclass(frozen=True)
class DeletionPlan:
    """
    Records each kapan-scoped collection keeps, and how many it loses.

    ``removed`` counts whole records deleted; ``pruned`` counts nested
    packet entries stripped from records that survive.
    """

    kapan_id: str
    keep: Mapping[str, list[dict[str, Any]]]
    removed: Mapping[str, int]
    pruned: Mapping[str, int] = field(default_factory=dict)

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())

    @property
    def total_pruned(self) -> int:
        return sum(self.pruned.values())

    @property
    def changed_collections(self) -> tuple[str, ...]:
        return tuple(
            name
            for name in self.keep
            if self.removed.get(name, 0) or self.pruned.get(name, 0)
        )


@traced_engine("kapan_cascade", "1.0", fingerprint_fields=("kapan_id",))
def plan_kapan_deletion(
    registry: CollectionRegistry,
    kapan_id: str,
    collections: Mapping[str, list[dict[str, Any]]],
) -> Outcome[DeletionPlan]:
    """
    Plan removal of every record referencing ``kapan_id``.

    Args:
        registry: Known collections and their scopes.
        kapan_id: The batch to purge.
        collections: Raw snapshot, collection name -> records.
    """
    kapan = (kapan_id or "").strip()
    if not kapan:
        return Outcome.reject(EmptySelectionError("kapan_deletion"))

    unknown = tuple(sorted(name for name in collections if name not in registry))
    if unknown:
        logger.error(
            "cascade_unregistered_collections",
            extra={"kapan_id": kapan, "collections": unknown},
        )
        return Outcome.reject(UnregisteredCollectionError(kapan, unknown))

    keep: dict[str, list[dict[str, Any]]] = {}
    removed: dict[str, int] = {}
    pruned: dict[str, int] = {}
    for spec in registry.specs:
        if spec.scope != CollectionScope.KAPAN or spec.name not in collections:
            continue
        records = collections[spec.name]
        kept = [rec for rec in records if spec.batch_id(rec) != kapan]  # type: ignore[misc]
        removed[spec.name] = len(records) - len(kept)
        if spec.nested is not None:
            dropped = 0
            survivors = []
            for rec in kept:
                rec, count = spec.nested(rec, kapan)
                survivors.append(rec)
                dropped += count
            kept = survivors
            pruned[spec.name] = dropped
        keep[spec.name] = kept

    return Outcome.accept(
        DeletionPlan(kapan_id=kapan, keep=keep, removed=removed, pruned=pruned)
    )
