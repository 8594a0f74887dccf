"""
kapan_services.lookup -- Kapan and packet search across stages.

A purely numeric term is a kapan search; anything else is matched as a
packet identifier with the re-issue marker stripped.  Laser packets are
matched by their scanned barcodes, sarin lots by ``kapan-lot`` and
single packets by barcode.  Hits are returned newest first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kapan_engines.parser import normalize_packet_identifier
from kapan_kernel.domain.records import (
    LASER_LOTS,
    SARIN_LOTS,
    UDHDA_PACKETS,
    LotRecord,
    PacketAssignment,
)
from kapan_kernel.logging_config import get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.lookup")


@dataclass(frozen=True)
class LookupHit:
    source: str
    kapan_id: str
    identifier: str
    timestamp: str
    record: Any


class LookupService(CollectionService):
    def search(self, term: str) -> list[LookupHit]:
        value = (term or "").strip()
        if not value:
            return []
        if value.isdigit():
            hits = self._by_kapan(value)
        else:
            hits = self._by_identifier(normalize_packet_identifier(value))
        logger.debug("lookup_completed", extra={"term": value, "hits": len(hits)})
        return sorted(hits, key=lambda h: h.timestamp, reverse=True)

    def _candidates(self) -> list[LookupHit]:
        hits: list[LookupHit] = []
        for lot in self._load(LASER_LOTS, LotRecord):
            if lot.packets:
                for packet in lot.packets:
                    hits.append(
                        LookupHit(
                            LASER_LOTS,
                            lot.kapan_id,
                            normalize_packet_identifier(packet.full_barcode),
                            lot.entry_timestamp,
                            lot,
                        )
                    )
            else:
                hits.append(
                    LookupHit(
                        LASER_LOTS,
                        lot.kapan_id,
                        f"{lot.kapan_id}-{lot.lot_number}",
                        lot.entry_timestamp,
                        lot,
                    )
                )
        for lot in self._load(SARIN_LOTS, LotRecord):
            hits.append(
                LookupHit(
                    SARIN_LOTS,
                    lot.kapan_id,
                    f"{lot.kapan_id}-{lot.lot_number}",
                    lot.entry_timestamp,
                    lot,
                )
            )
        for assignment in self._load(UDHDA_PACKETS, PacketAssignment):
            hits.append(
                LookupHit(
                    UDHDA_PACKETS,
                    assignment.kapan_id,
                    normalize_packet_identifier(assignment.barcode),
                    assignment.assigned_at,
                    assignment,
                )
            )
        return hits

    def _by_kapan(self, kapan_id: str) -> list[LookupHit]:
        hits: list[LookupHit] = []
        seen: set[tuple[str, int]] = set()
        for hit in self._candidates():
            if hit.kapan_id != kapan_id:
                continue
            # a laser lot yields one candidate per packet; report it once
            marker = (hit.source, id(hit.record))
            if marker in seen:
                continue
            seen.add(marker)
            hits.append(hit)
        return hits

    def _by_identifier(self, identifier: str) -> list[LookupHit]:
        return [hit for hit in self._candidates() if hit.identifier == identifier]
