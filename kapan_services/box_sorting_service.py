"""
kapan_services.box_sorting_service -- Polish-weight box sorting.

A scanned comma-separated packet label is parsed with the configured
``box_sorting`` layout, placed into the first configured box range that
contains its polish weight, and stored in the global
``box_sorting_packets`` collection.  Box sorting is not kapan-scoped, so
kapan deletion leaves it alone.
"""

from __future__ import annotations

from kapan_engines.parser import parse_delimited
from kapan_engines.sorting import ShapeSummary, assign_box, summarize_by_shape
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import BOX_SORTING_PACKETS, BoxSortedPacket
from kapan_kernel.exceptions import DuplicateScanError, RecordNotFoundError
from kapan_kernel.logging_config import get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.box_sorting")

BOX_SORTING_LAYOUT = "box_sorting"


class BoxSortingService(CollectionService):
    def packets(self) -> list[BoxSortedPacket]:
        return self._load(BOX_SORTING_PACKETS, BoxSortedPacket)

    def scan(self, raw: str) -> Outcome[BoxSortedPacket]:
        parsed = parse_delimited(raw, self._settings.layout(BOX_SORTING_LAYOUT))
        if not parsed.ok:
            logger.info("box_scan_rejected", extra={"code": parsed.code})
            return Outcome.reject(parsed.error)
        row = parsed.value

        packet_number = str(row["packet_number"])
        packets = self.packets()
        if any(p.packet_number == packet_number for p in packets):
            logger.info(
                "scan_rejected",
                extra={"packet_number": packet_number, "reason": "duplicate"},
            )
            return Outcome.reject(DuplicateScanError(packet_number))

        box = assign_box(row["polish_weight"], self._settings.box_ranges)
        if not box.ok:
            return Outcome.reject(box.error)

        packet = BoxSortedPacket(
            record_id=self._new_id(),
            barcode=row.raw,
            packet_number=packet_number,
            shape=str(row["shape"]),
            rough_weight=row["rough_weight"],
            polish_weight=row["polish_weight"],
            box_label=box.value.label,
            scanned_at=self._now(),
        )
        self._save(BOX_SORTING_PACKETS, packets + [packet])
        logger.info(
            "box_packet_sorted",
            extra={
                "packet_number": packet_number,
                "box_label": packet.box_label,
                "polish_weight": str(packet.polish_weight),
            },
        )
        return Outcome.accept(packet)

    def packets_in_box(self, box_label: str) -> list[BoxSortedPacket]:
        return [p for p in self.packets() if p.box_label == box_label]

    def summary(self) -> list[ShapeSummary]:
        return summarize_by_shape(self.packets())

    def delete(self, record_id: str) -> Outcome[BoxSortedPacket]:
        packets = self.packets()
        target = next((p for p in packets if p.record_id == record_id), None)
        if target is None:
            return Outcome.reject(RecordNotFoundError(BOX_SORTING_PACKETS, record_id))
        self._save(BOX_SORTING_PACKETS, [p for p in packets if p.record_id != record_id])
        logger.info("box_packet_deleted", extra={"packet_number": target.packet_number})
        return Outcome.accept(target)
