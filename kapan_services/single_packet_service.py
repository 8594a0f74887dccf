"""
kapan_services.single_packet_service -- Udhda (single-packet) issue and return.

Individually barcoded packets are handed to an operator for a process
(sarin or laser by default), returned, and occasionally re-entered.
Packets are keyed re-issue-insensitively, so ``R77-185-A`` and
``77-185-A`` address the same record.  Overdue detection uses the
configured return limit against the injected clock.
"""

from __future__ import annotations

from kapan_engines.lifecycle import assign_packet, overdue_packets, return_packet
from kapan_engines.parser import PacketShape, parse_packet_barcode
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import UDHDA_PACKETS, PacketAssignment
from kapan_kernel.exceptions import FieldValueError
from kapan_kernel.logging_config import get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.single_packet")


class SinglePacketService(CollectionService):
    """Single-packet stage over the ``udhda_packets`` collection."""

    def assignments(self) -> list[PacketAssignment]:
        return self._load(UDHDA_PACKETS, PacketAssignment)

    def assign(
        self,
        barcode: str,
        operator: str,
        process_type: str,
        confirm_reentry: bool = False,
    ) -> Outcome[PacketAssignment]:
        parsed = parse_packet_barcode(barcode, PacketShape.PACKET)
        if not parsed.ok:
            return Outcome.reject(parsed.error)
        packet = parsed.value

        allowed = self._settings.single_packet.process_types
        if process_type not in allowed:
            return Outcome.reject(
                FieldValueError(
                    barcode, "process_type", process_type, f"process type ({', '.join(allowed)})"
                )
            )

        assignments = self.assignments()
        outcome = assign_packet(
            assignments,
            packet,
            (operator or "").strip(),
            process_type,
            record_id=self._new_id(),
            timestamp=self._now(),
            confirm_reentry=confirm_reentry,
        )
        if not outcome.ok:
            logger.info(
                "packet_assignment_rejected",
                extra={"barcode": packet.full_barcode, "code": outcome.code},
            )
            return outcome

        assigned = outcome.value
        replaced = False
        for i, current in enumerate(assignments):
            if current.record_id == assigned.record_id:
                assignments[i] = assigned
                replaced = True
        if not replaced:
            assignments.append(assigned)
        self._save(UDHDA_PACKETS, assignments)
        self._ensure_kapan(assigned.kapan_id)
        logger.info(
            "packet_assigned",
            extra={
                "barcode": assigned.barcode,
                "operator": assigned.operator,
                "process_type": assigned.process_type,
                "state": assigned.state.value,
            },
        )
        return outcome

    def return_packet(
        self, barcode: str, confirm_duplicate: bool = False
    ) -> Outcome[PacketAssignment]:
        parsed = parse_packet_barcode(barcode, PacketShape.PACKET)
        if not parsed.ok:
            return Outcome.reject(parsed.error)

        assignments = self.assignments()
        outcome = return_packet(
            assignments,
            parsed.value.key,
            timestamp=self._now(),
            collection=UDHDA_PACKETS,
            confirm_duplicate=confirm_duplicate,
        )
        if not outcome.ok:
            logger.info(
                "packet_return_rejected",
                extra={"barcode": parsed.value.full_barcode, "code": outcome.code},
            )
            return outcome

        returned = outcome.value
        updated = [returned if a.record_id == returned.record_id else a for a in assignments]
        self._save(UDHDA_PACKETS, updated)
        logger.info(
            "packet_returned",
            extra={"barcode": returned.barcode, "operator": returned.operator},
        )
        return outcome

    def pending(self, operator: str | None = None) -> list[PacketAssignment]:
        """Packets still out, oldest assignment first."""
        out = [
            a
            for a in self.assignments()
            if not a.is_returned and (operator is None or a.operator == operator)
        ]
        return sorted(out, key=lambda a: a.assigned_at)

    def overdue(self) -> list[PacketAssignment]:
        return overdue_packets(
            self.assignments(),
            self._clock.now(),
            self._settings.single_packet.return_time_limit_minutes,
        )

    def history(self, kapan_id: str | None = None) -> list[PacketAssignment]:
        """Every packet record, most recently assigned first."""
        records = [
            a for a in self.assignments() if kapan_id is None or a.kapan_id == kapan_id
        ]
        return sorted(records, key=lambda a: a.assigned_at, reverse=True)
