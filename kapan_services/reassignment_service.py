"""
kapan_services.reassignment_service -- Move running sarin lots between operators.

Responsibility:
    Lists the lots an operator can hand over, applies a batch
    reassignment, and keeps the append-only reassignment log.  The updated
    lot collection and the audit entry are written together; a rejected
    batch writes nothing.

Architecture position:
    Services -- imperative shell over ``kapan_engines.lifecycle.reassign``.

Audit relevance:
    One ``ReassignmentLogEntry`` per accepted batch, appended to
    ``reassign_logs``.  The log is never pruned by kapan deletion.
"""

from __future__ import annotations

from collections.abc import Mapping

from kapan_engines.lifecycle import ReassignmentResult, reassign, reassignable_lots
from kapan_kernel.domain.identifiers import natural_key
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import (
    REASSIGN_LOGS,
    SARIN_LOTS,
    LotRecord,
    ReassignmentLogEntry,
    Stage,
)
from kapan_kernel.logging_config import get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.reassignment")


class ReassignmentService(CollectionService):
    """Batch reassignment of sarin lots."""

    def operators(self) -> list[str]:
        """Operators currently holding at least one running lot."""
        lots = self._load(SARIN_LOTS, LotRecord)
        return sorted({l.operator for l in lots if not l.is_returned and l.operator})

    def available_lots(self, operator: str) -> list[LotRecord]:
        lots = self._load(SARIN_LOTS, LotRecord)
        return sorted(
            reassignable_lots(lots, operator),
            key=lambda l: (natural_key(l.kapan_id), natural_key(l.lot_number)),
        )

    def reassign(
        self,
        from_operator: str,
        to_operator: str,
        selections: Mapping[str, int | None],
    ) -> Outcome[ReassignmentResult]:
        """
        Hand the selected lots to ``to_operator``.

        ``selections`` maps record id to the number of packets to move;
        None moves the whole lot.
        """
        lots = self._load(SARIN_LOTS, LotRecord)
        outcome = reassign(
            lots,
            from_operator,
            to_operator,
            selections,
            stage=Stage.SARIN,
            entry_id=self._new_id(),
            timestamp=self._now(),
            id_factory=self._new_id,
        )
        if not outcome.ok:
            logger.info(
                "reassignment_rejected",
                extra={
                    "from_operator": from_operator,
                    "to_operator": to_operator,
                    "code": outcome.code,
                },
            )
            return outcome

        result = outcome.value
        log = self._load(REASSIGN_LOGS, ReassignmentLogEntry)
        self._save(SARIN_LOTS, result.lots)
        self._save(REASSIGN_LOGS, log + [result.entry])
        logger.info(
            "lots_reassigned",
            extra={
                "entry_id": result.entry.entry_id,
                "from_operator": from_operator,
                "to_operator": to_operator,
                "changed_count": len(result.changed_ids),
                "created_count": len(result.created_ids),
            },
        )
        return outcome

    def history(self, operator: str | None = None) -> list[ReassignmentLogEntry]:
        """Log entries newest first, optionally those touching ``operator``."""
        entries = self._load(REASSIGN_LOGS, ReassignmentLogEntry)
        if operator is not None:
            entries = [
                e for e in entries if operator in (e.from_operator, e.to_operator)
            ]
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)
