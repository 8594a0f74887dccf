"""
kapan_services.stage_service -- Laser and sarin lot workflows.

Responsibility:
    Lot entry (with scanned packets for laser), chalu progress and return
    for the two cutting stages.  Each call loads the stage collection,
    runs the lifecycle engine, and writes the collection back only when
    the engine accepted the change.

Architecture position:
    Services -- imperative shell over ``kapan_engines.lifecycle`` and
    ``kapan_engines.parser``.

Invariants enforced:
    - Stage prerequisites come from ``PlantSettings`` (by default sarin
      needs a returned laser lot with the same kapan and lot number).
    - Laser packet scans: no duplicate barcodes, scanned count equals the
      declared packet count, foreign-kapan packets need confirmation.
    - A rejected outcome never writes to the store.

Failure modes (returned as ``Outcome.reject``):
    - FieldValueError (non-numeric kapan), MissingOperatorError
    - DuplicateLotError, PrerequisiteNotReturnedError
    - BarcodeFormatError, DuplicateScanError, KapanMismatchError,
      QuantityOutOfRangeError (packet scans)
    - RecordNotFoundError, LotAlreadyReturnedError

Usage:
    service = StageService(store, get_active_settings(), clock)
    outcome = service.create_laser_lot("77", "10", 3, machine="M1",
                                       packet_barcodes=["R77-1-A", "R77-2-A", "R77-3-A"])
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from kapan_engines.lifecycle import (
    adjust_progress,
    create_lot,
    record_progress,
    return_lot,
)
from kapan_engines.parser import PacketShape, parse_packet_barcode
from kapan_kernel.domain.identifiers import PacketBarcode, natural_key
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import LASER_LOTS, SARIN_LOTS, LotRecord, Stage
from kapan_kernel.exceptions import (
    DuplicateScanError,
    KapanMismatchError,
    MissingOperatorError,
    QuantityOutOfRangeError,
    RecordNotFoundError,
)
from kapan_kernel.logging_config import LogContext, get_logger
from kapan_services._base import CollectionService, kapan_id_error

logger = get_logger("services.stage")

CUTTING_STAGES: dict[Stage, str] = {
    Stage.LASER: LASER_LOTS,
    Stage.SARIN: SARIN_LOTS,
}


class StageService(CollectionService):
    """
    Cutting-stage lot workflows.

    Contract:
        Every mutating method returns ``Outcome[LotRecord]`` carrying the
        stored record, or the guard error that prevented the change.

    Non-goals:
        - Finishing and single-packet stages (see their own services).
    """

    def _collection(self, stage: Stage) -> str:
        try:
            return CUTTING_STAGES[stage]
        except KeyError:
            raise ValueError(f"{stage.value} is not a cutting stage") from None

    def lots(self, stage: Stage) -> list[LotRecord]:
        return self._load(self._collection(stage), LotRecord)

    def find_lots(
        self,
        stage: Stage,
        kapan_id: str | None = None,
        lot_number: str | None = None,
        include_returned: bool = True,
    ) -> list[LotRecord]:
        """Matching lots, newest entry first."""
        found = [
            l
            for l in self.lots(stage)
            if (kapan_id is None or l.kapan_id == kapan_id)
            and (lot_number is None or l.lot_number == lot_number)
            and (include_returned or not l.is_returned)
        ]
        return sorted(found, key=lambda l: l.entry_timestamp, reverse=True)

    def running_lots(self, stage: Stage) -> list[LotRecord]:
        """Chalu lots ordered by kapan then lot number."""
        running = [l for l in self.lots(stage) if not l.is_returned]
        return sorted(running, key=lambda l: (natural_key(l.kapan_id), natural_key(l.lot_number)))

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def _create(self, draft: LotRecord, warnings: tuple[str, ...] = ()) -> Outcome[LotRecord]:
        collection = self._collection(draft.stage)
        error = kapan_id_error(draft.kapan_id)
        if error is not None:
            return Outcome.reject(error)

        prerequisite = self._settings.prerequisite_for(draft.stage)
        upstream: list[LotRecord] = []
        if prerequisite is not None:
            upstream = self.lots(prerequisite)

        existing = self.lots(draft.stage)
        outcome = create_lot(existing, draft, prerequisite, upstream)
        if not outcome.ok:
            logger.info(
                "lot_rejected",
                extra={
                    "stage": draft.stage.value,
                    "kapan_id": draft.kapan_id,
                    "lot_number": draft.lot_number,
                    "code": outcome.code,
                },
            )
            return outcome

        lot = outcome.value
        self._save(collection, existing + [lot])
        self._ensure_kapan(lot.kapan_id)
        logger.info(
            "lot_created",
            extra={
                "stage": lot.stage.value,
                "record_id": lot.record_id,
                "kapan_id": lot.kapan_id,
                "lot_number": lot.lot_number,
                "quantity": lot.quantity,
            },
        )
        return Outcome.accept(lot, warnings=outcome.warnings + warnings)

    def scan_laser_packets(
        self,
        kapan_id: str,
        barcodes: Sequence[str],
        confirm_kapan_mismatch: bool = False,
    ) -> Outcome[tuple[PacketBarcode, ...]]:
        """Parse and vet the packet barcodes scanned for one laser lot."""
        packets: list[PacketBarcode] = []
        seen: set[str] = set()
        warnings: list[str] = []
        for raw in barcodes:
            parsed = parse_packet_barcode(raw, PacketShape.LASER_PACKET)
            if not parsed.ok:
                return Outcome.reject(parsed.error)
            packet = parsed.value
            if packet.full_barcode in seen:
                return Outcome.reject(DuplicateScanError(packet.full_barcode))
            if packet.kapan_id != kapan_id:
                if not confirm_kapan_mismatch:
                    return Outcome.reject(
                        KapanMismatchError(packet.full_barcode, kapan_id, packet.kapan_id)
                    )
                warnings.append(
                    f"Packet {packet.full_barcode} belongs to kapan {packet.kapan_id}, not {kapan_id}"
                )
            seen.add(packet.full_barcode)
            packets.append(packet)
        return Outcome.accept(tuple(packets), warnings=tuple(warnings))

    def create_laser_lot(
        self,
        kapan_id: str,
        lot_number: str,
        packet_count: int,
        machine: str,
        tension_type: str | None = None,
        packet_barcodes: Sequence[str] = (),
        confirm_kapan_mismatch: bool = False,
    ) -> Outcome[LotRecord]:
        """
        Laser lot entry.

        When ``packet_barcodes`` are given their count must equal
        ``packet_count``.
        """
        kapan_id = (kapan_id or "").strip()
        lot_number = (lot_number or "").strip()
        packets: tuple[PacketBarcode, ...] = ()
        warnings: tuple[str, ...] = ()
        if packet_barcodes:
            scanned = self.scan_laser_packets(kapan_id, packet_barcodes, confirm_kapan_mismatch)
            if not scanned.ok:
                return Outcome.reject(scanned.error)
            packets, warnings = scanned.value, scanned.warnings
            if len(packets) != packet_count:
                bound = "upper" if len(packets) > packet_count else "lower"
                return Outcome.reject(
                    QuantityOutOfRangeError("scanned_packets", len(packets), bound, packet_count)
                )

        with LogContext.bind(kapan_id=kapan_id, stage=Stage.LASER.value):
            return self._create(
                LotRecord(
                    record_id=self._new_id(),
                    stage=Stage.LASER,
                    kapan_id=kapan_id,
                    lot_number=lot_number,
                    quantity=packet_count,
                    operator="",
                    machine=machine,
                    entry_timestamp=self._now(),
                    packets=packets,
                    attributes={"tension_type": tension_type} if tension_type else {},
                ),
                warnings,
            )

    def create_sarin_lot(
        self,
        kapan_id: str,
        lot_number: str,
        operator: str,
        machine: str,
        main_packet_count: int,
        packet_count: int,
        jiram_count: int = 0,
        sender_name: str | None = None,
    ) -> Outcome[LotRecord]:
        """Sarin lot entry; requires a returned laser lot by default."""
        if not (operator or "").strip():
            return Outcome.reject(MissingOperatorError("operator"))
        if jiram_count < 0:
            return Outcome.reject(QuantityOutOfRangeError("jiram_count", jiram_count, "lower", 0))
        if main_packet_count < 0:
            return Outcome.reject(
                QuantityOutOfRangeError("main_packet_count", main_packet_count, "lower", 0)
            )
        kapan_id = (kapan_id or "").strip()
        with LogContext.bind(kapan_id=kapan_id, stage=Stage.SARIN.value):
            return self._create(
                LotRecord(
                    record_id=self._new_id(),
                    stage=Stage.SARIN,
                    kapan_id=kapan_id,
                    lot_number=(lot_number or "").strip(),
                    quantity=packet_count,
                    operator=operator.strip(),
                    machine=machine,
                    main_packet_count=main_packet_count,
                    jiram_count=jiram_count,
                    entry_timestamp=self._now(),
                    attributes={"sender_name": sender_name} if sender_name else {},
                )
            )

    # ------------------------------------------------------------------
    # Transitions on an existing lot
    # ------------------------------------------------------------------

    def _update(self, stage: Stage, record_id: str, transition) -> Outcome[LotRecord]:
        collection = self._collection(stage)
        lots = self.lots(stage)
        index = next((i for i, l in enumerate(lots) if l.record_id == record_id), None)
        if index is None:
            return Outcome.reject(RecordNotFoundError(collection, record_id))
        outcome = transition(lots[index])
        if not outcome.ok:
            logger.info(
                "lot_transition_rejected",
                extra={"stage": stage.value, "record_id": record_id, "code": outcome.code},
            )
            return outcome
        lots[index] = outcome.value
        self._save(collection, lots)
        return outcome

    def record_progress(self, stage: Stage, record_id: str, completed: int) -> Outcome[LotRecord]:
        return self._update(stage, record_id, lambda lot: record_progress(lot, completed))

    def adjust_progress(self, stage: Stage, record_id: str, delta: int) -> Outcome[LotRecord]:
        return self._update(stage, record_id, lambda lot: adjust_progress(lot, delta))

    def return_lot(self, stage: Stage, record_id: str, returned_by: str) -> Outcome[LotRecord]:
        outcome = self._update(
            stage, record_id, lambda lot: return_lot(lot, returned_by, self._now())
        )
        if outcome.ok:
            logger.info(
                "lot_returned",
                extra={
                    "stage": stage.value,
                    "record_id": record_id,
                    "kapan_id": outcome.value.kapan_id,
                    "lot_number": outcome.value.lot_number,
                    "returned_by": outcome.value.returned_by,
                },
            )
        return outcome

    def return_by_lot(
        self, stage: Stage, kapan_id: str, lot_number: str, returned_by: str
    ) -> Outcome[LotRecord]:
        """Return the running lot addressed by kapan and lot number."""
        running = self.find_lots(stage, kapan_id, lot_number, include_returned=False)
        if not running:
            return Outcome.reject(
                RecordNotFoundError(self._collection(stage), f"{kapan_id}-{lot_number}")
            )
        return self.return_lot(stage, running[0].record_id, returned_by)

    def update_machine(self, stage: Stage, record_id: str, machine: str) -> Outcome[LotRecord]:
        """Reassign a running lot to another machine."""
        return self._update(
            stage, record_id, lambda lot: Outcome.accept(replace(lot, machine=machine))
        )
