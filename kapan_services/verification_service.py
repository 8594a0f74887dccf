"""
kapan_services.verification_service -- Gap checks, manifest scans and jiram verification.

Responsibility:
    Runs the reconciliation engines for the verification screens:
    serial gap-fill of pasted sheets, scan-against-manifest sessions,
    reference list comparison, and jiram packet scanning with the
    kapan-wise expected/scanned summary.

Architecture position:
    Services -- imperative shell over ``kapan_engines.reconciliation``.
    Gap checks and manifest sessions are stateless; jiram scans persist in
    ``jiram_scans``.

Invariants enforced:
    - A manifest must be locked (non-empty) before scanning starts.
    - Within a session each identifier is scanned at most once.
    - A jiram barcode is recorded at most once; a scan for a kapan with no
      expected jiram is kept with a warning.
"""

from __future__ import annotations

from kapan_engines.parser import PacketShape, parse_packet_barcode
from kapan_engines.reconciliation import (
    GapReport,
    GroupReconciliation,
    ManifestResult,
    ScanSession,
    check_gaps,
    compare_lists,
    parse_manifest,
    reconcile_quantities,
    sum_by_key,
)
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.domain.records import JIRAM_SCANS, SARIN_LOTS, JiramScan, LotRecord
from kapan_kernel.exceptions import (
    DuplicateScanError,
    EmptySelectionError,
    RecordNotFoundError,
)
from kapan_kernel.logging_config import LogContext, get_logger
from kapan_services._base import CollectionService

logger = get_logger("services.verification")


class VerificationService(CollectionService):
    """
    Verification workflows.

    Contract:
        Every operation returns an ``Outcome``; only jiram scans write to
        the store.
    """

    # ------------------------------------------------------------------
    # Gap check
    # ------------------------------------------------------------------

    def gap_check(self, text: str) -> Outcome[GapReport]:
        gap = self._settings.gap_check
        return check_gaps(text, gap.delimiters, gap.data_columns, gap.serial_limit)

    # ------------------------------------------------------------------
    # Manifest sessions
    # ------------------------------------------------------------------

    def start_session(self, manifest_text: str) -> Outcome[ScanSession]:
        """Lock a pasted manifest; scanning cannot start on an empty one."""
        expected = parse_manifest(manifest_text)
        if not expected:
            return Outcome.reject(EmptySelectionError("manifest"))
        session = ScanSession.lock(expected)
        logger.info("manifest_locked", extra={"expected": len(session.expected)})
        return Outcome.accept(session)

    def scan(self, session: ScanSession, raw: str) -> Outcome[ScanSession]:
        return session.scan(raw)

    def finish_session(self, session: ScanSession) -> ManifestResult:
        result = session.result
        logger.info(
            "manifest_verified",
            extra={
                "matched": len(result.matched),
                "missing": len(result.missing),
                "extra": len(result.extra),
            },
        )
        return result

    def compare_lists(self, reference_text: str, data_text: str) -> ManifestResult:
        return compare_lists(reference_text, data_text)

    # ------------------------------------------------------------------
    # Jiram
    # ------------------------------------------------------------------

    def jiram_scans(self) -> list[JiramScan]:
        return self._load(JIRAM_SCANS, JiramScan)

    def jiram_scans_for(self, kapan_id: str) -> list[JiramScan]:
        """Scans for one kapan, newest first."""
        scans = [s for s in self.jiram_scans() if s.kapan_id == kapan_id]
        return sorted(scans, key=lambda s: s.scanned_at, reverse=True)

    def _expected_jiram(self) -> dict[str, int]:
        return sum_by_key(
            self._load(SARIN_LOTS, LotRecord),
            key=lambda lot: lot.kapan_id,
            quantity=lambda lot: lot.jiram_count,
        )

    def scan_jiram(self, barcode: str) -> Outcome[JiramScan]:
        parsed = parse_packet_barcode(barcode, PacketShape.JIRAM_PACKET)
        if not parsed.ok:
            return Outcome.reject(parsed.error)
        packet = parsed.value

        scans = self.jiram_scans()
        if any(s.barcode == packet.full_barcode for s in scans):
            logger.info(
                "scan_rejected",
                extra={"barcode": packet.full_barcode, "reason": "duplicate"},
            )
            return Outcome.reject(DuplicateScanError(packet.full_barcode))

        warnings: tuple[str, ...] = ()
        if self._expected_jiram().get(packet.kapan_id, 0) == 0:
            warnings = (f"Kapan {packet.kapan_id} has no expected jiram packets",)

        scan = JiramScan(
            scan_id=self._new_id(),
            barcode=packet.full_barcode,
            packet_key=packet.key,
            kapan_id=packet.kapan_id,
            scanned_at=self._now(),
        )
        self._save(JIRAM_SCANS, scans + [scan])
        with LogContext.bind(kapan_id=packet.kapan_id):
            logger.info(
                "jiram_scanned",
                extra={"barcode": scan.barcode, "warned": bool(warnings)},
            )
        return Outcome.accept(scan, warnings=warnings)

    def delete_jiram_scan(self, scan_id: str) -> Outcome[JiramScan]:
        scans = self.jiram_scans()
        target = next((s for s in scans if s.scan_id == scan_id), None)
        if target is None:
            return Outcome.reject(RecordNotFoundError(JIRAM_SCANS, scan_id))
        self._save(JIRAM_SCANS, [s for s in scans if s.scan_id != scan_id])
        logger.info("jiram_scan_deleted", extra={"scan_id": scan_id, "barcode": target.barcode})
        return Outcome.accept(target)

    def jiram_summary(self) -> tuple[GroupReconciliation, ...]:
        """Kapan-wise expected (sarin jiram count) against scanned packets."""
        scanned = sum_by_key(
            self.jiram_scans(), key=lambda s: s.kapan_id, quantity=lambda s: 1
        )
        return reconcile_quantities(self._expected_jiram(), scanned)
