"""
kapan_engines.reconciliation.manifest -- Expected manifest vs scanned identifiers.

Responsibility:
    Three-way partition of an expected manifest and the identifiers actually
    scanned: matched (in both), missing (expected, not scanned) and extra
    (scanned, not expected).  ``ScanSession`` adds scan-time duplicate
    rejection on top of the partition.

Architecture position:
    Engines -- pure reconciliation functions and an immutable session value.

Invariants enforced:
    - matched, missing and extra are pairwise disjoint; matched | missing is
      the expected set and matched | extra is the scanned set.
    - Output lists are in natural order ("9" before "10").
    - A second scan of the same identifier is rejected with
      ``DuplicateScanError`` and leaves the session unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from kapan_engines.parser import extract_leading_number, normalize_packet_identifier
from kapan_engines.reconciliation.gaps import split_pasted_lines
from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.identifiers import natural_key
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.exceptions import BarcodeFormatError, DuplicateScanError
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.manifest")


@dataclass(frozen=True)
class ManifestResult:
    matched: tuple[str, ...]
    missing: tuple[str, ...]
    extra: tuple[str, ...]

    @property
    def is_complete(self) -> bool:
        return not self.missing and not self.extra


def _sorted(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(values, key=natural_key))


@traced_engine("manifest_verification", "1.0", fingerprint_fields=("expected", "scanned"))
def verify_manifest(expected: Iterable[str], scanned: Iterable[str]) -> ManifestResult:
    """Partition identifiers into matched / missing / extra."""
    expected_set = set(expected)
    scanned_set = set(scanned)
    return ManifestResult(
        matched=_sorted(expected_set & scanned_set),
        missing=_sorted(expected_set - scanned_set),
        extra=_sorted(scanned_set - expected_set),
    )


def parse_manifest(
    text: str,
    extractor: Callable[[str], str | None] = normalize_packet_identifier,
) -> tuple[str, ...]:
    """
    Identifiers of a pasted manifest, first occurrence order, no duplicates.

    Lines the extractor cannot read (None or blank) are skipped.
    """
    seen: dict[str, None] = {}
    for line in split_pasted_lines(text):
        identifier = extractor(line)
        if identifier:
            seen.setdefault(identifier, None)
    return tuple(seen)


def compare_lists(reference_text: str, data_text: str) -> ManifestResult:
    """
    Packet-number list against a data block keyed by each line's leading number.

    ``reference_text`` holds one packet number per line; in ``data_text``
    only the leading digit run of each line counts.
    """
    reference = parse_manifest(reference_text, lambda line: line.strip() or None)
    data = parse_manifest(data_text, extract_leading_number)
    return verify_manifest(reference, data)


@dataclass(frozen=True)
class ScanSession:
    """
    Locked manifest plus the scans made against it.

    Usage:
        session = ScanSession.lock(parse_manifest(pasted))
        outcome = session.scan("R77-185")
        if outcome.ok:
            session = outcome.value
    """

    expected: frozenset[str]
    scanned: tuple[str, ...] = ()
    normalizer: Callable[[str], str] = field(
        default=normalize_packet_identifier, compare=False, repr=False
    )

    @classmethod
    def lock(
        cls,
        expected: Iterable[str],
        normalizer: Callable[[str], str] = normalize_packet_identifier,
    ) -> ScanSession:
        return cls(expected=frozenset(normalizer(e) for e in expected), normalizer=normalizer)

    def scan(self, raw: str) -> Outcome[ScanSession]:
        identifier = self.normalizer(raw or "")
        if not identifier:
            return Outcome.reject(
                BarcodeFormatError(raw or "", "packet", "non-empty packet identifier")
            )
        if identifier in self.scanned:
            logger.info("scan_rejected", extra={"identifier": identifier, "reason": "duplicate"})
            return Outcome.reject(DuplicateScanError(identifier))
        warnings: tuple[str, ...] = ()
        if identifier not in self.expected:
            warnings = (f"{identifier} is not in the manifest",)
        return Outcome.accept(replace(self, scanned=self.scanned + (identifier,)), warnings=warnings)

    @property
    def result(self) -> ManifestResult:
        return verify_manifest(self.expected, self.scanned)
