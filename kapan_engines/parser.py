"""
kapan_engines.parser -- Barcode and delimited-row parser.

Responsibility:
    Turn a raw scanned or pasted string into a typed identifier: a lot
    barcode ``kapan-BUNCH-lot``, a composite packet barcode in one of the
    configured shapes, or a delimited-field record whose field positions
    come from a ``DelimitedLayout`` supplied by the caller.

Architecture position:
    Engines -- pure parsing layer, zero I/O.
    Imports kernel domain values and exceptions only.

Invariants enforced:
    - Never raises for malformed input; every failure is an
      ``Outcome.reject`` naming the field or shape that did not parse.
    - Whitespace around the whole value and around each column is
      stripped before matching.
    - A row containing more than one of the layout's accepted delimiters
      is rejected as ambiguous; the parser never guesses.
    - A valid lot barcode yields exactly its three components; anything
      else is a ``BarcodeFormatError``, never a partial result.

Failure modes:
    - BarcodeFormatError: barcode does not match the expected shape.
    - FieldCountError: wrong number of columns for the layout.
    - MissingFieldError: a required column is absent or blank.
    - FieldValueError: a column is not a valid decimal/integer/serial.
    - AmbiguousDelimiterError: mixed delimiters in one row.

Usage:
    from kapan_engines.parser import parse_lot_barcode, parse_delimited

    lot = parse_lot_barcode("61-B-1057")
    row = parse_delimited(line, settings.layout("box_sorting"))
"""

from __future__ import annotations

import re
import string
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.identifiers import (
    DelimitedRecord,
    LotIdentifier,
    PacketBarcode,
    strip_reissue_marker,
)
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.exceptions import (
    AmbiguousDelimiterError,
    BarcodeFormatError,
    FieldCountError,
    FieldValueError,
    MissingFieldError,
)
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.parser")

LOT_BARCODE_PATTERN = re.compile(r"^(\d+)-([A-Z])-(\d+)$")
SERIAL_PATTERN = re.compile(r"^[1-9]\d*$")
_INTEGER_PATTERN = re.compile(r"^\d+$")
_LEADING_NUMBER = re.compile(r"^\d+")
_LEADING_KAPAN = re.compile(r"^(?:R)?(\d+)")


class PacketShape(str, Enum):
    """Accepted composite packet barcode shapes."""

    PACKET = "packet"  # [R]kapan-packet[-X]
    LASER_PACKET = "laser_packet"  # Rkapan-packet-suffix
    JIRAM_PACKET = "jiram_packet"  # [R]kapan-packet[-anything]


_PACKET_PATTERNS: dict[PacketShape, re.Pattern[str]] = {
    PacketShape.PACKET: re.compile(r"^(R)?(\d+)-(\d+)(?:-([A-Z]))?$"),
    PacketShape.LASER_PACKET: re.compile(r"^(R)(\d+)-(\d+)-(.+)$"),
    PacketShape.JIRAM_PACKET: re.compile(r"^(R)?(\d+)-(\d+)(?:-(.+))?$"),
}

_SHAPE_DESCRIPTIONS: dict[PacketShape, str] = {
    PacketShape.PACKET: "[R]<kapan>-<packet>[-<LETTER>]",
    PacketShape.LASER_PACKET: "R<kapan>-<packet>-<suffix>",
    PacketShape.JIRAM_PACKET: "[R]<kapan>-<packet>[-<suffix>]",
}


class FieldKind(str, Enum):
    TEXT = "text"
    DECIMAL = "decimal"
    INTEGER = "integer"
    SERIAL = "serial"  # strict positive integer, no sign or leading zero


@dataclass(frozen=True)
class FieldSpec:
    """One extracted column; ``position`` is 1-based."""

    name: str
    position: int
    kind: FieldKind = FieldKind.TEXT
    required: bool = True
    uppercase: bool = False

    def __post_init__(self) -> None:
        if self.position < 1:
            raise ValueError(f"Field {self.name!r} position must be >= 1")


@dataclass(frozen=True)
class DelimitedLayout:
    """
    Column layout for one call site.

    ``field_count`` demands an exact column count; ``min_fields`` only a
    lower bound.  When both are None the highest field position is the
    lower bound.
    """

    name: str
    delimiters: tuple[str, ...]
    fields: tuple[FieldSpec, ...]
    field_count: int | None = None
    min_fields: int | None = None

    def __post_init__(self) -> None:
        if not self.delimiters:
            raise ValueError(f"Layout {self.name!r} needs at least one delimiter")
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Layout {self.name!r} has duplicate field names")

    @property
    def required_columns(self) -> int:
        if self.field_count is not None:
            return self.field_count
        if self.min_fields is not None:
            return self.min_fields
        return max((f.position for f in self.fields if f.required), default=1)


# ---------------------------------------------------------------------------
# Barcodes
# ---------------------------------------------------------------------------


@traced_engine("barcode_parser", "1.0", fingerprint_fields=("raw",))
def parse_lot_barcode(raw: str) -> Outcome[LotIdentifier]:
    """Parse ``kapan-BUNCH-lot`` (BUNCH is a single uppercase letter)."""
    value = (raw or "").strip()
    match = LOT_BARCODE_PATTERN.match(value)
    if match is None:
        return Outcome.reject(
            BarcodeFormatError(value, "lot", "<kapan>-<LETTER>-<lot>")
        )
    kapan_id, bunch_code, lot_number = match.groups()
    return Outcome.accept(
        LotIdentifier(kapan_id=kapan_id, bunch_code=bunch_code, lot_number=lot_number)
    )


@traced_engine("barcode_parser", "1.0", fingerprint_fields=("raw", "shape"))
def parse_packet_barcode(
    raw: str, shape: PacketShape = PacketShape.PACKET
) -> Outcome[PacketBarcode]:
    """Parse a composite packet barcode in the given shape."""
    value = (raw or "").strip()
    match = _PACKET_PATTERNS[shape].match(value)
    if match is None:
        return Outcome.reject(
            BarcodeFormatError(value, shape.value, _SHAPE_DESCRIPTIONS[shape])
        )
    marker, kapan_id, packet_number, suffix = match.groups()
    return Outcome.accept(
        PacketBarcode(
            kapan_id=kapan_id,
            packet_number=packet_number,
            suffix=suffix or None,
            full_barcode=value,
            is_reissue=marker is not None,
        )
    )


def extract_kapan(barcode: str) -> str | None:
    """Leading kapan number of any packet barcode, ignoring a re-issue ``R``."""
    match = _LEADING_KAPAN.match((barcode or "").strip())
    return match.group(1) if match else None


def extract_leading_number(value: str) -> str | None:
    """Leading digit run of a manifest line or packet number."""
    match = _LEADING_NUMBER.match((value or "").strip())
    return match.group(0) if match else None


def normalize_packet_identifier(value: str) -> str:
    """Trimmed identifier without the re-issue marker."""
    return strip_reissue_marker(value or "")


def packet_key(barcode: str, shape: PacketShape = PacketShape.PACKET) -> str | None:
    """Re-issue-insensitive key of a barcode, or None when it does not parse."""
    outcome = parse_packet_barcode(barcode, shape)
    return outcome.value.key if outcome.ok else None


def parse_serial(raw: str) -> int | None:
    """Strict serial: ``[1-9][0-9]*``. ``"00"``, ``"+12"``, ``"1.0"`` are invalid."""
    value = (raw or "").strip()
    if not SERIAL_PATTERN.match(value):
        return None
    return int(value)


# ---------------------------------------------------------------------------
# Delimited rows
# ---------------------------------------------------------------------------


def _trim(raw: str, delimiters: tuple[str, ...]) -> str:
    """Strip surrounding whitespace that is not itself an accepted delimiter."""
    chars = "".join(c for c in string.whitespace if c not in delimiters)
    return (raw or "").strip(chars)


def split_row(raw: str, delimiters: tuple[str, ...]) -> Outcome[tuple[str, tuple[str, ...]]]:
    """
    Split a row on the single accepted delimiter it contains.

    Returns ``(delimiter, columns)``.  A row with none of the delimiters is
    one column; a row with two different accepted delimiters is ambiguous.
    """
    value = _trim(raw, delimiters)
    present = tuple(d for d in delimiters if d in value)
    if len(present) > 1:
        return Outcome.reject(AmbiguousDelimiterError(value, present))
    delimiter = present[0] if present else delimiters[0]
    columns = tuple(col.strip() for col in value.split(delimiter))
    return Outcome.accept((delimiter, columns))


def _convert(raw: str, spec: FieldSpec, text: str) -> Outcome[str | int | Decimal]:
    if spec.kind == FieldKind.TEXT:
        return Outcome.accept(text.upper() if spec.uppercase else text)
    if spec.kind == FieldKind.DECIMAL:
        try:
            number = Decimal(text)
        except InvalidOperation:
            number = None
        if number is None or not number.is_finite():
            return Outcome.reject(FieldValueError(raw, spec.name, text, "decimal number"))
        return Outcome.accept(number)
    if spec.kind == FieldKind.INTEGER:
        if not _INTEGER_PATTERN.match(text):
            return Outcome.reject(FieldValueError(raw, spec.name, text, "whole number"))
        return Outcome.accept(int(text))
    serial = parse_serial(text)
    if serial is None:
        return Outcome.reject(
            FieldValueError(raw, spec.name, text, "serial number (no sign or leading zero)")
        )
    return Outcome.accept(serial)


@traced_engine("delimited_parser", "1.0", fingerprint_fields=("raw", "layout"))
def parse_delimited(raw: str, layout: DelimitedLayout) -> Outcome[DelimitedRecord]:
    """Extract the layout's typed fields from one delimited row."""
    value = _trim(raw, layout.delimiters)
    split = split_row(value, layout.delimiters)
    if not split.ok:
        return Outcome.reject(split.error)
    delimiter, columns = split.value
    if value == "":
        columns = ()

    if layout.field_count is not None and len(columns) != layout.field_count:
        return Outcome.reject(
            FieldCountError(value, layout.field_count, len(columns), exact=True)
        )
    if len(columns) < layout.required_columns:
        return Outcome.reject(
            FieldCountError(value, layout.required_columns, len(columns))
        )

    values: dict[str, str | int | Decimal] = {}
    for spec in layout.fields:
        text = columns[spec.position - 1] if spec.position <= len(columns) else ""
        if text == "":
            if spec.required:
                return Outcome.reject(MissingFieldError(value, spec.name, spec.position))
            continue
        converted = _convert(value, spec, text)
        if not converted.ok:
            return Outcome.reject(converted.error)
        values[spec.name] = converted.value

    return Outcome.accept(
        DelimitedRecord(raw=value, delimiter=delimiter, columns=columns, values=values)
    )
