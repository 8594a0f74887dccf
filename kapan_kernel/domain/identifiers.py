"""
Identifiers -- parsed scan values and identifier ordering.

Responsibility:
    Immutable value types produced by the barcode parser (lot barcodes,
    packet barcodes, delimited records) and the natural sort key used
    everywhere an identifier list is ordered.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Kapan ids and lot/packet numbers are kept exactly as scanned
      (numeric strings, leading zeros preserved).
    - ``natural_key`` orders digit runs numerically, so "9" < "10" and
      "77-9" < "77-10".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

_DIGIT_RUN = re.compile(r"(\d+)")


def natural_key(value: str) -> tuple:
    """Sort key that compares digit runs as integers.

    ``re.split`` with a capturing group alternates text / digits, so text
    always sits at even positions and integers at odd positions; tuples of
    different identifiers therefore never compare str with int.
    """
    parts = _DIGIT_RUN.split(str(value))
    return tuple(int(p) if i % 2 else p for i, p in enumerate(parts))


def strip_reissue_marker(barcode: str) -> str:
    """Drop a leading re-issue marker ``R``/``r`` from a trimmed barcode."""
    trimmed = barcode.strip()
    if trimmed[:1].upper() == "R":
        return trimmed[1:]
    return trimmed


@dataclass(frozen=True)
class LotIdentifier:
    """A scanned ``kapan-BUNCH-lot`` barcode."""

    kapan_id: str
    bunch_code: str
    lot_number: str

    @property
    def barcode(self) -> str:
        return f"{self.kapan_id}-{self.bunch_code}-{self.lot_number}"


@dataclass(frozen=True)
class PacketBarcode:
    """
    An individually barcoded packet.

    ``key`` is the re-issue-insensitive identity used for matching:
    ``R77-185-D`` and ``77-185-D`` share the key ``77-185-D``.
    """

    kapan_id: str
    packet_number: str
    suffix: str | None
    full_barcode: str
    is_reissue: bool = False

    @property
    def key(self) -> str:
        base = f"{self.kapan_id}-{self.packet_number}"
        return f"{base}-{self.suffix}" if self.suffix else base

    def to_dict(self) -> dict[str, Any]:
        return {
            "kapan_id": self.kapan_id,
            "packet_number": self.packet_number,
            "suffix": self.suffix,
            "full_barcode": self.full_barcode,
            "is_reissue": self.is_reissue,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PacketBarcode:
        return cls(
            kapan_id=str(data["kapan_id"]),
            packet_number=str(data["packet_number"]),
            suffix=data.get("suffix") or None,
            full_barcode=data["full_barcode"],
            is_reissue=bool(data.get("is_reissue", False)),
        )


@dataclass(frozen=True)
class DelimitedRecord:
    """
    Fields extracted from one delimited row.

    ``values`` maps configured field names to typed values (``str``,
    ``int`` or ``Decimal``); ``columns`` keeps every trimmed column.
    """

    raw: str
    delimiter: str
    columns: tuple[str, ...]
    values: dict[str, str | int | Decimal] = field(default_factory=dict)

    def __getitem__(self, name: str) -> str | int | Decimal:
        return self.values[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)
