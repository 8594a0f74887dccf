"""
kapan_engines.reconciliation.gaps -- Serial gap check over pasted rows.

Responsibility:
    Given pasted text whose first column is a serial number, report every
    serial in ``[1, max]`` as either present (with its data columns) or
    missing (blank data, explicitly flagged), and segregate rows without a
    valid serial into a junk list with synthetic labels.

Architecture position:
    Engines -- pure reconciliation function, zero I/O.
    Uses ``kapan_engines.parser`` for delimiter handling and strict serials.

Invariants enforced:
    - Junk rows are never dropped and never counted as missing:
      ``len(junk) + len(valid) == number of input lines``.
    - A serial is ``[1-9][0-9]*``; "00", "+12" and blanks are junk.
    - The first row carrying a serial wins; later repeats are junk.
    - Rows are ordered by serial ascending, junk appended in input order
      with labels "JUNK-1", "JUNK-2", ...
    - Serials above ``serial_limit`` are junk, so one typo row cannot expand
      the report into millions of missing rows.
    - Idempotent: the same text always yields the same report.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from kapan_engines.parser import parse_serial, split_row
from kapan_engines.tracer import traced_engine
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.gaps")

JUNK_LABEL_PREFIX = "JUNK-"
DEFAULT_SERIAL_LIMIT = 100_000


class GapStatus(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    JUNK = "junk"


@dataclass(frozen=True)
class GapRow:
    """One report row; ``label`` is the serial as text or a junk label."""

    label: str
    status: GapStatus
    data: tuple[str, ...]
    serial: int | None = None
    raw: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class GapReport:
    rows: tuple[GapRow, ...]
    max_serial: int
    input_lines: int

    @property
    def valid(self) -> tuple[GapRow, ...]:
        return tuple(r for r in self.rows if r.status == GapStatus.VALID)

    @property
    def missing(self) -> tuple[GapRow, ...]:
        return tuple(r for r in self.rows if r.status == GapStatus.MISSING)

    @property
    def junk(self) -> tuple[GapRow, ...]:
        return tuple(r for r in self.rows if r.status == GapStatus.JUNK)

    @property
    def missing_serials(self) -> tuple[int, ...]:
        return tuple(r.serial for r in self.missing)  # type: ignore[misc]


def split_pasted_lines(text: str) -> list[str]:
    """Outer whitespace removed, then one entry per line ("\\r\\n" tolerated)."""
    stripped = (text or "").strip()
    if not stripped:
        return []
    return [line.rstrip("\r") for line in stripped.split("\n")]


def _fit(columns: tuple[str, ...], width: int) -> tuple[str, ...]:
    data = columns[:width]
    return data + ("",) * (width - len(data))


@traced_engine(
    "gap_check",
    "1.0",
    fingerprint_fields=("text", "delimiters", "data_columns", "serial_limit"),
)
def check_gaps(
    text: str,
    delimiters: tuple[str, ...] = ("\t", "|"),
    data_columns: int = 6,
    serial_limit: int = DEFAULT_SERIAL_LIMIT,
) -> Outcome[GapReport]:
    """
    Gap-fill pasted rows by serial.

    Args:
        text: Pasted block, one row per line, serial in the first column.
        delimiters: Accepted column delimiters; a row mixing them is junk.
        data_columns: Width of the data part kept after the serial.
        serial_limit: Highest accepted serial; larger ones are junk.
    """
    lines = split_pasted_lines(text)
    by_serial: dict[int, GapRow] = {}
    junk: list[GapRow] = []

    def _junk(line: str, columns: tuple[str, ...], reason: str) -> None:
        junk.append(
            GapRow(
                label=f"{JUNK_LABEL_PREFIX}{len(junk) + 1}",
                status=GapStatus.JUNK,
                data=_fit(columns, data_columns),
                raw=line,
                reason=reason,
            )
        )

    for line in lines:
        split = split_row(line, delimiters)
        if not split.ok:
            _junk(line, (), split.error.reason)
            continue
        _, columns = split.value
        serial = parse_serial(columns[0])
        if serial is None:
            _junk(line, columns[1:], f"invalid serial {columns[0]!r}")
            continue
        if serial > serial_limit:
            _junk(line, columns[1:], f"serial above limit {serial_limit}")
            continue
        if serial in by_serial:
            _junk(line, columns[1:], f"repeated serial {serial}")
            continue
        by_serial[serial] = GapRow(
            label=str(serial),
            status=GapStatus.VALID,
            data=_fit(columns[1:], data_columns),
            serial=serial,
            raw=line,
        )

    max_serial = max(by_serial, default=0)
    rows: list[GapRow] = []
    for serial in range(1, max_serial + 1):
        row = by_serial.get(serial)
        if row is None:
            row = GapRow(
                label=str(serial),
                status=GapStatus.MISSING,
                data=("",) * data_columns,
                serial=serial,
            )
        rows.append(row)
    rows.extend(junk)

    warnings: tuple[str, ...] = ()
    if max_serial == 0:
        warnings = ("No valid serial numbers found",)

    report = GapReport(rows=tuple(rows), max_serial=max_serial, input_lines=len(lines))
    logger.info(
        "gap_check_completed",
        extra={
            "input_lines": len(lines),
            "max_serial": max_serial,
            "missing": max_serial - len(by_serial),
            "junk": len(junk),
        },
    )
    return Outcome.accept(report, warnings=warnings)
