"""
kapan_services.report_export -- Render verification results for download.

Gap reports become CSV with the configured headers plus a ``Status``
column; manifest results become the plain-text verification report.
Rendering is pure; ``write_report`` is the only function touching disk.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from pathlib import Path

from kapan_engines.reconciliation import GapReport, GapStatus, ManifestResult
from kapan_kernel.logging_config import get_logger

logger = get_logger("services.report_export")

STATUS_LABELS: dict[GapStatus, str] = {
    GapStatus.VALID: "OK",
    GapStatus.MISSING: "MISSING",
    GapStatus.JUNK: "JUNK",
}


def gap_report_csv(report: GapReport, headers: Sequence[str]) -> str:
    """CSV text: one row per report row, ``headers`` then ``Status``."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([*headers, "Status"])
    width = len(headers) - 1
    for row in report.rows:
        data = list(row.data[:width]) + [""] * (width - len(row.data))
        writer.writerow([row.label, *data, STATUS_LABELS[row.status]])
    return buffer.getvalue()


def manifest_report_text(result: ManifestResult, title: str = "PACKET VERIFICATION REPORT") -> str:
    lines = [
        f"--- {title} ---",
        f"Matched: {len(result.matched)}",
        f"Missing: {len(result.missing)}",
        f"Extra: {len(result.extra)}",
        "",
        f"--- MISSING ({len(result.missing)}) ---",
        *result.missing,
        "",
        f"--- EXTRA SCANNED ({len(result.extra)}) ---",
        *result.extra,
    ]
    return "\n".join(lines) + "\n"


def write_report(path: Path | str, content: str) -> Path:
    target = Path(path)
    target.write_text(content, encoding="utf-8")
    logger.info("report_written", extra={"path": str(target), "bytes": len(content)})
    return target
