"""
Configuration Loader (``kapan_config.loader``).

Responsibility
--------------
Loads a plant YAML file and parses it into the frozen
``kapan_config.schema.PlantSettings``.  Runtime callers go through
``kapan_config.get_active_settings()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Numeric settings are read as ``Decimal`` from their string form, never
  through float.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad values (negative positions, unknown stage)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from kapan_config.schema import (
    DepartmentSettings,
    FlatRates,
    GapCheckSettings,
    PlantSettings,
    SinglePacketSettings,
    StagePolicy,
)
from kapan_engines.allocation import RateBand, RateTable
from kapan_engines.parser import DelimitedLayout, FieldKind, FieldSpec
from kapan_engines.sorting import BoxRange
from kapan_kernel.domain.records import Stage


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Decimal from a YAML scalar; floats go through ``str`` first."""
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name}: {value!r} is not a decimal") from None


def parse_stage_policy(data: dict[str, Any]) -> StagePolicy:
    prerequisite = data.get("requires_returned")
    return StagePolicy(
        stage=Stage(data["stage"]),
        prerequisite=Stage(prerequisite) if prerequisite else None,
    )


def parse_field_spec(data: dict[str, Any]) -> FieldSpec:
    return FieldSpec(
        name=data["name"],
        position=int(data["position"]),
        kind=FieldKind(data.get("kind", FieldKind.TEXT.value)),
        required=bool(data.get("required", True)),
        uppercase=bool(data.get("uppercase", False)),
    )


def parse_layout(name: str, data: dict[str, Any]) -> DelimitedLayout:
    """Parse one ``layouts.<name>`` block."""
    delimiters = data["delimiters"]
    if isinstance(delimiters, str):
        delimiters = [delimiters]
    return DelimitedLayout(
        name=name,
        delimiters=tuple(delimiters),
        fields=tuple(parse_field_spec(f) for f in data.get("fields", [])),
        field_count=int(data["field_count"]) if data.get("field_count") is not None else None,
        min_fields=int(data["min_fields"]) if data.get("min_fields") is not None else None,
    )


def parse_rate_table(name: str, bands: list[dict[str, Any]]) -> RateTable:
    return RateTable(
        name=name,
        bands=tuple(
            RateBand(
                from_weight=parse_decimal(b["from"], f"{name}.from"),
                to_weight=parse_decimal(b["to"], f"{name}.to"),
                rate=parse_decimal(b["rate"], f"{name}.rate"),
            )
            for b in bands
        ),
    )


def parse_box_range(data: dict[str, Any]) -> BoxRange:
    box = BoxRange(
        label=str(data["label"]),
        from_weight=parse_decimal(data["from"], "box_ranges.from"),
        to_weight=parse_decimal(data["to"], "box_ranges.to"),
    )
    if box.from_weight > box.to_weight:
        raise ValueError(f"Box range {box.label!r} has from above to")
    return box


def parse_settings(data: dict[str, Any]) -> PlantSettings:
    """
    Parse a whole plant document.

    Postconditions:
        - Returns a ``PlantSettings`` carrying the document checksum.
    Raises:
        KeyError: a required section or key is missing.
        ValueError: a value is malformed.
    """
    rates = data.get("rates", {})
    departments = data["departments"]
    single_packet = data.get("single_packet", {})
    gap_check = data["gap_check"]

    headers = tuple(str(h) for h in gap_check["headers"])
    if len(headers) < 1:
        raise ValueError("gap_check.headers needs at least the serial header")
    serial_limit = int(gap_check.get("serial_limit", 100_000))
    if serial_limit < 1:
        raise ValueError("gap_check.serial_limit must be positive")

    return PlantSettings(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        stages=tuple(parse_stage_policy(s) for s in data.get("stages", [])),
        layouts={name: parse_layout(name, body) for name, body in data.get("layouts", {}).items()},
        rates=FlatRates(
            finishing=parse_decimal(rates.get("finishing", 0), "rates.finishing"),
            teching=parse_decimal(rates.get("teching", 0), "rates.teching"),
        ),
        rate_tables={
            name: parse_rate_table(name, bands or [])
            for name, bands in data.get("rate_bands", {}).items()
        },
        departments=DepartmentSettings(
            carat_threshold=parse_decimal(departments["carat_threshold"], "departments.carat_threshold"),
            above_threshold_name=departments["above_threshold_name"],
            below_threshold_name=departments["below_threshold_name"],
        ),
        single_packet=SinglePacketSettings(
            return_time_limit_minutes=int(single_packet.get("return_time_limit_minutes", 60)),
            process_types=tuple(single_packet.get("process_types", ("sarin", "laser"))),
        ),
        gap_check=GapCheckSettings(
            delimiters=tuple(gap_check.get("delimiters", ["\t", "|"])),
            headers=headers,
            serial_limit=serial_limit,
        ),
        box_ranges=tuple(parse_box_range(b) for b in data.get("box_ranges", [])),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> PlantSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
