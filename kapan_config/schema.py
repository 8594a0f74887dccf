"""
PlantSettings schema.

The typed, frozen form of one plant configuration set.  YAML files are
parsed into these types by ``kapan_config.loader``; engine-facing value
types (``DelimitedLayout``, ``RateTable``, ``BoxRange``) are reused
directly so services can hand them to engines unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from kapan_engines.allocation import RateTable
from kapan_engines.parser import DelimitedLayout
from kapan_engines.sorting import BoxRange
from kapan_kernel.domain.records import Stage


@dataclass(frozen=True)
class StagePolicy:
    """A stage and the upstream stage whose lot must be returned first."""

    stage: Stage
    prerequisite: Stage | None = None


@dataclass(frozen=True)
class FlatRates:
    finishing: Decimal = Decimal("0")
    teching: Decimal = Decimal("0")


@dataclass(frozen=True)
class DepartmentSettings:
    carat_threshold: Decimal
    above_threshold_name: str
    below_threshold_name: str


@dataclass(frozen=True)
class SinglePacketSettings:
    return_time_limit_minutes: int = 60
    process_types: tuple[str, ...] = ("sarin", "laser")


@dataclass(frozen=True)
class GapCheckSettings:
    """
    Report headers; the first header is the serial column.

    ``serial_limit`` is the highest serial accepted; larger ones are junk.
    """

    delimiters: tuple[str, ...]
    headers: tuple[str, ...]
    serial_limit: int = 100_000

    @property
    def data_columns(self) -> int:
        return len(self.headers) - 1


@dataclass(frozen=True)
class PlantSettings:
    """The sole runtime configuration artifact."""

    config_id: str
    version: int
    stages: tuple[StagePolicy, ...]
    layouts: dict[str, DelimitedLayout]
    rates: FlatRates
    rate_tables: dict[str, RateTable]
    departments: DepartmentSettings
    single_packet: SinglePacketSettings
    gap_check: GapCheckSettings
    box_ranges: tuple[BoxRange, ...] = ()
    checksum: str = field(default="", compare=False)

    def layout(self, name: str) -> DelimitedLayout:
        try:
            return self.layouts[name]
        except KeyError:
            raise KeyError(f"No delimited layout named {name!r}") from None

    def prerequisite_for(self, stage: Stage) -> Stage | None:
        for policy in self.stages:
            if policy.stage == stage:
                return policy.prerequisite
        return None

    def rate_table(self, name: str) -> RateTable | None:
        return self.rate_tables.get(name)
