"""
kapan_services.plant -- Central wiring of every workflow service.

Responsibility:
    Builds each service over one shared store, settings object, clock and
    id factory, so a caller (a UI handler, a script, a test) constructs
    the plant once and never wires services by hand.

Architecture position:
    Services -- composition root.

Usage:
    plant = KapanPlant.from_settings(MemoryCollectionStore())
    plant.stages.create_laser_lot("77", "10", 3, machine="M1")
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from kapan_config import get_active_settings
from kapan_config.schema import PlantSettings
from kapan_engines.cascade import CollectionRegistry
from kapan_kernel.domain.clock import Clock, SystemClock
from kapan_kernel.store import CollectionStore
from kapan_services._base import default_id_factory
from kapan_services.box_sorting_service import BoxSortingService
from kapan_services.deletion_service import KapanDeletionService
from kapan_services.finishing_service import FinishingService
from kapan_services.lookup import LookupService
from kapan_services.reassignment_service import ReassignmentService
from kapan_services.single_packet_service import SinglePacketService
from kapan_services.stage_service import StageService
from kapan_services.verification_service import VerificationService


class KapanPlant:
    """One instance of every service, sharing store, settings and clock."""

    def __init__(
        self,
        store: CollectionStore,
        settings: PlantSettings,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
        registry: CollectionRegistry | None = None,
    ):
        clock = clock or SystemClock()
        id_factory = id_factory or default_id_factory
        args = (store, settings, clock, id_factory)

        self.store = store
        self.settings = settings
        self.clock = clock
        self.stages = StageService(*args)
        self.reassignment = ReassignmentService(*args)
        self.finishing = FinishingService(*args)
        self.single_packets = SinglePacketService(*args)
        self.verification = VerificationService(*args)
        self.box_sorting = BoxSortingService(*args)
        self.lookup = LookupService(*args)
        self.deletion = KapanDeletionService(store, registry)

    @classmethod
    def from_settings(
        cls,
        store: CollectionStore,
        settings_path: Path | str | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> KapanPlant:
        return cls(store, get_active_settings(settings_path), clock, id_factory)
