"""
Shared plumbing for collection-backed services.

Every service reads a whole collection snapshot from the injected
``CollectionStore``, runs an engine over it, and writes the whole
collection back.  Time and new ids come from the injected clock and id
factory so engines stay pure and tests stay deterministic.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any, TypeVar
from uuid import uuid4

from kapan_config.schema import PlantSettings
from kapan_kernel.domain.clock import Clock, SystemClock
from kapan_kernel.domain.records import KAPANS, KapanEntry
from kapan_kernel.exceptions import FieldValueError
from kapan_kernel.logging_config import get_logger
from kapan_kernel.store import CollectionStore

logger = get_logger("services")

R = TypeVar("R")

_KAPAN_ID = re.compile(r"^\d+$")


def default_id_factory() -> str:
    return str(uuid4())


def kapan_id_error(kapan_id: str) -> FieldValueError | None:
    """Kapan ids are numeric strings."""
    if _KAPAN_ID.match(kapan_id or ""):
        return None
    return FieldValueError(kapan_id or "", "kapan_id", kapan_id or "", "numeric kapan id")


class CollectionService:
    """
    Base for services that own one or more store collections.

    Contract:
        Subclasses load typed records with ``_load`` and persist them with
        ``_save``; they never address a single record in the store.
    """

    def __init__(
        self,
        store: CollectionStore,
        settings: PlantSettings,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._store = store
        self._settings = settings
        self._clock = clock or SystemClock()
        self._id_factory = id_factory or default_id_factory

    @property
    def settings(self) -> PlantSettings:
        return self._settings

    def _load(self, collection: str, record_type: type[R]) -> list[R]:
        return [record_type.from_dict(data) for data in self._store.read(collection)]  # type: ignore[attr-defined]

    def _save(self, collection: str, records: Iterable[Any]) -> None:
        self._store.write(collection, [rec.to_dict() for rec in records])

    def _new_id(self) -> str:
        return self._id_factory()

    def _now(self) -> str:
        return self._clock.now_iso()

    def _ensure_kapan(self, kapan_id: str) -> bool:
        """Index ``kapan_id`` the first time any record references it."""
        kapans = self._load(KAPANS, KapanEntry)
        if any(k.kapan_id == kapan_id for k in kapans):
            return False
        kapans.append(KapanEntry(kapan_id=kapan_id, created_at=self._now()))
        self._save(KAPANS, kapans)
        logger.info("kapan_indexed", extra={"kapan_id": kapan_id})
        return True
