"""
Collection store -- whole-collection key-value persistence.

Responsibility:
    Every entity collection is a flat list of JSON records under its own
    named slot.  Stores read and write whole collections; there is no
    per-record addressing.

Architecture position:
    Kernel > Store.  Imports db/ and exceptions only.  Services receive a
    store through their constructor; engines never see one.

Invariants enforced:
    - ``read`` returns a deep copy; mutating the returned list never
      changes stored state.
    - ``write`` replaces the slot atomically.
    - ``MirroredCollectionStore`` writes locally first.  The remote write
      is fire-and-forget: a failure is logged once, kept as
      ``last_remote_error`` and never retried or rolled back locally
      (last local write wins).

Failure modes:
    - SQLAlchemy errors from ``SqlCollectionStore`` propagate after the
      session is rolled back.
    - Remote failures in ``MirroredCollectionStore`` never propagate.
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from kapan_kernel.db.engine import session_scope
from kapan_kernel.db.models import CollectionSlot
from kapan_kernel.exceptions import RemoteWriteError
from kapan_kernel.logging_config import get_logger

logger = get_logger("store")

Record = dict[str, Any]


@runtime_checkable
class CollectionStore(Protocol):
    """Whole-collection storage keyed by slot name."""

    def read(self, name: str) -> list[Record]:
        """Return every record in the slot (empty list when absent)."""
        ...

    def write(self, name: str, records: list[Record]) -> None:
        """Replace the slot with ``records``."""
        ...

    def names(self) -> list[str]:
        """Names of the slots that currently exist."""
        ...


class MemoryCollectionStore:
    """Dict-backed store for tests and single-session use."""

    def __init__(self, initial: dict[str, list[Record]] | None = None):
        self._slots: dict[str, list[Record]] = copy.deepcopy(initial or {})

    def read(self, name: str) -> list[Record]:
        return copy.deepcopy(self._slots.get(name, []))

    def write(self, name: str, records: list[Record]) -> None:
        self._slots[name] = copy.deepcopy(list(records))

    def names(self) -> list[str]:
        return sorted(self._slots)


class SqlCollectionStore:
    """
    SQLAlchemy-backed store: one ``collection_slots`` row per collection.

    Contract:
        Uses the module-level engine from ``kapan_kernel.db.engine`` unless a
        session factory is injected.  Tables must exist (``create_tables``).
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def read(self, name: str) -> list[Record]:
        with session_scope(self._session_factory) as session:
            slot = session.get(CollectionSlot, name)
            if slot is None:
                return []
            return copy.deepcopy(list(slot.records))

    def write(self, name: str, records: list[Record]) -> None:
        payload = copy.deepcopy(list(records))
        with session_scope(self._session_factory) as session:
            slot = session.get(CollectionSlot, name)
            now = datetime.now(UTC)
            if slot is None:
                session.add(
                    CollectionSlot(
                        name=name,
                        records=payload,
                        record_count=len(payload),
                        updated_at=now,
                    )
                )
            else:
                slot.records = payload
                slot.record_count = len(payload)
                slot.updated_at = now
        logger.debug(
            "collection_written",
            extra={"collection": name, "record_count": len(payload)},
        )

    def names(self) -> list[str]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(select(CollectionSlot.name).order_by(CollectionSlot.name))
            )


class MirroredCollectionStore:
    """
    Local store mirrored optimistically to a remote store.

    Guarantees:
        - Reads are served from the local store.
        - A write is visible locally before the remote write is attempted.
        - A failed remote write is surfaced once through the log and
          ``last_remote_error``; local state is kept.

    Non-goals:
        - No retry, no merge and no conflict resolution with other writers.
    """

    def __init__(self, local: CollectionStore, remote: CollectionStore):
        self._local = local
        self._remote = remote
        self.last_remote_error: RemoteWriteError | None = None

    def read(self, name: str) -> list[Record]:
        return self._local.read(name)

    def write(self, name: str, records: list[Record]) -> None:
        self._local.write(name, records)
        try:
            self._remote.write(name, records)
        except Exception as exc:
            self.last_remote_error = RemoteWriteError(name, str(exc))
            logger.warning(
                "remote_write_failed",
                extra={"collection": name, "reason": str(exc)},
            )
        else:
            self.last_remote_error = None

    def names(self) -> list[str]:
        return self._local.names()


def snapshot_all(store: CollectionStore) -> dict[str, list[Record]]:
    """JSON-serialisable backup of every slot."""
    snapshot = {name: store.read(name) for name in store.names()}
    logger.info(
        "store_snapshot_taken",
        extra={"collections": len(snapshot), "records": sum(len(v) for v in snapshot.values())},
    )
    return snapshot


def restore_all(store: CollectionStore, snapshot: dict[str, list[Record]]) -> None:
    """Replace every slot named in ``snapshot``; other slots are left alone."""
    if not isinstance(snapshot, dict):
        raise ValueError("snapshot must map collection names to record lists")
    for name, records in snapshot.items():
        if not isinstance(records, list):
            raise ValueError(f"snapshot slot {name!r} is not a list")
    for name, records in snapshot.items():
        store.write(name, records)
    logger.info("store_restored", extra={"collections": sorted(snapshot)})
