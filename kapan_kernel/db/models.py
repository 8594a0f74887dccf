"""
Module: kapan_kernel.db.models
Responsibility: ORM model for one named collection slot.
Architecture position: Kernel > DB.  Imports only db/base.py.

Invariants enforced:
    - One row per collection name (the primary key).
    - ``records`` always holds the WHOLE collection as a JSON list; there
      is no per-record addressing.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kapan_kernel.db.base import Base


class CollectionSlot(Base):
    """A named slot in the key-value store."""

    __tablename__ = "collection_slots"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    records: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<CollectionSlot {self.name} ({self.record_count} records)>"
