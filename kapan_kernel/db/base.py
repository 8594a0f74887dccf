"""
Module: kapan_kernel.db.base
Responsibility: Declarative base for the collection-slot ORM model.
Architecture position: Kernel > DB.  Lowest-level import target within the
    db package.  MUST NOT import from domain/, store.py or outer layers.

Invariants enforced:
    - Timestamps are timezone-aware.
    - JSON payload columns use the generic ``JSON`` type so SQLite and
      PostgreSQL both work.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    The type annotation map keeps column types consistent: ``dict``
    payloads map to JSON and datetimes are always timezone-aware.
    """

    type_annotation_map = {
        dict[str, Any]: JSON,
        datetime: DateTime(timezone=True),
    }
