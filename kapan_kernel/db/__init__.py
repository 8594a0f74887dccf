"""Database layer - engine, declarative base and the collection-slot model."""

from kapan_kernel.db.base import Base
from kapan_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from kapan_kernel.db.models import CollectionSlot

__all__ = [
    "Base",
    "CollectionSlot",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
]
