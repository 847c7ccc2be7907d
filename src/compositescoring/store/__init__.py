"""Component and snapshot persistence."""

from __future__ import annotations

from .components import ComponentStore, InMemoryComponentStore
from .snapshots import CompositeSnapshotStore, InMemorySnapshotStore
from .sql import Database, SqlComponentStore, SqlSnapshotStore

__all__ = [
    "ComponentStore",
    "CompositeSnapshotStore",
    "Database",
    "InMemoryComponentStore",
    "InMemorySnapshotStore",
    "SqlComponentStore",
    "SqlSnapshotStore",
]
