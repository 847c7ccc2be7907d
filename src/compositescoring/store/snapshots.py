"""Latest composite snapshot per applicant."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from ..schemas import CompositeResult


@runtime_checkable
class CompositeSnapshotStore(Protocol):
    """Persistence contract for composite snapshots; put overwrites."""

    def put(self, applicant_id: int, result: CompositeResult) -> None:
        """Replace the applicant's snapshot."""

    def get(self, applicant_id: int) -> CompositeResult | None:
        """Return the applicant's snapshot, or None when never computed."""


class InMemorySnapshotStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[int, CompositeResult] = {}

    def put(self, applicant_id: int, result: CompositeResult) -> None:
        stored = result.model_copy(deep=True)
        with self._lock:
            self._snapshots[applicant_id] = stored

    def get(self, applicant_id: int) -> CompositeResult | None:
        with self._lock:
            snapshot = self._snapshots.get(applicant_id)
        return snapshot.model_copy(deep=True) if snapshot is not None else None
