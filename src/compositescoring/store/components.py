"""Latest component value per applicant and component key."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from ..schemas import ComponentRecord


@runtime_checkable
class ComponentStore(Protocol):
    """Storage contract for component records.

    Each upsert replaces the previous record for the same key. Callers that
    need history keep it elsewhere.
    """

    def upsert(self, applicant_id: int, key: str, record: ComponentRecord) -> None:
        """Store ``record`` as the current value of ``key``."""

    def get_all(self, applicant_id: int) -> dict[str, ComponentRecord]:
        """Return a copy of every stored record for the applicant."""

    def applicant_ids(self) -> list[int]:
        """Return the ids of every applicant with at least one record."""


class InMemoryComponentStore:
    """Dictionary-backed store; safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, dict[str, ComponentRecord]] = {}

    def upsert(self, applicant_id: int, key: str, record: ComponentRecord) -> None:
        stored = record.model_copy(deep=True)
        with self._lock:
            self._records.setdefault(applicant_id, {})[key] = stored

    def get_all(self, applicant_id: int) -> dict[str, ComponentRecord]:
        with self._lock:
            current = dict(self._records.get(applicant_id, {}))
        return {key: record.model_copy(deep=True) for key, record in current.items()}

    def applicant_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._records)
