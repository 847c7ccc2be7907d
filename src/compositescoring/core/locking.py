"""Per-applicant mutual exclusion."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterator

from ..errors import LockTimeoutError, OperationCancelledError

DEFAULT_LOCK_TIMEOUT = 5.0
_CANCEL_POLL_INTERVAL = 0.05


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ApplicantLock:
    """In-process lock registry keyed by applicant id.

    Entries are created on first use and dropped once no thread holds or
    waits for them. Only threads of this process are serialized; several
    service instances sharing one database each keep their own registry.
    """

    def __init__(self, *, default_timeout: float | None = None) -> None:
        self._default_timeout = (
            DEFAULT_LOCK_TIMEOUT if default_timeout is None else default_timeout
        )
        self._guard = threading.Lock()
        self._entries: dict[int, _LockEntry] = {}

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    @contextmanager
    def acquire(
        self,
        applicant_id: int,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[None]:
        """Hold the applicant's lock for the duration of the block.

        Raises LockTimeoutError when ``timeout`` seconds pass without the
        lock, and OperationCancelledError when ``cancel`` is set first.
        """
        wait = self._default_timeout if timeout is None else max(0.0, timeout)
        entry = self._checkout(applicant_id)
        try:
            self._wait_for(entry.lock, applicant_id, wait, cancel)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(applicant_id, entry)

    def is_locked(self, applicant_id: int) -> bool:
        with self._guard:
            entry = self._entries.get(applicant_id)
            return entry is not None and entry.lock.locked()

    def tracked(self) -> int:
        """Number of applicants with a live lock entry."""
        with self._guard:
            return len(self._entries)

    def _checkout(self, applicant_id: int) -> _LockEntry:
        with self._guard:
            entry = self._entries.get(applicant_id)
            if entry is None:
                entry = _LockEntry()
                self._entries[applicant_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, applicant_id: int, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(applicant_id) is entry:
                del self._entries[applicant_id]

    @staticmethod
    def _wait_for(
        lock: threading.Lock,
        applicant_id: int,
        wait: float,
        cancel: threading.Event | None,
    ) -> None:
        if cancel is None:
            if lock.acquire(timeout=wait):
                return
            raise LockTimeoutError(applicant_id, wait)

        deadline = time.monotonic() + wait
        while True:
            if cancel.is_set():
                raise OperationCancelledError(applicant_id)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(applicant_id, wait)
            if lock.acquire(timeout=min(remaining, _CANCEL_POLL_INTERVAL)):
                if cancel.is_set():
                    lock.release()
                    raise OperationCancelledError(applicant_id)
                return
