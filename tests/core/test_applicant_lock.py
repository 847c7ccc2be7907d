from __future__ import annotations

import threading

import pytest

from compositescoring.core import ApplicantLock
from compositescoring.errors import LockTimeoutError, OperationCancelledError


def hold_in_thread(lock: ApplicantLock, applicant_id: int):
    held = threading.Event()
    release = threading.Event()

    def worker() -> None:
        with lock.acquire(applicant_id):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=worker)
    thread.start()
    assert held.wait(5)
    return thread, release


def test_second_holder_times_out():
    lock = ApplicantLock()
    thread, release = hold_in_thread(lock, 11)
    try:
        with pytest.raises(LockTimeoutError) as excinfo:
            with lock.acquire(11, timeout=0.05):
                pass
    finally:
        release.set()
        thread.join()

    assert excinfo.value.retryable is True
    assert excinfo.value.applicant_id == 11


def test_different_applicants_do_not_contend():
    lock = ApplicantLock()
    thread, release = hold_in_thread(lock, 11)
    try:
        with lock.acquire(12, timeout=0.05):
            assert lock.is_locked(12)
    finally:
        release.set()
        thread.join()


def test_cancel_aborts_the_wait():
    lock = ApplicantLock()
    cancel = threading.Event()
    cancel.set()
    thread, release = hold_in_thread(lock, 11)
    try:
        with pytest.raises(OperationCancelledError):
            with lock.acquire(11, timeout=5, cancel=cancel):
                pass
    finally:
        release.set()
        thread.join()


def test_cancel_fired_while_waiting():
    lock = ApplicantLock()
    cancel = threading.Event()
    thread, release = hold_in_thread(lock, 11)
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    try:
        with pytest.raises(OperationCancelledError):
            with lock.acquire(11, timeout=5, cancel=cancel):
                pass
    finally:
        timer.cancel()
        release.set()
        thread.join()


def test_lock_is_released_on_error_and_entries_dropped():
    lock = ApplicantLock()

    with pytest.raises(RuntimeError):
        with lock.acquire(5):
            assert lock.is_locked(5)
            raise RuntimeError("boom")

    assert lock.is_locked(5) is False
    assert lock.tracked() == 0
    with lock.acquire(5, timeout=0):
        pass


def test_waiters_are_serialized():
    lock = ApplicantLock()
    active = []
    overlaps = []
    guard = threading.Lock()

    def worker() -> None:
        with lock.acquire(3):
            with guard:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(len(active))
            threading.Event().wait(0.005)
            with guard:
                active.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert lock.tracked() == 0


def test_default_timeout_override():
    assert ApplicantLock().default_timeout == 5.0
    assert ApplicantLock(default_timeout=0.5).default_timeout == 0.5
