"""Core scoring engine components."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .engine import FORMULA_VERSION, RecomputeEngine, grade_for
from .locking import DEFAULT_LOCK_TIMEOUT, ApplicantLock

__all__ = [
    "ApplicantLock",
    "DEFAULT_LOCK_TIMEOUT",
    "FORMULA_VERSION",
    "RecomputeEngine",
    "grade_for",
]
