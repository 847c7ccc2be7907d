"""Error taxonomy for the reconciliation engine."""

from __future__ import annotations

from typing import Any


class ReconciliationError(Exception):
    """Base class for every error raised by the engine."""

    retryable: bool = False


class ComponentValidationError(ReconciliationError, ValueError):
    """Raised when an update is rejected before anything is stored."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        message = super().__str__()
        if not self.errors:
            return message
        return f"{message}: {self.errors}"


class UnknownComponentError(ComponentValidationError):
    """Raised for component keys the engine does not recognise."""

    def __init__(self, key: Any):
        super().__init__(f"Unknown component key: {key!r}")
        self.key = key


class ScoringConfigError(ReconciliationError, ValueError):
    """Raised when weights or bands cannot be sanitized."""


class LockTimeoutError(ReconciliationError, TimeoutError):
    """Raised when the applicant lock is not acquired in time."""

    retryable = True

    def __init__(self, applicant_id: int, timeout: float):
        super().__init__(
            f"Timed out after {timeout:.2f}s waiting for applicant {applicant_id}"
        )
        self.applicant_id = applicant_id
        self.timeout = timeout


class OperationCancelledError(ReconciliationError):
    """Raised when a caller cancels while waiting for the applicant lock."""

    def __init__(self, applicant_id: int):
        super().__init__(f"Cancelled while waiting for applicant {applicant_id}")
        self.applicant_id = applicant_id


class StoreError(ReconciliationError):
    """Raised when a persistence backend fails."""

    retryable = True

    def __init__(self, message: str, *, stage: str):
        super().__init__(message)
        self.stage = stage


__all__ = [
    "ReconciliationError",
    "ComponentValidationError",
    "UnknownComponentError",
    "ScoringConfigError",
    "LockTimeoutError",
    "OperationCancelledError",
    "StoreError",
]
