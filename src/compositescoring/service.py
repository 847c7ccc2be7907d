"""Reconciliation service: lock, merge, compute, persist."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping

import pendulum
import structlog
from pydantic import ValidationError

from .audit import CompositeAuditLog
from .config import ScoringConfig, ScoringConfigSource
from .core import ApplicantLock, RecomputeEngine
from .errors import (
    ComponentValidationError,
    LockTimeoutError,
    OperationCancelledError,
    StoreError,
)
from .schemas import (
    ComponentRecord,
    ComponentUpdate,
    CompositeResult,
    normalize_component_key,
)
from .store import ComponentStore, CompositeSnapshotStore


def _utc_now() -> datetime:
    return pendulum.now("UTC")


class ReconciliationService:
    """Single entry point through which component values reach a snapshot.

    Every cycle holds the applicant's lock from the component write until
    the snapshot is persisted, and always recomputes from the full stored
    component set, so a concurrent update can never be lost and a failed
    cycle is repaired by the next one.
    """

    def __init__(
        self,
        *,
        components: ComponentStore,
        snapshots: CompositeSnapshotStore,
        lock: ApplicantLock,
        config_source: ScoringConfigSource,
        engine: RecomputeEngine | None = None,
        audit_log: CompositeAuditLog | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._components = components
        self._snapshots = snapshots
        self._lock = lock
        self._config_source = config_source
        self._engine = engine or RecomputeEngine()
        self._audit_log = audit_log
        self._now_provider = now_provider or _utc_now
        self._logger = structlog.get_logger(__name__)

    def update_component_and_recompute(
        self,
        applicant_id: int,
        key: str,
        update: ComponentUpdate | Mapping[str, Any],
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CompositeResult:
        applicant_id = self._validate_applicant(applicant_id)
        component = normalize_component_key(key)
        parsed = self._parse_update(update)

        with self._locked(applicant_id, timeout=timeout, cancel=cancel, trigger=component):
            record = ComponentRecord.from_update(parsed, updated_at=self._now_provider())
            self._components.upsert(applicant_id, component, record)
            return self._recompute_locked(applicant_id, trigger=component)

    def recompute_now(
        self,
        applicant_id: int,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CompositeResult:
        applicant_id = self._validate_applicant(applicant_id)
        with self._locked(applicant_id, timeout=timeout, cancel=cancel, trigger="recompute"):
            return self._recompute_locked(applicant_id, trigger="recompute")

    def get_snapshot(self, applicant_id: int) -> CompositeResult | None:
        return self._snapshots.get(self._validate_applicant(applicant_id))

    def get_components(self, applicant_id: int) -> dict[str, ComponentRecord]:
        return self._components.get_all(self._validate_applicant(applicant_id))

    def known_applicants(self) -> list[int]:
        return self._components.applicant_ids()

    def get_config(self) -> ScoringConfig:
        return self._config_source.load()

    def set_config(
        self,
        *,
        weights: Mapping[str, Any] | None = None,
        bands: Mapping[str, Any] | None = None,
        rules: Mapping[str, Any] | None = None,
    ) -> ScoringConfig:
        """Store a new config; existing snapshots change only on recompute."""
        updated = self._config_source.load().with_changes(
            weights=weights, bands=bands, rules=rules
        )
        try:
            self._config_source.save(updated)
        except OSError as exc:
            raise StoreError(f"Config write failed: {exc}", stage="config") from exc
        self._logger.info(
            "config.updated",
            weights=dict(updated.weights),
            bands=dict(updated.bands),
        )
        return updated

    @contextmanager
    def _locked(
        self,
        applicant_id: int,
        *,
        timeout: float | None,
        cancel: threading.Event | None,
        trigger: str,
    ) -> Iterator[None]:
        try:
            with self._lock.acquire(applicant_id, timeout=timeout, cancel=cancel):
                yield
        except LockTimeoutError as exc:
            self._logger.warning(
                "lock.timeout",
                applicant_id=applicant_id,
                trigger=trigger,
                timeout=exc.timeout,
            )
            raise
        except OperationCancelledError:
            self._logger.info("lock.cancelled", applicant_id=applicant_id, trigger=trigger)
            raise

    def _recompute_locked(self, applicant_id: int, *, trigger: str) -> CompositeResult:
        try:
            components = self._components.get_all(applicant_id)
            config = self._config_source.load()
            result = self._engine.compute(
                components,
                config,
                applicant_id=applicant_id,
                computed_at=self._now_provider(),
            )
            self._snapshots.put(applicant_id, result)
        except StoreError:
            if trigger != "recompute":
                self._logger.error(
                    "composite.divergence",
                    applicant_id=applicant_id,
                    component=trigger,
                    detail="component stored but snapshot not updated",
                )
            raise

        if self._audit_log is not None:
            try:
                self._audit_log.append(result, trigger=trigger)
            except OSError as exc:
                self._logger.error(
                    "audit.append_failed",
                    applicant_id=applicant_id,
                    path=str(self._audit_log.path),
                    error=str(exc),
                )

        self._logger.info(
            "composite.recomputed",
            applicant_id=applicant_id,
            trigger=trigger,
            composite=result.composite,
            grade=result.grade,
            status_flag=result.status_flag,
            present=result.present,
        )
        return result

    @staticmethod
    def _validate_applicant(applicant_id: Any) -> int:
        if isinstance(applicant_id, bool) or not isinstance(applicant_id, int):
            raise ComponentValidationError(f"Applicant id must be an integer, got {applicant_id!r}")
        if applicant_id <= 0:
            raise ComponentValidationError(f"Applicant id must be positive, got {applicant_id}")
        return applicant_id

    @staticmethod
    def _parse_update(update: ComponentUpdate | Mapping[str, Any]) -> ComponentUpdate:
        if isinstance(update, ComponentUpdate):
            return update
        if not isinstance(update, Mapping):
            raise ComponentValidationError(
                f"Component update must be a mapping, got {type(update).__name__}"
            )
        try:
            return ComponentUpdate.model_validate(dict(update))
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise ComponentValidationError("Malformed component update", errors) from exc
