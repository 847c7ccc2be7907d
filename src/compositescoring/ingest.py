"""Batch ingestion of component updates from JSONL files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pendulum
import structlog
from pydantic import ValidationError

from . import __version__
from .errors import ComponentValidationError, ReconciliationError
from .normalizers import NormalizerRegistry
from .schemas import ComponentUpdate, normalize_component_key
from .service import ReconciliationService

DEFAULT_BATCH_LOCK_TIMEOUT = 60.0


@dataclass(slots=True)
class UpdateInstruction:
    """One parsed line of an update file."""

    line: int
    applicant_id: int
    component: str
    update: ComponentUpdate


@dataclass(slots=True)
class IngestReport:
    """Outcome of a batch run."""

    applied: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": {
                "applied_count": len(self.applied),
                "error_count": len(self.errors),
                "timestamp": pendulum.now("UTC").to_iso8601_string(),
                "app_version": __version__,
            },
            "applied": self.applied,
            "errors": self.errors,
        }


class UpdateLoadError(ValueError):
    """Raised when an update file contains invalid records."""

    def __init__(self, errors: list[str], partial: list[UpdateInstruction]):
        super().__init__("Update loading failed")
        self.errors = errors
        self.partial = partial

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Update loading failed: {self.errors}"


class UpdateLoader:
    """Parse update instructions, normalizing raw field values when given.

    Each line carries ``applicant_id``, ``component`` and either a ready
    ``update`` or the extracted ``fields`` for the component's normalizer.
    """

    def __init__(self, registry: NormalizerRegistry):
        self._registry = registry

    def load(self, path: Path) -> list[UpdateInstruction]:
        instructions: list[UpdateInstruction] = []
        errors: list[str] = []
        with path.open("r", encoding="utf-8") as handle:
            for idx, line in enumerate(handle, start=1):
                raw = line.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw)
                except json.JSONDecodeError as exc:
                    errors.append(f"line {idx}: invalid JSON ({exc})")
                    continue
                try:
                    instructions.append(self._parse(idx, record))
                except (ComponentValidationError, ValidationError) as exc:
                    errors.append(f"line {idx}: {exc}")
        if errors:
            raise UpdateLoadError(errors, instructions)
        return instructions

    def _parse(self, idx: int, record: Any) -> UpdateInstruction:
        if not isinstance(record, dict):
            raise ComponentValidationError("record must be a JSON object")
        applicant_id = record.get("applicant_id")
        if isinstance(applicant_id, bool) or not isinstance(applicant_id, int) or applicant_id <= 0:
            raise ComponentValidationError(f"invalid applicant_id {applicant_id!r}")
        component = normalize_component_key(record.get("component"))

        if "update" in record:
            update = ComponentUpdate.model_validate(record["update"])
        elif isinstance(record.get("fields"), dict):
            update = self._registry.normalize(component, record["fields"])
        else:
            raise ComponentValidationError("missing 'update' or 'fields'")

        return UpdateInstruction(
            line=idx,
            applicant_id=applicant_id,
            component=component,
            update=update,
        )


class BatchIngestor:
    """Apply an update file through the reconciliation service."""

    def __init__(
        self,
        *,
        service: ReconciliationService,
        registry: NormalizerRegistry,
        lock_timeout: float | None = None,
        loader: UpdateLoader | None = None,
    ) -> None:
        self._service = service
        self._loader = loader or UpdateLoader(registry)
        self._lock_timeout = lock_timeout or DEFAULT_BATCH_LOCK_TIMEOUT
        self._logger = structlog.get_logger(__name__)

    def run(self, path: Path) -> IngestReport:
        report = IngestReport()
        try:
            instructions = self._loader.load(path)
        except UpdateLoadError as exc:
            instructions = exc.partial
            report.errors.extend(exc.errors)
            self._logger.warning("ingest.partial_load", errors=exc.errors)

        for instruction in instructions:
            try:
                result = self._service.update_component_and_recompute(
                    instruction.applicant_id,
                    instruction.component,
                    instruction.update,
                    timeout=self._lock_timeout,
                )
            except ReconciliationError as exc:
                report.errors.append(f"line {instruction.line}: {exc}")
                self._logger.warning(
                    "ingest.update_failed",
                    line=instruction.line,
                    applicant_id=instruction.applicant_id,
                    component=instruction.component,
                    retryable=exc.retryable,
                    error=str(exc),
                )
                continue
            report.applied.append(
                {
                    "line": instruction.line,
                    "applicant_id": instruction.applicant_id,
                    "component": instruction.component,
                    "composite": result.composite,
                    "grade": result.grade,
                    "status_flag": result.status_flag,
                }
            )

        self._logger.info(
            "ingest.completed",
            path=str(path),
            applied=len(report.applied),
            errors=len(report.errors),
        )
        return report
