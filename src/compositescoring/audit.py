"""Append-only history of computed composites."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Iterator

from .schemas import CompositeResult


class CompositeAuditLog:
    """Append-only audit log writing one JSON line per recompute."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, result: CompositeResult, *, trigger: str | None = None) -> None:
        record = result.model_dump(mode="json")
        record["trigger"] = trigger
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.write("\n")

    def entries(self, applicant_id: int | None = None) -> Iterator[dict]:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                raw = line.strip()
                if not raw:
                    continue
                entry = json.loads(raw)
                if applicant_id is None or entry.get("applicant_id") == applicant_id:
                    yield entry
