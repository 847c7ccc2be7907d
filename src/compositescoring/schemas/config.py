"""Pydantic configuration schema for CLI YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class FlagRulesConfig(BaseModel):
    disqualifying_flags: list[str] | None = None
    disqualifying_prefixes: list[str] | None = None
    hold_flags: list[str] | None = None


class ScoringSection(BaseModel):
    weights: dict[str, float] | None = None
    bands: dict[str, float] | None = None
    rules: FlagRulesConfig | None = None
    path: str | None = None


class ServiceSection(BaseModel):
    lock_timeout: float | None = Field(default=None, gt=0)
    batch_lock_timeout: float | None = Field(default=None, gt=0)


class StorageSection(BaseModel):
    url: str | None = None
    create_tables: bool = True


class AuditSection(BaseModel):
    path: str | None = None


class NormalizerSection(BaseModel):
    physical: dict[str, Any] | None = None
    skills: dict[str, Any] | None = None
    medical: dict[str, Any] | None = None


class AppConfig(BaseModel):
    scoring: ScoringSection = Field(default_factory=ScoringSection)
    service: ServiceSection = Field(default_factory=ServiceSection)
    storage: StorageSection = Field(default_factory=StorageSection)
    audit: AuditSection = Field(default_factory=AuditSection)
    normalizers: NormalizerSection = Field(default_factory=NormalizerSection)

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        for name in ("scoring", "service", "audit", "normalizers"):
            section = getattr(self, name).model_dump(exclude_none=True)
            if section:
                settings[name] = section
        if self.storage.url:
            settings["storage"] = self.storage.model_dump(exclude_none=True)
        return settings


def load_config(raw: Any) -> AppConfig:
    if raw is None:
        return AppConfig()
    return AppConfig.model_validate(raw)
