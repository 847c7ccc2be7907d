"""Dependency injection container for the scoring engine."""

from __future__ import annotations

from dependency_injector import containers, providers

from .audit import CompositeAuditLog
from .config import StaticScoringConfigSource, YamlScoringConfigSource, build_scoring_config
from .core import ApplicantLock, RecomputeEngine
from .ingest import BatchIngestor
from .normalizers import (
    AutoproctorNormalizer,
    MedicalConfig,
    MedicalNormalizer,
    NormalizerRegistry,
    PhysicalNormalizer,
    PsymetricsNormalizer,
    RubricConfig,
    SkillsNormalizer,
)
from .service import ReconciliationService
from .store import (
    Database,
    InMemoryComponentStore,
    InMemorySnapshotStore,
    SqlComponentStore,
    SqlSnapshotStore,
)


class ScoringContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    config = providers.Configuration()

    scoring_config_source = providers.Singleton(
        StaticScoringConfigSource.from_settings,
        config.scoring,
    )

    component_store = providers.Singleton(InMemoryComponentStore)
    snapshot_store = providers.Singleton(InMemorySnapshotStore)

    applicant_lock = providers.Singleton(
        ApplicantLock,
        default_timeout=config.service.lock_timeout,
    )

    engine = providers.Singleton(RecomputeEngine)
    audit_log = providers.Object(None)

    psymetrics_normalizer = providers.Singleton(PsymetricsNormalizer)
    autoproctor_normalizer = providers.Singleton(AutoproctorNormalizer)
    physical_normalizer = providers.Singleton(PhysicalNormalizer)
    skills_normalizer = providers.Singleton(SkillsNormalizer)
    medical_normalizer = providers.Singleton(MedicalNormalizer)

    normalizer_registry = providers.Singleton(
        NormalizerRegistry,
        normalizers=providers.List(
            psymetrics_normalizer,
            autoproctor_normalizer,
            physical_normalizer,
            skills_normalizer,
            medical_normalizer,
        ),
    )

    reconciliation_service = providers.Singleton(
        ReconciliationService,
        components=component_store,
        snapshots=snapshot_store,
        lock=applicant_lock,
        config_source=scoring_config_source,
        engine=engine,
        audit_log=audit_log,
    )

    batch_ingestor = providers.Factory(
        BatchIngestor,
        service=reconciliation_service,
        registry=normalizer_registry,
        lock_timeout=config.service.batch_lock_timeout,
    )


def create_container(*, settings: dict | None = None) -> ScoringContainer:
    """Instantiate container with optional overrides."""

    container = ScoringContainer()

    if not settings:
        return container

    if not isinstance(settings, dict):
        raise TypeError("settings must be a mapping")
    container.config.from_dict(settings)

    scoring_settings = settings.get("scoring", {})
    if scoring_settings.get("path"):
        fallback = build_scoring_config(
            {key: scoring_settings[key] for key in ("weights", "bands", "rules") if key in scoring_settings}
        )
        container.scoring_config_source.override(
            providers.Singleton(
                YamlScoringConfigSource,
                scoring_settings["path"],
                fallback=fallback,
            )
        )

    storage_settings = settings.get("storage", {})
    if storage_settings.get("url"):
        database = providers.Singleton(
            Database,
            storage_settings["url"],
            create_tables=storage_settings.get("create_tables", True),
        )
        container.component_store.override(providers.Singleton(SqlComponentStore, database))
        container.snapshot_store.override(providers.Singleton(SqlSnapshotStore, database))

    audit_settings = settings.get("audit", {})
    if audit_settings.get("path"):
        container.audit_log.override(
            providers.Singleton(CompositeAuditLog, audit_settings["path"])
        )

    normalizer_settings = settings.get("normalizers", {})

    if "physical" in normalizer_settings:
        physical_config = RubricConfig(**_rubric_kwargs(normalizer_settings["physical"]))
        container.physical_normalizer.override(
            providers.Singleton(PhysicalNormalizer, config=physical_config)
        )

    if "skills" in normalizer_settings:
        skills_config = RubricConfig(**_rubric_kwargs(normalizer_settings["skills"]))
        container.skills_normalizer.override(
            providers.Singleton(SkillsNormalizer, config=skills_config)
        )

    if "medical" in normalizer_settings:
        medical_config = MedicalConfig(**normalizer_settings["medical"])
        container.medical_normalizer.override(
            providers.Singleton(MedicalNormalizer, config=medical_config)
        )

    return container


def _rubric_kwargs(raw: dict) -> dict:
    kwargs = dict(raw)
    if "criteria" in kwargs:
        kwargs["criteria"] = tuple(kwargs["criteria"])
    return kwargs


__all__ = ["ScoringContainer", "create_container"]
