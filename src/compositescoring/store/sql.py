"""SQLAlchemy-backed component and snapshot stores."""

from __future__ import annotations

import contextlib
from datetime import datetime
from typing import Iterator

import pendulum
import structlog
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..errors import StoreError
from ..schemas import ComponentRecord, CompositeResult

Base = declarative_base()

logger = structlog.get_logger(__name__)


class ApplicantComponentRow(Base):
    """Latest value of one assessment component for one applicant."""

    __tablename__ = "applicant_components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    applicant_id = Column(BigInteger, nullable=False, index=True)
    component = Column(String(32), nullable=False)
    raw = Column(Float, nullable=True)
    norm = Column(Float, nullable=True)
    flags = Column(JSON, nullable=False, default=list)
    meta = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("applicant_id", "component", name="uq_applicant_component"),
    )


class ApplicantCompositeRow(Base):
    """Composite snapshot; one row per applicant, overwritten on recompute."""

    __tablename__ = "applicant_composites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    applicant_id = Column(BigInteger, nullable=False, unique=True)
    status_flag = Column(String(16), nullable=False, default="pending")
    composite = Column(Float, nullable=False, default=0.0)
    grade = Column(String(1), nullable=False, default="D")
    weights = Column(JSON, nullable=False, default=dict)
    bands = Column(JSON, nullable=False, default=dict)
    formula_version = Column(String(20), nullable=False)
    components = Column(JSON, nullable=False, default=dict)
    present = Column(JSON, nullable=False, default=list)
    missing = Column(JSON, nullable=False, default=list)
    computed_at = Column(DateTime(timezone=True), nullable=False, index=True)


class Database:
    """Engine and session factory for one database URL."""

    def __init__(self, url: str, *, create_tables: bool = True, echo: bool = False):
        self.url = url
        self.engine = create_engine(url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        if create_tables:
            Base.metadata.create_all(self.engine)

    @contextlib.contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


class SqlComponentStore:
    def __init__(self, database: Database):
        self._db = database

    def upsert(self, applicant_id: int, key: str, record: ComponentRecord) -> None:
        try:
            with self._db.session_scope() as session:
                stmt = select(ApplicantComponentRow).where(
                    ApplicantComponentRow.applicant_id == applicant_id,
                    ApplicantComponentRow.component == key,
                )
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    row = ApplicantComponentRow(applicant_id=applicant_id, component=key)
                    session.add(row)
                row.raw = record.raw
                row.norm = record.norm
                row.flags = list(record.flags)
                row.meta = record.model_dump(mode="json")["meta"]
                row.updated_at = _to_utc(record.updated_at)
        except SQLAlchemyError as exc:
            logger.error(
                "store.component_write_failed",
                applicant_id=applicant_id,
                component=key,
                error=str(exc),
            )
            raise StoreError(f"Component write failed: {exc}", stage="components") from exc

    def get_all(self, applicant_id: int) -> dict[str, ComponentRecord]:
        try:
            with self._db.session_scope() as session:
                stmt = select(ApplicantComponentRow).where(
                    ApplicantComponentRow.applicant_id == applicant_id
                )
                rows = session.execute(stmt).scalars().all()
                return {
                    row.component: ComponentRecord(
                        raw=row.raw,
                        norm=row.norm,
                        flags=list(row.flags or []),
                        meta=dict(row.meta or {}),
                        updated_at=_from_db(row.updated_at),
                    )
                    for row in rows
                }
        except SQLAlchemyError as exc:
            raise StoreError(f"Component read failed: {exc}", stage="components") from exc

    def applicant_ids(self) -> list[int]:
        try:
            with self._db.session_scope() as session:
                stmt = (
                    select(ApplicantComponentRow.applicant_id)
                    .distinct()
                    .order_by(ApplicantComponentRow.applicant_id)
                )
                return [int(value) for value in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreError(f"Applicant listing failed: {exc}", stage="components") from exc


class SqlSnapshotStore:
    def __init__(self, database: Database):
        self._db = database

    def put(self, applicant_id: int, result: CompositeResult) -> None:
        payload = result.model_dump(mode="json")
        try:
            with self._db.session_scope() as session:
                stmt = select(ApplicantCompositeRow).where(
                    ApplicantCompositeRow.applicant_id == applicant_id
                )
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    row = ApplicantCompositeRow(applicant_id=applicant_id)
                    session.add(row)
                row.status_flag = result.status_flag
                row.composite = result.composite
                row.grade = result.grade
                row.weights = payload["weights"]
                row.bands = payload["bands"]
                row.formula_version = result.formula_version
                row.components = payload["components"]
                row.present = payload["present"]
                row.missing = payload["missing"]
                row.computed_at = _to_utc(result.computed_at)
        except SQLAlchemyError as exc:
            logger.error(
                "store.snapshot_write_failed",
                applicant_id=applicant_id,
                error=str(exc),
            )
            raise StoreError(f"Snapshot write failed: {exc}", stage="snapshot") from exc

    def get(self, applicant_id: int) -> CompositeResult | None:
        try:
            with self._db.session_scope() as session:
                stmt = select(ApplicantCompositeRow).where(
                    ApplicantCompositeRow.applicant_id == applicant_id
                )
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    return None
                return CompositeResult.model_validate(
                    {
                        "applicant_id": int(row.applicant_id),
                        "components": row.components or {},
                        "weights": row.weights or {},
                        "bands": row.bands or {},
                        "composite": float(row.composite),
                        "grade": row.grade,
                        "status_flag": row.status_flag,
                        "formula_version": row.formula_version,
                        "computed_at": _from_db(row.computed_at),
                        "present": row.present or [],
                        "missing": row.missing or [],
                    }
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Snapshot read failed: {exc}", stage="snapshot") from exc


def _to_utc(value: datetime) -> datetime:
    return pendulum.instance(value).in_timezone("UTC")


def _from_db(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored values are always UTC.
    if value.tzinfo is None:
        return pendulum.instance(value, tz="UTC")
    return pendulum.instance(value).in_timezone("UTC")
