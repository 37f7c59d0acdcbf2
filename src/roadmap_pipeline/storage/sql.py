"""
SQL assessment store using SQLAlchemy.

The ``assessment_records`` table carries a unique ``(subject_id, session_id)``
constraint; upserts use the dialect's ``INSERT ... ON CONFLICT DO UPDATE``
on SQLite and PostgreSQL, and a read-then-write inside one transaction
elsewhere.
"""

from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..observability.logging import get_logger
from .assessments import AssessmentRecord, AssessmentStore

log = get_logger("roadmap.storage.sql")

Base = declarative_base()


class AssessmentRow(Base):
    __tablename__ = "assessment_records"
    __table_args__ = (UniqueConstraint("subject_id", "session_id", name="uq_subject_session"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_id = Column(String(255), nullable=False, index=True)
    session_id = Column(String(255), nullable=False)
    zones = Column(JSON, nullable=False)
    matrix_scores = Column(JSON, nullable=False)
    total_score = Column(Integer, nullable=False)
    overall_stage = Column(String(32), nullable=False)
    plan_status = Column(String(16), nullable=False)
    input_snapshot = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<AssessmentRow(subject_id='{self.subject_id}', session_id='{self.session_id}')>"


_UPDATABLE = (
    "zones",
    "matrix_scores",
    "total_score",
    "overall_stage",
    "plan_status",
    "input_snapshot",
    "updated_at",
)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _to_record(row: AssessmentRow) -> AssessmentRecord:
    return AssessmentRecord(
        subject_id=row.subject_id,
        session_id=row.session_id,
        zones=dict(row.zones),
        matrix_scores=dict(row.matrix_scores),
        total_score=row.total_score,
        overall_stage=row.overall_stage,
        plan_status=row.plan_status,
        input_snapshot=dict(row.input_snapshot or {}),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def make_engine(database_url: str):
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        database = make_url(database_url).database
        if database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False, pool_pre_ping=True, pool_size=5, max_overflow=10)


class SQLStore(AssessmentStore):
    backend = "sql"

    def __init__(self, database_url: str):
        self.engine = make_engine(database_url)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        log.info("SQL assessment store initialized", dialect=self.engine.dialect.name)

    def upsert(self, record: AssessmentRecord) -> AssessmentRecord:
        record.updated_at = datetime.now(UTC)
        values = {
            "subject_id": record.subject_id,
            "session_id": record.session_id,
            "zones": record.zones,
            "matrix_scores": record.matrix_scores,
            "total_score": record.total_score,
            "overall_stage": record.overall_stage,
            "plan_status": record.plan_status,
            "input_snapshot": record.input_snapshot,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

        dialect = self.engine.dialect.name
        with self.SessionLocal.begin() as session:
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(AssessmentRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["subject_id", "session_id"],
                    set_={name: stmt.excluded[name] for name in _UPDATABLE},
                )
                session.execute(stmt)
            else:
                self._upsert_generic(session, values)

        log.debug("Upserted assessment", subject=record.subject_id, session=record.session_id)
        stored = self.get(record.subject_id, record.session_id)
        return stored or record

    @staticmethod
    def _upsert_generic(session: Session, values: dict) -> None:
        row = session.execute(
            select(AssessmentRow)
            .where(AssessmentRow.subject_id == values["subject_id"])
            .where(AssessmentRow.session_id == values["session_id"])
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            session.add(AssessmentRow(**values))
            return
        for name in _UPDATABLE:
            setattr(row, name, values[name])

    def get(self, subject_id: str, session_id: str) -> AssessmentRecord | None:
        with self.SessionLocal() as session:
            row = session.execute(
                select(AssessmentRow)
                .where(AssessmentRow.subject_id == subject_id)
                .where(AssessmentRow.session_id == session_id)
            ).scalar_one_or_none()
            return _to_record(row) if row else None

    def list_for_subject(self, subject_id: str) -> list[AssessmentRecord]:
        with self.SessionLocal() as session:
            rows = session.execute(
                select(AssessmentRow)
                .where(AssessmentRow.subject_id == subject_id)
                .order_by(AssessmentRow.created_at, AssessmentRow.id)
            ).scalars()
            return [_to_record(row) for row in rows]

    def count(self) -> int:
        with self.SessionLocal() as session:
            return session.execute(select(func.count()).select_from(AssessmentRow)).scalar_one()

    def close(self) -> None:
        self.engine.dispose()
