"""
SQLAlchemy Database Models for the Adaptive Training Engine

Reference implementation of the storage collaborator contract. Provides
persistent storage for:
- Daily check-ins and readiness records
- Completed sessions and derived load records
- Injury flags and external (non-training) activities
- Session outcomes and the audit log
"""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from adaptive_coach.exceptions import StorageError
from adaptive_coach.logger import get_logger
from adaptive_coach.schemas import (
    AuditEvent,
    Confidence,
    ExternalActivity,
    InjuryFlag,
    LoadRecord,
    ReadinessCheckIn,
    ReadinessRecord,
    ReadinessSource,
    SessionOutcome,
    SessionRecord,
    utc_now,
)
from adaptive_coach.storage import UserLockRegistry

log = get_logger(__name__)

Base = declarative_base()


class ReadinessRecordDB(Base):
    """
    Daily readiness score, one row per user and date.

    Attributes:
        id: Primary key
        user_id: Athlete identifier
        record_date: Date the score applies to
        score: Readiness 1-10
        source: explicit / inferred / default
        confidence: low / medium / high
        reasons: Contributing reasons as a JSON list
        created_at: When the row was written
    """

    __tablename__ = "readiness_records"
    __table_args__ = (UniqueConstraint("user_id", "record_date", name="uq_readiness_user_date"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    record_date = Column(Date, nullable=False, index=True)
    score = Column(Integer, nullable=False)
    source = Column(String, nullable=False)
    confidence = Column(String, nullable=False)
    reasons = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def to_record(self) -> ReadinessRecord:
        return ReadinessRecord(
            user_id=self.user_id,
            record_date=self.record_date,
            score=self.score,
            source=ReadinessSource(self.source),
            confidence=Confidence(self.confidence),
            reasons=list(self.reasons or []),
        )

    def __repr__(self):
        return f"<ReadinessRecordDB(user_id='{self.user_id}', date='{self.record_date}', score={self.score})>"


class LoadRecordDB(Base):
    """
    Derived load statistics for a completed session.

    Attributes:
        id: Primary key
        user_id: Athlete identifier
        record_date: Session date
        session_load: Computed session load
        rpe: Session RPE (nullable)
        completion_rate: Fraction of exercises completed (nullable)
        rolling_average_7d: Trailing 7-day average load
        ewma_baseline: Exponentially weighted baseline
        trend_slope: Least-squares slope across recent sessions
    """

    __tablename__ = "load_records"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    record_date = Column(Date, nullable=False, index=True)
    session_load = Column(Float, nullable=False)
    rpe = Column(Float, nullable=True)
    completion_rate = Column(Float, nullable=True)
    rolling_average_7d = Column(Float, nullable=False)
    ewma_baseline = Column(Float, nullable=False)
    trend_slope = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def to_record(self) -> LoadRecord:
        return LoadRecord(
            user_id=self.user_id,
            record_date=self.record_date,
            session_load=self.session_load,
            rpe=self.rpe,
            completion_rate=self.completion_rate,
            rolling_average_7d=self.rolling_average_7d,
            ewma_baseline=self.ewma_baseline,
            trend_slope=self.trend_slope,
        )

    def __repr__(self):
        return f"<LoadRecordDB(user_id='{self.user_id}', date='{self.record_date}', load={self.session_load:.1f})>"


class PayloadRecordDB(Base):
    """
    Per-user document rows keyed by kind and date.

    Check-ins, sessions, injury flags, external activities and outcomes are
    stored as their JSON-serialised pydantic models; their shape is owned by
    ``adaptive_coach.schemas``.

    Attributes:
        id: Primary key
        user_id: Athlete identifier
        kind: Document kind ('check_in', 'session', 'injury_flag', ...)
        record_date: Date used for range queries
        payload: Serialised model
    """

    __tablename__ = "payload_records"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False, index=True)
    record_date = Column(Date, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self):
        return f"<PayloadRecordDB(user_id='{self.user_id}', kind='{self.kind}', date='{self.record_date}')>"


class AuditEventDB(Base):
    """
    Append-only audit log of engine decisions.

    Attributes:
        id: Primary key
        user_id: Athlete identifier
        event_type: Event name (e.g. 'readiness_inferred')
        occurred_at: Event timestamp (UTC)
        payload: Event details as JSON
    """

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    occurred_at = Column(DateTime, nullable=False, default=utc_now)
    payload = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<AuditEventDB(user_id='{self.user_id}', event='{self.event_type}')>"


# Database connection and session management

def get_engine(database_url: str = "sqlite:///adaptive_coach.db"):
    """
    Create SQLAlchemy engine.

    In-memory SQLite URLs share a single connection so every session sees
    the same database.

    Args:
        database_url: Database connection string (default: SQLite file)

    Returns:
        SQLAlchemy Engine instance
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False)


def get_session_factory(engine):
    """
    Create session factory.

    Args:
        engine: SQLAlchemy Engine instance

    Returns:
        Session factory (sessionmaker)
    """
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_database(database_url: str = "sqlite:///adaptive_coach.db") -> Session:
    """
    Initialize database and create all tables.

    Args:
        database_url: Database connection string

    Returns:
        SQLAlchemy Session instance
    """
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)
    SessionFactory = get_session_factory(engine)
    return SessionFactory()


class DatabaseStorage:
    """
    SQLAlchemy-backed storage collaborator.

    Each write runs in its own transaction under a per-user lock and is
    committed before returning, so a subsequent read for the same user
    observes it. Inside ``user_transaction`` writes for that user share one
    session and are committed together when the block exits.
    """

    def __init__(self, database_url: str = "sqlite:///adaptive_coach.db"):
        self.engine = get_engine(database_url)
        Base.metadata.create_all(self.engine)
        self._session_factory = get_session_factory(self.engine)
        self._locks = UserLockRegistry()
        self._active = threading.local()

    def _open_sessions(self) -> Dict[str, Session]:
        if not hasattr(self._active, "sessions"):
            self._active.sessions = {}
        return self._active.sessions

    @contextmanager
    def user_transaction(self, user_id: str) -> Iterator[None]:
        """
        Commit every write for ``user_id`` made inside the block at once.

        The user's lock is held until the commit. Any error rolls back all of
        the block's writes and propagates; database errors are raised as
        ``StorageError``.
        """
        sessions = self._open_sessions()
        with self._locks.for_user(user_id):
            if user_id in sessions:
                yield
                return
            session = self._session_factory()
            sessions[user_id] = session
            try:
                yield
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                log.error(f"Storage transaction failed for user {user_id}: {exc}")
                raise StorageError(str(exc)) from exc
            except Exception:
                session.rollback()
                raise
            finally:
                del sessions[user_id]
                session.close()

    def _run_write(self, user_id: str, work: Callable[[Session], None]) -> None:
        active = self._open_sessions().get(user_id)
        if active is not None:
            try:
                work(active)
                active.flush()
            except SQLAlchemyError as exc:
                raise StorageError(str(exc)) from exc
            return

        with self._locks.for_user(user_id):
            session = self._session_factory()
            try:
                work(session)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                log.error(f"Storage write failed for user {user_id}: {exc}")
                raise StorageError(str(exc)) from exc
            finally:
                session.close()

    def _write(self, user_id: str, *rows) -> None:
        self._run_write(user_id, lambda session: session.add_all(rows))

    def _query(self, build):
        session = self._session_factory()
        try:
            return build(session)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        finally:
            session.close()

    def _payloads(self, user_id: str, kind: str, since: Optional[date]) -> List[dict]:
        def build(session: Session) -> List[dict]:
            query = session.query(PayloadRecordDB).filter(
                PayloadRecordDB.user_id == user_id, PayloadRecordDB.kind == kind
            )
            if since is not None:
                query = query.filter(PayloadRecordDB.record_date >= since)
            rows = query.order_by(PayloadRecordDB.record_date, PayloadRecordDB.id).all()
            return [row.payload for row in rows]

        return self._query(build)

    def _append_payload(self, user_id: str, kind: str, record_date: date, model: BaseModel) -> None:
        self._write(
            user_id,
            PayloadRecordDB(
                user_id=user_id,
                kind=kind,
                record_date=record_date,
                payload=model.model_dump(mode="json"),
            ),
        )

    # Check-ins

    def get_check_in(self, user_id: str, on_date: date) -> Optional[ReadinessCheckIn]:
        matches = [p for p in self._payloads(user_id, "check_in", on_date) if p["check_in_date"] == on_date.isoformat()]
        return ReadinessCheckIn.model_validate(matches[-1]) if matches else None

    def append_check_in(self, user_id: str, check_in: ReadinessCheckIn) -> None:
        self._append_payload(user_id, "check_in", check_in.check_in_date, check_in)

    # Readiness

    def get_readiness(self, user_id: str, on_date: date) -> Optional[ReadinessRecord]:
        def build(session: Session) -> Optional[ReadinessRecord]:
            row = (
                session.query(ReadinessRecordDB)
                .filter(ReadinessRecordDB.user_id == user_id, ReadinessRecordDB.record_date == on_date)
                .one_or_none()
            )
            return row.to_record() if row else None

        return self._query(build)

    def get_readiness_history(self, user_id: str, since: date) -> List[ReadinessRecord]:
        def build(session: Session) -> List[ReadinessRecord]:
            rows = (
                session.query(ReadinessRecordDB)
                .filter(ReadinessRecordDB.user_id == user_id, ReadinessRecordDB.record_date >= since)
                .order_by(ReadinessRecordDB.record_date)
                .all()
            )
            return [row.to_record() for row in rows]

        return self._query(build)

    def append_readiness(self, record: ReadinessRecord) -> None:
        def work(session: Session) -> None:
            # One row per user/date; the latest inference wins
            session.query(ReadinessRecordDB).filter(
                ReadinessRecordDB.user_id == record.user_id,
                ReadinessRecordDB.record_date == record.record_date,
            ).delete()
            session.add(
                ReadinessRecordDB(
                    user_id=record.user_id,
                    record_date=record.record_date,
                    score=record.score,
                    source=record.source.value,
                    confidence=record.confidence.value,
                    reasons=list(record.reasons),
                )
            )

        self._run_write(record.user_id, work)

    # Sessions and load

    def get_sessions(self, user_id: str, since: Optional[date] = None) -> List[SessionRecord]:
        sessions = [SessionRecord.model_validate(p) for p in self._payloads(user_id, "session", since)]
        return sorted(sessions, key=lambda s: s.started_at())

    def append_session(self, user_id: str, session: SessionRecord) -> None:
        self._append_payload(user_id, "session", session.session_date, session)

    def get_load_records(self, user_id: str, since: Optional[date] = None) -> List[LoadRecord]:
        def build(session: Session) -> List[LoadRecord]:
            query = session.query(LoadRecordDB).filter(LoadRecordDB.user_id == user_id)
            if since is not None:
                query = query.filter(LoadRecordDB.record_date >= since)
            return [row.to_record() for row in query.order_by(LoadRecordDB.record_date, LoadRecordDB.id).all()]

        return self._query(build)

    def append_load_record(self, record: LoadRecord) -> None:
        self._write(
            record.user_id,
            LoadRecordDB(
                user_id=record.user_id,
                record_date=record.record_date,
                session_load=record.session_load,
                rpe=record.rpe,
                completion_rate=record.completion_rate,
                rolling_average_7d=record.rolling_average_7d,
                ewma_baseline=record.ewma_baseline,
                trend_slope=record.trend_slope,
            ),
        )

    # Injury flags and external activities

    def get_injury_flags(self, user_id: str, since: Optional[date] = None) -> List[InjuryFlag]:
        return [InjuryFlag.model_validate(p) for p in self._payloads(user_id, "injury_flag", since)]

    def append_injury_flag(self, user_id: str, flag: InjuryFlag) -> None:
        self._append_payload(user_id, "injury_flag", flag.flag_date, flag)

    def get_external_activities(
        self, user_id: str, since: Optional[date] = None
    ) -> List[ExternalActivity]:
        return [
            ExternalActivity.model_validate(p)
            for p in self._payloads(user_id, "external_activity", since)
        ]

    def append_external_activity(self, user_id: str, activity: ExternalActivity) -> None:
        self._append_payload(user_id, "external_activity", activity.started_at.date(), activity)

    # Outcomes and audit

    def get_outcomes(self, user_id: str, since: Optional[date] = None) -> List[SessionOutcome]:
        return [SessionOutcome.model_validate(p) for p in self._payloads(user_id, "outcome", since)]

    def append_outcome(self, outcome: SessionOutcome) -> None:
        self._append_payload(outcome.user_id, "outcome", outcome.session_date, outcome)

    def get_audit_events(self, user_id: str) -> List[AuditEvent]:
        def build(session: Session) -> List[AuditEvent]:
            rows = (
                session.query(AuditEventDB)
                .filter(AuditEventDB.user_id == user_id)
                .order_by(AuditEventDB.occurred_at, AuditEventDB.id)
                .all()
            )
            return [
                AuditEvent(
                    user_id=row.user_id,
                    event_type=row.event_type,
                    occurred_at=row.occurred_at,
                    payload=dict(row.payload or {}),
                )
                for row in rows
            ]

        return self._query(build)

    def append_audit_event(self, event: AuditEvent) -> None:
        self._write(
            event.user_id,
            AuditEventDB(
                user_id=event.user_id,
                event_type=event.event_type,
                occurred_at=event.occurred_at,
                payload=event.model_dump(mode="json")["payload"],
            ),
        )
