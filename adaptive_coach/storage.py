"""
Collaborator contracts and reference storage implementations.

The decision engine depends only on the protocols defined here:
- StorageCollaborator: get-or-default and append operations for per-user
  history, plus ``user_transaction`` to group several writes atomically
- ScheduleSupplier: upcoming competitions and the nearest prior session

Two implementations are provided: ``InMemoryStorage`` (tests, CLI demos) and
``DatabaseStorage`` in ``adaptive_coach.database`` (SQLAlchemy). Either can be
wrapped in ``ResilientStorage`` to impose a read timeout that degrades to
defaults instead of failing the planning call.
"""

import copy
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from datetime import date
from typing import Callable, ContextManager, Dict, Iterator, List, Optional, Protocol, TypeVar

from adaptive_coach.exceptions import StorageError
from adaptive_coach.logger import get_logger
from adaptive_coach.schemas import (
    AuditEvent,
    Competition,
    ExternalActivity,
    InjuryFlag,
    LoadRecord,
    ReadinessCheckIn,
    ReadinessRecord,
    ScheduledSession,
    SessionOutcome,
    SessionRecord,
)

log = get_logger(__name__)

T = TypeVar("T")


class StorageCollaborator(Protocol):
    """Read/write contract for per-user training history."""

    def get_check_in(self, user_id: str, on_date: date) -> Optional[ReadinessCheckIn]: ...

    def append_check_in(self, user_id: str, check_in: ReadinessCheckIn) -> None: ...

    def get_readiness(self, user_id: str, on_date: date) -> Optional[ReadinessRecord]: ...

    def get_readiness_history(self, user_id: str, since: date) -> List[ReadinessRecord]: ...

    def append_readiness(self, record: ReadinessRecord) -> None: ...

    def get_sessions(self, user_id: str, since: Optional[date] = None) -> List[SessionRecord]: ...

    def append_session(self, user_id: str, session: SessionRecord) -> None: ...

    def get_load_records(self, user_id: str, since: Optional[date] = None) -> List[LoadRecord]: ...

    def append_load_record(self, record: LoadRecord) -> None: ...

    def get_injury_flags(self, user_id: str, since: Optional[date] = None) -> List[InjuryFlag]: ...

    def append_injury_flag(self, user_id: str, flag: InjuryFlag) -> None: ...

    def get_external_activities(
        self, user_id: str, since: Optional[date] = None
    ) -> List[ExternalActivity]: ...

    def append_external_activity(self, user_id: str, activity: ExternalActivity) -> None: ...

    def get_outcomes(self, user_id: str, since: Optional[date] = None) -> List[SessionOutcome]: ...

    def append_outcome(self, outcome: SessionOutcome) -> None: ...

    def get_audit_events(self, user_id: str) -> List[AuditEvent]: ...

    def append_audit_event(self, event: AuditEvent) -> None: ...

    def user_transaction(self, user_id: str) -> ContextManager[None]: ...


class ScheduleSupplier(Protocol):
    """Schedule lookups used by the conflict resolver."""

    def upcoming_competitions(self, on_date: date) -> List[Competition]: ...

    def nearest_prior_session(self, on_date: date) -> Optional[ScheduledSession]: ...


class UserLockRegistry:
    """One lock per user so writes for the same user are serialized."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def for_user(self, user_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(user_id, threading.RLock())
        with lock:
            yield


def _since(items: List[T], since: Optional[date], key: Callable[[T], date]) -> List[T]:
    if since is None:
        return list(items)
    return [item for item in items if key(item) >= since]


class InMemoryStorage:
    """
    Dict-backed storage collaborator.

    Writes are serialized per user and visible to the next read immediately,
    which gives read-your-writes per user.
    """

    def __init__(self):
        self._locks = UserLockRegistry()
        self._check_ins: Dict[str, Dict[date, ReadinessCheckIn]] = defaultdict(dict)
        self._readiness: Dict[str, Dict[date, ReadinessRecord]] = defaultdict(dict)
        self._sessions: Dict[str, List[SessionRecord]] = defaultdict(list)
        self._loads: Dict[str, List[LoadRecord]] = defaultdict(list)
        self._injuries: Dict[str, List[InjuryFlag]] = defaultdict(list)
        self._activities: Dict[str, List[ExternalActivity]] = defaultdict(list)
        self._outcomes: Dict[str, List[SessionOutcome]] = defaultdict(list)
        self._audit: Dict[str, List[AuditEvent]] = defaultdict(list)

    @contextmanager
    def user_transaction(self, user_id: str) -> Iterator[None]:
        """
        Hold the user's write lock for the whole block.

        If the block raises, the user's history is restored to what it was on
        entry and the error propagates.
        """
        stores = (
            self._check_ins,
            self._readiness,
            self._sessions,
            self._loads,
            self._injuries,
            self._activities,
            self._outcomes,
            self._audit,
        )
        with self._locks.for_user(user_id):
            snapshot = [(store, copy.copy(store[user_id])) for store in stores]
            try:
                yield
            except Exception:
                for store, saved in snapshot:
                    store[user_id] = saved
                raise

    # Check-ins

    def get_check_in(self, user_id: str, on_date: date) -> Optional[ReadinessCheckIn]:
        return self._check_ins[user_id].get(on_date)

    def append_check_in(self, user_id: str, check_in: ReadinessCheckIn) -> None:
        with self._locks.for_user(user_id):
            self._check_ins[user_id][check_in.check_in_date] = check_in

    # Readiness

    def get_readiness(self, user_id: str, on_date: date) -> Optional[ReadinessRecord]:
        return self._readiness[user_id].get(on_date)

    def get_readiness_history(self, user_id: str, since: date) -> List[ReadinessRecord]:
        records = sorted(self._readiness[user_id].values(), key=lambda r: r.record_date)
        return _since(records, since, lambda r: r.record_date)

    def append_readiness(self, record: ReadinessRecord) -> None:
        with self._locks.for_user(record.user_id):
            self._readiness[record.user_id][record.record_date] = record

    # Sessions and load

    def get_sessions(self, user_id: str, since: Optional[date] = None) -> List[SessionRecord]:
        return _since(self._sessions[user_id], since, lambda s: s.session_date)

    def append_session(self, user_id: str, session: SessionRecord) -> None:
        with self._locks.for_user(user_id):
            self._sessions[user_id].append(session)
            self._sessions[user_id].sort(key=lambda s: s.started_at())

    def get_load_records(self, user_id: str, since: Optional[date] = None) -> List[LoadRecord]:
        return _since(self._loads[user_id], since, lambda r: r.record_date)

    def append_load_record(self, record: LoadRecord) -> None:
        with self._locks.for_user(record.user_id):
            self._loads[record.user_id].append(record)
            self._loads[record.user_id].sort(key=lambda r: r.record_date)

    # Injury flags and external activities

    def get_injury_flags(self, user_id: str, since: Optional[date] = None) -> List[InjuryFlag]:
        return _since(self._injuries[user_id], since, lambda f: f.flag_date)

    def append_injury_flag(self, user_id: str, flag: InjuryFlag) -> None:
        with self._locks.for_user(user_id):
            self._injuries[user_id].append(flag)

    def get_external_activities(
        self, user_id: str, since: Optional[date] = None
    ) -> List[ExternalActivity]:
        return _since(self._activities[user_id], since, lambda a: a.started_at.date())

    def append_external_activity(self, user_id: str, activity: ExternalActivity) -> None:
        with self._locks.for_user(user_id):
            self._activities[user_id].append(activity)

    # Outcomes and audit

    def get_outcomes(self, user_id: str, since: Optional[date] = None) -> List[SessionOutcome]:
        return _since(self._outcomes[user_id], since, lambda o: o.session_date)

    def append_outcome(self, outcome: SessionOutcome) -> None:
        with self._locks.for_user(outcome.user_id):
            self._outcomes[outcome.user_id].append(outcome)

    def get_audit_events(self, user_id: str) -> List[AuditEvent]:
        return list(self._audit[user_id])

    def append_audit_event(self, event: AuditEvent) -> None:
        with self._locks.for_user(event.user_id):
            self._audit[event.user_id].append(event)


class ResilientStorage:
    """
    Wraps a storage collaborator with a read timeout.

    Reads that time out or fail with ``StorageError`` return the supplied
    default (None or an empty list) and log a warning, so planning always
    proceeds on documented fallbacks. Writes are passed through unchanged and
    their failures propagate.
    """

    def __init__(self, inner: StorageCollaborator, timeout_seconds: float = 2.0):
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="storage-read")

    def _read(self, operation: str, func: Callable[[], T], default: T) -> T:
        future = self._executor.submit(func)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            log.warning(f"Storage read '{operation}' timed out after {self.timeout_seconds}s; using default")
            return default
        except StorageError as exc:
            log.warning(f"Storage read '{operation}' failed ({exc}); using default")
            return default

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def user_transaction(self, user_id: str) -> ContextManager[None]:
        return self.inner.user_transaction(user_id)

    # Reads (degrade to defaults)

    def get_check_in(self, user_id: str, on_date: date) -> Optional[ReadinessCheckIn]:
        return self._read("get_check_in", lambda: self.inner.get_check_in(user_id, on_date), None)

    def get_readiness(self, user_id: str, on_date: date) -> Optional[ReadinessRecord]:
        return self._read("get_readiness", lambda: self.inner.get_readiness(user_id, on_date), None)

    def get_readiness_history(self, user_id: str, since: date) -> List[ReadinessRecord]:
        return self._read(
            "get_readiness_history", lambda: self.inner.get_readiness_history(user_id, since), []
        )

    def get_sessions(self, user_id: str, since: Optional[date] = None) -> List[SessionRecord]:
        return self._read("get_sessions", lambda: self.inner.get_sessions(user_id, since), [])

    def get_load_records(self, user_id: str, since: Optional[date] = None) -> List[LoadRecord]:
        return self._read("get_load_records", lambda: self.inner.get_load_records(user_id, since), [])

    def get_injury_flags(self, user_id: str, since: Optional[date] = None) -> List[InjuryFlag]:
        return self._read("get_injury_flags", lambda: self.inner.get_injury_flags(user_id, since), [])

    def get_external_activities(
        self, user_id: str, since: Optional[date] = None
    ) -> List[ExternalActivity]:
        return self._read(
            "get_external_activities",
            lambda: self.inner.get_external_activities(user_id, since),
            [],
        )

    def get_outcomes(self, user_id: str, since: Optional[date] = None) -> List[SessionOutcome]:
        return self._read("get_outcomes", lambda: self.inner.get_outcomes(user_id, since), [])

    def get_audit_events(self, user_id: str) -> List[AuditEvent]:
        return self._read("get_audit_events", lambda: self.inner.get_audit_events(user_id), [])

    # Writes (propagate)

    def append_check_in(self, user_id: str, check_in: ReadinessCheckIn) -> None:
        self.inner.append_check_in(user_id, check_in)

    def append_readiness(self, record: ReadinessRecord) -> None:
        self.inner.append_readiness(record)

    def append_session(self, user_id: str, session: SessionRecord) -> None:
        self.inner.append_session(user_id, session)

    def append_load_record(self, record: LoadRecord) -> None:
        self.inner.append_load_record(record)

    def append_injury_flag(self, user_id: str, flag: InjuryFlag) -> None:
        self.inner.append_injury_flag(user_id, flag)

    def append_external_activity(self, user_id: str, activity: ExternalActivity) -> None:
        self.inner.append_external_activity(user_id, activity)

    def append_outcome(self, outcome: SessionOutcome) -> None:
        self.inner.append_outcome(outcome)

    def append_audit_event(self, event: AuditEvent) -> None:
        self.inner.append_audit_event(event)
