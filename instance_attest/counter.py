"""
Replay counter for instance attestation.

Counts authentication attempts per instance id and rejects an instance once
it has authenticated more than the role allows within the window. Entries
carry an expiry; an expired entry is treated as absent when read and is
physically removed by sweep().

The store is injected so the counter can run on SQLite in the service and
on an in-memory store in tests.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from .db import Database
from .errors import AuthLimitExceeded, StorageError
from .logging_config import audit_log


@dataclass(frozen=True)
class AuthAttempt:
    """Persisted attempt counter for one instance."""
    instance_id: str
    count: int
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class AttemptStore(ABC):
    """
    Abstract interface for attempt counter persistence.

    Implementations must make increment() atomic per instance id: two
    concurrent increments of the same id must both be counted.
    """

    @abstractmethod
    def increment(self, instance_id: str, expires_at: datetime, now: datetime) -> AuthAttempt:
        """
        Add one attempt and set the new expiry.

        An existing entry that expired at or before `now` counts as absent,
        so the count restarts from zero.
        """
        pass

    @abstractmethod
    def get(self, instance_id: str) -> Optional[AuthAttempt]:
        """Return the raw entry, expired or not."""
        pass

    @abstractmethod
    def list_ids(self) -> List[str]:
        pass

    @abstractmethod
    def delete_if_expired(self, instance_id: str, now: datetime) -> bool:
        """
        Delete the entry if it is still expired at the time of deletion.

        Returns:
            True if an entry was removed
        """
        pass


class InMemoryAttemptStore(AttemptStore):
    """
    In-memory attempt store for tests and single-process embedding.

    Not persistent across restarts. Each instance id has its own lock, so
    attempts for different instances never wait on each other. A lock is
    dropped together with its entry when the entry is swept.
    """

    def __init__(self):
        self._entries: Dict[str, AuthAttempt] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, instance_id: str) -> Iterator[None]:
        while True:
            with self._guard:
                lock = self._locks.get(instance_id)
                if lock is None:
                    lock = self._locks[instance_id] = threading.Lock()
            lock.acquire()
            with self._guard:
                current = self._locks.get(instance_id) is lock
            if current:
                break
            # swept while we waited; retry on the replacement lock
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def increment(self, instance_id: str, expires_at: datetime, now: datetime) -> AuthAttempt:
        with self._locked(instance_id):
            current = self._entries.get(instance_id)
            count = 0 if current is None or current.expired(now) else current.count
            entry = AuthAttempt(instance_id, count + 1, expires_at)
            with self._guard:
                self._entries[instance_id] = entry
            return entry

    def get(self, instance_id: str) -> Optional[AuthAttempt]:
        with self._guard:
            return self._entries.get(instance_id)

    def list_ids(self) -> List[str]:
        with self._guard:
            return list(self._entries)

    def delete_if_expired(self, instance_id: str, now: datetime) -> bool:
        with self._locked(instance_id):
            current = self._entries.get(instance_id)
            if current is not None and not current.expired(now):
                return False
            with self._guard:
                self._entries.pop(instance_id, None)
                self._locks.pop(instance_id, None)
            return current is not None


def _to_epoch(ts: datetime) -> float:
    return ts.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SqliteAttemptStore(AttemptStore):
    """
    SQLite attempt store.

    Counters live in the auth_attempts table, separate from roles. The
    read-modify-write runs under BEGIN IMMEDIATE, which serializes writers
    on the database file and survives process restarts.
    """

    def __init__(self, db: Database):
        self._db = db

    def increment(self, instance_id: str, expires_at: datetime, now: datetime) -> AuthAttempt:
        try:
            with self._db.transaction(immediate=True) as conn:
                row = conn.execute(
                    "SELECT count, expires_at FROM auth_attempts WHERE instance_id=?",
                    (instance_id,)
                ).fetchone()
                count = 0
                if row is not None and row["expires_at"] > _to_epoch(now):
                    count = row["count"]
                count += 1
                conn.execute(
                    "INSERT OR REPLACE INTO auth_attempts(instance_id, count, expires_at) VALUES(?,?,?)",
                    (instance_id, count, _to_epoch(expires_at))
                )
        except sqlite3.Error as e:
            raise StorageError(f"failed to record auth attempt for {instance_id}: {e}") from e
        return AuthAttempt(instance_id, count, expires_at)

    def get(self, instance_id: str) -> Optional[AuthAttempt]:
        try:
            row = self._db.connection().execute(
                "SELECT count, expires_at FROM auth_attempts WHERE instance_id=?",
                (instance_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"failed to read auth attempt for {instance_id}: {e}") from e
        if row is None:
            return None
        return AuthAttempt(instance_id, row["count"], _from_epoch(row["expires_at"]))

    def list_ids(self) -> List[str]:
        try:
            cur = self._db.connection().execute("SELECT instance_id FROM auth_attempts")
            return [row["instance_id"] for row in cur.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"failed to list auth attempts: {e}") from e

    def delete_if_expired(self, instance_id: str, now: datetime) -> bool:
        try:
            with self._db.transaction(immediate=True) as conn:
                cur = conn.execute(
                    "DELETE FROM auth_attempts WHERE instance_id=? AND expires_at<=?",
                    (instance_id, _to_epoch(now))
                )
                return cur.rowcount == 1
        except sqlite3.Error as e:
            raise StorageError(f"failed to delete auth attempt for {instance_id}: {e}") from e


class ReplayCounter:
    """
    Bounded re-authentication per instance.

    Every call to record_attempt() advances the persisted count, including
    the call that crosses the limit, so repeated abuse stays visible.
    """

    def __init__(self, store: AttemptStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record_attempt(self, instance_id: str, limit: int, deadline: datetime) -> int:
        """
        Count one authentication attempt.

        Args:
            instance_id: Stable instance identifier
            limit: Maximum attempts accepted within the window
            deadline: Expiry for the stored entry

        Returns:
            The new attempt count

        Raises:
            AuthLimitExceeded: If the new count is greater than limit
            StorageError: If the store is unavailable
        """
        entry = self.store.increment(instance_id, deadline, self._clock())
        if entry.count > limit:
            audit_log.auth_limit_exceeded(instance_id, entry.count, limit)
            raise AuthLimitExceeded(instance_id, entry.count, limit)
        return entry.count

    def get(self, instance_id: str) -> Optional[AuthAttempt]:
        """Current entry for an instance, or None if absent or expired."""
        entry = self.store.get(instance_id)
        if entry is None or entry.expired(self._clock()):
            return None
        return entry

    def sweep(self) -> int:
        """
        Delete every entry whose expiry is at or before now.

        Safe to run while attempts are being recorded: an entry refreshed
        between listing and deletion is kept.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        removed = 0
        for instance_id in self.store.list_ids():
            if self.store.delete_if_expired(instance_id, now):
                removed += 1
        if removed:
            audit_log.attempts_swept(removed)
        return removed
