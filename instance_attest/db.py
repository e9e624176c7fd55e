"""
Database module for instance attestation.

Provides SQLite-based storage for roles and authentication attempt counters.
Each thread gets its own connection; writes run in explicit transactions.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Union

BUSY_TIMEOUT_SECONDS = 30.0

TABLES = ("roles", "auth_attempts")


class Database:
    """
    SQLite database shared by the role store and the attempt store.

    Connections are thread-local and opened in autocommit mode so that
    transactions are controlled explicitly with BEGIN/COMMIT.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._local = threading.local()
        self._conns: List[sqlite3.Connection] = []
        self._conns_lock = threading.Lock()

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                timeout=BUSY_TIMEOUT_SECONDS,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._conns_lock:
                self._conns.append(conn)
        return conn

    @contextmanager
    def transaction(self, immediate: bool = False):
        """
        Run a block inside a transaction.

        With immediate=True the write lock is taken up front, so a
        read-modify-write inside the block cannot interleave with another
        writer.
        """
        conn = self.connection()
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise

    def init_schema(self) -> None:
        """Create tables and indexes. Safe to call multiple times."""
        with self.transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS roles (
                name TEXT PRIMARY KEY,
                role_json TEXT NOT NULL
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS auth_attempts (
                instance_id TEXT PRIMARY KEY,
                count INTEGER NOT NULL,
                expires_at REAL NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_auth_attempts_expires
            ON auth_attempts(expires_at);""")

    def stats(self) -> Dict[str, int]:
        """Row counts per table, for health reporting."""
        conn = self.connection()
        stats = {}
        for table in TABLES:
            cur = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}")
            stats[f"{table}_count"] = cur.fetchone()["cnt"]
        return stats

    def reset(self) -> None:
        """Clear all tables but keep the schema (test isolation)."""
        with self.transaction() as conn:
            for table in TABLES:
                conn.execute(f"DELETE FROM {table}")

    def close(self) -> None:
        """Close every connection opened by this database."""
        with self._conns_lock:
            for conn in self._conns:
                conn.close()
            self._conns.clear()
        self._local = threading.local()
