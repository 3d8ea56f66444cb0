"""SQLite implementation of DatabaseAdapter.

Uses core.common.db_interface for connection management. The connection runs
in autocommit mode; writes happen inside ``transaction()``, which takes the
SQLite write lock up front (BEGIN IMMEDIATE) so that concurrent
read-modify-write units on the same file cannot interleave.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Iterator, List, Dict, Optional
from pathlib import Path
import logging
import sqlite3
import threading

from theses.adapters.database_adapter import DatabaseAdapter
from core.common.db_interface import create_sqlite_connection

logger = logging.getLogger(__name__)


class SQLiteAdapter(DatabaseAdapter):
    """SQLite implementation of DatabaseAdapter."""

    def __init__(self, db_path: str | Path, *, timeout: float = 30.0):
        """
        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for the database write lock
        """
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create connection."""
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = create_sqlite_connection(
                self._db_path,
                check_same_thread=False,
                foreign_keys=True,
                autocommit=True,
                timeout=self._timeout,
            )
        return self._conn

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.conn.execute(query, params)

    def fetchone(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.conn.execute(query, params).fetchone()
        return dict(row) if row else None

    def fetchall(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    @contextmanager
    def transaction(self) -> Iterator["SQLiteAdapter"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self.conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")
            finally:
                self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                try:
                    self._conn.close()
                finally:
                    self._conn = None

    def executescript(self, script: str) -> None:
        """Execute multiple SQL statements."""
        with self._lock:
            self.conn.executescript(script)
