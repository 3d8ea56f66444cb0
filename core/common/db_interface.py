"""
core/common/db_interface.py
===========================

Shared helpers for SQLite-backed modules.
"""
from __future__ import annotations

from pathlib import Path
import sqlite3


def create_sqlite_connection(
    db_path: Path,
    *,
    check_same_thread: bool = False,
    foreign_keys: bool = False,
    autocommit: bool = False,
    timeout: float = 5.0,
) -> sqlite3.Connection:
    """Create a sqlite3 connection with common defaults.

    With ``autocommit`` the driver does not open implicit transactions; the
    caller issues BEGIN/COMMIT itself.
    """
    conn = sqlite3.connect(
        str(db_path),
        check_same_thread=check_same_thread,
        timeout=timeout,
        isolation_level=None if autocommit else "",
    )
    conn.row_factory = sqlite3.Row
    if foreign_keys:
        conn.execute("PRAGMA foreign_keys = ON")
    return conn
