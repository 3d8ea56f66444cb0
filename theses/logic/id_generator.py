"""Sequential, year-scoped identifiers such as ``THS-2026-0001``."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from theses.adapters.database_adapter import DatabaseAdapter

_SEQ_TOKEN = re.compile(r"\{seq:(\d+)d\}")


class IdGenerator:
    def __init__(self, db: DatabaseAdapter, prefix: str, pattern: str) -> None:
        self._db = db
        self._prefix = prefix
        self._pattern = pattern
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS sequences (
                year INTEGER NOT NULL,
                prefix TEXT NOT NULL,
                seq INTEGER NOT NULL,
                PRIMARY KEY (year, prefix)
            );
        """)

    def next_id(self) -> str:
        """Reserve the next id. Call inside a transaction."""
        year = datetime.now(timezone.utc).year
        with self._db.transaction():
            row = self._db.fetchone(
                "SELECT seq FROM sequences WHERE year=? AND prefix=?", (year, self._prefix)
            )
            if row is None:
                seq = 1
                self._db.execute(
                    "INSERT INTO sequences(year, prefix, seq) VALUES (?, ?, ?)", (year, self._prefix, seq)
                )
            else:
                seq = int(row["seq"]) + 1
                self._db.execute(
                    "UPDATE sequences SET seq=? WHERE year=? AND prefix=?", (seq, year, self._prefix)
                )
        token = self._pattern.replace("{YYYY}", str(year))
        m = _SEQ_TOKEN.search(token)
        if m:
            token = _SEQ_TOKEN.sub(f"{seq:0{int(m.group(1))}d}", token)
        else:
            token = token.replace("{seq}", str(seq))
        return f"{self._prefix}-{token}"
