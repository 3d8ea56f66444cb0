"""Database adapter abstraction.

Provides a database-agnostic interface for the repository layer.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, List, Dict, Optional


class DatabaseAdapter(ABC):
    """Abstract database adapter for SQL operations."""

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> Any:
        """Execute a query and return the cursor."""
        raise NotImplementedError

    @abstractmethod
    def fetchone(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """Fetch single row as dictionary, or None."""
        raise NotImplementedError

    @abstractmethod
    def fetchall(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Fetch all rows as list of dictionaries."""
        raise NotImplementedError

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Serialize a read-modify-write unit.

        Commits on normal exit, rolls back when the block raises. Nested use
        joins the outer transaction.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        raise NotImplementedError

    @abstractmethod
    def executescript(self, script: str) -> None:
        """
        Execute multiple SQL statements (for schema creation).

        Args:
            script: Multi-statement SQL script
        """
        raise NotImplementedError
