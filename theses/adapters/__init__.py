"""Adapters for external dependencies.

Provides abstraction layers for:
- Database access (SQL-agnostic)
- File storage (filesystem/cloud-agnostic)
- Identity verification and plagiarism detection (external services)
"""

from theses.adapters.database_adapter import DatabaseAdapter
from theses.adapters.sqlite_adapter import SQLiteAdapter
from theses.adapters.storage_adapter import StorageAdapter
from theses.adapters.filesystem_storage_adapter import FilesystemStorageAdapter
from theses.adapters.identity_adapter import IdentityAdapter, StaticIdentityAdapter
from theses.adapters.plagiarism_adapter import PlagiarismAdapter, PlagiarismReport, FixedScorePlagiarismAdapter

__all__ = [
    "DatabaseAdapter",
    "SQLiteAdapter",
    "StorageAdapter",
    "FilesystemStorageAdapter",
    "IdentityAdapter",
    "StaticIdentityAdapter",
    "PlagiarismAdapter",
    "PlagiarismReport",
    "FixedScorePlagiarismAdapter",
]
