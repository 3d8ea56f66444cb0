"""Repository layer for the theses feature."""

from theses.repository.repo_config import RepoConfig
from theses.repository.sqlite_thesis_repository import SQLiteThesisRepository
from theses.repository.thesis_repository import ThesisRepository

__all__ = ["RepoConfig", "SQLiteThesisRepository", "ThesisRepository"]
