"""Storage adapter abstraction.

Defines the blob store interface for thesis files and review documents. The
core only ever handles paths/identifiers; bytes stay behind this interface.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import BinaryIO


class StorageAdapter(ABC):
    """Abstract storage adapter for thesis content."""

    @abstractmethod
    def store_file(self, *, thesis_id: str, source_path: str, category: str, stem: str) -> str:
        """
        Copy ``source_path`` into storage.

        Args:
            thesis_id: Owning thesis
            source_path: Path to the uploaded file
            category: Sub-area, e.g. "submissions", "reviews", "signed"
            stem: File name without extension

        Returns:
            Path/URI of the stored file
        """
        raise NotImplementedError

    @abstractmethod
    def generate_path(self, *, thesis_id: str, category: str, filename: str) -> str:
        """Return a storage path for a file the caller writes itself (e.g. generated PDFs)."""
        raise NotImplementedError

    @abstractmethod
    def open_read(self, path: str) -> AbstractContextManager[BinaryIO]:
        """
        Open a stored file for reading.

        Removal of the same path waits until the reader has closed it.
        Raises FileNotFoundError when the file does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    def remove(self, path: str) -> bool:
        """
        Remove a stored file.

        Idempotent: a missing file is not an error.

        Returns:
            True if a file was deleted
        """
        raise NotImplementedError

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if file exists in storage."""
        raise NotImplementedError

    @abstractmethod
    def remove_thesis_directory(self, thesis_id: str) -> None:
        """Drop the (empty) storage area of a thesis."""
        raise NotImplementedError
