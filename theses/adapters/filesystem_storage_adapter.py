"""Filesystem implementation of StorageAdapter.

Stores thesis files in the local filesystem with one directory per thesis:

    <root>/<thesis_id>/<category>/<stem><suffix>

Reads and removals of the same path are serialized through a fixed set of
lock stripes, so a file is never deleted while a download of it is in flight.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import BinaryIO, Iterator, List
from pathlib import Path
import logging
import shutil
import threading

from theses.adapters.storage_adapter import StorageAdapter

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


class FilesystemStorageAdapter(StorageAdapter):
    """Local filesystem implementation of StorageAdapter."""

    def __init__(self, root_path: str | Path):
        """
        Args:
            root_path: Root directory for thesis storage
        """
        self._root = Path(root_path)
        self._root.mkdir(parents=True, exist_ok=True)
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(LOCK_STRIPES)]

    @property
    def root(self) -> Path:
        return self._root

    def store_file(self, *, thesis_id: str, source_path: str, category: str, stem: str) -> str:
        src = Path(source_path)
        if not src.is_file():
            raise FileNotFoundError(f"Upload not found: {source_path}")

        target_dir = self._root / thesis_id / category
        target_dir.mkdir(parents=True, exist_ok=True)
        dest_path = target_dir / f"{stem}{src.suffix.lower() or '.pdf'}"

        with self._path_lock(dest_path):
            shutil.copy2(src, dest_path)

        logger.debug("Stored %s as %s", src, dest_path)
        return str(dest_path)

    def generate_path(self, *, thesis_id: str, category: str, filename: str) -> str:
        target_dir = self._root / thesis_id / category
        target_dir.mkdir(parents=True, exist_ok=True)
        return str(target_dir / filename)

    @contextmanager
    def open_read(self, path: str) -> Iterator[BinaryIO]:
        p = Path(path)
        with self._path_lock(p):
            with p.open("rb") as fh:
                yield fh

    def remove(self, path: str) -> bool:
        p = Path(path)
        with self._path_lock(p):
            try:
                p.unlink()
            except FileNotFoundError:
                logger.debug("File already removed: %s", p)
                return False
        logger.debug("Removed %s", p)
        return True

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def remove_thesis_directory(self, thesis_id: str) -> None:
        """Remove empty directories left behind for a thesis."""
        base = self._root / thesis_id
        if not base.is_dir():
            return
        for sub in sorted(base.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            if sub.is_dir() and not any(sub.iterdir()):
                sub.rmdir()
        if not any(base.iterdir()):
            base.rmdir()

    def _path_lock(self, path: Path) -> threading.RLock:
        return self._locks[hash(str(path.resolve())) % LOCK_STRIPES]
