"""Repository configuration."""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class RepoConfig:
    """Configuration for the theses repository."""

    db_path: str
    """Path to SQLite database file"""

    thesis_id_prefix: str = "THS"
    """Prefix for thesis IDs (e.g., "THS" → "THS-2026-0001")"""

    request_id_prefix: str = "REQ"
    """Prefix for supervisor request IDs"""

    id_pattern: str = "{YYYY}-{seq:04d}"
    """Pattern for ID generation (supports {YYYY}, {seq:04d})"""
