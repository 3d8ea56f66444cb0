"""Kinds of assignment subjects."""
from __future__ import annotations

from enum import Enum


class SubjectKind(str, Enum):
    """What an assignment edge hangs off."""

    STUDENT = "student"
    THESIS = "thesis"
