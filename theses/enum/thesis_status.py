"""theses/enum/thesis_status.py
============================

Lifecycle states of a thesis.
"""
from __future__ import annotations

from enum import Enum


class ThesisStatus(str, Enum):
    """Thesis lifecycle status."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    RESUBMISSION_REQUIRED = "resubmission_required"
    EVALUATED = "evaluated"
    WITHDRAWN = "withdrawn"
