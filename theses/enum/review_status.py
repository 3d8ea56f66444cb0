"""theses/enum/review_status.py
============================

Status values for single reviews, topic proposals and supervisor requests.
"""
from __future__ import annotations

from enum import Enum


class ReviewStatus(str, Enum):
    """Outcome of a review entry in an iteration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TopicOrigin(str, Enum):
    """Who proposed the current topic."""

    NONE = "none"
    STUDENT = "student"
    SUPERVISOR = "supervisor"


class TopicState(str, Enum):
    """State of the student's topic slot."""

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    STUDENT_ACCEPTED = "student_accepted"
    STUDENT_REJECTED = "student_rejected"


class RequestStatus(str, Enum):
    """Supervisor request states."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
