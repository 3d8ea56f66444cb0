"""Audit event DTO.

Audit events are NOT stored in a table of their own. ``AuditService`` writes
them to the ``theses.audit`` logger; persistence is up to the logging setup.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class AuditAction(Enum):
    """Audit action types for the thesis lifecycle."""

    # Topic
    TOPIC_SUBMITTED = "topic_submitted"
    TOPIC_REVIEWED = "topic_reviewed"
    TOPIC_PROPOSED = "topic_proposed"
    TOPIC_RESPONDED = "topic_responded"

    # Thesis
    THESIS_SUBMITTED = "thesis_submitted"
    THESIS_RESUBMITTED = "thesis_resubmitted"
    THESIS_DELETED = "thesis_deleted"
    THESIS_EVALUATED = "thesis_evaluated"
    THESIS_DOWNLOADED = "thesis_downloaded"

    # Reviews
    REVIEW_SUBMITTED = "review_submitted"
    RE_REVIEW_REQUESTED = "re_review_requested"
    REVIEW_SIGNED = "review_signed"
    REVIEW_COUNTERSIGNED = "review_countersigned"
    PLAGIARISM_CHECKED = "plagiarism_checked"

    # Relationship graph
    ASSIGNMENT_CHANGED = "assignment_changed"
    SUPERVISOR_REQUESTED = "supervisor_requested"
    SUPERVISOR_REQUEST_ANSWERED = "supervisor_request_answered"

    # Administration
    REVIEWER_APPROVED = "reviewer_approved"
    USER_DELETED = "user_deleted"

    # Security
    ACCESS_DENIED = "access_denied"
    OPERATION_FAILED = "operation_failed"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AuditEvent:
    """Immutable audit event."""

    event_id: str
    """Unique event ID (UUID)"""

    event_type: AuditAction
    """Type of action performed"""

    occurred_at: datetime
    """When the event occurred (UTC)"""

    actor_id: Optional[str]
    """User ID who performed the action (None when unauthenticated)"""

    thesis_id: Optional[str] = None

    subject_id: Optional[str] = None
    """Student or user the action was about"""

    action_result: str = "success"
    """'success', 'failure' or 'denied'"""

    reason: Optional[str] = None

    changes: Dict[str, Any] = field(default_factory=dict)
    """Format: {'field_name': {'old': <value>, 'new': <value>}}"""

    metadata: Dict[str, Any] = field(default_factory=dict)

    severity: AuditSeverity = AuditSeverity.INFO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": self.actor_id,
            "thesis_id": self.thesis_id,
            "subject_id": self.subject_id,
            "action_result": self.action_result,
            "reason": self.reason,
            "changes": self.changes,
            "metadata": self.metadata,
            "severity": self.severity.value,
        }

    def to_log_string(self) -> str:
        parts = [
            f"[{self.severity.value.upper()}]",
            self.event_type.value,
            f"by {self.actor_id or '<anonymous>'}",
        ]
        if self.thesis_id:
            parts.append(f"on {self.thesis_id}")
        if self.subject_id:
            parts.append(f"for {self.subject_id}")
        if self.reason:
            parts.append(f"- {self.reason}")
        if self.action_result != "success":
            parts.append(f"[{self.action_result.upper()}]")
        return " ".join(parts)
