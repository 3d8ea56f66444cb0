"""Audit logging service.

Writes audit events to the ``theses.audit`` logger. Where they end up
(console, file, log aggregation) is decided by the logging configuration.
"""

from __future__ import annotations
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

from theses.dto.audit_event import AuditEvent, AuditAction, AuditSeverity
from theses.models.thesis_models import utcnow

AUDIT_LOGGER = "theses.audit"

_LEVELS = {
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
}


class AuditService:
    """Emits immutable audit events through stdlib logging."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(AUDIT_LOGGER)

    def log(self, event: AuditEvent) -> None:
        self._log.log(_LEVELS[event.severity], event.to_log_string(), extra={"audit": event.to_dict()})

    def log_action(
        self,
        *,
        action: AuditAction,
        actor_id: Optional[str],
        thesis_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        reason: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        result: str = "success",
    ) -> AuditEvent:
        """
        Convenience method to log an action.

        Returns:
            Created AuditEvent (already logged)
        """
        event = AuditEvent(
            event_id=str(uuid4()),
            event_type=action,
            occurred_at=utcnow(),
            actor_id=actor_id,
            thesis_id=thesis_id,
            subject_id=subject_id,
            action_result=result,
            reason=reason,
            changes=changes or {},
            metadata=metadata or {},
            severity=severity,
        )
        self.log(event)
        return event

    def log_status_changed(
        self,
        *,
        action: AuditAction,
        thesis_id: str,
        actor_id: str,
        old_status: Optional[str],
        new_status: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.log_action(
            action=action,
            actor_id=actor_id,
            thesis_id=thesis_id,
            changes={"status": {"old": old_status, "new": new_status}},
            metadata=metadata,
        )

    def log_assignment(
        self,
        *,
        actor_id: str,
        subject_kind: str,
        subject_id: str,
        role: str,
        old_assignee: Optional[str],
        new_assignee: Optional[str],
    ) -> None:
        self.log_action(
            action=AuditAction.ASSIGNMENT_CHANGED,
            actor_id=actor_id,
            thesis_id=subject_id if subject_kind == "thesis" else None,
            subject_id=subject_id if subject_kind == "student" else None,
            changes={role: {"old": old_assignee, "new": new_assignee}},
        )

    def log_access_denied(
        self,
        *,
        actor_id: Optional[str],
        action: str,
        reason: str,
        thesis_id: Optional[str] = None,
    ) -> None:
        self.log_action(
            action=AuditAction.ACCESS_DENIED,
            actor_id=actor_id,
            thesis_id=thesis_id,
            reason=reason,
            metadata={"attempted_action": action},
            severity=AuditSeverity.WARNING,
            result="denied",
        )

    def log_failure(
        self,
        *,
        actor_id: Optional[str],
        action: str,
        error_kind: str,
        thesis_id: Optional[str] = None,
    ) -> None:
        self.log_action(
            action=AuditAction.OPERATION_FAILED,
            actor_id=actor_id,
            thesis_id=thesis_id,
            reason=error_kind,
            metadata={"attempted_action": action},
            severity=AuditSeverity.ERROR,
            result="failure",
        )
