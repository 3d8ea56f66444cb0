"""Relationship graph.

The only component that mutates assignment edges. An edge binds a subject
(a student, or a thesis) under a role (supervisor / consultant / reviewer) to
an assignee. Forward references (``student.supervisor_id``,
``thesis.assigned_reviewer_id``) and back-references
(``user.assigned_students``, ``user.assigned_theses``) are both read from the
same stored edge, so a rebind moves both directions at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from theses.enum.role import ASSIGNABLE_ROLES, Role
from theses.enum.subject_kind import SubjectKind
from theses.exceptions.errors import NotFoundError, ValidationError
from theses.models.thesis_models import AssignmentEdge
from theses.repository.thesis_repository import ThesisRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindResult:
    subject_kind: SubjectKind
    subject_id: str
    role: Role
    previous_id: Optional[str]
    assignee_id: Optional[str]

    @property
    def changed(self) -> bool:
        return self.previous_id != self.assignee_id


class RelationshipGraph:
    """Single mutation entry point for assignment edges."""

    def __init__(self, repository: ThesisRepository) -> None:
        self._repo = repository

    def bind(
        self,
        subject_kind: SubjectKind,
        subject_id: str,
        role: Role,
        assignee_id: Optional[str],
    ) -> BindResult:
        """Point (subject, role) at ``assignee_id``; None removes the edge.

        Unbinding an edge that does not exist is a no-op.
        """
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError(
                f"Role '{role.value}' cannot be assigned.",
                role=role.value,
                allowed=[r.value for r in ASSIGNABLE_ROLES],
            )

        with self._repo.transaction():
            self._require_subject(subject_kind, subject_id)
            if assignee_id is not None:
                assignee = self._repo.get_user_by_id(assignee_id)
                if assignee is None:
                    raise NotFoundError("Assignee not found.", user_id=assignee_id)
                if not assignee.has_role(role):
                    raise ValidationError(
                        f"User '{assignee_id}' does not hold role '{role.value}'.",
                        user_id=assignee_id,
                        role=role.value,
                    )
                if role == Role.REVIEWER and not assignee.approved:
                    raise ValidationError(
                        "Reviewer account is not approved yet.", user_id=assignee_id, reason="pending_approval"
                    )

            current = self._repo.get_assignment(subject_kind, subject_id, role)
            if current == assignee_id:
                return BindResult(subject_kind, subject_id, role, current, assignee_id)

            previous = self._repo.set_assignment(subject_kind, subject_id, role, assignee_id)

        logger.info(
            "Edge %s:%s/%s moved %s -> %s",
            subject_kind.value, subject_id, role.value, previous or "-", assignee_id or "-",
        )
        return BindResult(subject_kind, subject_id, role, previous, assignee_id)

    def unbind(self, subject_kind: SubjectKind, subject_id: str, role: Role) -> BindResult:
        return self.bind(subject_kind, subject_id, role, None)

    def unbind_all(self, subject_kind: SubjectKind, subject_id: str) -> List[BindResult]:
        """Remove every edge hanging off a subject (used before deletion)."""
        results: List[BindResult] = []
        with self._repo.transaction():
            for edge in self._repo.list_assignments(subject_kind=subject_kind, subject_id=subject_id):
                previous = self._repo.set_assignment(subject_kind, subject_id, edge.role, None)
                results.append(BindResult(subject_kind, subject_id, edge.role, previous, None))
        return results

    def unbind_assignee(self, assignee_id: str) -> List[BindResult]:
        """Remove every edge pointing at ``assignee_id`` (used before deleting a user)."""
        results: List[BindResult] = []
        with self._repo.transaction():
            for edge in self._repo.list_assignments(assignee_id=assignee_id):
                self._repo.set_assignment(edge.subject_kind, edge.subject_id, edge.role, None)
                results.append(BindResult(edge.subject_kind, edge.subject_id, edge.role, assignee_id, None))
        return results

    def snapshot_to_thesis(self, student_id: str, thesis_id: str) -> List[BindResult]:
        """Copy the student's current edges onto the thesis (copy-on-submit).

        The thesis edges are independent afterwards: rebinding the student
        leaves them untouched.
        """
        results: List[BindResult] = []
        with self._repo.transaction():
            student_edges = {
                e.role: e.assignee_id
                for e in self._repo.list_assignments(subject_kind=SubjectKind.STUDENT, subject_id=student_id)
            }
            for role in ASSIGNABLE_ROLES:
                target = student_edges.get(role)
                if target is None:
                    # thesis-level edges without a student counterpart survive resubmission
                    continue
                previous = self._repo.set_assignment(SubjectKind.THESIS, thesis_id, role, target)
                results.append(BindResult(SubjectKind.THESIS, thesis_id, role, previous, target))
        return results

    def edges_of(self, subject_kind: SubjectKind, subject_id: str) -> List[AssignmentEdge]:
        return self._repo.list_assignments(subject_kind=subject_kind, subject_id=subject_id)

    def _require_subject(self, subject_kind: SubjectKind, subject_id: str) -> None:
        if subject_kind == SubjectKind.STUDENT:
            student = self._repo.get_user_by_id(subject_id)
            if student is None or not student.has_role(Role.STUDENT):
                raise NotFoundError("Student not found.", student_id=subject_id)
        elif self._repo.get_thesis_by_id(subject_id) is None:
            raise NotFoundError("Thesis not found.", thesis_id=subject_id)
