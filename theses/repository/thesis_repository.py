"""Thesis repository protocol (interface).

Defines the contract for user/thesis data access without implementation
details. Every call is atomic on its own; multi-call units run inside
``transaction()``.
"""

from __future__ import annotations
from contextlib import AbstractContextManager
from typing import List, Optional, Protocol

from theses.enum.review_status import RequestStatus
from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.models.thesis_models import AssignmentEdge, SupervisorRequest, Thesis, User


class ThesisRepository(Protocol):
    """Protocol for theses data access."""

    def transaction(self) -> AbstractContextManager:
        """Serialize a read-modify-write unit; reentrant."""
        ...

    # ===== Users =====

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """User with derived assignment fields filled in, or None."""
        ...

    def list_users(self, *, role: Optional[Role] = None, faculty: Optional[str] = None) -> List[User]:
        ...

    def create_user(self, user: User) -> User:
        ...

    def update_user(self, user: User) -> User:
        """
        Persist ``user`` if its version is still current.

        Raises:
            ConflictError: the stored version moved on
            NotFoundError: the user no longer exists
        """
        ...

    def delete_user(self, user_id: str) -> bool:
        ...

    # ===== Theses =====

    def next_thesis_id(self) -> str:
        ...

    def get_thesis_by_id(self, thesis_id: str) -> Optional[Thesis]:
        ...

    def get_theses_by_student(self, student_id: str) -> List[Thesis]:
        ...

    def list_theses(self, *, ids: Optional[List[str]] = None) -> List[Thesis]:
        ...

    def create_thesis(self, thesis: Thesis) -> Thesis:
        ...

    def update_thesis(self, thesis: Thesis) -> Thesis:
        """Versioned update, same contract as update_user."""
        ...

    def delete_thesis(self, thesis_id: str) -> bool:
        """Delete the record; False when it was already gone."""
        ...

    # ===== Assignment edges =====

    def get_assignment(self, subject_kind: SubjectKind, subject_id: str, role: Role) -> Optional[str]:
        ...

    def set_assignment(
        self, subject_kind: SubjectKind, subject_id: str, role: Role, assignee_id: Optional[str]
    ) -> Optional[str]:
        """Replace (or clear, with None) one edge. Returns the previous assignee."""
        ...

    def list_assignments(
        self,
        *,
        assignee_id: Optional[str] = None,
        subject_kind: Optional[SubjectKind] = None,
        subject_id: Optional[str] = None,
    ) -> List[AssignmentEdge]:
        ...

    # ===== Supervisor requests =====

    def next_request_id(self) -> str:
        ...

    def create_request(self, request: SupervisorRequest) -> SupervisorRequest:
        ...

    def get_request(self, request_id: str) -> Optional[SupervisorRequest]:
        ...

    def update_request(self, request: SupervisorRequest) -> SupervisorRequest:
        ...

    def list_requests(
        self,
        *,
        student_id: Optional[str] = None,
        supervisor_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[SupervisorRequest]:
        ...
