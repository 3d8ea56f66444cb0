"""Supervisor requests.

A student asks a supervisor of the same faculty to take them on. Accepting
binds the student (and an already submitted thesis) to the supervisor through
the relationship graph and closes the student's other open requests.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from theses.enum.review_status import RequestStatus
from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.exceptions.errors import InvalidStateError, NotFoundError, ValidationError
from theses.logic.relationship_graph import RelationshipGraph
from theses.models.thesis_models import SupervisorRequest, User, utcnow
from theses.repository.thesis_repository import ThesisRepository

logger = logging.getLogger(__name__)

AUTO_CANCEL_MESSAGE = "Student was assigned to another supervisor."


class SupervisorRequests:
    def __init__(self, repository: ThesisRepository, graph: RelationshipGraph) -> None:
        self._repo = repository
        self._graph = graph

    def create(self, student_id: str, supervisor_id: str, message: Optional[str] = None) -> SupervisorRequest:
        with self._repo.transaction():
            student = self._user(student_id, Role.STUDENT)
            supervisor = self._user(supervisor_id, Role.SUPERVISOR)
            if student.supervisor_id:
                raise InvalidStateError(
                    "Student already has a supervisor.", current="supervised", required="no supervisor"
                )
            if student.faculty != supervisor.faculty:
                raise ValidationError(
                    "Supervisor belongs to a different faculty.", field="supervisor_id", reason="faculty_mismatch"
                )
            pending = self._repo.list_requests(
                student_id=student_id, supervisor_id=supervisor_id, status=RequestStatus.PENDING
            )
            if pending:
                raise InvalidStateError(
                    "A request to this supervisor is already pending.",
                    current=RequestStatus.PENDING,
                    required="no pending request",
                    request_id=pending[0].id,
                )
            request = self._repo.create_request(
                SupervisorRequest(
                    id="",
                    student_id=student_id,
                    supervisor_id=supervisor_id,
                    message=(message or "").strip() or None,
                )
            )
        logger.info("Student %s requested supervisor %s (%s)", student_id, supervisor_id, request.id)
        return request

    def respond(
        self, request_id: str, *, accept: bool, message: Optional[str] = None
    ) -> SupervisorRequest:
        """Accept or decline. Declining needs a reason."""
        reason = (message or "").strip() or None
        if not accept and not reason:
            raise ValidationError("A declined request needs a reason.", field="message")

        with self._repo.transaction():
            request = self.get(request_id)
            self._ensure_pending(request)
            now = utcnow()

            if accept:
                student = self._user(request.student_id, Role.STUDENT)
                if student.supervisor_id and student.supervisor_id != request.supervisor_id:
                    raise InvalidStateError(
                        "Student already has a supervisor.", current="supervised", required="no supervisor"
                    )
                self._graph.bind(SubjectKind.STUDENT, student.id, Role.SUPERVISOR, request.supervisor_id)
                if student.thesis_id:
                    self._graph.bind(SubjectKind.THESIS, student.thesis_id, Role.SUPERVISOR, request.supervisor_id)

                for other in self._repo.list_requests(student_id=student.id, status=RequestStatus.PENDING):
                    if other.id == request.id:
                        continue
                    other.status = RequestStatus.CANCELLED
                    other.response_message = AUTO_CANCEL_MESSAGE
                    other.responded_at = now
                    self._repo.update_request(other)

            request.status = RequestStatus.ACCEPTED if accept else RequestStatus.DECLINED
            request.response_message = reason
            request.responded_at = now
            self._repo.update_request(request)

        logger.info("Supervisor request %s %s", request_id, request.status.value)
        return request

    def cancel(self, request_id: str) -> SupervisorRequest:
        with self._repo.transaction():
            request = self.get(request_id)
            self._ensure_pending(request)
            request.status = RequestStatus.CANCELLED
            request.responded_at = utcnow()
            self._repo.update_request(request)
        logger.info("Supervisor request %s cancelled", request_id)
        return request

    def get(self, request_id: str) -> SupervisorRequest:
        request = self._repo.get_request(request_id)
        if request is None:
            raise NotFoundError("Supervisor request not found.", request_id=request_id)
        return request

    def for_student(self, student_id: str) -> List[SupervisorRequest]:
        return self._repo.list_requests(student_id=student_id)

    def for_supervisor(self, supervisor_id: str, *, pending_only: bool = True) -> List[SupervisorRequest]:
        status = RequestStatus.PENDING if pending_only else None
        return self._repo.list_requests(supervisor_id=supervisor_id, status=status)

    @staticmethod
    def _ensure_pending(request: SupervisorRequest) -> None:
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                "Request is no longer pending.", current=request.status, required=RequestStatus.PENDING
            )

    def _user(self, user_id: str, role: Role) -> User:
        user = self._repo.get_user_by_id(user_id)
        if user is None or not user.has_role(role):
            raise NotFoundError(f"{role.value.replace('_', ' ').title()} not found.", user_id=user_id)
        return user
