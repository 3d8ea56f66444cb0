"""User administration: reviewer approval and user removal."""

from __future__ import annotations

import logging

from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.exceptions.errors import NotFoundError, ValidationError
from theses.logic.relationship_graph import RelationshipGraph
from theses.logic.workflow_engine import WorkflowEngine
from theses.models.thesis_models import User
from theses.repository.thesis_repository import ThesisRepository

logger = logging.getLogger(__name__)


class UserAdministration:
    def __init__(self, repository: ThesisRepository, graph: RelationshipGraph, engine: WorkflowEngine) -> None:
        self._repo = repository
        self._graph = graph
        self._engine = engine

    def approve_reviewer(self, user_id: str) -> User:
        with self._repo.transaction():
            user = self._repo.get_user_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found.", user_id=user_id)
            if not user.has_role(Role.REVIEWER):
                raise ValidationError("User is not a reviewer.", user_id=user_id, role=user.role.value)
            if not user.approved:
                user.approved = True
                self._repo.update_user(user)
        logger.info("Reviewer %s approved", user_id)
        return user

    def delete_user(self, user_id: str) -> bool:
        """Remove a user and every edge touching them. False if already gone."""
        with self._repo.transaction():
            user = self._repo.get_user_by_id(user_id)
            if user is None:
                return False
            for thesis in self._repo.get_theses_by_student(user_id):
                self._engine.delete_thesis(thesis.id)
            self._graph.unbind_all(SubjectKind.STUDENT, user_id)
            released = self._graph.unbind_assignee(user_id)
            self._repo.delete_user(user_id)
        logger.info("User %s deleted (%d assignments released)", user_id, len(released))
        return True
