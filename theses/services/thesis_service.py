"""Thesis service facade.

Entry point for every thesis operation. Each call:

1. verifies the credential through the identity adapter and loads the
   actor's faculty / approval flag,
2. builds a ``ResourceRef`` snapshot of the target,
3. asks ``PermissionPolicy.authorize`` for a decision,
4. only on allow runs the workflow engine / topic negotiation / request logic,
5. wraps the outcome in an ``OperationResult``.

Write operations run steps 2 to 4 inside one repository transaction, so the
decision and the transition see the same snapshot. Domain errors become
failed results; anything else is logged and reported as ``InternalError``.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Callable, List, Optional, Sequence, Tuple, TypeVar

from theses.adapters.identity_adapter import IdentityAdapter
from theses.dto.actor import Actor
from theses.dto.audit_event import AuditAction
from theses.dto.decision import Decision
from theses.dto.operation_result import OperationResult
from theses.dto.resource_ref import ResourceRef
from theses.enum.review_status import ReviewStatus
from theses.enum.role import ASSIGNABLE_ROLES, Role
from theses.enum.subject_kind import SubjectKind
from theses.enum.thesis_action import ThesisAction
from theses.exceptions.errors import (
    ForbiddenError,
    InternalError,
    ThesisError,
    UnauthenticatedError,
    ValidationError,
)
from theses.logic.supervisor_requests import SupervisorRequests
from theses.logic.topic_negotiation import TopicNegotiation
from theses.logic.user_administration import UserAdministration
from theses.logic.workflow_engine import WorkflowEngine
from theses.models.thesis_models import Thesis
from theses.repository.thesis_repository import ThesisRepository
from theses.services.audit_service import AuditService
from theses.services.policy.permission_policy import UNAUTHENTICATED, PermissionPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ThesisService:
    def __init__(
        self,
        *,
        repository: ThesisRepository,
        permissions: PermissionPolicy,
        engine: WorkflowEngine,
        topics: TopicNegotiation,
        requests: SupervisorRequests,
        administration: UserAdministration,
        identity: IdentityAdapter,
        audit: Optional[AuditService] = None,
    ) -> None:
        self._repo = repository
        self._permissions = permissions
        self._engine = engine
        self._topics = topics
        self._requests = requests
        self._admin = administration
        self._identity = identity
        self._audit = audit or AuditService()

    # ======================================================================
    # Authorization
    # ======================================================================

    def resolve_actor(self, credential: Optional[str]) -> Optional[Actor]:
        """Verified claim enriched with the stored faculty and approval flag."""
        claim = self._identity.verify(credential)
        if claim is None:
            return None
        user = self._repo.get_user_by_id(claim.id)
        if user is None:
            logger.warning("Credential for unknown user %s", claim.id)
            return None
        return Actor(
            id=claim.id,
            role=claim.role,
            roles=frozenset(claim.roles),
            faculty=user.faculty,
            approved=user.approved,
        )

    def check_access(
        self, credential: Optional[str], action: ThesisAction, *, thesis_id: Optional[str] = None,
        student_id: Optional[str] = None,
    ) -> OperationResult[Decision]:
        """Return the decision itself (allowed or not) without executing anything."""
        try:
            actor = self.resolve_actor(credential)
            if thesis_id is not None:
                resource = self._thesis_resource(thesis_id)
            elif student_id is not None:
                resource = self._student_resource(student_id)
            else:
                resource = ResourceRef(kind="none")
            return OperationResult.success(self._permissions.authorize(actor, action, resource))
        except ThesisError as ex:
            return OperationResult.failure(ex)
        except Exception:
            logger.exception("check_access failed for %s", action.value)
            return OperationResult.failure(InternalError("Unexpected failure.", action=action.value))

    # ======================================================================
    # Topic negotiation
    # ======================================================================

    def submit_topic(self, credential: Optional[str], text: str) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.SUBMIT_TOPIC,
            lambda actor: self._student_resource(actor.id),
            lambda actor: self._topics.submit_topic(actor.id, text),
            audit=AuditAction.TOPIC_SUBMITTED,
        )

    def review_topic(
        self, credential: Optional[str], student_id: str, *, approve: bool, comments: Optional[str] = None
    ) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.REVIEW_TOPIC,
            lambda actor: self._student_resource(student_id),
            lambda actor: self._topics.review_topic(student_id, approve=approve, comments=comments),
            audit=AuditAction.TOPIC_REVIEWED,
            subject_id=student_id,
        )

    def propose_topic(self, credential: Optional[str], student_id: str, text: str) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.PROPOSE_TOPIC,
            lambda actor: self._student_resource(student_id),
            lambda actor: self._topics.propose_topic(student_id, text),
            audit=AuditAction.TOPIC_PROPOSED,
            subject_id=student_id,
        )

    def respond_to_topic(
        self, credential: Optional[str], *, accept: bool, comments: Optional[str] = None
    ) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.RESPOND_TOPIC,
            lambda actor: self._student_resource(actor.id),
            lambda actor: self._topics.respond_to_topic(actor.id, accept=accept, comments=comments),
            audit=AuditAction.TOPIC_RESPONDED,
        )

    # ======================================================================
    # Supervisor requests
    # ======================================================================

    def request_supervisor(
        self, credential: Optional[str], supervisor_id: str, message: Optional[str] = None
    ) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.REQUEST_SUPERVISOR,
            lambda actor: self._student_resource(actor.id),
            lambda actor: self._requests.create(actor.id, supervisor_id, message),
            audit=AuditAction.SUPERVISOR_REQUESTED,
        )

    def respond_supervisor_request(
        self, credential: Optional[str], request_id: str, *, accept: bool, message: Optional[str] = None
    ) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.RESPOND_SUPERVISOR_REQUEST,
            lambda actor: self._request_resource(request_id),
            lambda actor: self._requests.respond(request_id, accept=accept, message=message),
            audit=AuditAction.SUPERVISOR_REQUEST_ANSWERED,
        )

    def cancel_supervisor_request(self, credential: Optional[str], request_id: str) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.CANCEL_SUPERVISOR_REQUEST,
            lambda actor: self._request_resource(request_id),
            lambda actor: self._requests.cancel(request_id),
            audit=AuditAction.SUPERVISOR_REQUEST_ANSWERED,
        )

    # ======================================================================
    # Thesis lifecycle
    # ======================================================================

    def submit_thesis(self, credential: Optional[str], *, title: str, source_path: str) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.SUBMIT_THESIS,
            lambda actor: self._student_resource(actor.id),
            lambda actor: self._engine.submit(actor.id, title=title, source_path=source_path),
            audit=AuditAction.THESIS_SUBMITTED,
        )

    def get_thesis(self, credential: Optional[str], thesis_id: str) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.VIEW_THESIS,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.get_thesis(thesis_id),
            write=False,
        )

    def download_thesis(
        self, credential: Optional[str], thesis_id: str, consumer: Callable[[BinaryIO], T]
    ) -> OperationResult[T]:
        """Hand the open thesis file to ``consumer``; deletion waits until it returns.

        A denied caller learns nothing about whether the file exists.
        """

        def op(actor: Actor) -> T:
            with self._engine.open_thesis_file(thesis_id) as fh:
                return consumer(fh)

        return self._run(
            credential,
            ThesisAction.DOWNLOAD_THESIS,
            lambda actor: self._thesis_resource(thesis_id),
            op,
            audit=AuditAction.THESIS_DOWNLOADED,
            thesis_id=thesis_id,
            write=False,
        )

    def delete_thesis(self, credential: Optional[str], thesis_id: Optional[str] = None) -> OperationResult:
        """Withdraw a thesis. Students may omit the id to withdraw their own.

        Deleting a thesis that is already gone succeeds without effect.
        """

        def resource(actor: Actor) -> ResourceRef:
            if thesis_id is None:
                return self._student_resource(actor.id)
            if actor.has_role(Role.STUDENT) and self._repo.get_thesis_by_id(thesis_id) is None:
                # already gone: the owner check runs against the caller's own record
                return self._student_resource(actor.id)
            return self._thesis_resource(thesis_id)

        def op(actor: Actor) -> Optional[Thesis]:
            target = thesis_id
            if target is None:
                student = self._repo.get_user_by_id(actor.id)
                target = student.thesis_id if student else None
            if target is None:
                return None
            return self._engine.delete_thesis(target)

        return self._run(
            credential,
            ThesisAction.DELETE_THESIS,
            resource,
            op,
            audit=AuditAction.THESIS_DELETED,
            thesis_id=thesis_id,
        )

    def list_theses(self, credential: Optional[str]) -> OperationResult[List[Thesis]]:
        """Theses visible to the caller: assigned ones, own faculty for management, all for admin."""

        def op(actor: Actor) -> List[Thesis]:
            roles = set(actor.all_roles)
            theses = self._repo.list_theses()
            if Role.ADMIN in roles:
                return theses
            visible = []
            for thesis in theses:
                resource = self._resource_for(thesis)
                if self._permissions.is_allowed(actor, ThesisAction.VIEW_THESIS, resource):
                    visible.append(thesis)
            return visible

        return self._run(
            credential,
            ThesisAction.LIST_THESES,
            lambda actor: ResourceRef(kind="none"),
            op,
            write=False,
        )

    # ======================================================================
    # Relationship graph
    # ======================================================================

    def assign(
        self,
        credential: Optional[str],
        *,
        subject_kind: SubjectKind,
        subject_id: str,
        role: Role,
        assignee_id: Optional[str],
    ) -> OperationResult:
        """Management-only: bind, rebind or (assignee None) unbind an edge."""

        def resource(actor: Actor) -> ResourceRef:
            if subject_kind == SubjectKind.THESIS:
                return self._thesis_resource(subject_id)
            return self._student_resource(subject_id)

        def op(actor: Actor):
            result = self._engine.assign(subject_kind, subject_id, role, assignee_id)
            if result.changed:
                self._audit.log_assignment(
                    actor_id=actor.id,
                    subject_kind=subject_kind.value,
                    subject_id=subject_id,
                    role=role.value,
                    old_assignee=result.previous_id,
                    new_assignee=result.assignee_id,
                )
            return result

        return self._run(credential, ThesisAction.ASSIGN, resource, op)

    # ======================================================================
    # Review cycle
    # ======================================================================

    def submit_review(
        self,
        credential: Optional[str],
        thesis_id: str,
        *,
        status: ReviewStatus,
        comments: str = "",
        is_final_approval: bool = False,
        as_role: Optional[Role] = None,
    ) -> OperationResult[Thesis]:
        """File a review under ``as_role`` (default: the first held academic role the resolver allows)."""
        return self._run(
            credential,
            ThesisAction.SUBMIT_REVIEW,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.submit_review(
                thesis_id,
                reviewer_id=actor.id,
                role=actor.role,
                status=status,
                comments=comments,
                is_final_approval=is_final_approval,
            ),
            audit=AuditAction.REVIEW_SUBMITTED,
            thesis_id=thesis_id,
            as_role=as_role,
            role_choices=ASSIGNABLE_ROLES,
        )

    def request_re_review(
        self, credential: Optional[str], thesis_id: str, *, as_role: Optional[Role] = None
    ) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.REQUEST_RE_REVIEW,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.request_re_review(thesis_id),
            audit=AuditAction.RE_REVIEW_REQUESTED,
            thesis_id=thesis_id,
            as_role=as_role,
            role_choices=ASSIGNABLE_ROLES,
        )

    def sign_review(self, credential: Optional[str], thesis_id: str, *, signed_file: str) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.SIGN_REVIEW,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.sign_review(thesis_id, signer_id=actor.id, signed_file=signed_file),
            audit=AuditAction.REVIEW_SIGNED,
            thesis_id=thesis_id,
        )

    def countersign_review(
        self, credential: Optional[str], thesis_id: str, *, signed_file: str, as_role: Optional[Role] = None
    ) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.COUNTERSIGN_REVIEW,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.countersign_review(
                thesis_id, signer_id=actor.id, role=actor.role, signed_file=signed_file
            ),
            audit=AuditAction.REVIEW_COUNTERSIGNED,
            thesis_id=thesis_id,
            as_role=as_role,
            role_choices=(Role.HEAD_OF_DEPARTMENT, Role.DEAN),
        )

    def evaluate(self, credential: Optional[str], thesis_id: str, *, grade: str) -> OperationResult[Thesis]:
        return self._run(
            credential,
            ThesisAction.EVALUATE,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.evaluate(thesis_id, grade=grade),
            audit=AuditAction.THESIS_EVALUATED,
            thesis_id=thesis_id,
        )

    def check_plagiarism(self, credential: Optional[str], thesis_id: str) -> OperationResult[Thesis]:
        # the detector call must not hold the write lock; the engine opens its own transaction
        return self._run(
            credential,
            ThesisAction.CHECK_PLAGIARISM,
            lambda actor: self._thesis_resource(thesis_id),
            lambda actor: self._engine.check_plagiarism(thesis_id),
            audit=AuditAction.PLAGIARISM_CHECKED,
            thesis_id=thesis_id,
            write=False,
        )

    # ======================================================================
    # Administration
    # ======================================================================

    def approve_reviewer(self, credential: Optional[str], user_id: str) -> OperationResult:
        return self._run(
            credential,
            ThesisAction.APPROVE_REVIEWER,
            lambda actor: ResourceRef(kind="user", id=user_id, target_user_id=user_id),
            lambda actor: self._admin.approve_reviewer(user_id),
            audit=AuditAction.REVIEWER_APPROVED,
            subject_id=user_id,
        )

    def delete_user(self, credential: Optional[str], user_id: str) -> OperationResult[bool]:
        return self._run(
            credential,
            ThesisAction.DELETE_USER,
            lambda actor: ResourceRef(kind="user", id=user_id, target_user_id=user_id),
            lambda actor: self._admin.delete_user(user_id),
            audit=AuditAction.USER_DELETED,
            subject_id=user_id,
        )

    # ======================================================================
    # Plumbing
    # ======================================================================

    def _run(
        self,
        credential: Optional[str],
        action: ThesisAction,
        resource_fn: Callable[[Actor], ResourceRef],
        op: Callable[[Actor], Any],
        *,
        audit: Optional[AuditAction] = None,
        thesis_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        as_role: Optional[Role] = None,
        role_choices: Optional[Sequence[Role]] = None,
        write: bool = True,
    ) -> OperationResult:
        actor: Optional[Actor] = None
        try:
            actor = self.resolve_actor(credential)
            if actor is None:
                raise UnauthenticatedError("Authentication required.", action=action.value, reason=UNAUTHENTICATED)
            if as_role is not None:
                actor = self._require_role(actor, as_role, role_choices or ())
                role_choices = None

            if write:
                with self._repo.transaction():
                    value = self._authorized(actor, action, resource_fn, op, role_choices)
            else:
                value = self._authorized(actor, action, resource_fn, op, role_choices)

            if audit is not None and value is not None:
                self._audit.log_action(
                    action=audit,
                    actor_id=actor.id,
                    thesis_id=thesis_id or (value.id if isinstance(value, Thesis) else None),
                    subject_id=subject_id,
                )
            return OperationResult.success(value)

        except ForbiddenError as ex:
            self._audit.log_access_denied(
                actor_id=actor.id if actor else None,
                action=action.value,
                reason=ex.reason or "forbidden",
                thesis_id=thesis_id,
            )
            return OperationResult.failure(ex)
        except UnauthenticatedError as ex:
            self._audit.log_access_denied(actor_id=None, action=action.value, reason=UNAUTHENTICATED)
            return OperationResult.failure(ex)
        except ThesisError as ex:
            logger.info("%s failed: %s %s", action.value, ex.kind, ex.message)
            return OperationResult.failure(ex)
        except Exception:
            logger.exception("Unexpected failure in %s", action.value)
            self._audit.log_failure(
                actor_id=actor.id if actor else None,
                action=action.value,
                error_kind=InternalError.kind,
                thesis_id=thesis_id,
            )
            return OperationResult.failure(InternalError("Unexpected failure.", action=action.value))

    def _authorized(
        self,
        actor: Actor,
        action: ThesisAction,
        resource_fn: Callable[[Actor], ResourceRef],
        op: Callable[[Actor], Any],
        role_choices: Optional[Sequence[Role]] = None,
    ) -> Any:
        resource = resource_fn(actor)
        if role_choices:
            actor, decision = self._choose_role(actor, action, resource, role_choices)
        else:
            decision = self._permissions.authorize(actor, action, resource)
        if not decision.allowed:
            raise ForbiddenError(f"Not allowed to {action.value.replace('_', ' ')}.", decision=decision)
        return op(actor)

    def _choose_role(
        self, actor: Actor, action: ThesisAction, resource: ResourceRef, candidates: Sequence[Role]
    ) -> Tuple[Actor, Decision]:
        """First held candidate role the resolver allows; otherwise the first refusal."""
        refused: Optional[Tuple[Actor, Decision]] = None
        for role in actor.all_roles:
            if role not in candidates:
                continue
            narrowed = actor.acting_as(role)
            decision = self._permissions.authorize(narrowed, action, resource)
            if decision.allowed:
                return narrowed, decision
            if refused is None:
                refused = (narrowed, decision)
        if refused is not None:
            return refused
        return actor, self._permissions.authorize(actor, action, resource)

    @staticmethod
    def _require_role(actor: Actor, requested: Role, candidates: Sequence[Role]) -> Actor:
        """Narrow to an explicitly requested role."""
        if requested not in candidates:
            raise ValidationError(f"Role '{requested.value}' is not valid here.", role=requested.value)
        if not actor.has_role(requested):
            raise ForbiddenError(
                f"Caller does not hold role '{requested.value}'.",
                reason="role_required",
                required_roles=[requested.value],
                actor_roles=[r.value for r in actor.all_roles],
            )
        return actor.acting_as(requested)

    # ------------------------------------------------------------------ #
    #  Resource snapshots
    # ------------------------------------------------------------------ #
    def _thesis_resource(self, thesis_id: str) -> ResourceRef:
        thesis = self._repo.get_thesis_by_id(thesis_id)
        if thesis is None:
            return ResourceRef(kind="thesis", id=thesis_id)
        return self._resource_for(thesis)

    def _resource_for(self, thesis: Thesis) -> ResourceRef:
        student = self._repo.get_user_by_id(thesis.student_id)
        return ResourceRef(
            kind="thesis",
            id=thesis.id,
            student_id=thesis.student_id,
            student_faculty=student.faculty if student else None,
            thesis_supervisor_id=thesis.assigned_supervisor_id,
            thesis_consultant_id=thesis.assigned_consultant_id,
            thesis_reviewer_id=thesis.assigned_reviewer_id,
            student_supervisor_id=student.supervisor_id if student else None,
            student_consultant_id=student.consultant_id if student else None,
            student_reviewer_id=student.reviewer_id if student else None,
        )

    def _student_resource(self, student_id: str) -> ResourceRef:
        student = self._repo.get_user_by_id(student_id)
        if student is None or not student.has_role(Role.STUDENT):
            return ResourceRef(kind="student", id=student_id)
        return ResourceRef(
            kind="student",
            id=student.id,
            student_id=student.id,
            student_faculty=student.faculty,
            student_supervisor_id=student.supervisor_id,
            student_consultant_id=student.consultant_id,
            student_reviewer_id=student.reviewer_id,
        )

    def _request_resource(self, request_id: str) -> ResourceRef:
        request = self._repo.get_request(request_id)
        if request is None:
            return ResourceRef(kind="request", id=request_id)
        student = self._repo.get_user_by_id(request.student_id)
        return ResourceRef(
            kind="request",
            id=request.id,
            student_id=request.student_id,
            student_faculty=student.faculty if student else None,
            target_user_id=request.supervisor_id,
        )
