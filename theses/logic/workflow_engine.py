# theses/logic/workflow_engine.py
"""
Thesis review workflow engine.

- Request-per-call: every operation loads the current snapshot, checks its
  guards, and writes back inside one repository transaction. Nothing is kept
  in memory between calls.
- Status transitions come from ``WorkflowPolicy`` (JSON); review-specific
  guards (one review per role and iteration, signed final iteration before
  evaluation) live here.
- Authorization is NOT done here. ``ThesisService`` asks the permission
  policy first and only then calls the engine.

Resubmission keeps the iteration history: a new iteration is opened when
the current one already holds reviews.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional

from theses.adapters.plagiarism_adapter import PlagiarismAdapter
from theses.adapters.storage_adapter import StorageAdapter
from theses.enum.review_status import ReviewStatus
from theses.enum.role import ASSIGNABLE_ROLES, FACULTY_SCOPED_ROLES, Role
from theses.enum.subject_kind import SubjectKind
from theses.enum.thesis_action import ThesisAction
from theses.enum.thesis_status import ThesisStatus
from theses.exceptions.errors import ForbiddenError, InternalError, InvalidStateError, NotFoundError, ValidationError
from theses.logic.plagiarism_gate import PlagiarismGate
from theses.logic.relationship_graph import BindResult, RelationshipGraph
from theses.logic.review_documents import ReviewDocumentRenderer, validate_pdf
from theses.models.thesis_models import (
    Countersignature,
    Review,
    ReviewIteration,
    Thesis,
    User,
    utcnow,
)
from theses.repository.thesis_repository import ThesisRepository
from theses.services.policy.workflow_policy import WorkflowPolicy

logger = logging.getLogger(__name__)

REJECT_REVIEW = "reject_review"
MAX_GRADE_LENGTH = 20


@dataclass(frozen=True)
class EngineSettings:
    require_plagiarism_clearance: bool = False
    review_pdf_enabled: bool = True


class WorkflowEngine:
    """Thesis state machine; the repository persists resulting changes."""

    def __init__(
        self,
        *,
        repository: ThesisRepository,
        graph: RelationshipGraph,
        policy: WorkflowPolicy,
        storage: StorageAdapter,
        plagiarism: Optional[PlagiarismAdapter] = None,
        gate: Optional[PlagiarismGate] = None,
        renderer: Optional[ReviewDocumentRenderer] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._repo = repository
        self._graph = graph
        self._policy = policy
        self._storage = storage
        self._plagiarism = plagiarism
        self._gate = gate or PlagiarismGate()
        self._renderer = renderer or ReviewDocumentRenderer()
        self._settings = settings or EngineSettings()

    # ======================================================================
    # Queries
    # ======================================================================

    def get_thesis(self, thesis_id: str) -> Thesis:
        thesis = self._repo.get_thesis_by_id(thesis_id)
        if thesis is None:
            raise NotFoundError("Thesis not found.", thesis_id=thesis_id)
        return thesis

    def get_student(self, student_id: str) -> User:
        student = self._repo.get_user_by_id(student_id)
        if student is None or not student.has_role(Role.STUDENT):
            raise NotFoundError("Student not found.", student_id=student_id)
        return student

    @contextmanager
    def open_thesis_file(self, thesis_id: str) -> Iterator[BinaryIO]:
        """Yield a readable handle on the current thesis file.

        Deleting the thesis waits until the handle is closed.
        """
        thesis = self.get_thesis(thesis_id)
        if not thesis.file_path:
            raise NotFoundError("Thesis has no file.", thesis_id=thesis_id)
        try:
            with self._storage.open_read(thesis.file_path) as fh:
                yield fh
        except FileNotFoundError:
            raise NotFoundError("Thesis file not found.", thesis_id=thesis_id) from None

    # ======================================================================
    # Submission
    # ======================================================================

    def submit(self, student_id: str, *, title: str, source_path: str) -> Thesis:
        """Create the thesis, or resubmit it with a new iteration."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("'title' must not be empty.", field="title")
        validate_pdf(source_path)

        stored: Optional[str] = None
        replaced: Optional[str] = None
        try:
            with self._repo.transaction():
                student = self.get_student(student_id)
                existing = next(iter(self._repo.get_theses_by_student(student_id)), None)
                status = existing.status if existing else ThesisStatus.NOT_SUBMITTED
                target = self._policy.require(action_id=ThesisAction.SUBMIT_THESIS.value, status=status)

                if existing is None:
                    thesis_id = self._repo.next_thesis_id()
                    stored = self._store_submission(thesis_id, source_path, 1)
                    thesis = Thesis(
                        id=thesis_id,
                        student_id=student_id,
                        title=title,
                        status=target,
                        file_path=stored,
                        iterations=[ReviewIteration(number=1, file_path=stored)],
                    )
                    self._snapshot_topic(thesis, student)
                    self._repo.create_thesis(thesis)
                else:
                    thesis = existing
                    current = thesis.current
                    if current is None or current.has_reviews:
                        number = thesis.current_iteration + 1 if current is not None else 1
                        current = ReviewIteration(number=number)
                        thesis.iterations.append(current)
                    replaced = current.file_path
                    stored = self._store_submission(thesis.id, source_path, current.number)
                    current.file_path = stored
                    thesis.file_path = stored
                    thesis.title = title
                    thesis.status = target
                    thesis.final_grade = None
                    thesis.submitted_at = utcnow()
                    self._snapshot_topic(thesis, student)
                    self._repo.update_thesis(thesis)

                self._graph.snapshot_to_thesis(student_id, thesis.id)

                student.thesis_id = thesis.id
                student.thesis_status = target
                student.final_grade = None
                self._repo.update_user(student)
        except BaseException:
            if stored:
                self._storage.remove(stored)
            raise

        if replaced and replaced != stored and not any(it.file_path == replaced for it in thesis.iterations):
            # superseded upload that no earlier iteration still points at
            self._storage.remove(replaced)

        logger.info(
            "Thesis %s %s by %s (iteration %d)",
            thesis.id, "resubmitted" if existing else "submitted", student_id, thesis.current_iteration,
        )
        return self.get_thesis(thesis.id)

    # ======================================================================
    # Relationship graph
    # ======================================================================

    def assign(
        self, subject_kind: SubjectKind, subject_id: str, role: Role, assignee_id: Optional[str]
    ) -> BindResult:
        """Bind, rebind or (with None) unbind one assignment edge."""
        return self._graph.bind(subject_kind, subject_id, role, assignee_id)

    # ======================================================================
    # Reviews
    # ======================================================================

    def submit_review(
        self,
        thesis_id: str,
        *,
        reviewer_id: str,
        role: Role,
        status: ReviewStatus,
        comments: str = "",
        is_final_approval: bool = False,
    ) -> Thesis:
        """Record ``role``'s review in the current iteration."""
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError(f"Role '{role.value}' does not file reviews.", role=role.value)
        comments = (comments or "").strip()
        if status == ReviewStatus.REJECTED and not comments:
            raise ValidationError("A rejection requires comments.", field="comments")

        with self._repo.transaction():
            thesis = self.get_thesis(thesis_id)
            action = REJECT_REVIEW if status == ReviewStatus.REJECTED else ThesisAction.SUBMIT_REVIEW.value
            target = self._policy.require(action_id=action, status=thesis.status)

            if (
                self._settings.require_plagiarism_clearance
                and role == Role.SUPERVISOR
                and status == ReviewStatus.APPROVED
                and not self._gate.is_cleared(thesis)
            ):
                raise InvalidStateError(
                    "Plagiarism check has not been passed.", current="plagiarism_pending", required="plagiarism_approved"
                )

            iteration = self._current_iteration(thesis)
            if iteration.review_for(role) is not None:
                raise InvalidStateError(
                    f"A {role.value} review already exists for iteration {iteration.number}.",
                    current=f"iteration {iteration.number} reviewed by {role.value}",
                    required=ThesisAction.REQUEST_RE_REVIEW.value,
                )

            review = Review(
                role=role,
                reviewer_id=reviewer_id,
                status=status,
                comments=comments,
                is_final_approval=is_final_approval and status == ReviewStatus.APPROVED,
            )
            if status == ReviewStatus.APPROVED and self._settings.review_pdf_enabled:
                review.document_path = self._render_review(thesis, review, iteration.number, reviewer_id)

            iteration.reviews[role] = review
            thesis.status = target
            self._repo.update_thesis(thesis)
            self._sync_student(thesis)

        logger.info("Review (%s, %s) recorded on %s iteration %d", role.value, status.value, thesis_id, iteration.number)
        return self.get_thesis(thesis_id)

    def request_re_review(self, thesis_id: str) -> Thesis:
        """Open iteration n+1. Earlier iterations stay as they are."""
        with self._repo.transaction():
            thesis = self.get_thesis(thesis_id)
            target = self._policy.require(action_id=ThesisAction.REQUEST_RE_REVIEW.value, status=thesis.status)
            number = thesis.current_iteration + 1 if thesis.iterations else 1
            thesis.iterations.append(ReviewIteration(number=number, file_path=thesis.file_path))
            thesis.status = target
            self._repo.update_thesis(thesis)
            self._sync_student(thesis)

        logger.info("Re-review requested on %s, now iteration %d", thesis_id, number)
        return self.get_thesis(thesis_id)

    def sign_review(self, thesis_id: str, *, signer_id: str, signed_file: str) -> Thesis:
        """Attach the supervisor's signed review to the current iteration."""
        validate_pdf(signed_file)
        stored: Optional[str] = None
        try:
            with self._repo.transaction():
                thesis = self.get_thesis(thesis_id)
                self._policy.require(action_id=ThesisAction.SIGN_REVIEW.value, status=thesis.status)
                iteration = self._current_iteration(thesis)
                review = iteration.review_for(Role.SUPERVISOR)
                if review is None or review.status != ReviewStatus.APPROVED:
                    raise InvalidStateError(
                        "The current iteration has no approved supervisor review.",
                        current=review.status if review else "no supervisor review",
                        required="approved supervisor review",
                    )
                if review.reviewer_id != signer_id:
                    raise ForbiddenError(
                        "Only the author of the supervisor review can sign it.",
                        reason="not_assigned",
                        reviewer_id=review.reviewer_id,
                    )
                if review.is_signed:
                    raise InvalidStateError(
                        "The supervisor review is already signed.", current="signed", required="unsigned"
                    )
                stored = self._storage.store_file(
                    thesis_id=thesis.id,
                    source_path=signed_file,
                    category="signed",
                    stem=f"{thesis.id}_it{iteration.number}_supervisor",
                )
                review.signed_document_path = stored
                review.signed_at = utcnow()
                self._repo.update_thesis(thesis)
        except BaseException:
            if stored:
                self._storage.remove(stored)
            raise

        logger.info("Supervisor review on %s iteration %d signed by %s", thesis_id, iteration.number, signer_id)
        return self.get_thesis(thesis_id)

    def countersign_review(self, thesis_id: str, *, signer_id: str, role: Role, signed_file: str) -> Thesis:
        """Head of department, then dean, countersign the signed supervisor review."""
        if role not in FACULTY_SCOPED_ROLES:
            raise ValidationError(f"Role '{role.value}' does not countersign.", role=role.value)
        validate_pdf(signed_file)
        stored: Optional[str] = None
        try:
            with self._repo.transaction():
                thesis = self.get_thesis(thesis_id)
                self._policy.require(action_id=ThesisAction.COUNTERSIGN_REVIEW.value, status=thesis.status)
                iteration = self._current_iteration(thesis)
                review = iteration.review_for(Role.SUPERVISOR)
                if review is None or not review.is_signed:
                    raise InvalidStateError(
                        "The supervisor review is not signed yet.",
                        current="unsigned",
                        required="signed supervisor review",
                    )
                if role in review.countersignatures:
                    raise InvalidStateError(
                        f"Already countersigned by {role.value}.", current="countersigned", required="not countersigned"
                    )
                if role == Role.DEAN and Role.HEAD_OF_DEPARTMENT not in review.countersignatures:
                    raise InvalidStateError(
                        "The head of department has to countersign first.",
                        current="no head_of_department countersignature",
                        required="head_of_department countersignature",
                    )
                stored = self._storage.store_file(
                    thesis_id=thesis.id,
                    source_path=signed_file,
                    category="signed",
                    stem=f"{thesis.id}_it{iteration.number}_{role.value}",
                )
                review.countersignatures[role] = Countersignature(
                    signer_id=signer_id, signed_document_path=stored, signed_at=utcnow()
                )
                self._repo.update_thesis(thesis)
        except BaseException:
            if stored:
                self._storage.remove(stored)
            raise

        logger.info("Review on %s countersigned by %s (%s)", thesis_id, signer_id, role.value)
        return self.get_thesis(thesis_id)

    def evaluate(self, thesis_id: str, *, grade: str) -> Thesis:
        """Final grading; needs a signed supervisor review in the current iteration."""
        grade = (grade or "").strip()
        if not grade or len(grade) > MAX_GRADE_LENGTH:
            raise ValidationError("Grade must be a non-empty short label.", field="grade")

        with self._repo.transaction():
            thesis = self.get_thesis(thesis_id)
            target = self._policy.require(action_id=ThesisAction.EVALUATE.value, status=thesis.status)
            iteration = self._current_iteration(thesis)
            review = iteration.review_for(Role.SUPERVISOR)
            if review is None or not review.is_signed:
                raise InvalidStateError(
                    "The current iteration has no signed supervisor review.",
                    current=f"iteration {iteration.number} unsigned",
                    required="signed supervisor review",
                )
            rejected = sorted(r.value for r, rv in iteration.reviews.items() if rv.status == ReviewStatus.REJECTED)
            if rejected:
                raise InvalidStateError(
                    "The current iteration contains rejected reviews.",
                    current=f"rejected by {', '.join(rejected)}",
                    required="no rejected reviews",
                )
            thesis.final_grade = grade
            thesis.status = target
            self._repo.update_thesis(thesis)
            self._sync_student(thesis)

        logger.info("Thesis %s evaluated with grade %s", thesis_id, grade)
        return self.get_thesis(thesis_id)

    def check_plagiarism(self, thesis_id: str) -> Thesis:
        if self._plagiarism is None:
            raise InternalError("No plagiarism service configured.")

        thesis = self.get_thesis(thesis_id)
        self._policy.require(action_id=ThesisAction.CHECK_PLAGIARISM.value, status=thesis.status)
        self._gate.ensure_attempt_available(thesis)
        if not thesis.file_path:
            raise NotFoundError("Thesis has no file.", thesis_id=thesis_id)

        # external call outside the write lock
        report = self._plagiarism.check(thesis_id=thesis.id, file_path=thesis.file_path)

        with self._repo.transaction():
            thesis = self.get_thesis(thesis_id)
            self._gate.ensure_attempt_available(thesis)
            check = self._gate.record(thesis, report)
            self._repo.update_thesis(thesis)

        logger.info(
            "Plagiarism check %d on %s: %.1f%% (%s)",
            check.attempts, thesis_id, check.similarity or 0.0, "passed" if check.approved else "failed",
        )
        return self.get_thesis(thesis_id)

    # ======================================================================
    # Deletion
    # ======================================================================

    def delete_thesis(self, thesis_id: str) -> Optional[Thesis]:
        """Withdraw a thesis.

        Order: unbind edges, remove files, delete the record, reset the
        student. Returns None when the thesis was already gone.
        """
        with self._repo.transaction():
            thesis = self._repo.get_thesis_by_id(thesis_id)
            if thesis is None:
                logger.info("Thesis %s already deleted", thesis_id)
                return None
            target = self._policy.require(action_id=ThesisAction.DELETE_THESIS.value, status=thesis.status)

            self._graph.unbind_all(SubjectKind.THESIS, thesis.id)
            self._remove_files(thesis)
            self._repo.delete_thesis(thesis.id)

            student = self._repo.get_user_by_id(thesis.student_id)
            if student is not None:
                student.thesis_status = ThesisStatus.NOT_SUBMITTED
                student.thesis_id = None
                student.final_grade = None
                self._repo.update_user(student)

        thesis.status = target
        logger.info("Thesis %s of %s deleted", thesis.id, thesis.student_id)
        return thesis

    # ======================================================================
    # Helpers
    # ======================================================================

    def _current_iteration(self, thesis: Thesis) -> ReviewIteration:
        current = thesis.current
        if current is None or current.number == 0:
            # legacy record without iterations
            current = ReviewIteration(number=1, file_path=thesis.file_path)
            thesis.iterations = [it for it in thesis.iterations if it.number != 0] + [current]
        return current

    def _store_submission(self, thesis_id: str, source_path: str, iteration: int) -> str:
        return self._storage.store_file(
            thesis_id=thesis_id, source_path=source_path, category="submissions", stem=f"{thesis_id}_v{iteration}_{utcnow():%Y%m%d%H%M%S%f}"
        )

    def _render_review(self, thesis: Thesis, review: Review, iteration: int, reviewer_id: str) -> str:
        output = self._storage.generate_path(
            thesis_id=thesis.id,
            category="reviews",
            filename=f"{thesis.id}_it{iteration}_{review.role.value}.pdf",
        )
        return self._renderer.render(
            thesis=thesis,
            review=review,
            iteration=iteration,
            student=self._repo.get_user_by_id(thesis.student_id),
            reviewer=self._repo.get_user_by_id(reviewer_id),
            output_path=output,
        )

    def _remove_files(self, thesis: Thesis) -> List[str]:
        removed: List[str] = []
        for path in thesis.all_file_paths():
            try:
                if self._storage.remove(path):
                    removed.append(path)
            except OSError as ex:
                logger.warning("Could not remove %s of thesis %s: %s", path, thesis.id, ex)
        try:
            self._storage.remove_thesis_directory(thesis.id)
        except OSError as ex:
            logger.warning("Could not remove storage directory of thesis %s: %s", thesis.id, ex)
        return removed

    def _sync_student(self, thesis: Thesis) -> None:
        student = self._repo.get_user_by_id(thesis.student_id)
        if student is None:
            return
        if (
            student.thesis_status == thesis.status
            and student.thesis_id == thesis.id
            and student.final_grade == thesis.final_grade
        ):
            return
        student.thesis_status = thesis.status
        student.thesis_id = thesis.id
        student.final_grade = thesis.final_grade
        self._repo.update_user(student)

    @staticmethod
    def _snapshot_topic(thesis: Thesis, student: User) -> None:
        thesis.topic = student.topic.text
        thesis.topic_proposed_by = student.topic.proposed_by
        thesis.topic_approved = student.topic.approved
