"""Topic negotiation between a student and their supervisor.

Two independent proposal paths share one slot on the student record:

    none -> proposed_by_student(pending)    -> approved | rejected
    none -> proposed_by_supervisor(pending) -> student_accepted | student_rejected

A pending proposal from one side blocks the other side, and an approved topic
blocks both. Each operation reads and writes the student inside a single
repository transaction; the versioned update rejects a concurrent writer.
"""

from __future__ import annotations

import logging
from typing import Optional

from theses.enum.review_status import ReviewStatus, TopicOrigin, TopicState
from theses.enum.role import Role
from theses.exceptions.errors import InvalidStateError, NotFoundError, ValidationError
from theses.models.thesis_models import TopicResponse, TopicSlot, User, utcnow
from theses.repository.thesis_repository import ThesisRepository

logger = logging.getLogger(__name__)

MAX_TOPIC_LENGTH = 500


class TopicNegotiation:
    def __init__(self, repository: ThesisRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------ #
    #  Student-originated path
    # ------------------------------------------------------------------ #
    def submit_topic(self, student_id: str, text: str) -> TopicSlot:
        topic = self._clean(text, "topic")
        with self._repo.transaction():
            student = self._student(student_id)
            slot = student.topic
            self._ensure_open(slot)
            student.topic = TopicSlot(
                text=topic,
                proposed_by=TopicOrigin.STUDENT,
                state=TopicState.PENDING,
                updated_at=utcnow(),
            )
            self._repo.update_user(student)
        logger.info("Student %s proposed a topic", student_id)
        return student.topic

    def review_topic(self, student_id: str, *, approve: bool, comments: Optional[str] = None) -> TopicSlot:
        """Supervisor decision on a pending student proposal."""
        with self._repo.transaction():
            student = self._student(student_id)
            slot = student.topic
            if not slot.student_pending:
                raise InvalidStateError(
                    "No student topic proposal is pending approval.",
                    current=self._describe(slot),
                    required="proposed_by_student/pending",
                )
            if approve:
                slot.state = TopicState.APPROVED
                slot.approved = True
                slot.rejection_comments = None
            else:
                slot.state = TopicState.REJECTED
                slot.approved = False
                slot.rejection_comments = self._clean(comments, "comments")
            slot.updated_at = utcnow()
            self._repo.update_user(student)
        logger.info("Topic of student %s %s", student_id, "approved" if approve else "rejected")
        return slot

    # ------------------------------------------------------------------ #
    #  Supervisor-originated path
    # ------------------------------------------------------------------ #
    def propose_topic(self, student_id: str, text: str) -> TopicSlot:
        topic = self._clean(text, "topic")
        with self._repo.transaction():
            student = self._student(student_id)
            self._ensure_open(student.topic)
            student.topic = TopicSlot(
                text=topic,
                proposed_by=TopicOrigin.SUPERVISOR,
                state=TopicState.PENDING,
                student_response=TopicResponse(status=ReviewStatus.PENDING),
                updated_at=utcnow(),
            )
            self._repo.update_user(student)
        logger.info("Supervisor proposed a topic to student %s", student_id)
        return student.topic

    def respond_to_topic(self, student_id: str, *, accept: bool, comments: Optional[str] = None) -> TopicSlot:
        """Student answer to a pending supervisor proposal."""
        with self._repo.transaction():
            student = self._student(student_id)
            slot = student.topic
            if not slot.supervisor_pending:
                raise InvalidStateError(
                    "No supervisor topic proposal is awaiting a response.",
                    current=self._describe(slot),
                    required="proposed_by_supervisor/pending",
                )
            now = utcnow()
            if accept:
                slot.state = TopicState.STUDENT_ACCEPTED
                slot.approved = True
                slot.student_response = TopicResponse(ReviewStatus.APPROVED, (comments or "").strip() or None, now)
            else:
                reason = self._clean(comments, "comments")
                slot.state = TopicState.STUDENT_REJECTED
                slot.approved = False
                slot.text = None
                slot.student_response = TopicResponse(ReviewStatus.REJECTED, reason, now)
            slot.updated_at = now
            self._repo.update_user(student)
        logger.info("Student %s %s the proposed topic", student_id, "accepted" if accept else "rejected")
        return slot

    # ------------------------------------------------------------------ #
    #  Guards
    # ------------------------------------------------------------------ #
    @classmethod
    def _ensure_open(cls, slot: TopicSlot) -> None:
        """A new proposal needs a slot that is neither approved nor pending."""
        if slot.approved:
            raise InvalidStateError(
                "A topic is already approved.", current=cls._describe(slot), required="none|rejected"
            )
        if slot.supervisor_pending:
            raise InvalidStateError(
                "A supervisor topic proposal is awaiting the student's response.",
                current=cls._describe(slot),
                required="none|rejected",
            )
        if slot.student_pending:
            raise InvalidStateError(
                "A student topic proposal is still pending approval.",
                current=cls._describe(slot),
                required="none|rejected",
            )

    def _student(self, student_id: str) -> User:
        student = self._repo.get_user_by_id(student_id)
        if student is None or not student.has_role(Role.STUDENT):
            raise NotFoundError("Student not found.", student_id=student_id)
        return student

    @staticmethod
    def _clean(value: Optional[str], field: str) -> str:
        text = (value or "").strip()
        if not text:
            raise ValidationError(f"'{field}' must not be empty.", field=field)
        if field == "topic" and len(text) > MAX_TOPIC_LENGTH:
            raise ValidationError(
                f"Topic must not exceed {MAX_TOPIC_LENGTH} characters.", field=field, length=len(text)
            )
        return text

    @staticmethod
    def _describe(slot: TopicSlot) -> str:
        if slot.proposed_by == TopicOrigin.NONE:
            return slot.state.value
        return f"proposed_by_{slot.proposed_by.value}/{slot.state.value}"
