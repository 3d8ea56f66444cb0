"""
Domain models for the Theses feature.

Keeps the data layer independent from storage details. Records are persisted
as JSON documents by the repository; assignment fields are derived from the
assignment edge table and are never written through ``update_user`` or
``update_thesis``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from theses.enum.review_status import RequestStatus, ReviewStatus, TopicOrigin, TopicState
from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.enum.thesis_status import ThesisStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# --------------------------------------------------------------------------- #
#  Topic
# --------------------------------------------------------------------------- #

@dataclass
class TopicResponse:
    """Student's answer to a supervisor-proposed topic."""

    status: ReviewStatus = ReviewStatus.PENDING
    comments: Optional[str] = None
    responded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "comments": self.comments, "responded_at": _ts(self.responded_at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopicResponse":
        return cls(
            status=ReviewStatus(data.get("status", ReviewStatus.PENDING.value)),
            comments=data.get("comments"),
            responded_at=_parse_ts(data.get("responded_at")),
        )


@dataclass
class TopicSlot:
    text: Optional[str] = None
    proposed_by: TopicOrigin = TopicOrigin.NONE
    state: TopicState = TopicState.NONE
    approved: bool = False
    rejection_comments: Optional[str] = None
    student_response: Optional[TopicResponse] = None
    updated_at: Optional[datetime] = None

    @property
    def student_pending(self) -> bool:
        return self.proposed_by == TopicOrigin.STUDENT and self.state == TopicState.PENDING

    @property
    def supervisor_pending(self) -> bool:
        return self.proposed_by == TopicOrigin.SUPERVISOR and self.state == TopicState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "proposed_by": self.proposed_by.value,
            "state": self.state.value,
            "approved": self.approved,
            "rejection_comments": self.rejection_comments,
            "student_response": self.student_response.to_dict() if self.student_response else None,
            "updated_at": _ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TopicSlot":
        if not data:
            return cls()
        response = data.get("student_response")
        return cls(
            text=data.get("text"),
            proposed_by=TopicOrigin(data.get("proposed_by", TopicOrigin.NONE.value)),
            state=TopicState(data.get("state", TopicState.NONE.value)),
            approved=bool(data.get("approved", False)),
            rejection_comments=data.get("rejection_comments"),
            student_response=TopicResponse.from_dict(response) if response else None,
            updated_at=_parse_ts(data.get("updated_at")),
        )


# --------------------------------------------------------------------------- #
#  User
# --------------------------------------------------------------------------- #

@dataclass
class User:
    id: str
    name: str
    role: Role
    email: Optional[str] = None
    roles: Set[Role] = field(default_factory=set)
    faculty: Optional[str] = None
    department: Optional[str] = None
    approved: bool = True

    # Student fields (denormalized thesis state)
    thesis_status: ThesisStatus = ThesisStatus.NOT_SUBMITTED
    thesis_id: Optional[str] = None
    final_grade: Optional[str] = None
    topic: TopicSlot = field(default_factory=TopicSlot)

    # Derived from assignment edges (read-only)
    supervisor_id: Optional[str] = None
    consultant_id: Optional[str] = None
    reviewer_id: Optional[str] = None
    assigned_students: Set[str] = field(default_factory=set)
    assigned_theses: Set[str] = field(default_factory=set)

    version: int = 0

    def has_role(self, role: Role) -> bool:
        return role == self.role or role in self.roles

    def assigned_id(self, role: Role) -> Optional[str]:
        return {
            Role.SUPERVISOR: self.supervisor_id,
            Role.CONSULTANT: self.consultant_id,
            Role.REVIEWER: self.reviewer_id,
        }.get(role)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted fields only."""
        return {
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "roles": sorted(r.value for r in self.roles),
            "faculty": self.faculty,
            "department": self.department,
            "approved": self.approved,
            "thesis_status": self.thesis_status.value,
            "thesis_id": self.thesis_id,
            "final_grade": self.final_grade,
            "topic": self.topic.to_dict(),
        }

    @classmethod
    def from_dict(cls, user_id: str, data: Dict[str, Any], *, version: int = 0) -> "User":
        return cls(
            id=user_id,
            name=data.get("name", ""),
            email=data.get("email"),
            role=Role.parse(data["role"]),
            roles={Role.parse(r) for r in data.get("roles", [])},
            faculty=data.get("faculty"),
            department=data.get("department"),
            approved=bool(data.get("approved", True)),
            thesis_status=ThesisStatus(data.get("thesis_status", ThesisStatus.NOT_SUBMITTED.value)),
            thesis_id=data.get("thesis_id"),
            final_grade=data.get("final_grade"),
            topic=TopicSlot.from_dict(data.get("topic")),
            version=version,
        )


# --------------------------------------------------------------------------- #
#  Reviews
# --------------------------------------------------------------------------- #

@dataclass
class Countersignature:
    signer_id: str
    signed_document_path: str
    signed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signer_id": self.signer_id,
            "signed_document_path": self.signed_document_path,
            "signed_at": _ts(self.signed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Countersignature":
        return cls(
            signer_id=data["signer_id"],
            signed_document_path=data["signed_document_path"],
            signed_at=_parse_ts(data["signed_at"]),  # type: ignore[arg-type]
        )


@dataclass
class Review:
    role: Role
    reviewer_id: str
    status: ReviewStatus
    comments: str = ""
    is_final_approval: bool = False
    submitted_at: datetime = field(default_factory=utcnow)
    document_path: Optional[str] = None
    signed_document_path: Optional[str] = None
    signed_at: Optional[datetime] = None
    countersignatures: Dict[Role, Countersignature] = field(default_factory=dict)

    @property
    def is_signed(self) -> bool:
        return bool(self.signed_document_path and self.signed_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "reviewer_id": self.reviewer_id,
            "status": self.status.value,
            "comments": self.comments,
            "is_final_approval": self.is_final_approval,
            "submitted_at": _ts(self.submitted_at),
            "document_path": self.document_path,
            "signed_document_path": self.signed_document_path,
            "signed_at": _ts(self.signed_at),
            "countersignatures": {r.value: c.to_dict() for r, c in self.countersignatures.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        return cls(
            role=Role.parse(data["role"]),
            reviewer_id=data["reviewer_id"],
            status=ReviewStatus(data["status"]),
            comments=data.get("comments") or "",
            is_final_approval=bool(data.get("is_final_approval", False)),
            submitted_at=_parse_ts(data.get("submitted_at")) or utcnow(),
            document_path=data.get("document_path"),
            signed_document_path=data.get("signed_document_path"),
            signed_at=_parse_ts(data.get("signed_at")),
            countersignatures={
                Role.parse(r): Countersignature.from_dict(c)
                for r, c in (data.get("countersignatures") or {}).items()
            },
        )


@dataclass
class ReviewIteration:
    number: int
    file_path: Optional[str] = None
    reviews: Dict[Role, Review] = field(default_factory=dict)
    opened_at: datetime = field(default_factory=utcnow)

    def review_for(self, role: Role) -> Optional[Review]:
        return self.reviews.get(role)

    @property
    def has_reviews(self) -> bool:
        return bool(self.reviews)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "file_path": self.file_path,
            "reviews": {r.value: rv.to_dict() for r, rv in self.reviews.items()},
            "opened_at": _ts(self.opened_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewIteration":
        return cls(
            number=int(data["number"]),
            file_path=data.get("file_path"),
            reviews={Role.parse(r): Review.from_dict(rv) for r, rv in (data.get("reviews") or {}).items()},
            opened_at=_parse_ts(data.get("opened_at")) or utcnow(),
        )


@dataclass
class PlagiarismCheck:
    attempts: int = 0
    similarity: Optional[float] = None
    approved: bool = False
    report_ref: Optional[str] = None
    checked_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "similarity": self.similarity,
            "approved": self.approved,
            "report_ref": self.report_ref,
            "checked_at": _ts(self.checked_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlagiarismCheck":
        if not data:
            return cls()
        return cls(
            attempts=int(data.get("attempts", 0)),
            similarity=data.get("similarity"),
            approved=bool(data.get("approved", False)),
            report_ref=data.get("report_ref"),
            checked_at=_parse_ts(data.get("checked_at")),
        )


# --------------------------------------------------------------------------- #
#  Thesis
# --------------------------------------------------------------------------- #

@dataclass
class Thesis:
    id: str
    student_id: str
    title: str
    status: ThesisStatus = ThesisStatus.SUBMITTED
    file_path: Optional[str] = None

    # Topic snapshot taken on submit
    topic: Optional[str] = None
    topic_proposed_by: TopicOrigin = TopicOrigin.NONE
    topic_approved: bool = False

    final_grade: Optional[str] = None
    iterations: List[ReviewIteration] = field(default_factory=list)
    plagiarism: PlagiarismCheck = field(default_factory=PlagiarismCheck)
    submitted_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Derived from assignment edges (read-only)
    assigned_supervisor_id: Optional[str] = None
    assigned_consultant_id: Optional[str] = None
    assigned_reviewer_id: Optional[str] = None

    version: int = 0

    @property
    def current_iteration(self) -> int:
        """Highest iteration number, 1 for a thesis without any iteration."""
        if not self.iterations:
            return 1
        return max(it.number for it in self.iterations)

    @property
    def current(self) -> Optional[ReviewIteration]:
        if not self.iterations:
            return None
        return max(self.iterations, key=lambda it: it.number)

    def iteration(self, number: int) -> Optional[ReviewIteration]:
        for it in self.iterations:
            if it.number == number:
                return it
        return None

    def assigned_id(self, role: Role) -> Optional[str]:
        return {
            Role.SUPERVISOR: self.assigned_supervisor_id,
            Role.CONSULTANT: self.assigned_consultant_id,
            Role.REVIEWER: self.assigned_reviewer_id,
        }.get(role)

    def all_file_paths(self) -> List[str]:
        """Every stored artifact belonging to this thesis."""
        paths: List[str] = []
        if self.file_path:
            paths.append(self.file_path)
        for it in self.iterations:
            if it.file_path:
                paths.append(it.file_path)
            for review in it.reviews.values():
                paths.extend(p for p in (review.document_path, review.signed_document_path) if p)
                paths.extend(c.signed_document_path for c in review.countersignatures.values())
        # keep order, drop duplicates
        return list(dict.fromkeys(paths))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "title": self.title,
            "status": self.status.value,
            "file_path": self.file_path,
            "topic": self.topic,
            "topic_proposed_by": self.topic_proposed_by.value,
            "topic_approved": self.topic_approved,
            "final_grade": self.final_grade,
            "iterations": [it.to_dict() for it in self.iterations],
            "plagiarism": self.plagiarism.to_dict(),
            "submitted_at": _ts(self.submitted_at),
            "updated_at": _ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, thesis_id: str, data: Dict[str, Any], *, version: int = 0) -> "Thesis":
        return cls(
            id=thesis_id,
            student_id=data["student_id"],
            title=data.get("title", ""),
            status=ThesisStatus(data.get("status", ThesisStatus.SUBMITTED.value)),
            file_path=data.get("file_path"),
            topic=data.get("topic"),
            topic_proposed_by=TopicOrigin(data.get("topic_proposed_by", TopicOrigin.NONE.value)),
            topic_approved=bool(data.get("topic_approved", False)),
            final_grade=data.get("final_grade"),
            iterations=sorted(
                (ReviewIteration.from_dict(it) for it in data.get("iterations") or []),
                key=lambda it: it.number,
            ),
            plagiarism=PlagiarismCheck.from_dict(data.get("plagiarism")),
            submitted_at=_parse_ts(data.get("submitted_at")) or utcnow(),
            updated_at=_parse_ts(data.get("updated_at")) or utcnow(),
            version=version,
        )


# --------------------------------------------------------------------------- #
#  Supervisor requests
# --------------------------------------------------------------------------- #

@dataclass
class SupervisorRequest:
    id: str
    student_id: str
    supervisor_id: str
    status: RequestStatus = RequestStatus.PENDING
    message: Optional[str] = None
    response_message: Optional[str] = None
    requested_at: datetime = field(default_factory=utcnow)
    responded_at: Optional[datetime] = None


@dataclass(frozen=True)
class AssignmentEdge:
    """One edge of the relationship graph: (subject, role) -> assignee."""

    subject_kind: SubjectKind
    subject_id: str
    role: Role
    assignee_id: str
    assigned_at: Optional[datetime] = None
