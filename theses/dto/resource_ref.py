"""Resource snapshot handed to the permission policy.

The policy never loads anything itself; the service builds this snapshot from
the repository before asking for a decision.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from theses.enum.role import Role


@dataclass(frozen=True)
class ResourceRef:
    """Relationship facts about the target of an action."""

    kind: str = "thesis"
    """'thesis', 'student', 'request' or 'user'"""

    id: Optional[str] = None

    student_id: Optional[str] = None
    """Owning student"""

    student_faculty: Optional[str] = None

    # Assignment edges on the thesis (copy-on-submit snapshot)
    thesis_supervisor_id: Optional[str] = None
    thesis_consultant_id: Optional[str] = None
    thesis_reviewer_id: Optional[str] = None

    # Assignment edges on the owning student
    student_supervisor_id: Optional[str] = None
    student_consultant_id: Optional[str] = None
    student_reviewer_id: Optional[str] = None

    target_user_id: Optional[str] = None
    """Addressed user for user-scoped actions (e.g. supervisor requests)"""

    def assigned_ids(self, role: Role) -> tuple:
        """Ids bound to ``role`` on the thesis or on the owning student."""
        pairs = {
            Role.SUPERVISOR: (self.thesis_supervisor_id, self.student_supervisor_id),
            Role.CONSULTANT: (self.thesis_consultant_id, self.student_consultant_id),
            Role.REVIEWER: (self.thesis_reviewer_id, self.student_reviewer_id),
        }
        return tuple(v for v in pairs.get(role, ()) if v)
