"""theses/enum/role.py
===================

Role identifiers and named role groups.

Roles are a closed enumeration. Strings arriving from the identity layer are
parsed here so that an unknown role never reaches the authorization code.
"""
from __future__ import annotations

from enum import Enum

from theses.exceptions.errors import ValidationError


class Role(str, Enum):
    """System roles."""

    STUDENT = "student"
    REVIEWER = "reviewer"
    SUPERVISOR = "supervisor"
    CONSULTANT = "consultant"
    HEAD_OF_DEPARTMENT = "head_of_department"
    DEAN = "dean"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        if isinstance(value, Role):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f"Unknown role '{value}'.", field="role", value=str(value)) from None


class RoleGroup(str, Enum):
    """Named capability sets. Membership is defined in theses_roles.json."""

    FACULTY = "faculty"
    MANAGEMENT = "management"
    ACADEMIC_STAFF = "academic_staff"
    ACCESS_REVIEW_1 = "access_review_1"
    ACCESS_REVIEW_2 = "access_review_2"
    ACCESS_REVIEW_3 = "access_review_3"
    ACCESS_THESIS = "access_thesis"
    ALL_STAFF = "all_staff"


# Roles that can hold a review-side assignment edge.
ASSIGNABLE_ROLES = (Role.SUPERVISOR, Role.CONSULTANT, Role.REVIEWER)

# Roles scoped by faculty only.
FACULTY_SCOPED_ROLES = (Role.HEAD_OF_DEPARTMENT, Role.DEAN)
