"""Tests for PermissionPolicy.authorize (role OR-ing, relationships, faculty scope)."""
from __future__ import annotations

import pytest

from theses.dto.actor import Actor
from theses.dto.resource_ref import ResourceRef
from theses.enum.role import Role
from theses.enum.thesis_action import ThesisAction
from theses.services.policy.permission_policy import (
    FACULTY_MISMATCH,
    GROUP_REQUIRED,
    NO_RELATIONSHIP,
    NOT_ADDRESSEE,
    NOT_ASSIGNED,
    NOT_OWNER,
    PENDING_APPROVAL,
    ROLE_REQUIRED,
    UNAUTHENTICATED,
    PermissionPolicy,
)

# thesis T1 of student S1 (Engineering); supervisor SUP1, consultant CON1, reviewer REV1
THESIS = ResourceRef(
    kind="thesis",
    id="T1",
    student_id="S1",
    student_faculty="Engineering",
    thesis_supervisor_id="SUP1",
    thesis_consultant_id="CON1",
    thesis_reviewer_id="REV1",
)

ACTORS = {
    "owner": Actor(id="S1", role=Role.STUDENT, faculty="Engineering"),
    "other_student": Actor(id="S2", role=Role.STUDENT, faculty="Engineering"),
    "supervisor": Actor(id="SUP1", role=Role.SUPERVISOR, faculty="Engineering"),
    "other_supervisor": Actor(id="SUP2", role=Role.SUPERVISOR, faculty="Engineering"),
    "consultant": Actor(id="CON1", role=Role.CONSULTANT, faculty="Engineering"),
    "reviewer": Actor(id="REV1", role=Role.REVIEWER, faculty="Engineering"),
    "other_reviewer": Actor(id="REV2", role=Role.REVIEWER, faculty="Engineering"),
    "hod": Actor(id="H1", role=Role.HEAD_OF_DEPARTMENT, faculty="Engineering"),
    "foreign_hod": Actor(id="H2", role=Role.HEAD_OF_DEPARTMENT, faculty="Business"),
    "dean": Actor(id="D1", role=Role.DEAN, faculty="Engineering"),
    "admin": Actor(id="A1", role=Role.ADMIN),
}

# (actor, action, allowed, deny reason)
MATRIX = [
    ("owner", ThesisAction.VIEW_THESIS, True, None),
    ("owner", ThesisAction.DOWNLOAD_THESIS, True, None),
    ("owner", ThesisAction.DELETE_THESIS, True, None),
    ("owner", ThesisAction.SUBMIT_REVIEW, False, GROUP_REQUIRED),
    ("owner", ThesisAction.ASSIGN, False, GROUP_REQUIRED),
    ("other_student", ThesisAction.VIEW_THESIS, False, NOT_OWNER),
    ("other_student", ThesisAction.DELETE_THESIS, False, NOT_OWNER),
    ("supervisor", ThesisAction.VIEW_THESIS, True, None),
    ("supervisor", ThesisAction.SUBMIT_REVIEW, True, None),
    ("supervisor", ThesisAction.SIGN_REVIEW, True, None),
    ("supervisor", ThesisAction.CHECK_PLAGIARISM, True, None),
    ("supervisor", ThesisAction.EVALUATE, False, GROUP_REQUIRED),
    ("supervisor", ThesisAction.DELETE_THESIS, False, ROLE_REQUIRED),
    ("other_supervisor", ThesisAction.DOWNLOAD_THESIS, False, NOT_ASSIGNED),
    ("other_supervisor", ThesisAction.SIGN_REVIEW, False, NOT_ASSIGNED),
    ("consultant", ThesisAction.SUBMIT_REVIEW, True, None),
    ("consultant", ThesisAction.SIGN_REVIEW, False, ROLE_REQUIRED),
    ("reviewer", ThesisAction.EVALUATE, True, None),
    ("reviewer", ThesisAction.SUBMIT_REVIEW, True, None),
    ("other_reviewer", ThesisAction.VIEW_THESIS, False, NOT_ASSIGNED),
    ("hod", ThesisAction.VIEW_THESIS, True, None),
    ("hod", ThesisAction.ASSIGN, True, None),
    ("hod", ThesisAction.COUNTERSIGN_REVIEW, True, None),
    ("hod", ThesisAction.SUBMIT_REVIEW, False, GROUP_REQUIRED),
    ("foreign_hod", ThesisAction.VIEW_THESIS, False, FACULTY_MISMATCH),
    ("foreign_hod", ThesisAction.ASSIGN, False, FACULTY_MISMATCH),
    ("dean", ThesisAction.EVALUATE, True, None),
    ("dean", ThesisAction.COUNTERSIGN_REVIEW, True, None),
    ("admin", ThesisAction.VIEW_THESIS, True, None),
    ("admin", ThesisAction.DELETE_THESIS, True, None),
    ("admin", ThesisAction.ASSIGN, True, None),
    ("admin", ThesisAction.APPROVE_REVIEWER, True, None),
    ("admin", ThesisAction.SUBMIT_TOPIC, False, ROLE_REQUIRED),
    ("dean", ThesisAction.APPROVE_REVIEWER, False, ROLE_REQUIRED),
    ("reviewer", ThesisAction.LIST_THESES, True, None),
    ("owner", ThesisAction.LIST_THESES, False, GROUP_REQUIRED),
]


@pytest.mark.parametrize("actor_key,action,allowed,reason", MATRIX)
def test_role_action_matrix(
    permissions: PermissionPolicy, actor_key: str, action: ThesisAction, allowed: bool, reason
) -> None:
    """Table-driven role x action decisions on one thesis."""
    decision = permissions.authorize(ACTORS[actor_key], action, THESIS)
    assert decision.allowed is allowed
    if reason is not None:
        assert decision.reason == reason
        assert decision.action == action.value


def test_absent_actor_is_unauthenticated(permissions: PermissionPolicy) -> None:
    """No actor, no access."""
    decision = permissions.authorize(None, ThesisAction.VIEW_THESIS, THESIS)
    assert not decision.allowed
    assert decision.reason == UNAUTHENTICATED


def test_secondary_role_is_or_ed(permissions: PermissionPolicy) -> None:
    """A supervisor who is also a dean qualifies for dean-only rules."""
    actor = Actor(id="X1", role=Role.SUPERVISOR, roles=frozenset({Role.DEAN}), faculty="Engineering")
    assert permissions.is_allowed(actor, ThesisAction.COUNTERSIGN_REVIEW, THESIS)
    assert permissions.is_allowed(actor, ThesisAction.ASSIGN, THESIS)


def test_min_role_uses_hierarchy(permissions: PermissionPolicy) -> None:
    """min_role admin is met only by roles whose closure contains admin."""
    resource = ResourceRef(kind="user", id="U1", target_user_id="U1")
    assert permissions.is_allowed(ACTORS["admin"], ThesisAction.DELETE_USER, resource)
    assert not permissions.is_allowed(ACTORS["dean"], ThesisAction.DELETE_USER, resource)


def test_hod_from_other_faculty_is_denied_regardless_of_edges(permissions: PermissionPolicy) -> None:
    """Faculty equality is the only scoping rule for head_of_department."""
    actor = Actor(id="H2", role=Role.HEAD_OF_DEPARTMENT, faculty="Engineering")
    resource = ResourceRef(
        kind="thesis",
        id="T9",
        student_id="S9",
        student_faculty="Business",
        thesis_supervisor_id="H2",
        thesis_reviewer_id="H2",
    )
    decision = permissions.authorize(actor, ThesisAction.VIEW_THESIS, resource)
    assert not decision.allowed
    assert decision.reason == FACULTY_MISMATCH


def test_unapproved_reviewer_gets_pending_approval(permissions: PermissionPolicy) -> None:
    """Approval-gated actions deny an unapproved reviewer with pending_approval."""
    reviewer = Actor(id="REV1", role=Role.REVIEWER, faculty="Engineering", approved=False)
    decision = permissions.authorize(reviewer, ThesisAction.SUBMIT_REVIEW, THESIS)
    assert not decision.allowed
    assert decision.reason == PENDING_APPROVAL
    # viewing is not approval-gated
    assert permissions.is_allowed(reviewer, ThesisAction.VIEW_THESIS, THESIS)


def test_unapproved_reviewer_with_other_qualifying_role_passes(permissions: PermissionPolicy) -> None:
    """Only the reviewer role is blocked by missing approval."""
    actor = Actor(
        id="SUP1", role=Role.REVIEWER, roles=frozenset({Role.SUPERVISOR}), faculty="Engineering", approved=False
    )
    assert permissions.is_allowed(actor, ThesisAction.SUBMIT_REVIEW, THESIS)


def test_student_edge_grants_access(permissions: PermissionPolicy) -> None:
    """An assignment on the owning student counts as well as one on the thesis."""
    resource = ResourceRef(kind="thesis", id="T2", student_id="S2", student_supervisor_id="SUP2")
    assert permissions.is_allowed(ACTORS["other_supervisor"], ThesisAction.VIEW_THESIS, resource)


def test_missing_resource_denies_non_admin(permissions: PermissionPolicy) -> None:
    """A snapshot without an owner reveals nothing to non-admins."""
    resource = ResourceRef(kind="thesis", id="T404")
    decision = permissions.authorize(ACTORS["supervisor"], ThesisAction.VIEW_THESIS, resource)
    assert not decision.allowed
    assert decision.reason == NO_RELATIONSHIP
    assert permissions.is_allowed(ACTORS["admin"], ThesisAction.VIEW_THESIS, resource)


def test_addressee_relationship(permissions: PermissionPolicy) -> None:
    """Only the addressed supervisor may answer a request."""
    request = ResourceRef(kind="request", id="R1", student_id="S1", target_user_id="SUP1")
    assert permissions.is_allowed(ACTORS["supervisor"], ThesisAction.RESPOND_SUPERVISOR_REQUEST, request)
    decision = permissions.authorize(ACTORS["other_supervisor"], ThesisAction.RESPOND_SUPERVISOR_REQUEST, request)
    assert decision.reason == NOT_ADDRESSEE


def test_deny_carries_requirement_not_resource(permissions: PermissionPolicy) -> None:
    """Deny decisions name the requirement and the actor's roles only."""
    decision = permissions.authorize(ACTORS["owner"], ThesisAction.SIGN_REVIEW, THESIS)
    context = decision.to_context()
    assert context["required_roles"] == ["supervisor"]
    assert context["actor_roles"] == ["student"]
    assert "T1" not in str(context)


def test_authorize_is_deterministic(permissions: PermissionPolicy) -> None:
    """Same inputs, same decision."""
    for actor in ACTORS.values():
        for action in ThesisAction:
            first = permissions.authorize(actor, action, THESIS)
            second = permissions.authorize(actor, action, THESIS)
            assert first == second
