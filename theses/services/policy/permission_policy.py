"""Permission policy service.

Centralizes access control for the Theses module.

Key principles:
- theses_permissions_policy.json is the single source of truth for which
  roles may attempt which action.
- The role requirement is checked against the primary role AND every
  secondary role; any one qualifying role suffices.
- Relationship facts (ownership, assignment edges, faculty) are evaluated
  generically here from a ``ResourceRef`` snapshot. Nothing is loaded.
- There is no default allow. Every deny names what was required and what the
  actor had, without leaking resource contents.

``authorize`` is a pure function of (actor, action, resource).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
import json
import logging

from theses.dto.actor import Actor
from theses.dto.decision import Decision
from theses.dto.resource_ref import ResourceRef
from theses.enum.role import ASSIGNABLE_ROLES, FACULTY_SCOPED_ROLES, Role, RoleGroup
from theses.enum.thesis_action import ThesisAction
from theses.exceptions.errors import PolicyConfigurationError
from theses.services.policy.role_registry import RoleRegistry

logger = logging.getLogger(__name__)

PERMISSIONS_FILE = "theses_permissions_policy.json"

RELATIONSHIP_GRAPH = "graph"
RELATIONSHIP_ADDRESSEE = "addressee"

# Deny reasons
UNAUTHENTICATED = "unauthenticated"
UNKNOWN_ACTION = "unknown_action"
ROLE_REQUIRED = "role_required"
GROUP_REQUIRED = "group_required"
PENDING_APPROVAL = "pending_approval"
NOT_OWNER = "not_owner"
NOT_ASSIGNED = "not_assigned"
NOT_ADDRESSEE = "not_addressee"
FACULTY_MISMATCH = "faculty_mismatch"
NO_RELATIONSHIP = "no_relationship"


@dataclass(frozen=True)
class ActionRule:
    """Requirement set for one action."""

    roles: FrozenSet[Role] = frozenset()
    min_role: Optional[Role] = None
    group: Optional[RoleGroup] = None
    relationship: Optional[str] = None
    require_approved: bool = False

    @property
    def required_roles(self) -> Tuple[str, ...]:
        names = sorted(r.value for r in self.roles)
        if self.min_role is not None:
            names.append(f">={self.min_role.value}")
        return tuple(names)


class PermissionPolicy:
    """Evaluates permissions based on theses_permissions_policy.json."""

    def __init__(self, *, registry: RoleRegistry, rules: Mapping[ThesisAction, ActionRule]) -> None:
        self._registry = registry
        self._rules: Dict[ThesisAction, ActionRule] = dict(rules)

    @classmethod
    def load_from_directory(cls, directory: str | Path, *, registry: Optional[RoleRegistry] = None) -> "PermissionPolicy":
        """Load the role registry and the action rules from ``directory``."""
        base = Path(directory)
        registry = registry or RoleRegistry.load_from_directory(base)

        policy_file = base / PERMISSIONS_FILE
        if not policy_file.exists():
            raise PolicyConfigurationError("Permission policy file not found.", path=str(policy_file))
        try:
            data: Dict[str, Any] = json.loads(policy_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as ex:
            raise PolicyConfigurationError(f"Permission policy is not valid JSON: {ex}", path=str(policy_file)) from ex

        rules: Dict[ThesisAction, ActionRule] = {}
        for name, raw in (data.get("actions") or {}).items():
            try:
                action = ThesisAction(str(name).strip().lower())
            except ValueError:
                raise PolicyConfigurationError(f"Unknown action '{name}' in permission policy.") from None
            rules[action] = cls._parse_rule(action, raw or {})

        logger.info("Loaded permission policy from %s (%d actions)", policy_file, len(rules))
        return cls(registry=registry, rules=rules)

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    def rule_for(self, action: ThesisAction) -> Optional[ActionRule]:
        return self._rules.get(action)

    # ------------------------------------------------------------------ #
    #  Decision
    # ------------------------------------------------------------------ #
    def authorize(self, actor: Optional[Actor], action: ThesisAction, resource: ResourceRef) -> Decision:
        """Decide whether ``actor`` may perform ``action`` on ``resource``."""
        action_id = getattr(action, "value", str(action))
        if actor is None:
            return Decision(allowed=False, reason=UNAUTHENTICATED, action=action_id)

        actor_roles = tuple(r.value for r in actor.all_roles)
        rule = self._rules.get(action) if isinstance(action, ThesisAction) else None
        if rule is None:
            return Decision(allowed=False, reason=UNKNOWN_ACTION, action=action_id, actor_roles=actor_roles)

        def deny(reason: str) -> Decision:
            return Decision(
                allowed=False,
                reason=reason,
                action=action_id,
                required_roles=rule.required_roles,
                required_group=rule.group.value if rule.group else None,
                actor_roles=actor_roles,
            )

        qualifying: List[Role] = []
        blocked_by_approval = False
        for role in actor.all_roles:
            if not self._role_satisfies(role, rule):
                continue
            if rule.require_approved and role == Role.REVIEWER and not actor.approved:
                blocked_by_approval = True
                continue
            qualifying.append(role)

        if not qualifying:
            if blocked_by_approval:
                return deny(PENDING_APPROVAL)
            return deny(GROUP_REQUIRED if rule.group and not rule.roles and rule.min_role is None else ROLE_REQUIRED)

        if rule.relationship is None:
            return Decision.allow(action_id, actor_roles)

        reasons: List[str] = []
        for role in qualifying:
            reason = self._relationship_reason(role, actor, resource, rule.relationship)
            if reason is None:
                return Decision.allow(action_id, actor_roles)
            reasons.append(reason)
        return deny(reasons[0] if reasons else NO_RELATIONSHIP)

    def is_allowed(self, actor: Optional[Actor], action: ThesisAction, resource: ResourceRef) -> bool:
        return self.authorize(actor, action, resource).allowed

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #
    def _role_satisfies(self, role: Role, rule: ActionRule) -> bool:
        if role in rule.roles:
            return True
        if rule.min_role is not None and self._registry.outranks(role, rule.min_role):
            return True
        if rule.group is not None and self._registry.in_group(role, rule.group):
            return True
        return False

    @staticmethod
    def _relationship_reason(role: Role, actor: Actor, resource: ResourceRef, kind: str) -> Optional[str]:
        """None when ``role`` grants the relationship, otherwise the deny reason."""
        if role == Role.ADMIN:
            return None

        if kind == RELATIONSHIP_ADDRESSEE:
            return None if resource.target_user_id and resource.target_user_id == actor.id else NOT_ADDRESSEE

        if not resource.student_id:
            return NO_RELATIONSHIP

        if role == Role.STUDENT:
            return None if resource.student_id == actor.id else NOT_OWNER

        if role in ASSIGNABLE_ROLES:
            return None if actor.id in resource.assigned_ids(role) else NOT_ASSIGNED

        if role in FACULTY_SCOPED_ROLES:
            if actor.faculty and resource.student_faculty and actor.faculty == resource.student_faculty:
                return None
            return FACULTY_MISMATCH

        return NO_RELATIONSHIP

    @staticmethod
    def _parse_rule(action: ThesisAction, raw: Dict[str, Any]) -> ActionRule:
        try:
            roles = frozenset(Role(str(r).strip().lower()) for r in raw.get("roles", []) or [])
            min_role = Role(str(raw["min_role"]).strip().lower()) if raw.get("min_role") else None
            group = RoleGroup(str(raw["group"]).strip().lower()) if raw.get("group") else None
        except ValueError as ex:
            raise PolicyConfigurationError(f"Invalid rule for action '{action.value}': {ex}") from None

        if not roles and min_role is None and group is None:
            raise PolicyConfigurationError(f"Action '{action.value}' has no role requirement.")

        relationship = raw.get("relationship")
        if relationship not in (None, RELATIONSHIP_GRAPH, RELATIONSHIP_ADDRESSEE):
            raise PolicyConfigurationError(
                f"Unknown relationship '{relationship}' for action '{action.value}'."
            )

        return ActionRule(
            roles=roles,
            min_role=min_role,
            group=group,
            relationship=relationship,
            require_approved=bool(raw.get("require_approved", False)),
        )
