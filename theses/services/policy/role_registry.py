"""Role registry (no IO after load).

Static role hierarchy and role groups, read once from theses_roles.json.
Both tables are validated when loaded: an unknown role or group identifier is
a configuration error and fails the load instead of surfacing at use.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping
import json
import logging

from theses.enum.role import Role, RoleGroup
from theses.exceptions.errors import PolicyConfigurationError

logger = logging.getLogger(__name__)

ROLES_FILE = "theses_roles.json"


class RoleRegistry:
    """Role hierarchy and group membership."""

    def __init__(
        self,
        *,
        hierarchy: Mapping[Role, Iterable[Role]],
        groups: Mapping[RoleGroup, Iterable[Role]],
    ) -> None:
        missing = [r.value for r in Role if r not in hierarchy]
        if missing:
            raise PolicyConfigurationError("Hierarchy is missing roles.", missing=missing)
        missing_groups = [g.value for g in RoleGroup if g not in groups]
        if missing_groups:
            raise PolicyConfigurationError("Role groups are missing.", missing=missing_groups)

        direct = {role: frozenset(covered) | {role} for role, covered in hierarchy.items()}
        self._closure: Mapping[Role, FrozenSet[Role]] = MappingProxyType(
            {role: self._close(role, direct) for role in direct}
        )
        self._groups: Mapping[RoleGroup, FrozenSet[Role]] = MappingProxyType(
            {group: frozenset(members) for group, members in groups.items()}
        )

    @classmethod
    def load_from_directory(cls, directory: str | Path) -> "RoleRegistry":
        """Load roles from theses_roles.json; raise on invalid content."""
        policy_file = Path(directory) / ROLES_FILE
        if not policy_file.exists():
            raise PolicyConfigurationError("Role policy file not found.", path=str(policy_file))
        try:
            data: Dict[str, Any] = json.loads(policy_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as ex:
            raise PolicyConfigurationError(f"Role policy is not valid JSON: {ex}", path=str(policy_file)) from ex

        declared = {str(r).strip().lower() for r in data.get("roles", [])}
        unknown = sorted(declared - {r.value for r in Role})
        if unknown:
            raise PolicyConfigurationError("Unknown roles declared.", unknown=unknown)

        hierarchy = {
            cls._role(name): [cls._role(r) for r in covered or []]
            for name, covered in (data.get("hierarchy") or {}).items()
        }
        groups = {
            cls._group(name): [cls._role(r) for r in members or []]
            for name, members in (data.get("groups") or {}).items()
        }
        logger.info("Loaded role registry from %s", policy_file)
        return cls(hierarchy=hierarchy, groups=groups)

    # ------------------------------------------------------------------ #
    def outranks(self, candidate: Role, minimum: Role) -> bool:
        """True iff ``minimum`` lies in the hierarchy closure of ``candidate``."""
        return minimum in self._closure.get(candidate, frozenset())

    def in_group(self, role: Role, group: RoleGroup) -> bool:
        """Plain set membership. The hierarchy is not consulted."""
        return role in self._groups.get(group, frozenset())

    def closure(self, role: Role) -> FrozenSet[Role]:
        return self._closure.get(role, frozenset({role}))

    def group_members(self, group: RoleGroup) -> FrozenSet[Role]:
        return self._groups.get(group, frozenset())

    # ------------------------------------------------------------------ #
    @staticmethod
    def _close(role: Role, direct: Mapping[Role, FrozenSet[Role]]) -> FrozenSet[Role]:
        seen = {role}
        stack = [role]
        while stack:
            current = stack.pop()
            for covered in direct.get(current, ()):
                if covered == role and current != role:
                    raise PolicyConfigurationError("Role hierarchy contains a cycle.", role=role.value)
                if covered not in seen:
                    seen.add(covered)
                    stack.append(covered)
        return frozenset(seen)

    @staticmethod
    def _role(raw: Any) -> Role:
        try:
            return Role(str(raw).strip().lower())
        except ValueError:
            raise PolicyConfigurationError(f"Unknown role '{raw}' in role policy.", role=str(raw)) from None

    @staticmethod
    def _group(raw: Any) -> RoleGroup:
        try:
            return RoleGroup(str(raw).strip().lower())
        except ValueError:
            raise PolicyConfigurationError(f"Unknown role group '{raw}' in role policy.", group=str(raw)) from None
