"""Authorization decision."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


ALLOWED = "allowed"


@dataclass(frozen=True)
class Decision:
    """Outcome of ``PermissionPolicy.authorize``.

    Deny decisions carry what was required and what the actor had, never
    anything about the resource itself.
    """

    allowed: bool
    reason: str
    action: str
    required_roles: Tuple[str, ...] = ()
    required_group: Optional[str] = None
    actor_roles: Tuple[str, ...] = ()

    @classmethod
    def allow(cls, action: str, actor_roles: Tuple[str, ...] = ()) -> "Decision":
        return cls(allowed=True, reason=ALLOWED, action=action, actor_roles=actor_roles)

    def to_context(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "reason": self.reason,
            "required_roles": list(self.required_roles),
            "required_group": self.required_group,
            "actor_roles": list(self.actor_roles),
        }
