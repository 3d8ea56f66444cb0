"""Actor DTOs.

``IdentityClaim`` is what the identity adapter yields for a verified
credential. ``Actor`` is the claim enriched with the facts the permission
policy needs (faculty, reviewer approval).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

from theses.enum.role import Role


@dataclass(frozen=True)
class IdentityClaim:
    """Verified identity, as produced by the token service."""

    id: str
    role: Role
    roles: Tuple[Role, ...] = ()

    @classmethod
    def of(cls, id: str, role: "str | Role", roles: Iterable["str | Role"] = ()) -> "IdentityClaim":
        """Parse raw role strings; unknown roles raise ValidationError."""
        return cls(id=str(id), role=Role.parse(role), roles=tuple(Role.parse(r) for r in roles or ()))


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as seen by the permission policy."""

    id: str
    role: Role
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    """Secondary roles"""

    faculty: Optional[str] = None
    """Faculty of the actor (scoping for head_of_department / dean)"""

    approved: bool = True
    """Admin approval flag (relevant for reviewers)"""

    @property
    def all_roles(self) -> Tuple[Role, ...]:
        """Primary role first, then secondary roles in a stable order."""
        rest = sorted((r for r in self.roles if r != self.role), key=lambda r: r.value)
        return (self.role, *rest)

    def has_role(self, role: Role) -> bool:
        return role == self.role or role in self.roles

    def acting_as(self, role: Role) -> "Actor":
        """Same actor narrowed to a single role (e.g. the role a review is filed under)."""
        return Actor(id=self.id, role=role, roles=frozenset(), faculty=self.faculty, approved=self.approved)
