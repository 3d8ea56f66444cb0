"""Identity adapter.

The core never verifies credentials itself. A token service implements
``IdentityAdapter`` and hands back a verified ``IdentityClaim``.
"""

from __future__ import annotations
from typing import Dict, Iterable, Optional, Protocol

from theses.dto.actor import IdentityClaim
from theses.enum.role import Role


class IdentityAdapter(Protocol):
    """Verifies an opaque bearer credential."""

    def verify(self, credential: Optional[str]) -> Optional[IdentityClaim]:
        """Return the claim, or None when the credential is missing or invalid."""
        ...


class StaticIdentityAdapter:
    """In-memory credential table (tests, scripts, embedding)."""

    def __init__(self, claims: Optional[Dict[str, IdentityClaim]] = None) -> None:
        self._claims: Dict[str, IdentityClaim] = dict(claims or {})

    def register(self, credential: str, user_id: str, role: "str | Role", roles: Iterable["str | Role"] = ()) -> IdentityClaim:
        claim = IdentityClaim.of(user_id, role, roles)
        self._claims[credential] = claim
        return claim

    def revoke(self, credential: str) -> None:
        self._claims.pop(credential, None)

    def verify(self, credential: Optional[str]) -> Optional[IdentityClaim]:
        if not credential:
            return None
        return self._claims.get(credential)
