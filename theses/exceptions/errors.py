"""Theses feature exceptions.

Every guard violation raised by the policies, the workflow engine or the topic
negotiation is one of these kinds. ``ThesisService`` turns them into failed
``OperationResult`` objects; nothing here knows about transport status codes.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ThesisError(Exception):
    """Base exception for the theses feature."""

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "context": dict(self.context)}


class UnauthenticatedError(ThesisError):
    """No identity, or the credential could not be verified."""

    kind = "unauthenticated"


class ForbiddenError(ThesisError):
    """Authenticated, but lacking the role or relationship for the action."""

    kind = "forbidden"

    def __init__(self, message: str, *, decision: Any = None, **context: Any) -> None:
        if decision is not None:
            context.update(decision.to_context())
        super().__init__(message, **context)
        self.decision = decision

    @property
    def reason(self) -> Optional[str]:
        return self.context.get("reason")


class NotFoundError(ThesisError):
    """Referenced user, thesis or request is absent."""

    kind = "not_found"


class InvalidStateError(ThesisError):
    """Transition attempted from a state that does not permit it."""

    kind = "invalid_state"

    def __init__(self, message: str, *, current: Any = None, required: Any = None, **context: Any) -> None:
        super().__init__(message, current=_plain(current), required=_plain(required), **context)


class ValidationError(ThesisError):
    """Malformed input."""

    kind = "validation_error"


class ConflictError(ThesisError):
    """Optimistic concurrency collision on the same record."""

    kind = "conflict"


class InternalError(ThesisError):
    """Unexpected failure below the core (storage, filesystem)."""

    kind = "internal_error"


class PolicyConfigurationError(ThesisError):
    """Invalid policy file detected at load time."""

    kind = "configuration_error"


def _plain(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return getattr(value, "value", value)
