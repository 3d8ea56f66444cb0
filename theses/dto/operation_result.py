"""Operation result DTO returned by ThesisService."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from theses.exceptions.errors import ThesisError

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Either the updated entity/decision or a structured error."""

    ok: bool
    value: Optional[T] = None
    error: Optional[ThesisError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ThesisError) -> "OperationResult":
        return cls(ok=False, error=error)

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
