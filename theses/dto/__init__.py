"""Data transfer objects exchanged between the theses services."""

from theses.dto.actor import Actor, IdentityClaim
from theses.dto.decision import Decision
from theses.dto.operation_result import OperationResult
from theses.dto.resource_ref import ResourceRef

__all__ = ["Actor", "IdentityClaim", "Decision", "OperationResult", "ResourceRef"]
