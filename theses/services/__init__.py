"""Services layer for the theses feature.

Audit trail and policy evaluation. The facade lives in
``theses.services.thesis_service``.
"""

from theses.services.audit_service import AuditService
from theses.services.policy.permission_policy import PermissionPolicy
from theses.services.policy.workflow_policy import WorkflowPolicy
from theses.services.policy.role_registry import RoleRegistry

__all__ = [
    "AuditService",
    "PermissionPolicy",
    "WorkflowPolicy",
    "RoleRegistry",
]
