"""Policy services for the theses feature (pure, loaded from JSON)."""

from theses.services.policy.permission_policy import PermissionPolicy
from theses.services.policy.role_registry import RoleRegistry
from theses.services.policy.workflow_policy import WorkflowPolicy

__all__ = ["PermissionPolicy", "RoleRegistry", "WorkflowPolicy"]
