"""Structure contract tests for the theses feature."""
from __future__ import annotations

from pathlib import Path


def test_structure_contract() -> None:
    """Fail if required scaffold files are missing."""
    root = Path(__file__).resolve().parents[1]
    required = [
        root / "enum" / "role.py",
        root / "enum" / "thesis_status.py",
        root / "enum" / "thesis_action.py",
        root / "enum" / "review_status.py",
        root / "dto" / "actor.py",
        root / "dto" / "decision.py",
        root / "dto" / "resource_ref.py",
        root / "dto" / "audit_event.py",
        root / "dto" / "operation_result.py",
        root / "models" / "thesis_models.py",
        root / "policies" / "theses_roles.json",
        root / "policies" / "theses_permissions_policy.json",
        root / "policies" / "theses_workflow_transitions.json",
        root / "services" / "policy" / "role_registry.py",
        root / "services" / "policy" / "permission_policy.py",
        root / "services" / "policy" / "workflow_policy.py",
        root / "services" / "thesis_service.py",
        root / "services" / "audit_service.py",
        root / "logic" / "relationship_graph.py",
        root / "logic" / "workflow_engine.py",
        root / "logic" / "topic_negotiation.py",
        root / "repository" / "sqlite_thesis_repository.py",
        root / "adapters" / "storage_adapter.py",
        root / "adapters" / "identity_adapter.py",
        root / "exceptions" / "errors.py",
        root / "tests" / "test_structure_contract.py",
        root / "tests" / "test_permission_policy.py",
        root / "tests" / "test_workflow_engine.py",
    ]
    missing = [path for path in required if not path.exists()]
    assert not missing, f"Missing required files: {missing}"


def test_services_package_leaves_out_facade() -> None:
    """The services package re-exports policies only, so logic modules can import them."""
    import theses.services as services

    assert "ThesisService" not in services.__all__
    assert not hasattr(services, "ThesisService")
