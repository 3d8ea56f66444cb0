"""Tests for the role registry (hierarchy closure, groups, validation)."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from theses.enum.role import Role, RoleGroup
from theses.exceptions.errors import PolicyConfigurationError, ValidationError
from theses.services.policy.role_registry import ROLES_FILE, RoleRegistry


def _write_roles(directory: Path, data: dict) -> Path:
    (directory / ROLES_FILE).write_text(json.dumps(data), encoding="utf-8")
    return directory


def _base_roles(policy_dir: Path) -> dict:
    return json.loads((policy_dir / ROLES_FILE).read_text(encoding="utf-8"))


def test_outranks_is_reflexive(registry: RoleRegistry) -> None:
    """Every role satisfies itself as a minimum."""
    for role in Role:
        assert registry.outranks(role, role)


def test_outranks_follows_hierarchy(registry: RoleRegistry) -> None:
    """Admin covers every role; dean covers head_of_department but not admin."""
    for role in Role:
        assert registry.outranks(Role.ADMIN, role)
    assert registry.outranks(Role.DEAN, Role.HEAD_OF_DEPARTMENT)
    assert registry.outranks(Role.DEAN, Role.REVIEWER)
    assert not registry.outranks(Role.DEAN, Role.ADMIN)
    assert not registry.outranks(Role.SUPERVISOR, Role.HEAD_OF_DEPARTMENT)
    assert not registry.outranks(Role.STUDENT, Role.SUPERVISOR)


def test_outranks_is_transitive(tmp_path: Path, policy_dir: Path) -> None:
    """A covers B and B covers C implies A outranks C."""
    data = _base_roles(policy_dir)
    data["hierarchy"]["dean"] = ["dean", "head_of_department"]
    data["hierarchy"]["head_of_department"] = ["head_of_department", "supervisor"]
    registry = RoleRegistry.load_from_directory(_write_roles(tmp_path, data))
    assert registry.outranks(Role.DEAN, Role.SUPERVISOR)


def test_group_membership(registry: RoleRegistry) -> None:
    """Groups are plain membership sets."""
    assert registry.in_group(Role.HEAD_OF_DEPARTMENT, RoleGroup.MANAGEMENT)
    assert registry.in_group(Role.ADMIN, RoleGroup.MANAGEMENT)
    assert not registry.in_group(Role.SUPERVISOR, RoleGroup.MANAGEMENT)
    assert registry.in_group(Role.STUDENT, RoleGroup.ACCESS_REVIEW_3)
    assert not registry.in_group(Role.STUDENT, RoleGroup.ALL_STAFF)
    assert registry.group_members(RoleGroup.ACADEMIC_STAFF) == frozenset(
        {Role.SUPERVISOR, Role.CONSULTANT, Role.REVIEWER}
    )


def test_unknown_role_in_policy_fails(tmp_path: Path, policy_dir: Path) -> None:
    """An unknown role name is a configuration error at load time."""
    data = _base_roles(policy_dir)
    data["groups"]["management"].append("janitor")
    with pytest.raises(PolicyConfigurationError):
        RoleRegistry.load_from_directory(_write_roles(tmp_path, data))


def test_unknown_group_in_policy_fails(tmp_path: Path, policy_dir: Path) -> None:
    """An unknown group name is a configuration error at load time."""
    data = _base_roles(policy_dir)
    data["groups"]["night_shift"] = ["admin"]
    with pytest.raises(PolicyConfigurationError):
        RoleRegistry.load_from_directory(_write_roles(tmp_path, data))


def test_missing_group_fails(tmp_path: Path, policy_dir: Path) -> None:
    """Every declared group must be defined."""
    data = _base_roles(policy_dir)
    del data["groups"]["access_thesis"]
    with pytest.raises(PolicyConfigurationError):
        RoleRegistry.load_from_directory(_write_roles(tmp_path, data))


def test_hierarchy_cycle_fails(tmp_path: Path, policy_dir: Path) -> None:
    """A cycle in the hierarchy is rejected."""
    data = _base_roles(policy_dir)
    data["hierarchy"]["supervisor"] = ["supervisor", "consultant"]
    data["hierarchy"]["consultant"] = ["consultant", "supervisor"]
    with pytest.raises(PolicyConfigurationError):
        RoleRegistry.load_from_directory(_write_roles(tmp_path, data))


def test_missing_file_fails(tmp_path: Path) -> None:
    """No roles file, no registry."""
    with pytest.raises(PolicyConfigurationError):
        RoleRegistry.load_from_directory(tmp_path)


def test_role_parse_rejects_unknown_values() -> None:
    """Roles arriving as strings are parsed strictly."""
    assert Role.parse(" Dean ") == Role.DEAN
    with pytest.raises(ValidationError):
        Role.parse("superuser")
