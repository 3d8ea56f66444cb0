"""Shared fixtures for the theses tests."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest
from reportlab.pdfgen import canvas

from core.common.app_context import AppContext, build_app_context
from core.config.config_service import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    PolicyConfig,
    StorageConfig,
    WorkflowConfig,
)
from theses.adapters.plagiarism_adapter import FixedScorePlagiarismAdapter
from theses.enum.role import Role
from theses.models.thesis_models import User
from theses.repository.repo_config import RepoConfig
from theses.repository.sqlite_thesis_repository import SQLiteThesisRepository
from theses.services.policy.permission_policy import PermissionPolicy
from theses.services.policy.role_registry import RoleRegistry
from theses.services.policy.workflow_policy import WorkflowPolicy

POLICY_DIR = Path(__file__).resolve().parents[1] / "policies"


@pytest.fixture
def policy_dir() -> Path:
    return POLICY_DIR


@pytest.fixture
def registry() -> RoleRegistry:
    return RoleRegistry.load_from_directory(POLICY_DIR)


@pytest.fixture
def permissions(registry: RoleRegistry) -> PermissionPolicy:
    return PermissionPolicy.load_from_directory(POLICY_DIR, registry=registry)


@pytest.fixture
def workflow_policy() -> WorkflowPolicy:
    return WorkflowPolicy.load_from_directory(POLICY_DIR)


@pytest.fixture
def repo(tmp_path: Path) -> Iterator[SQLiteThesisRepository]:
    repository = SQLiteThesisRepository(
        RepoConfig(db_path=str(tmp_path / "theses.db"))
    )
    yield repository
    repository.close()


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., str]:
    """Write a small one-page PDF and return its path."""
    counter = {"n": 0}

    def _make(text: str = "Thesis draft", name: str = "") -> str:
        counter["n"] += 1
        path = tmp_path / "uploads" / (name or f"upload_{counter['n']}.pdf")
        path.parent.mkdir(parents=True, exist_ok=True)
        c = canvas.Canvas(str(path))
        c.drawString(72, 720, text)
        c.showPage()
        c.save()
        return str(path)

    return _make


@pytest.fixture
def plagiarism() -> FixedScorePlagiarismAdapter:
    return FixedScorePlagiarismAdapter(default=5.0)


@pytest.fixture
def ctx(tmp_path: Path, plagiarism: FixedScorePlagiarismAdapter) -> Iterator[AppContext]:
    config = AppConfig(
        database=DatabaseConfig(path=tmp_path / "ctx.db"),
        storage=StorageConfig(root=tmp_path / "storage"),
        policy=PolicyConfig(directory=POLICY_DIR),
        workflow=WorkflowConfig(),
        logging=LoggingConfig(),
    )
    context = build_app_context(config, plagiarism=plagiarism)
    yield context
    context.close()


def add_user(repo, user_id: str, role: Role, *, faculty: str = "Engineering", **kwargs) -> User:
    return repo.create_user(User(id=user_id, name=user_id.title(), role=role, faculty=faculty, **kwargs))


@pytest.fixture
def user_factory() -> Callable[..., User]:
    return add_user
