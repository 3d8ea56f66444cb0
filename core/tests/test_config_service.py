"""
core/tests/test_config_service.py

Layering and typing of the configuration service, plus context wiring.
"""

from __future__ import annotations

import logging
from pathlib import Path

from core.common.app_context import build_app_context
from core.config.bootstrap import bootstrap_db_path
from core.config.config_service import ConfigService
from core.logging.logic.log_setup import configure_logging


def _ini(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_embedded_defaults_are_typed(tmp_path: Path) -> None:
    """Without any file or variable the embedded defaults apply."""
    svc = ConfigService(config_dir=tmp_path, user_ini=tmp_path / "none.ini", environ={})
    assert svc.workflow.max_plagiarism_attempts == 3
    assert svc.workflow.plagiarism_threshold == 15.0
    assert svc.workflow.require_plagiarism_clearance is False
    assert svc.workflow.review_pdf_enabled is True
    assert isinstance(svc.database.path, Path)
    assert (svc.policy.directory / "theses_roles.json").is_file()
    assert svc.meta_source("Workflow", "plagiarism_threshold")["layer"] == "code"


def test_layer_precedence(tmp_path: Path) -> None:
    """defaults.ini < env < machine.ini < user.ini."""
    _ini(tmp_path / "defaults.ini", "[Workflow]\nmax_plagiarism_attempts = 4\nplagiarism_threshold = 20\n")
    _ini(tmp_path / "machine.ini", "[Workflow]\nplagiarism_threshold = 30\n")
    user = _ini(tmp_path / "user" / "user.ini", "[Logging]\nlevel = DEBUG\n")
    env = {
        "THESES_WORKFLOW__MAX_PLAGIARISM_ATTEMPTS": "5",
        "THESES_WORKFLOW__PLAGIARISM_THRESHOLD": "25",
        "THESES_WORKFLOW__REQUIRE_PLAGIARISM_CLEARANCE": "yes",
        "OTHER_VARIABLE": "ignored",
    }
    svc = ConfigService(config_dir=tmp_path, user_ini=user, environ=env)

    assert svc.workflow.max_plagiarism_attempts == 5
    assert svc.workflow.plagiarism_threshold == 30.0
    assert svc.workflow.require_plagiarism_clearance is True
    assert svc.logging.level == "DEBUG"
    assert svc.meta_source("Workflow", "plagiarism_threshold")["layer"] == "machine"
    assert svc.get("Workflow", "max_plagiarism_attempts", cast=int) == 5
    assert svc.get("Workflow", "missing") is None


def test_log_format_survives_ini(tmp_path: Path) -> None:
    """Percent signs in formats are not interpolated."""
    _ini(tmp_path / "machine.ini", "[Logging]\nformat = %(levelname)s %(message)s\n")
    svc = ConfigService(config_dir=tmp_path, user_ini=tmp_path / "none.ini", environ={})
    assert svc.logging.format == "%(levelname)s %(message)s"


def test_bootstrap_db_path(tmp_path: Path, monkeypatch) -> None:
    """THESES_DB wins over theses.cfg, which wins over the fallback."""
    cfg = _ini(tmp_path / "theses.cfg", f"[bootstrap]\ndb_path = {tmp_path / 'from_cfg.db'}\n")
    monkeypatch.delenv("THESES_DB", raising=False)
    assert bootstrap_db_path(cfg) == tmp_path / "from_cfg.db"
    assert bootstrap_db_path(tmp_path / "missing.cfg").name == "theses.db"
    monkeypatch.setenv("THESES_DB", str(tmp_path / "env.db"))
    assert bootstrap_db_path(cfg) == tmp_path / "env.db"


def test_configure_logging_is_idempotent(tmp_path: Path) -> None:
    """Repeated setup keeps a single console handler."""
    svc = ConfigService(config_dir=tmp_path, user_ini=tmp_path / "none.ini", environ={"THESES_LOGGING__LEVEL": "warning"})
    previous = logging.getLogger().level
    root = configure_logging(svc.logging)
    configure_logging(svc.logging)
    named = [h for h in root.handlers if h.get_name() == "theses-console"]
    try:
        assert len(named) == 1
        assert root.level == logging.WARNING
    finally:
        for handler in named:
            root.removeHandler(handler)
        root.setLevel(previous)


def test_build_app_context(tmp_path: Path) -> None:
    """One configuration wires one repository into every component."""
    env = {
        "THESES_DATABASE__PATH": str(tmp_path / "db" / "theses.db"),
        "THESES_STORAGE__ROOT": str(tmp_path / "files"),
    }
    svc = ConfigService(config_dir=tmp_path, user_ini=tmp_path / "none.ini", environ=env)
    ctx = build_app_context(svc.app_config())
    try:
        assert (tmp_path / "files").is_dir()
        assert ctx.repository.list_users() == []
        assert (tmp_path / "db" / "theses.db").is_file()
    finally:
        ctx.close()
