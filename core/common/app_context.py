# core/common/app_context.py
"""
Runtime context & service wiring for the theses backend.

IMPORTANT ARCHITECTURE RULE:
- ConfigService is the SINGLE source of truth for paths and settings.
- Exactly one repository handle is created here and injected everywhere;
  no component opens its own connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core.config.config_service import AppConfig, ConfigService
from core.logging.logic.log_setup import configure_logging
from theses.adapters.filesystem_storage_adapter import FilesystemStorageAdapter
from theses.adapters.identity_adapter import IdentityAdapter, StaticIdentityAdapter
from theses.adapters.plagiarism_adapter import PlagiarismAdapter
from theses.logic.plagiarism_gate import PlagiarismGate
from theses.logic.relationship_graph import RelationshipGraph
from theses.logic.supervisor_requests import SupervisorRequests
from theses.logic.topic_negotiation import TopicNegotiation
from theses.logic.user_administration import UserAdministration
from theses.logic.workflow_engine import EngineSettings, WorkflowEngine
from theses.repository.repo_config import RepoConfig
from theses.repository.sqlite_thesis_repository import SQLiteThesisRepository
from theses.services.audit_service import AuditService
from theses.services.policy.permission_policy import PermissionPolicy
from theses.services.policy.role_registry import RoleRegistry
from theses.services.policy.workflow_policy import WorkflowPolicy
from theses.services.thesis_service import ThesisService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Central runtime context (no transport state)."""

    config: AppConfig
    repository: SQLiteThesisRepository
    storage: FilesystemStorageAdapter
    roles: RoleRegistry
    permissions: PermissionPolicy
    workflow: WorkflowPolicy
    graph: RelationshipGraph
    engine: WorkflowEngine
    topics: TopicNegotiation
    requests: SupervisorRequests
    administration: UserAdministration
    audit: AuditService
    identity: IdentityAdapter
    service: ThesisService

    def close(self) -> None:
        self.repository.close()


def build_app_context(
    config: Optional[AppConfig] = None,
    *,
    identity: Optional[IdentityAdapter] = None,
    plagiarism: Optional[PlagiarismAdapter] = None,
    setup_logging: bool = False,
) -> AppContext:
    """Wire every component from one configuration.

    Policy files are validated here; a broken policy raises
    ``PolicyConfigurationError`` before anything is served.
    """
    config = config or ConfigService().app_config()
    if setup_logging:
        configure_logging(config.logging)

    policy_dir = Path(config.policy.directory)
    roles = RoleRegistry.load_from_directory(policy_dir)
    permissions = PermissionPolicy.load_from_directory(policy_dir, registry=roles)
    workflow = WorkflowPolicy.load_from_directory(policy_dir)

    repository = SQLiteThesisRepository(
        RepoConfig(db_path=str(config.database.path))
    )
    storage = FilesystemStorageAdapter(config.storage.root)

    graph = RelationshipGraph(repository)
    engine = WorkflowEngine(
        repository=repository,
        graph=graph,
        policy=workflow,
        storage=storage,
        plagiarism=plagiarism,
        gate=PlagiarismGate(
            max_attempts=config.workflow.max_plagiarism_attempts,
            threshold=config.workflow.plagiarism_threshold,
        ),
        settings=EngineSettings(
            require_plagiarism_clearance=config.workflow.require_plagiarism_clearance,
            review_pdf_enabled=config.workflow.review_pdf_enabled,
        ),
    )
    topics = TopicNegotiation(repository)
    requests = SupervisorRequests(repository, graph)
    administration = UserAdministration(repository, graph, engine)
    audit = AuditService()
    identity = identity or StaticIdentityAdapter()

    service = ThesisService(
        repository=repository,
        permissions=permissions,
        engine=engine,
        topics=topics,
        requests=requests,
        administration=administration,
        identity=identity,
        audit=audit,
    )
    logger.info("Theses backend ready (db=%s, storage=%s)", config.database.path, config.storage.root)

    return AppContext(
        config=config,
        repository=repository,
        storage=storage,
        roles=roles,
        permissions=permissions,
        workflow=workflow,
        graph=graph,
        engine=engine,
        topics=topics,
        requests=requests,
        administration=administration,
        audit=audit,
        identity=identity,
        service=service,
    )
