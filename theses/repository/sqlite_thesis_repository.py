"""SQLite implementation of ThesisRepository.

Lightweight repository - only CRUD and simple queries.
Business logic is in the logic/services layer.

Users and theses are stored as JSON documents next to a ``version`` column
used for optimistic concurrency. Assignment edges live in their own table and
are the single source of truth for both directions of the relationship
graph: a student's supervisor and a supervisor's assigned students are two
reads of the same row.
"""

from __future__ import annotations

import json
import logging
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Dict, List, Optional

from theses.adapters.database_adapter import DatabaseAdapter
from theses.adapters.sqlite_adapter import SQLiteAdapter
from theses.enum.review_status import RequestStatus
from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.exceptions.errors import ConflictError, NotFoundError
from theses.logic.id_generator import IdGenerator
from theses.models.thesis_models import AssignmentEdge, SupervisorRequest, Thesis, User, utcnow
from theses.repository.repo_config import RepoConfig

logger = logging.getLogger(__name__)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    role TEXT NOT NULL,
    data TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS theses (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL UNIQUE REFERENCES users(id),
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS assignments (
    subject_kind TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    role TEXT NOT NULL,
    assignee_id TEXT NOT NULL REFERENCES users(id),
    assigned_at TEXT NOT NULL,
    PRIMARY KEY (subject_kind, subject_id, role)
);

CREATE INDEX IF NOT EXISTS idx_assignments_assignee ON assignments(assignee_id);

CREATE TABLE IF NOT EXISTS supervisor_requests (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    supervisor_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status TEXT NOT NULL,
    message TEXT,
    response_message TEXT,
    requested_at TEXT NOT NULL,
    responded_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_requests_pending_pair
    ON supervisor_requests(student_id, supervisor_id) WHERE status = 'pending';
"""


class SQLiteThesisRepository:
    """SQLite backend for users, theses, assignment edges and supervisor requests."""

    def __init__(self, config: RepoConfig, *, db_adapter: Optional[DatabaseAdapter] = None) -> None:
        """
        Args:
            config: Repository configuration
            db_adapter: Database adapter (default: SQLiteAdapter)
        """
        self._cfg = config
        self._db = db_adapter or SQLiteAdapter(config.db_path)
        self._db.executescript(_SCHEMA)
        self._thesis_ids = IdGenerator(self._db, config.thesis_id_prefix, config.id_pattern)
        self._request_ids = IdGenerator(self._db, config.request_id_prefix, config.id_pattern)

    def transaction(self) -> AbstractContextManager:
        return self._db.transaction()

    def close(self) -> None:
        self._db.close()

    # =========================================================================
    # Users
    # =========================================================================

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        row = self._db.fetchone("SELECT id, data, version FROM users WHERE id=?", (user_id,))
        return self._hydrate_user(row) if row else None

    def list_users(self, *, role: Optional[Role] = None, faculty: Optional[str] = None) -> List[User]:
        rows = self._db.fetchall("SELECT id, data, version FROM users ORDER BY id")
        users = [self._hydrate_user(r) for r in rows]
        if role is not None:
            users = [u for u in users if u.has_role(role)]
        if faculty is not None:
            users = [u for u in users if u.faculty == faculty]
        return users

    def create_user(self, user: User) -> User:
        with self._db.transaction():
            if self._db.fetchone("SELECT 1 AS x FROM users WHERE id=?", (user.id,)):
                raise ConflictError(f"User '{user.id}' already exists.", user_id=user.id)
            self._db.execute(
                "INSERT INTO users(id, role, data, version) VALUES (?, ?, ?, 1)",
                (user.id, user.role.value, json.dumps(user.to_dict())),
            )
        user.version = 1
        return user

    def update_user(self, user: User) -> User:
        with self._db.transaction():
            cur = self._db.execute(
                "UPDATE users SET role=?, data=?, version=version+1 WHERE id=? AND version=?",
                (user.role.value, json.dumps(user.to_dict()), user.id, user.version),
            )
            if cur.rowcount == 0:
                self._raise_stale("users", user.id, user.version)
        user.version += 1
        return user

    def delete_user(self, user_id: str) -> bool:
        with self._db.transaction():
            cur = self._db.execute("DELETE FROM users WHERE id=?", (user_id,))
        return cur.rowcount > 0

    def _hydrate_user(self, row: Dict[str, Any]) -> User:
        user = User.from_dict(row["id"], json.loads(row["data"]), version=int(row["version"]))

        for edge in self.list_assignments(subject_kind=SubjectKind.STUDENT, subject_id=user.id):
            if edge.role == Role.SUPERVISOR:
                user.supervisor_id = edge.assignee_id
            elif edge.role == Role.CONSULTANT:
                user.consultant_id = edge.assignee_id
            elif edge.role == Role.REVIEWER:
                user.reviewer_id = edge.assignee_id

        for edge in self.list_assignments(assignee_id=user.id):
            if edge.subject_kind == SubjectKind.STUDENT:
                user.assigned_students.add(edge.subject_id)
            else:
                user.assigned_theses.add(edge.subject_id)
        return user

    # =========================================================================
    # Theses
    # =========================================================================

    def next_thesis_id(self) -> str:
        return self._thesis_ids.next_id()

    def get_thesis_by_id(self, thesis_id: str) -> Optional[Thesis]:
        row = self._db.fetchone("SELECT id, data, version FROM theses WHERE id=?", (thesis_id,))
        return self._hydrate_thesis(row) if row else None

    def get_theses_by_student(self, student_id: str) -> List[Thesis]:
        rows = self._db.fetchall(
            "SELECT id, data, version FROM theses WHERE student_id=? ORDER BY id", (student_id,)
        )
        return [self._hydrate_thesis(r) for r in rows]

    def list_theses(self, *, ids: Optional[List[str]] = None) -> List[Thesis]:
        if ids is not None:
            if not ids:
                return []
            marks = ", ".join("?" for _ in ids)
            rows = self._db.fetchall(
                f"SELECT id, data, version FROM theses WHERE id IN ({marks}) ORDER BY id", tuple(ids)
            )
        else:
            rows = self._db.fetchall("SELECT id, data, version FROM theses ORDER BY id")
        return [self._hydrate_thesis(r) for r in rows]

    def create_thesis(self, thesis: Thesis) -> Thesis:
        with self._db.transaction():
            if not thesis.id:
                thesis.id = self.next_thesis_id()
            existing = self._db.fetchone("SELECT id FROM theses WHERE student_id=?", (thesis.student_id,))
            if existing:
                raise ConflictError(
                    "Student already has a thesis.", student_id=thesis.student_id, thesis_id=existing["id"]
                )
            self._db.execute(
                "INSERT INTO theses(id, student_id, status, data, version) VALUES (?, ?, ?, ?, 1)",
                (thesis.id, thesis.student_id, thesis.status.value, json.dumps(thesis.to_dict())),
            )
        thesis.version = 1
        logger.info("Created thesis %s for student %s", thesis.id, thesis.student_id)
        return thesis

    def update_thesis(self, thesis: Thesis) -> Thesis:
        thesis.updated_at = utcnow()
        with self._db.transaction():
            cur = self._db.execute(
                "UPDATE theses SET status=?, data=?, version=version+1 WHERE id=? AND version=?",
                (thesis.status.value, json.dumps(thesis.to_dict()), thesis.id, thesis.version),
            )
            if cur.rowcount == 0:
                self._raise_stale("theses", thesis.id, thesis.version)
        thesis.version += 1
        return thesis

    def delete_thesis(self, thesis_id: str) -> bool:
        with self._db.transaction():
            cur = self._db.execute("DELETE FROM theses WHERE id=?", (thesis_id,))
        return cur.rowcount > 0

    def _hydrate_thesis(self, row: Dict[str, Any]) -> Thesis:
        thesis = Thesis.from_dict(row["id"], json.loads(row["data"]), version=int(row["version"]))
        for edge in self.list_assignments(subject_kind=SubjectKind.THESIS, subject_id=thesis.id):
            if edge.role == Role.SUPERVISOR:
                thesis.assigned_supervisor_id = edge.assignee_id
            elif edge.role == Role.CONSULTANT:
                thesis.assigned_consultant_id = edge.assignee_id
            elif edge.role == Role.REVIEWER:
                thesis.assigned_reviewer_id = edge.assignee_id
        return thesis

    # =========================================================================
    # Assignment edges
    # =========================================================================

    def get_assignment(self, subject_kind: SubjectKind, subject_id: str, role: Role) -> Optional[str]:
        row = self._db.fetchone(
            "SELECT assignee_id FROM assignments WHERE subject_kind=? AND subject_id=? AND role=?",
            (subject_kind.value, subject_id, role.value),
        )
        return row["assignee_id"] if row else None

    def set_assignment(
        self, subject_kind: SubjectKind, subject_id: str, role: Role, assignee_id: Optional[str]
    ) -> Optional[str]:
        with self._db.transaction():
            previous = self.get_assignment(subject_kind, subject_id, role)
            if assignee_id is None:
                self._db.execute(
                    "DELETE FROM assignments WHERE subject_kind=? AND subject_id=? AND role=?",
                    (subject_kind.value, subject_id, role.value),
                )
            else:
                self._db.execute(
                    "INSERT INTO assignments(subject_kind, subject_id, role, assignee_id, assigned_at) "
                    "VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(subject_kind, subject_id, role) "
                    "DO UPDATE SET assignee_id=excluded.assignee_id, assigned_at=excluded.assigned_at",
                    (subject_kind.value, subject_id, role.value, assignee_id, utcnow().isoformat()),
                )
        return previous

    def list_assignments(
        self,
        *,
        assignee_id: Optional[str] = None,
        subject_kind: Optional[SubjectKind] = None,
        subject_id: Optional[str] = None,
    ) -> List[AssignmentEdge]:
        clauses: List[str] = []
        params: List[Any] = []
        if assignee_id is not None:
            clauses.append("assignee_id=?")
            params.append(assignee_id)
        if subject_kind is not None:
            clauses.append("subject_kind=?")
            params.append(subject_kind.value)
        if subject_id is not None:
            clauses.append("subject_id=?")
            params.append(subject_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._db.fetchall(
            f"SELECT subject_kind, subject_id, role, assignee_id, assigned_at FROM assignments {where} "
            "ORDER BY subject_kind, subject_id, role",
            tuple(params),
        )
        return [
            AssignmentEdge(
                subject_kind=SubjectKind(r["subject_kind"]),
                subject_id=r["subject_id"],
                role=Role(r["role"]),
                assignee_id=r["assignee_id"],
                assigned_at=datetime.fromisoformat(r["assigned_at"]) if r["assigned_at"] else None,
            )
            for r in rows
        ]

    # =========================================================================
    # Supervisor requests
    # =========================================================================

    def next_request_id(self) -> str:
        return self._request_ids.next_id()

    def create_request(self, request: SupervisorRequest) -> SupervisorRequest:
        with self._db.transaction():
            if not request.id:
                request.id = self.next_request_id()
            self._db.execute(
                "INSERT INTO supervisor_requests"
                "(id, student_id, supervisor_id, status, message, response_message, requested_at, responded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                self._request_row(request),
            )
        return request

    def get_request(self, request_id: str) -> Optional[SupervisorRequest]:
        row = self._db.fetchone("SELECT * FROM supervisor_requests WHERE id=?", (request_id,))
        return self._to_request(row) if row else None

    def update_request(self, request: SupervisorRequest) -> SupervisorRequest:
        with self._db.transaction():
            cur = self._db.execute(
                "UPDATE supervisor_requests SET status=?, response_message=?, responded_at=? WHERE id=?",
                (
                    request.status.value,
                    request.response_message,
                    request.responded_at.isoformat() if request.responded_at else None,
                    request.id,
                ),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Supervisor request not found.", request_id=request.id)
        return request

    def list_requests(
        self,
        *,
        student_id: Optional[str] = None,
        supervisor_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[SupervisorRequest]:
        clauses: List[str] = []
        params: List[Any] = []
        if student_id is not None:
            clauses.append("student_id=?")
            params.append(student_id)
        if supervisor_id is not None:
            clauses.append("supervisor_id=?")
            params.append(supervisor_id)
        if status is not None:
            clauses.append("status=?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._db.fetchall(
            f"SELECT * FROM supervisor_requests {where} ORDER BY requested_at, id", tuple(params)
        )
        return [self._to_request(r) for r in rows]

    @staticmethod
    def _request_row(request: SupervisorRequest) -> tuple:
        return (
            request.id,
            request.student_id,
            request.supervisor_id,
            request.status.value,
            request.message,
            request.response_message,
            request.requested_at.isoformat(),
            request.responded_at.isoformat() if request.responded_at else None,
        )

    @staticmethod
    def _to_request(row: Dict[str, Any]) -> SupervisorRequest:
        return SupervisorRequest(
            id=row["id"],
            student_id=row["student_id"],
            supervisor_id=row["supervisor_id"],
            status=RequestStatus(row["status"]),
            message=row.get("message"),
            response_message=row.get("response_message"),
            requested_at=datetime.fromisoformat(row["requested_at"]),
            responded_at=datetime.fromisoformat(row["responded_at"]) if row.get("responded_at") else None,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _raise_stale(self, table: str, record_id: str, expected: int) -> None:
        row = self._db.fetchone(f"SELECT version FROM {table} WHERE id=?", (record_id,))
        if row is None:
            raise NotFoundError(f"Record '{record_id}' not found.", table=table, id=record_id)
        raise ConflictError(
            f"Record '{record_id}' was modified concurrently.",
            table=table,
            id=record_id,
            expected_version=expected,
            actual_version=int(row["version"]),
        )
