"""Workflow policy service (no IO after load).

Implements thesis status transition validation based on
theses_workflow_transitions.json.
"""

from __future__ import annotations
from typing import List, Dict, Optional, Any, Tuple
from pathlib import Path
import json
import logging

from theses.enum.thesis_status import ThesisStatus
from theses.exceptions.errors import InvalidStateError, PolicyConfigurationError

logger = logging.getLogger(__name__)

TRANSITIONS_FILE = "theses_workflow_transitions.json"


class WorkflowPolicy:
    """
    Policy evaluation for thesis status transitions.

    Loads transition rules from JSON configuration.
    """

    def __init__(
        self,
        *,
        transitions: List[Dict[str, Any]],
        forbidden_transitions: List[str]
    ):
        """
        Args:
            transitions: List of transition rules (from JSON)
            forbidden_transitions: Forbidden patterns (e.g., "evaluated->submitted")
        """
        self._forbidden = self._parse_forbidden(forbidden_transitions or [])
        self._table: Dict[Tuple[ThesisStatus, str], ThesisStatus] = {}
        for rule in transitions or []:
            src = self._parse_status(rule.get("from"))
            dst = self._parse_status(rule.get("to"))
            action = str(rule.get("action", "")).strip().lower()
            if not action:
                raise PolicyConfigurationError("Transition rule without action.", rule=rule)
            if self._is_forbidden(src, dst):
                logger.warning("Skipping forbidden transition %s -> %s (%s)", src.value, dst.value, action)
                continue
            self._table[(src, action)] = dst

    @classmethod
    def load_from_directory(cls, directory: str | Path) -> "WorkflowPolicy":
        """
        Load workflow policy from theses_workflow_transitions.json.

        Args:
            directory: Directory containing policy files

        Returns:
            WorkflowPolicy instance
        """
        policy_file = Path(directory) / TRANSITIONS_FILE
        if not policy_file.exists():
            raise PolicyConfigurationError("Workflow policy file not found.", path=str(policy_file))
        try:
            with policy_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as ex:
            raise PolicyConfigurationError(f"Workflow policy is not valid JSON: {ex}", path=str(policy_file)) from ex

        return cls(
            transitions=data.get("workflow_transitions", []),
            forbidden_transitions=data.get("forbidden_transitions", []),
        )

    def allowed_actions(self, status: ThesisStatus) -> List[str]:
        """Return action identifiers permitted from the given status."""
        return sorted(action for (src, action) in self._table if src == status)

    def next_status(self, *, action_id: str, status: ThesisStatus) -> Optional[ThesisStatus]:
        """Resolve the next status for an action, None if not permitted."""
        return self._table.get((status, (action_id or "").strip().lower()))

    def require(self, *, action_id: str, status: ThesisStatus) -> ThesisStatus:
        """Like next_status, but raise InvalidStateError when not permitted."""
        target = self.next_status(action_id=action_id, status=status)
        if target is None:
            required = sorted(
                {src.value for (src, action) in self._table if action == action_id}
            )
            raise InvalidStateError(
                f"Action '{action_id}' is not allowed in status '{status.value}'.",
                current=status,
                required=required,
                action=action_id,
            )
        return target

    def _is_forbidden(self, from_status: ThesisStatus, to_status: ThesisStatus) -> bool:
        for forbidden_from, forbidden_to in self._forbidden:
            if forbidden_from == from_status and (forbidden_to is None or forbidden_to == to_status):
                return True
        return False

    @staticmethod
    def _parse_status(value: Any) -> ThesisStatus:
        if isinstance(value, ThesisStatus):
            return value
        raw = str(value or "").strip().lower()
        try:
            return ThesisStatus(raw)
        except ValueError:
            raise PolicyConfigurationError(f"Unknown thesis status '{value}' in workflow policy.") from None

    @classmethod
    def _parse_forbidden(cls, items: List[str]) -> List[Tuple[ThesisStatus, Optional[ThesisStatus]]]:
        """Parse "from->to" patterns; "from->*" forbids every target."""
        result: List[Tuple[ThesisStatus, Optional[ThesisStatus]]] = []
        for item in items:
            src, _, dst = str(item).partition("->")
            dst = dst.strip()
            result.append((cls._parse_status(src), None if dst in ("", "*") else cls._parse_status(dst)))
        return result
