"""Plagiarism detector adapter.

Detection itself is external; the core only stores the similarity score and
counts attempts.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Protocol


@dataclass(frozen=True)
class PlagiarismReport:
    similarity: float
    """Similarity in percent (0..100)"""

    report_ref: Optional[str] = None
    """Identifier of the detector's report"""


class PlagiarismAdapter(Protocol):
    def check(self, *, thesis_id: str, file_path: str) -> PlagiarismReport:
        ...


class FixedScorePlagiarismAdapter:
    """Returns preconfigured scores per thesis (tests, offline setups)."""

    def __init__(self, scores: Optional[Dict[str, float]] = None, default: float = 0.0) -> None:
        self._scores = dict(scores or {})
        self._default = default

    def set_score(self, thesis_id: str, similarity: float) -> None:
        self._scores[thesis_id] = similarity

    def check(self, *, thesis_id: str, file_path: str) -> PlagiarismReport:
        similarity = float(self._scores.get(thesis_id, self._default))
        return PlagiarismReport(similarity=similarity, report_ref=f"fixed:{thesis_id}")
