"""Plagiarism gate.

Attempt counting and the similarity threshold. The detection itself is an
external service behind ``PlagiarismAdapter``.
"""

from __future__ import annotations

from dataclasses import dataclass

from theses.adapters.plagiarism_adapter import PlagiarismReport
from theses.exceptions.errors import InvalidStateError
from theses.models.thesis_models import PlagiarismCheck, Thesis, utcnow


@dataclass(frozen=True)
class PlagiarismGate:
    max_attempts: int = 3
    threshold: float = 15.0
    """Maximum accepted similarity in percent"""

    def ensure_attempt_available(self, thesis: Thesis) -> None:
        if thesis.plagiarism.approved:
            raise InvalidStateError(
                "Plagiarism check already passed.", current="approved", required="not approved"
            )
        if thesis.plagiarism.attempts >= self.max_attempts:
            raise InvalidStateError(
                "No plagiarism check attempts left.",
                current=f"{thesis.plagiarism.attempts} attempts",
                required=f"fewer than {self.max_attempts} attempts",
            )

    def record(self, thesis: Thesis, report: PlagiarismReport) -> PlagiarismCheck:
        thesis.plagiarism = PlagiarismCheck(
            attempts=thesis.plagiarism.attempts + 1,
            similarity=report.similarity,
            approved=report.similarity <= self.threshold,
            report_ref=report.report_ref,
            checked_at=utcnow(),
        )
        return thesis.plagiarism

    @staticmethod
    def is_cleared(thesis: Thesis) -> bool:
        return thesis.plagiarism.approved
