"""Review documents.

Renders the unsigned review summary PDF that a supervisor downloads, signs
and uploads again, and validates uploaded PDFs before they are recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from theses.exceptions.errors import ValidationError
from theses.models.thesis_models import Review, Thesis, User

logger = logging.getLogger(__name__)


@dataclass
class ReviewLayout:
    margin: float = 50.0
    title_size: int = 13
    heading_size: int = 11
    body_size: int = 10
    leading: float = 14.0


class ReviewDocumentRenderer:
    def __init__(self, layout: Optional[ReviewLayout] = None) -> None:
        self._layout = layout or ReviewLayout()

    def render(
        self,
        *,
        thesis: Thesis,
        review: Review,
        iteration: int,
        student: Optional[User],
        reviewer: Optional[User],
        output_path: str,
    ) -> str:
        """Write the review summary to ``output_path`` and return the path."""
        lay = self._layout
        page_w, page_h = A4
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        c = canvas.Canvas(output_path, pagesize=A4)
        c.setTitle(f"Review {thesis.id} / iteration {iteration}")
        y = page_h - lay.margin

        def line(text: str, *, bold: bool = False, size: Optional[int] = None) -> None:
            nonlocal y
            font = "Helvetica-Bold" if bold else "Helvetica"
            font_size = size or lay.body_size
            for chunk in simpleSplit(text, font, font_size, page_w - 2 * lay.margin) or [""]:
                if y < lay.margin + lay.leading:
                    c.showPage()
                    y = page_h - lay.margin
                c.setFont(font, font_size)
                c.drawString(lay.margin, y, chunk)
                y -= lay.leading

        line("REVIEW OF A GRADUATION THESIS", bold=True, size=lay.title_size)
        y -= lay.leading / 2
        line(f"Thesis: {thesis.title} ({thesis.id})")
        if thesis.topic:
            line(f"Topic: {thesis.topic}")
        line(f"Student: {student.name if student else thesis.student_id}")
        if student and student.faculty:
            line(f"Faculty: {student.faculty}")
        line(f"{review.role.value.replace('_', ' ').title()}: {reviewer.name if reviewer else review.reviewer_id}")
        line(f"Iteration: {iteration}")
        line(f"Submitted: {review.submitted_at:%Y-%m-%d %H:%M} UTC")

        y -= lay.leading / 2
        line("Assessment", bold=True, size=lay.heading_size)
        line(f"Result: {review.status.value}")
        if review.is_final_approval:
            line("Recommended for final approval.")
        y -= lay.leading / 2
        line("Comments", bold=True, size=lay.heading_size)
        for paragraph in (review.comments or "-").splitlines() or ["-"]:
            line(paragraph)

        y -= lay.leading * 2
        line("Signature: ______________________        Date: ______________")

        c.showPage()
        c.save()
        logger.info("Rendered review document %s", output_path)
        return output_path


def validate_pdf(path: str) -> int:
    """Return the page count of ``path``; raise ValidationError if it is not a readable PDF."""
    p = Path(path)
    if not p.is_file():
        raise ValidationError("Uploaded file not found.", path=str(path))
    try:
        reader = PdfReader(str(p))
        pages = len(reader.pages)
    except (PdfReadError, ValueError, KeyError, TypeError, OSError) as ex:
        raise ValidationError(f"Uploaded file is not a readable PDF: {ex}", path=str(path)) from ex
    if pages == 0:
        raise ValidationError("Uploaded PDF has no pages.", path=str(path))
    return pages
