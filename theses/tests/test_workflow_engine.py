"""Tests for the thesis workflow engine (submission, review cycle, deletion)."""
from __future__ import annotations

from pathlib import Path

import pytest
from pypdf import PdfReader

from theses.adapters.filesystem_storage_adapter import FilesystemStorageAdapter
from theses.adapters.plagiarism_adapter import FixedScorePlagiarismAdapter
from theses.enum.review_status import ReviewStatus
from theses.enum.role import Role
from theses.enum.subject_kind import SubjectKind
from theses.enum.thesis_status import ThesisStatus
from theses.exceptions.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from theses.logic.plagiarism_gate import PlagiarismGate
from theses.logic.relationship_graph import RelationshipGraph
from theses.logic.workflow_engine import EngineSettings, WorkflowEngine


@pytest.fixture
def storage(tmp_path: Path) -> FilesystemStorageAdapter:
    return FilesystemStorageAdapter(tmp_path / "files")


@pytest.fixture
def graph(repo) -> RelationshipGraph:
    return RelationshipGraph(repo)


@pytest.fixture
def detector() -> FixedScorePlagiarismAdapter:
    return FixedScorePlagiarismAdapter(default=5.0)


@pytest.fixture
def engine(repo, graph, storage, workflow_policy, detector, user_factory) -> WorkflowEngine:
    user_factory(repo, "s1", Role.STUDENT)
    user_factory(repo, "sup1", Role.SUPERVISOR)
    user_factory(repo, "con1", Role.CONSULTANT)
    user_factory(repo, "rev1", Role.REVIEWER)
    user_factory(repo, "hod1", Role.HEAD_OF_DEPARTMENT)
    user_factory(repo, "dean1", Role.DEAN)
    graph.bind(SubjectKind.STUDENT, "s1", Role.SUPERVISOR, "sup1")
    return WorkflowEngine(
        repository=repo,
        graph=graph,
        policy=workflow_policy,
        storage=storage,
        plagiarism=detector,
        gate=PlagiarismGate(max_attempts=2, threshold=15.0),
    )


def _approve(engine: WorkflowEngine, thesis_id: str):
    return engine.submit_review(
        thesis_id, reviewer_id="sup1", role=Role.SUPERVISOR, status=ReviewStatus.APPROVED, comments="Good work"
    )


def test_first_submission_creates_thesis(repo, engine: WorkflowEngine, make_pdf) -> None:
    """Submitting creates iteration 1 and copies the student's edges."""
    thesis = engine.submit("s1", title="Graph Neural Networks", source_path=make_pdf())

    assert thesis.status == ThesisStatus.SUBMITTED
    assert thesis.current_iteration == 1
    assert thesis.assigned_supervisor_id == "sup1"
    assert Path(thesis.file_path).is_file()
    student = repo.get_user_by_id("s1")
    assert student.thesis_id == thesis.id
    assert student.thesis_status == ThesisStatus.SUBMITTED
    assert thesis.id in repo.get_user_by_id("sup1").assigned_theses


def test_submission_rejects_non_pdf(engine: WorkflowEngine, tmp_path: Path) -> None:
    """Only readable PDFs are accepted."""
    fake = tmp_path / "notes.pdf"
    fake.write_text("not a pdf", encoding="utf-8")
    with pytest.raises(ValidationError):
        engine.submit("s1", title="Graphs", source_path=str(fake))


def test_resubmission_without_reviews_reuses_iteration(engine: WorkflowEngine, make_pdf) -> None:
    """A new upload before any review replaces the current iteration's file."""
    first = engine.submit("s1", title="Draft", source_path=make_pdf("v1"))
    second = engine.submit("s1", title="Draft 2", source_path=make_pdf("v2"))

    assert second.id == first.id
    assert second.current_iteration == 1
    assert second.title == "Draft 2"
    assert not Path(first.file_path).exists()
    assert Path(second.file_path).exists()


def test_rejection_then_resubmission_opens_new_iteration(engine: WorkflowEngine, make_pdf) -> None:
    """Reviewed iterations are preserved; resubmission increments."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    thesis = engine.submit_review(
        thesis.id, reviewer_id="sup1", role=Role.SUPERVISOR, status=ReviewStatus.REJECTED, comments="Rework ch. 2"
    )
    assert thesis.status == ThesisStatus.RESUBMISSION_REQUIRED

    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    assert thesis.status == ThesisStatus.SUBMITTED
    assert thesis.current_iteration == 2
    old = thesis.iteration(1)
    assert old.reviews[Role.SUPERVISOR].status == ReviewStatus.REJECTED
    assert Path(old.file_path).exists()


def test_re_review_advances_iteration(engine: WorkflowEngine, make_pdf) -> None:
    """Iteration 2 with a pending supervisor review goes to 3 and under_review."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    engine.submit_review(
        thesis.id, reviewer_id="sup1", role=Role.SUPERVISOR, status=ReviewStatus.REJECTED, comments="Rework"
    )
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    assert thesis.current_iteration == 2
    history = thesis.iteration(1).to_dict()

    thesis = engine.request_re_review(thesis.id)
    assert thesis.current_iteration == 3
    assert thesis.status == ThesisStatus.UNDER_REVIEW
    assert thesis.iteration(1).to_dict() == history
    assert thesis.iteration(2) is not None


def test_iteration_numbers_never_decrease(engine: WorkflowEngine, make_pdf) -> None:
    """Every operation leaves the iteration number the same or higher."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    seen = [thesis.current_iteration]
    for _ in range(3):
        thesis = engine.request_re_review(thesis.id)
        seen.append(thesis.current_iteration)
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    seen.append(thesis.current_iteration)
    assert seen == sorted(seen)
    assert seen[-1] >= seen[-2]


def test_duplicate_review_per_iteration_fails(engine: WorkflowEngine, make_pdf) -> None:
    """One review per role and iteration."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    _approve(engine, thesis.id)
    with pytest.raises(InvalidStateError):
        _approve(engine, thesis.id)


def test_approved_review_renders_pdf(engine: WorkflowEngine, make_pdf) -> None:
    """An approved review comes with a summary document to sign."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    thesis = _approve(engine, thesis.id)
    review = thesis.current.reviews[Role.SUPERVISOR]
    assert thesis.status == ThesisStatus.UNDER_REVIEW
    assert review.document_path
    assert len(PdfReader(review.document_path).pages) >= 1


def test_rejection_needs_comments(engine: WorkflowEngine, make_pdf) -> None:
    """A rejected review must say why."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    with pytest.raises(ValidationError):
        engine.submit_review(thesis.id, reviewer_id="sup1", role=Role.SUPERVISOR, status=ReviewStatus.REJECTED)


def test_sign_countersign_and_evaluate(repo, engine: WorkflowEngine, make_pdf) -> None:
    """Full happy path from submission to grade."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    _approve(engine, thesis.id)

    with pytest.raises(InvalidStateError):
        engine.evaluate(thesis.id, grade="A")

    engine.sign_review(thesis.id, signer_id="sup1", signed_file=make_pdf("signed"))
    with pytest.raises(InvalidStateError):
        engine.countersign_review(thesis.id, signer_id="dean1", role=Role.DEAN, signed_file=make_pdf("dean"))
    engine.countersign_review(thesis.id, signer_id="hod1", role=Role.HEAD_OF_DEPARTMENT, signed_file=make_pdf("hod"))

    thesis = engine.evaluate(thesis.id, grade="A")
    assert thesis.status == ThesisStatus.EVALUATED
    assert thesis.final_grade == "A"
    assert repo.get_user_by_id("s1").final_grade == "A"

    thesis = engine.countersign_review(thesis.id, signer_id="dean1", role=Role.DEAN, signed_file=make_pdf("dean"))
    assert set(thesis.current.reviews[Role.SUPERVISOR].countersignatures) == {Role.HEAD_OF_DEPARTMENT, Role.DEAN}

    with pytest.raises(InvalidStateError):
        engine.submit("s1", title="Again", source_path=make_pdf())


def test_evaluate_refuses_rejected_reviews(engine: WorkflowEngine, make_pdf) -> None:
    """A rejection in the current iteration blocks grading."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    _approve(engine, thesis.id)
    engine.sign_review(thesis.id, signer_id="sup1", signed_file=make_pdf("signed"))
    engine.submit_review(
        thesis.id, reviewer_id="con1", role=Role.CONSULTANT, status=ReviewStatus.REJECTED, comments="Weak"
    )
    with pytest.raises(InvalidStateError):
        engine.evaluate(thesis.id, grade="B")


def test_plagiarism_attempts_are_capped(engine: WorkflowEngine, detector, make_pdf) -> None:
    """Failed checks consume attempts until none are left."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    detector.set_score(thesis.id, 40.0)
    thesis = engine.check_plagiarism(thesis.id)
    assert thesis.plagiarism.attempts == 1 and not thesis.plagiarism.approved
    engine.check_plagiarism(thesis.id)
    with pytest.raises(InvalidStateError):
        engine.check_plagiarism(thesis.id)


def test_plagiarism_clearance_gates_supervisor_approval(
    repo, graph, storage, workflow_policy, detector, make_pdf, user_factory
) -> None:
    """With clearance required, approval waits for a passed check."""
    user_factory(repo, "s1", Role.STUDENT)
    user_factory(repo, "sup1", Role.SUPERVISOR)
    engine = WorkflowEngine(
        repository=repo,
        graph=graph,
        policy=workflow_policy,
        storage=storage,
        plagiarism=detector,
        settings=EngineSettings(require_plagiarism_clearance=True, review_pdf_enabled=False),
    )
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    with pytest.raises(InvalidStateError):
        _approve(engine, thesis.id)
    thesis = engine.check_plagiarism(thesis.id)
    assert thesis.plagiarism.approved
    thesis = _approve(engine, thesis.id)
    assert thesis.current.reviews[Role.SUPERVISOR].document_path is None


def test_delete_removes_everything_and_is_idempotent(repo, engine: WorkflowEngine, storage, make_pdf) -> None:
    """Deletion clears edges, files and the record; a second call is a no-op."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    thesis = _approve(engine, thesis.id)
    files = thesis.all_file_paths()

    withdrawn = engine.delete_thesis(thesis.id)
    assert withdrawn.status == ThesisStatus.WITHDRAWN
    assert repo.get_thesis_by_id(thesis.id) is None
    assert all(not Path(p).exists() for p in files)
    assert thesis.id not in repo.get_user_by_id("sup1").assigned_theses
    student = repo.get_user_by_id("s1")
    assert student.thesis_id is None
    assert student.thesis_status == ThesisStatus.NOT_SUBMITTED
    # the student edge is not part of the thesis
    assert student.supervisor_id == "sup1"

    assert engine.delete_thesis(thesis.id) is None


def test_open_thesis_file(engine: WorkflowEngine, make_pdf) -> None:
    """Reading the stored file goes through the storage adapter."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    with engine.open_thesis_file(thesis.id) as fh:
        assert fh.read(4) == b"%PDF"
    with pytest.raises(NotFoundError):
        with engine.open_thesis_file("THS-0000-0000"):
            pass


def test_resubmission_after_re_review_keeps_history_files(engine: WorkflowEngine, make_pdf) -> None:
    """An upload into a fresh re-review iteration never deletes an earlier iteration's file."""
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf("v1"))
    _approve(engine, thesis.id)
    thesis = engine.request_re_review(thesis.id)
    first_file = thesis.iteration(1).file_path
    assert thesis.iteration(2).file_path == first_file

    thesis = engine.submit("s1", title="Draft", source_path=make_pdf("v2"))
    assert thesis.current_iteration == 2
    assert thesis.iteration(1).file_path == first_file
    assert Path(first_file).exists()
    second_file = thesis.iteration(2).file_path
    assert second_file != first_file

    thesis = engine.submit("s1", title="Draft", source_path=make_pdf("v3"))
    assert Path(first_file).exists()
    assert not Path(second_file).exists()
    assert Path(thesis.iteration(2).file_path).exists()


def test_only_review_author_signs(repo, engine: WorkflowEngine, make_pdf, user_factory) -> None:
    """Another supervisor cannot sign someone else's review."""
    user_factory(repo, "sup2", Role.SUPERVISOR)
    thesis = engine.submit("s1", title="Draft", source_path=make_pdf())
    _approve(engine, thesis.id)
    with pytest.raises(ForbiddenError):
        engine.sign_review(thesis.id, signer_id="sup2", signed_file=make_pdf("signed"))
    thesis = engine.sign_review(thesis.id, signer_id="sup1", signed_file=make_pdf("signed"))
    assert thesis.current.reviews[Role.SUPERVISOR].is_signed
