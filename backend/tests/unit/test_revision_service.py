from __future__ import annotations

import pytest

from app.core.config import WorkflowConfig
from app.models.notification import EventKind
from app.models.revision import RevisionFile, RevisionFileKind, RevisionSubmission
from app.services.workflow_service import WorkflowStateMachine
from conftest import valid_submission

RESPONSE = "We thank the reviewers for their careful reading. " * 6


def _submission(manuscript_id: str, **overrides) -> RevisionSubmission:
    data = {
        "manuscript_id": manuscript_id,
        "response_to_reviewers": RESPONSE,
        "change_log": "Clarified the locking model in section 3.",
        "files": [
            RevisionFile(name="revised.pdf", kind=RevisionFileKind.REVISED_MANUSCRIPT),
            RevisionFile(name="clean.pdf", kind=RevisionFileKind.CLEAN_COPY),
            RevisionFile(name="diff.pdf", kind=RevisionFileKind.CHANGE_TRACKING),
        ],
    }
    data.update(overrides)
    return RevisionSubmission(**data)


@pytest.fixture
def awaiting_revision(engine, actors, under_review):
    result = engine.record_decision(under_review.id, "major_revision", "Please address the reviewers.", actors("editor-1"))
    assert result.success, result.error
    return engine.store.load_manuscript(under_review.id)


# === validation ===


def test_complete_submission_has_no_errors_or_warnings(engine, awaiting_revision) -> None:
    result = engine.validate_revision_submission(_submission(awaiting_revision.id))
    assert result.success
    assert result.data.is_valid is True
    assert result.data.warnings == []


def test_validation_on_behalf_of_a_user_checks_visibility(engine, actors, awaiting_revision) -> None:
    own = engine.validate_revision_submission(
        _submission(awaiting_revision.id, expected_version=2), actors("author-1")
    )
    assert own.data.is_valid is True

    other = engine.validate_revision_submission(_submission(awaiting_revision.id), actors("author-2"))
    assert other.error_code == "access_denied"
    assert engine.validate_revision_submission(_submission("missing"), actors("author-1")).error_code == "not_found"


def test_response_letter_file_replaces_response_text(engine, awaiting_revision) -> None:
    files = [
        RevisionFile(name="revised.docx", kind=RevisionFileKind.REVISED_MANUSCRIPT),
        RevisionFile(name="letter.pdf", kind=RevisionFileKind.RESPONSE_LETTER),
    ]
    checked = engine.validate_revision_submission(
        _submission(awaiting_revision.id, response_to_reviewers="", files=files)
    ).data
    assert checked.is_valid is True
    assert len(checked.warnings) == 2


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"response_to_reviewers": ""}, "Response to reviewers is required"),
        ({"files": []}, "At least one file is required"),
        (
            {"files": [RevisionFile(name="clean.pdf", kind=RevisionFileKind.CLEAN_COPY)]},
            "Revised manuscript file is required",
        ),
        (
            {"files": [RevisionFile(name="revised.txt", kind=RevisionFileKind.REVISED_MANUSCRIPT)]},
            "Revised manuscript must be in PDF, DOC, or DOCX format",
        ),
        ({"expected_version": 5}, "Version mismatch: expected version 2, got 5"),
    ],
)
def test_incomplete_submissions_are_reported(engine, awaiting_revision, overrides, message) -> None:
    checked = engine.validate_revision_submission(_submission(awaiting_revision.id, **overrides)).data
    assert checked.is_valid is False
    assert message in checked.errors


def test_short_response_is_only_a_warning(engine, awaiting_revision) -> None:
    checked = engine.validate_revision_submission(
        _submission(awaiting_revision.id, response_to_reviewers="Fixed typos.")
    ).data
    assert checked.is_valid is True
    assert any("shorter than the recommended 200" in w for w in checked.warnings)


# === submission ===


def test_initial_submission_is_version_one(engine, actors, submitted) -> None:
    history = engine.get_revision_history(submitted.id, actors("author-1")).data
    assert [r.version_number for r in history] == [1]
    assert history[0].files[0].kind == RevisionFileKind.REVISED_MANUSCRIPT


def test_revision_bumps_version_and_returns_to_review(engine, actors, awaiting_revision) -> None:
    assignment = engine.store.list_review_assignments(manuscript_id=awaiting_revision.id)[0]
    engine.submit_review(
        assignment.id,
        {"recommendation": "major_revision", "rating": 5, "comments_for_author": "x" * 60},
        actors("rev-1"),
    )

    result = engine.submit_revision(_submission(awaiting_revision.id, expected_version=2), actors("author-1"))

    assert result.success, result.error
    assert result.data["version_number"] == 2
    assert result.data["manuscript_status"] == "under_review"
    ms = engine.store.load_manuscript(awaiting_revision.id)
    assert ms.version == 2
    assert [r.version_number for r in engine.store.list_revisions(ms.id)] == [1, 2]
    assert {(e.kind, e.recipient_id) for e in result.events} == {
        (EventKind.REVISION_SUBMITTED, "editor-1"),
        (EventKind.REVISION_SUBMITTED, "rev-1"),
    }


def test_second_revision_gets_version_three(engine, actors, awaiting_revision) -> None:
    assert engine.submit_revision(_submission(awaiting_revision.id), actors("author-1")).success
    assert engine.record_decision(awaiting_revision.id, "minor_revision", "Nearly there.", actors("editor-1")).success

    result = engine.submit_revision(_submission(awaiting_revision.id), actors("author-1"))

    assert result.data["version_number"] == 3


def test_only_author_may_revise(engine, actors, awaiting_revision) -> None:
    assert engine.submit_revision(_submission(awaiting_revision.id), actors("author-2")).error_code == "not_author"


def test_revision_requires_revision_requested_state(engine, actors, under_review) -> None:
    result = engine.submit_revision(_submission(under_review.id), actors("author-1"))
    assert result.error_code == "invalid_state"
    assert [r.version_number for r in engine.store.list_revisions(under_review.id)] == [1]


def test_invalid_revision_writes_nothing(engine, actors, awaiting_revision) -> None:
    result = engine.submit_revision(_submission(awaiting_revision.id, files=[]), actors("author-1"))

    assert result.error_code == "validation_error"
    ms = engine.store.load_manuscript(awaiting_revision.id)
    assert ms.version == 1
    assert ms.status.value == "revision_requested"


def test_rereview_policy_can_route_to_technical_check(store, clock, actors) -> None:
    engine = WorkflowStateMachine(store, config=WorkflowConfig(rereview_policy="technical_check"), clock=clock)
    ms = engine.submit_article(valid_submission(), actors("author-1")).data
    engine.assign_reviewer(ms.id, "rev-1", actors("me-1"))
    engine.record_decision(ms.id, "minor_revision", "", actors("me-1"))

    result = engine.submit_revision(_submission(ms.id), actors("author-1"))

    assert result.data["manuscript_status"] == "technical_check"


def test_revision_history_visibility(engine, actors, awaiting_revision) -> None:
    assert engine.get_revision_history(awaiting_revision.id, actors("rev-1")).success
    assert engine.get_revision_history(awaiting_revision.id, actors("author-2")).error_code == "access_denied"
