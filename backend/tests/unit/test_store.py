from datetime import datetime, timezone

import pytest

from app.core.errors import StorageError
from app.core.role_matrix import Role
from app.models.conflict import ConflictQuestionnaire, ConflictQuestionnaireInput, RespondentRole
from app.models.manuscript import Manuscript, ManuscriptStatus
from app.models.revision import Revision
from app.models.user import UserProfile
from app.services.store import InMemoryWorkflowStore

NOW = datetime(2026, 1, 5, tzinfo=timezone.utc)


def _manuscript(mid: str = "m1") -> Manuscript:
    return Manuscript(
        id=mid,
        title="Store behaviour test",
        abstract="x",
        category="cs",
        author_id="a1",
        submitted_at=NOW,
        updated_at=NOW,
    )


def _revision(rid: str, version: int) -> Revision:
    return Revision(id=rid, manuscript_id="m1", version_number=version, submitted_by="a1", submitted_at=NOW)


def test_reads_return_copies() -> None:
    store = InMemoryWorkflowStore()
    store.save_manuscript(_manuscript())

    loaded = store.load_manuscript("m1")
    loaded.status = ManuscriptStatus.REJECTED
    loaded.reviewer_ids.append("r1")

    fresh = store.load_manuscript("m1")
    assert fresh.status == ManuscriptStatus.SUBMITTED
    assert fresh.reviewer_ids == []


def test_atomic_rolls_back_every_write_on_error() -> None:
    store = InMemoryWorkflowStore()
    original = _manuscript()
    store.save_manuscript(original)

    with pytest.raises(RuntimeError):
        with store.atomic():
            changed = store.load_manuscript("m1")
            changed.status = ManuscriptStatus.UNDER_REVIEW
            store.save_manuscript(changed)
            store.insert_revision(_revision("r1", 1))
            store.save_manuscript(_manuscript("m2"))
            raise RuntimeError("boom")

    assert store.load_manuscript("m1").status == ManuscriptStatus.SUBMITTED
    assert store.load_manuscript("m2") is None
    assert store.list_revisions("m1") == []


def test_nested_atomic_is_undone_by_outer_block() -> None:
    store = InMemoryWorkflowStore()
    with pytest.raises(ValueError):
        with store.atomic():
            with store.atomic():
                store.save_manuscript(_manuscript())
            raise ValueError("outer failure")
    assert store.load_manuscript("m1") is None


def test_atomic_keeps_writes_on_success() -> None:
    store = InMemoryWorkflowStore()
    with store.atomic():
        store.save_manuscript(_manuscript())
    assert store.load_manuscript("m1") is not None


def test_revision_versions_are_unique_per_manuscript() -> None:
    store = InMemoryWorkflowStore()
    store.insert_revision(_revision("r2", 2))
    store.insert_revision(_revision("r1", 1))
    with pytest.raises(StorageError):
        store.insert_revision(_revision("r3", 2))
    assert [r.version_number for r in store.list_revisions("m1")] == [1, 2]


def test_questionnaire_is_write_once() -> None:
    store = InMemoryWorkflowStore()
    answers = ConflictQuestionnaireInput(
        has_affiliations=False,
        has_collaborations=False,
        has_financial_interests=False,
        has_personal_relationships=False,
        has_institutional_conflicts=False,
        can_review_objectively=True,
    )
    q = ConflictQuestionnaire(
        id="q1",
        manuscript_id="m1",
        respondent_id="r1",
        role=RespondentRole.REVIEWER,
        answers=answers,
        has_conflicts=False,
        completed_at=NOW,
    )
    store.insert_questionnaire(q)
    with pytest.raises(StorageError):
        store.insert_questionnaire(q.model_copy(update={"id": "q2"}))

    assert store.find_questionnaire("m1", "r1", RespondentRole.REVIEWER).id == "q1"
    assert store.find_questionnaire("m1", "r1", RespondentRole.ASSOCIATE_EDITOR) is None


def test_list_users_filters_by_role() -> None:
    store = InMemoryWorkflowStore()
    store.save_user(UserProfile(id="u2", roles=["reviewer"]))
    store.save_user(UserProfile(id="u1", roles=["reviewer", "editor"]))
    store.save_user(UserProfile(id="u3", roles=["author"]))

    assert [u.id for u in store.list_users(Role.REVIEWER)] == ["u1", "u2"]
    assert [u.id for u in store.list_users()] == ["u1", "u2", "u3"]
