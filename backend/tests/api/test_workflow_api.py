from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from app.core.errors import StorageError
from conftest import generate_test_token, valid_submission

# === 编辑流程 HTTP 层测试 ===
# 中文注释: 引擎使用内存存储（conftest 注入），这里只验证鉴权、状态码映射与响应结构。

BASE = "/api/v1"

REVIEW = {
    "recommendation": "minor_revision",
    "rating": 7,
    "comments_for_author": "Solid work; please clarify the lock timeout semantics in the evaluation section.",
    "confidential_comments": "Reviewer 2 may be harsher.",
}


def _submission_json(**overrides) -> dict:
    return valid_submission(**overrides).model_dump(mode="json")


async def _submit(client: AsyncClient, auth_headers) -> str:
    resp = await client.post(f"{BASE}/manuscripts", json=_submission_json(), headers=auth_headers("author-1"))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


async def _under_review(client: AsyncClient, auth_headers) -> tuple[str, str]:
    mid = await _submit(client, auth_headers)
    resp = await client.post(
        f"{BASE}/manuscripts/{mid}/editor", json={"editor_id": "editor-1"}, headers=auth_headers("ea-1")
    )
    assert resp.status_code == 200, resp.text
    resp = await client.post(
        f"{BASE}/manuscripts/{mid}/reviewers", json={"reviewer_id": "rev-1"}, headers=auth_headers("editor-1")
    )
    assert resp.status_code == 201, resp.text
    return mid, resp.json()["data"]["id"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get(f"{BASE}/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client: AsyncClient):
    resp = await client.post(f"{BASE}/manuscripts", json=_submission_json())
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client: AsyncClient):
    headers = {"Authorization": f"Bearer {generate_test_token('author-1', expired=True)}"}
    resp = await client.get(f"{BASE}/manuscripts/any", headers=headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_submit_article_returns_201_and_schedules_notifications(client: AsyncClient, auth_headers):
    resp = await client.post(f"{BASE}/manuscripts", json=_submission_json(), headers=auth_headers("author-1"))

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "submitted"
    assert body["data"]["version"] == 1
    client.dispatcher.dispatch.assert_called_once()
    events = client.dispatcher.dispatch.call_args.args[0]
    assert events[0].kind.value == "submission_received"


@pytest.mark.asyncio
async def test_user_without_profile_is_treated_as_author(client: AsyncClient, auth_headers):
    resp = await client.post(f"{BASE}/manuscripts", json=_submission_json(), headers=auth_headers("newcomer"))
    assert resp.status_code == 201
    assert resp.json()["data"]["author_id"] == "newcomer"


@pytest.mark.asyncio
async def test_validation_failure_maps_to_422(client: AsyncClient, auth_headers):
    resp = await client.post(
        f"{BASE}/manuscripts", json=_submission_json(title="Too short"), headers=auth_headers("author-1")
    )

    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["message"] == "Submission failed"
    client.dispatcher.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_manuscript_maps_to_404(client: AsyncClient, auth_headers):
    resp = await client.get(f"{BASE}/manuscripts/missing", headers=auth_headers("admin-1"))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_duplicate_reviewer_and_access_errors(client: AsyncClient, auth_headers):
    mid, _ = await _under_review(client, auth_headers)

    dup = await client.post(
        f"{BASE}/manuscripts/{mid}/reviewers", json={"reviewer_id": "rev-1"}, headers=auth_headers("editor-1")
    )
    assert dup.status_code == 400
    assert dup.json()["error"]["code"] == "duplicate_assignment"

    other = await client.post(
        f"{BASE}/manuscripts/{mid}/reviewers", json={"reviewer_id": "rev-2"}, headers=auth_headers("editor-2")
    )
    assert other.status_code == 403

    again = await client.post(
        f"{BASE}/manuscripts/{mid}/editor", json={"editor_id": "editor-2"}, headers=auth_headers("ea-1")
    )
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "already_assigned"


@pytest.mark.asyncio
async def test_review_decision_and_revision_cycle(client: AsyncClient, auth_headers):
    mid, assignment_id = await _under_review(client, auth_headers)

    resp = await client.post(
        f"{BASE}/review-assignments/{assignment_id}/response", json={"accept": True}, headers=auth_headers("rev-1")
    )
    assert resp.status_code == 200
    resp = await client.post(f"{BASE}/review-assignments/{assignment_id}/start", headers=auth_headers("rev-1"))
    assert resp.json()["data"]["status"] == "in_progress"
    resp = await client.post(
        f"{BASE}/review-assignments/{assignment_id}/submit", json=REVIEW, headers=auth_headers("rev-1")
    )
    assert resp.status_code == 200, resp.text

    author_view = (await client.get(f"{BASE}/manuscripts/{mid}/reviews", headers=auth_headers("author-1"))).json()
    assert author_view["data"][0]["reviewer_id"] is None
    assert author_view["data"][0]["confidential_comments"] is None
    assert author_view["data"][0]["sub_scores_derived"] is True

    summary = await client.get(f"{BASE}/manuscripts/{mid}/reviews/summary", headers=auth_headers("editor-1"))
    assert summary.json()["data"]["suggested_decision"] == "minor_revision"

    denied = await client.post(
        f"{BASE}/manuscripts/{mid}/decision", json={"decision": "minor_revision"}, headers=auth_headers("editor-2")
    )
    assert denied.status_code == 403
    decided = await client.post(
        f"{BASE}/manuscripts/{mid}/decision",
        json={"decision": "minor_revision", "comments": "Please clarify section 4."},
        headers=auth_headers("editor-1"),
    )
    assert decided.status_code == 200
    assert decided.json()["data"]["to_status"] == "revision_requested"

    revision = {
        "response_to_reviewers": "We clarified the timeout semantics as requested by the reviewer. " * 4,
        "files": [{"name": "revised.pdf", "kind": "revised_manuscript"}],
        "expected_version": 2,
    }
    checked = await client.post(
        f"{BASE}/manuscripts/{mid}/revisions/validate", json=revision, headers=auth_headers("author-1")
    )
    assert checked.json()["data"]["is_valid"] is True
    outsider = await client.post(
        f"{BASE}/manuscripts/{mid}/revisions/validate", json=revision, headers=auth_headers("author-2")
    )
    assert outsider.status_code == 403
    assert outsider.json()["error"]["code"] == "access_denied"
    missing = await client.post(
        f"{BASE}/manuscripts/no-such-id/revisions/validate", json=revision, headers=auth_headers("author-1")
    )
    assert missing.status_code == 404

    wrong_user = await client.post(f"{BASE}/manuscripts/{mid}/revisions", json=revision, headers=auth_headers("author-2"))
    assert wrong_user.status_code == 403
    assert wrong_user.json()["error"]["code"] == "not_author"

    submitted = await client.post(f"{BASE}/manuscripts/{mid}/revisions", json=revision, headers=auth_headers("author-1"))
    assert submitted.status_code == 201
    assert submitted.json()["data"]["version_number"] == 2
    assert submitted.json()["data"]["manuscript_status"] == "under_review"

    history = await client.get(f"{BASE}/manuscripts/{mid}/revisions", headers=auth_headers("author-1"))
    assert [r["version_number"] for r in history.json()["data"]] == [1, 2]

    statuses = await client.get(f"{BASE}/manuscripts/{mid}/status-history", headers=auth_headers("editor-1"))
    assert [t["to_status"] for t in statuses.json()["data"]] == [
        "submitted",
        "under_review",
        "revision_requested",
        "under_review",
    ]


@pytest.mark.asyncio
async def test_conflict_questionnaire_endpoints(client: AsyncClient, auth_headers):
    mid, _ = await _under_review(client, auth_headers)
    answers = {
        "hasAffiliations": False,
        "hasCollaborations": False,
        "hasFinancialInterests": True,
        "hasPersonalRelationships": False,
        "hasInstitutionalConflicts": False,
        "canReviewObjectively": True,
    }

    pending = await client.get(f"{BASE}/manuscripts/{mid}/conflicts/reviewer", headers=auth_headers("rev-1"))
    assert pending.json()["data"]["needs_completion"] is True

    created = await client.post(f"{BASE}/manuscripts/{mid}/conflicts/reviewer", json=answers, headers=auth_headers("rev-1"))
    assert created.status_code == 201
    assert created.json()["data"]["has_conflicts"] is True
    assert created.json()["data"]["conflict_details"] == "financial interests"

    dup = await client.post(f"{BASE}/manuscripts/{mid}/conflicts/reviewer", json=answers, headers=auth_headers("rev-1"))
    assert dup.status_code == 400
    assert dup.json()["error"]["code"] == "duplicate_submission"

    bad_role = await client.post(f"{BASE}/manuscripts/{mid}/conflicts/author", json=answers, headers=auth_headers("rev-1"))
    assert bad_role.status_code == 422


@pytest.mark.asyncio
async def test_publish_issue_endpoint(client: AsyncClient, auth_headers):
    mid, assignment_id = await _under_review(client, auth_headers)
    await client.post(f"{BASE}/review-assignments/{assignment_id}/submit", json=REVIEW, headers=auth_headers("rev-1"))
    await client.post(f"{BASE}/manuscripts/{mid}/decision", json={"decision": "accept"}, headers=auth_headers("editor-1"))

    denied = await client.post(
        f"{BASE}/issues/publish", json={"manuscript_ids": [mid], "issue_label": "Vol. 1"}, headers=auth_headers("editor-1")
    )
    assert denied.status_code == 403

    resp = await client.post(
        f"{BASE}/issues/publish", json={"manuscript_ids": [mid], "issue_label": "Vol. 1"}, headers=auth_headers("me-1")
    )
    assert resp.status_code == 200
    assert resp.json()["data"][0]["status"] == "published"


@pytest.mark.asyncio
async def test_reviewer_suggestions_and_reminders(client: AsyncClient, auth_headers):
    mid = await _submit(client, auth_headers)

    suggestions = await client.get(
        f"{BASE}/manuscripts/{mid}/reviewer-suggestions?limit=2", headers=auth_headers("me-1")
    )
    assert [c["reviewer_id"] for c in suggestions.json()["data"]] == ["rev-1", "rev-2"]

    reminders = await client.post(f"{BASE}/reviews/reminders", headers=auth_headers("ea-1"))
    assert reminders.status_code == 200
    assert reminders.json()["data"] == []


@pytest.mark.asyncio
async def test_storage_failure_maps_to_503(client: AsyncClient, auth_headers, engine, monkeypatch):
    monkeypatch.setattr(engine, "get_manuscript", MagicMock(side_effect=StorageError("db down")))

    resp = await client.get(f"{BASE}/manuscripts/m1", headers=auth_headers("admin-1"))

    assert resp.status_code == 503
    assert resp.json()["type"] == "storage_error"
