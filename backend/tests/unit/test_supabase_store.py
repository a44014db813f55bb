from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.core.errors import StorageError
from app.core.role_matrix import Role
from app.models.reviews import ReviewAssignment
from app.models.revision import Revision
from app.services.supabase_store import SupabaseWorkflowStore

NOW = datetime(2026, 1, 5, tzinfo=timezone.utc)


class _Resp:
    def __init__(self, *, data=None):
        self.data = data


def _chain():
    q = MagicMock()
    for method in ("select", "eq", "limit", "order", "contains", "upsert", "insert"):
        getattr(q, method).return_value = q
    q.execute.return_value = _Resp(data=[])
    return q


@pytest.fixture
def client():
    c = MagicMock()
    tables: dict[str, MagicMock] = {}

    def _table(name: str):
        tables.setdefault(name, _chain())
        return tables[name]

    c.table.side_effect = _table
    c._tables = tables  # type: ignore[attr-defined]
    return c


def test_load_manuscript_maps_row(client):
    store = SupabaseWorkflowStore(client)
    ms = client.table("manuscripts")
    ms.execute.return_value = _Resp(
        data=[
            {
                "id": "m1",
                "title": "Row mapping check",
                "abstract": "x",
                "category": "cs",
                "author_id": "a1",
                "status": "pre_check",
                "submitted_at": "2026-01-05T00:00:00Z",
                "updated_at": "2026-01-05T00:00:00Z",
            }
        ]
    )

    loaded = store.load_manuscript("m1")

    assert loaded.id == "m1"
    assert loaded.status.value == "technical_check"
    ms.eq.assert_called_with("id", "m1")
    ms.limit.assert_called_with(1)


def test_load_missing_returns_none(client):
    store = SupabaseWorkflowStore(client)
    client.table("manuscripts").execute.return_value = _Resp(data=None)
    assert store.load_manuscript("missing") is None


def test_derived_due_at_is_not_written(client):
    store = SupabaseWorkflowStore(client)
    assignment = ReviewAssignment(
        id="ra1", manuscript_id="m1", reviewer_id="r1", assigned_by="e1", created_at=NOW
    )

    store.save_review_assignment(assignment)

    row = client.table("review_assignments").upsert.call_args.args[0]
    assert "due_at" not in row
    assert row["status"] == "pending"
    assert row["created_at"].startswith("2026-01-05")


def test_list_revisions_filters_and_orders(client):
    store = SupabaseWorkflowStore(client)
    table = client.table("revisions")
    table.execute.return_value = _Resp(
        data=[{"id": "r1", "manuscript_id": "m1", "version_number": 1, "submitted_by": "a1", "submitted_at": "2026-01-05T00:00:00Z"}]
    )

    revisions = store.list_revisions("m1")

    assert [r.version_number for r in revisions] == [1]
    table.eq.assert_called_with("manuscript_id", "m1")
    table.order.assert_called_with("version_number")


def test_none_filters_are_skipped(client):
    store = SupabaseWorkflowStore(client)
    table = client.table("review_assignments")

    store.list_review_assignments(reviewer_id="r1")

    table.eq.assert_called_once_with("reviewer_id", "r1")


def test_list_users_uses_roles_containment(client):
    store = SupabaseWorkflowStore(client)
    table = client.table("user_profiles")
    table.execute.return_value = _Resp(data=[{"id": "u1", "roles": ["reviewer"]}])

    users = store.list_users(Role.REVIEWER)

    assert [u.id for u in users] == ["u1"]
    table.contains.assert_called_with("roles", ["reviewer"])
    table.order.assert_called_with("id")


def test_client_errors_become_storage_errors(client):
    store = SupabaseWorkflowStore(client)
    client.table("revisions").execute.side_effect = RuntimeError("duplicate key value")

    with pytest.raises(StorageError):
        store.insert_revision(
            Revision(id="r1", manuscript_id="m1", version_number=2, submitted_by="a1", submitted_at=NOW)
        )
