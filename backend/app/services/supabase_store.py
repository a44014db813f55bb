from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel

from app.core.errors import StorageError
from app.core.role_matrix import Role
from app.lib.api_client import supabase_admin
from app.models.assignment import EditorAssignment
from app.models.conflict import ConflictQuestionnaire, RespondentRole
from app.models.decision import Decision
from app.models.manuscript import Manuscript, StatusTransition
from app.models.reviews import ReviewAssignment
from app.models.revision import Revision
from app.models.user import UserProfile
from app.services.store import WorkflowStore

logger = logging.getLogger("journalflow.store")

M = TypeVar("M", bound=BaseModel)

# 推导字段只在模型里计算，不落库
_DERIVED_FIELDS: dict[str, set[str]] = {
    "review_assignments": {"due_at"},
    "editor_assignments": {"deadline"},
}


class SupabaseWorkflowStore(WorkflowStore):
    """
    基于 Supabase(PostgREST) 的存储实现。

    中文注释:
    - 使用 service_role（supabase_admin）读写，兼容云端 RLS。
    - PostgREST 不提供多语句事务：atomic() 只能尽力而为。引擎在写入时先写子记录、最后写 manuscripts 行，
      保证“稿件状态变更”是最后一步，失败时至多留下可审计的孤立子记录。
    - 任何 client 异常统一包装为 StorageError。
    """

    supports_notifications = True

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    # --- internals ---
    def _execute(self, query: Any, *, op: str) -> list[dict[str, Any]]:
        try:
            resp = query.execute()
        except Exception as e:
            logger.error("[Store] %s failed: %s", op, e, exc_info=True)
            raise StorageError(f"{op} failed") from e
        return getattr(resp, "data", None) or []

    def _row(self, table: str, model: BaseModel) -> dict[str, Any]:
        return model.model_dump(mode="json", exclude=_DERIVED_FIELDS.get(table, set()))

    def _upsert(self, table: str, model: BaseModel) -> None:
        self._execute(self.client.table(table).upsert(self._row(table, model)), op=f"upsert {table}")

    def _insert(self, table: str, model: BaseModel) -> None:
        self._execute(self.client.table(table).insert(self._row(table, model)), op=f"insert {table}")

    def _load_one(self, table: str, model_cls: Type[M], row_id: str) -> Optional[M]:
        rows = self._execute(
            self.client.table(table).select("*").eq("id", row_id).limit(1),
            op=f"select {table}",
        )
        return model_cls.model_validate(rows[0]) if rows else None

    def _select(
        self,
        table: str,
        model_cls: Type[M],
        *,
        filters: dict[str, Any],
        order: Optional[str] = None,
    ) -> list[M]:
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            if value is not None:
                query = query.eq(column, value)
        if order:
            query = query.order(order)
        rows = self._execute(query, op=f"select {table}")
        return [model_cls.model_validate(r) for r in rows]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        yield

    # --- manuscripts ---
    def load_manuscript(self, manuscript_id: str) -> Optional[Manuscript]:
        return self._load_one("manuscripts", Manuscript, manuscript_id)

    def save_manuscript(self, manuscript: Manuscript) -> None:
        self._upsert("manuscripts", manuscript)

    # --- users ---
    def load_user(self, user_id: str) -> Optional[UserProfile]:
        return self._load_one("user_profiles", UserProfile, user_id)

    def list_users(self, role: Optional[Role] = None) -> list[UserProfile]:
        query = self.client.table("user_profiles").select("*")
        if role is not None:
            query = query.contains("roles", [role.value])
        rows = self._execute(query.order("id"), op="select user_profiles")
        return [UserProfile.model_validate(r) for r in rows]

    def save_user(self, user: UserProfile) -> None:
        self._upsert("user_profiles", user)

    # --- review assignments ---
    def save_review_assignment(self, assignment: ReviewAssignment) -> None:
        self._upsert("review_assignments", assignment)

    def load_review_assignment(self, assignment_id: str) -> Optional[ReviewAssignment]:
        return self._load_one("review_assignments", ReviewAssignment, assignment_id)

    def list_review_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> list[ReviewAssignment]:
        return self._select(
            "review_assignments",
            ReviewAssignment,
            filters={"manuscript_id": manuscript_id, "reviewer_id": reviewer_id},
            order="created_at",
        )

    # --- editor assignments ---
    def save_editor_assignment(self, assignment: EditorAssignment) -> None:
        self._upsert("editor_assignments", assignment)

    def list_editor_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        editor_id: Optional[str] = None,
    ) -> list[EditorAssignment]:
        return self._select(
            "editor_assignments",
            EditorAssignment,
            filters={"manuscript_id": manuscript_id, "editor_id": editor_id},
            order="assigned_at",
        )

    # --- revisions ---
    def insert_revision(self, revision: Revision) -> None:
        # (manuscript_id, version_number) 唯一约束由数据库兜底
        self._insert("revisions", revision)

    def list_revisions(self, manuscript_id: str) -> list[Revision]:
        return self._select(
            "revisions", Revision, filters={"manuscript_id": manuscript_id}, order="version_number"
        )

    # --- decisions ---
    def insert_decision(self, decision: Decision) -> None:
        self._insert("decisions", decision)

    def list_decisions(self, manuscript_id: str) -> list[Decision]:
        return self._select("decisions", Decision, filters={"manuscript_id": manuscript_id}, order="created_at")

    # --- status transitions ---
    def insert_transition(self, transition: StatusTransition) -> None:
        self._insert("status_transition_logs", transition)

    def list_transitions(self, manuscript_id: str) -> list[StatusTransition]:
        return self._select(
            "status_transition_logs",
            StatusTransition,
            filters={"manuscript_id": manuscript_id},
            order="created_at",
        )

    # --- questionnaires ---
    def insert_questionnaire(self, questionnaire: ConflictQuestionnaire) -> None:
        self._insert("conflict_questionnaires", questionnaire)

    def find_questionnaire(
        self, manuscript_id: str, respondent_id: str, role: RespondentRole
    ) -> Optional[ConflictQuestionnaire]:
        rows = self._select(
            "conflict_questionnaires",
            ConflictQuestionnaire,
            filters={"manuscript_id": manuscript_id, "respondent_id": respondent_id, "role": role.value},
        )
        return rows[0] if rows else None

    def list_questionnaires(
        self, *, manuscript_id: Optional[str] = None, respondent_id: Optional[str] = None
    ) -> list[ConflictQuestionnaire]:
        return self._select(
            "conflict_questionnaires",
            ConflictQuestionnaire,
            filters={"manuscript_id": manuscript_id, "respondent_id": respondent_id},
            order="completed_at",
        )
