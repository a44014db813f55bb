from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from pydantic import BaseModel

from app.core.errors import StorageError
from app.core.role_matrix import Role
from app.models.assignment import EditorAssignment
from app.models.conflict import ConflictQuestionnaire, RespondentRole
from app.models.decision import Decision
from app.models.manuscript import Manuscript, StatusTransition
from app.models.reviews import ReviewAssignment
from app.models.revision import Revision
from app.models.user import UserProfile


class WorkflowStore(ABC):
    """
    编辑流程引擎的存储协作者（抽象）。

    中文注释:
    - 引擎只依赖这里的方法，不直接拼 SQL / PostgREST 查询。
    - 同一次引擎操作内必须满足 read-your-writes。
    - 基础设施故障统一抛 StorageError（引擎不捕获，直接向上传播）。
    """

    # 站内通知写入 notifications 表，只有 Supabase 后端才有这张表
    supports_notifications = False

    # --- manuscripts ---
    @abstractmethod
    def load_manuscript(self, manuscript_id: str) -> Optional[Manuscript]: ...

    @abstractmethod
    def save_manuscript(self, manuscript: Manuscript) -> None: ...

    # --- user profiles (capability / capacity collaborator) ---
    @abstractmethod
    def load_user(self, user_id: str) -> Optional[UserProfile]: ...

    @abstractmethod
    def list_users(self, role: Optional[Role] = None) -> list[UserProfile]: ...

    @abstractmethod
    def save_user(self, user: UserProfile) -> None: ...

    # --- review assignments ---
    @abstractmethod
    def save_review_assignment(self, assignment: ReviewAssignment) -> None: ...

    @abstractmethod
    def load_review_assignment(self, assignment_id: str) -> Optional[ReviewAssignment]: ...

    @abstractmethod
    def list_review_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> list[ReviewAssignment]: ...

    # --- editor assignments ---
    @abstractmethod
    def save_editor_assignment(self, assignment: EditorAssignment) -> None: ...

    @abstractmethod
    def list_editor_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        editor_id: Optional[str] = None,
    ) -> list[EditorAssignment]: ...

    # --- revisions / decisions / audit ---
    @abstractmethod
    def insert_revision(self, revision: Revision) -> None: ...

    @abstractmethod
    def list_revisions(self, manuscript_id: str) -> list[Revision]: ...

    @abstractmethod
    def insert_decision(self, decision: Decision) -> None: ...

    @abstractmethod
    def list_decisions(self, manuscript_id: str) -> list[Decision]: ...

    @abstractmethod
    def insert_transition(self, transition: StatusTransition) -> None: ...

    @abstractmethod
    def list_transitions(self, manuscript_id: str) -> list[StatusTransition]: ...

    # --- conflict questionnaires ---
    @abstractmethod
    def insert_questionnaire(self, questionnaire: ConflictQuestionnaire) -> None: ...

    @abstractmethod
    def find_questionnaire(
        self, manuscript_id: str, respondent_id: str, role: RespondentRole
    ) -> Optional[ConflictQuestionnaire]: ...

    @abstractmethod
    def list_questionnaires(
        self, *, manuscript_id: Optional[str] = None, respondent_id: Optional[str] = None
    ) -> list[ConflictQuestionnaire]: ...

    @abstractmethod
    @contextmanager
    def atomic(self) -> Iterator[None]:
        """块内任一步抛异常时，块内已做的写入不得残留。"""
        yield


_MISSING = object()

_TABLES = (
    "manuscripts",
    "user_profiles",
    "review_assignments",
    "editor_assignments",
    "revisions",
    "decisions",
    "status_transition_logs",
    "conflict_questionnaires",
)


class InMemoryWorkflowStore(WorkflowStore):
    """
    进程内存储（本地开发 / 单测 / 未配置 Supabase 时使用）。

    中文注释:
    - 读写都做深拷贝，调用方拿到的对象修改后必须显式 save 才会生效。
    - atomic(): 每个线程一份写入日志（journal），块内异常时按逆序撤销，实现“无部分写入”。
    - 唯一约束（稿件+版本号、问卷 respondent/manuscript/role）在这里兜底，违反时抛 StorageError。
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, dict[str, BaseModel]] = {name: {} for name in _TABLES}
        self._local = threading.local()

    # --- internals ---
    def _journal(self) -> Optional[list[tuple[str, str, Any]]]:
        return getattr(self._local, "journal", None)

    def _put(self, table: str, key: str, value: BaseModel) -> None:
        with self._lock:
            rows = self._tables[table]
            journal = self._journal()
            if journal is not None:
                previous = rows.get(key, _MISSING)
                journal.append((table, key, previous))
            rows[key] = value.model_copy(deep=True)

    def _get(self, table: str, key: str) -> Any:
        with self._lock:
            row = self._tables[table].get(key)
            return row.model_copy(deep=True) if row is not None else None

    def _scan(self, table: str) -> list[Any]:
        with self._lock:
            return [row.model_copy(deep=True) for row in self._tables[table].values()]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._journal() is not None:
            # 嵌套 atomic 由最外层负责撤销
            yield
            return
        journal: list[tuple[str, str, Any]] = []
        self._local.journal = journal
        try:
            yield
        except BaseException:
            with self._lock:
                for table, key, previous in reversed(journal):
                    if previous is _MISSING:
                        self._tables[table].pop(key, None)
                    else:
                        self._tables[table][key] = previous
            raise
        finally:
            self._local.journal = None

    # --- manuscripts ---
    def load_manuscript(self, manuscript_id: str) -> Optional[Manuscript]:
        return self._get("manuscripts", manuscript_id)

    def save_manuscript(self, manuscript: Manuscript) -> None:
        self._put("manuscripts", manuscript.id, manuscript)

    # --- users ---
    def load_user(self, user_id: str) -> Optional[UserProfile]:
        return self._get("user_profiles", user_id)

    def list_users(self, role: Optional[Role] = None) -> list[UserProfile]:
        users = self._scan("user_profiles")
        if role is not None:
            users = [u for u in users if u.has_role(role)]
        return sorted(users, key=lambda u: u.id)

    def save_user(self, user: UserProfile) -> None:
        self._put("user_profiles", user.id, user)

    # --- review assignments ---
    def save_review_assignment(self, assignment: ReviewAssignment) -> None:
        self._put("review_assignments", assignment.id, assignment)

    def load_review_assignment(self, assignment_id: str) -> Optional[ReviewAssignment]:
        return self._get("review_assignments", assignment_id)

    def list_review_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> list[ReviewAssignment]:
        rows = [
            a
            for a in self._scan("review_assignments")
            if (manuscript_id is None or a.manuscript_id == manuscript_id)
            and (reviewer_id is None or a.reviewer_id == reviewer_id)
        ]
        return sorted(rows, key=lambda a: (a.created_at, a.id))

    # --- editor assignments ---
    def save_editor_assignment(self, assignment: EditorAssignment) -> None:
        self._put("editor_assignments", assignment.id, assignment)

    def list_editor_assignments(
        self,
        *,
        manuscript_id: Optional[str] = None,
        editor_id: Optional[str] = None,
    ) -> list[EditorAssignment]:
        rows = [
            a
            for a in self._scan("editor_assignments")
            if (manuscript_id is None or a.manuscript_id == manuscript_id)
            and (editor_id is None or a.editor_id == editor_id)
        ]
        return sorted(rows, key=lambda a: (a.assigned_at, a.id))

    # --- revisions ---
    def insert_revision(self, revision: Revision) -> None:
        with self._lock:
            for existing in self._tables["revisions"].values():
                if (
                    existing.manuscript_id == revision.manuscript_id
                    and existing.version_number == revision.version_number
                ):
                    raise StorageError(
                        f"Duplicate revision version {revision.version_number} for {revision.manuscript_id}"
                    )
            self._put("revisions", revision.id, revision)

    def list_revisions(self, manuscript_id: str) -> list[Revision]:
        rows = [r for r in self._scan("revisions") if r.manuscript_id == manuscript_id]
        return sorted(rows, key=lambda r: r.version_number)

    # --- decisions ---
    def insert_decision(self, decision: Decision) -> None:
        self._put("decisions", decision.id, decision)

    def list_decisions(self, manuscript_id: str) -> list[Decision]:
        rows = [d for d in self._scan("decisions") if d.manuscript_id == manuscript_id]
        return sorted(rows, key=lambda d: (d.created_at, d.id))

    # --- status transitions ---
    def insert_transition(self, transition: StatusTransition) -> None:
        self._put("status_transition_logs", transition.id, transition)

    def list_transitions(self, manuscript_id: str) -> list[StatusTransition]:
        with self._lock:
            # 按插入顺序返回（同一毫秒内的多次流转也保持先后）
            return [
                t.model_copy(deep=True)
                for t in self._tables["status_transition_logs"].values()
                if t.manuscript_id == manuscript_id
            ]

    # --- questionnaires ---
    def insert_questionnaire(self, questionnaire: ConflictQuestionnaire) -> None:
        with self._lock:
            if self.find_questionnaire(
                questionnaire.manuscript_id, questionnaire.respondent_id, questionnaire.role
            ):
                raise StorageError("Duplicate conflict questionnaire")
            self._put("conflict_questionnaires", questionnaire.id, questionnaire)

    def find_questionnaire(
        self, manuscript_id: str, respondent_id: str, role: RespondentRole
    ) -> Optional[ConflictQuestionnaire]:
        for q in self._scan("conflict_questionnaires"):
            if q.manuscript_id == manuscript_id and q.respondent_id == respondent_id and q.role == role:
                return q
        return None

    def list_questionnaires(
        self, *, manuscript_id: Optional[str] = None, respondent_id: Optional[str] = None
    ) -> list[ConflictQuestionnaire]:
        rows = [
            q
            for q in self._scan("conflict_questionnaires")
            if (manuscript_id is None or q.manuscript_id == manuscript_id)
            and (respondent_id is None or q.respondent_id == respondent_id)
        ]
        return sorted(rows, key=lambda q: (q.completed_at, q.id))
