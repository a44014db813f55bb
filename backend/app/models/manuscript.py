from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ManuscriptStatus(str, Enum):
    """
    稿件生命周期状态枚举。

    中文注释:
    - 状态机规则由服务层统一校验，API 层与前端不得直接改写 status。
    - published / rejected 为终态。
    """

    SUBMITTED = "submitted"
    TECHNICAL_CHECK = "technical_check"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    ACCEPTED = "accepted"
    PUBLISHED = "published"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in {ManuscriptStatus.PUBLISHED, ManuscriptStatus.REJECTED}

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        状态机规则必须显性可见：

        - submitted -> technical_check / under_review
        - technical_check -> technical_check / under_review / rejected
        - under_review -> under_review / revision_requested / accepted / rejected
        - revision_requested -> under_review / technical_check / accepted / rejected
        - accepted -> published
        """
        c = normalize_status(current)
        if c == cls.SUBMITTED.value:
            return {cls.TECHNICAL_CHECK.value, cls.UNDER_REVIEW.value}
        if c == cls.TECHNICAL_CHECK.value:
            return {cls.TECHNICAL_CHECK.value, cls.UNDER_REVIEW.value, cls.REJECTED.value}
        if c == cls.UNDER_REVIEW.value:
            # 中文注释: under_review 自环用于“追加审稿人”，不改变状态
            return {
                cls.UNDER_REVIEW.value,
                cls.REVISION_REQUESTED.value,
                cls.ACCEPTED.value,
                cls.REJECTED.value,
            }
        if c == cls.REVISION_REQUESTED.value:
            return {
                cls.UNDER_REVIEW.value,
                cls.TECHNICAL_CHECK.value,
                cls.ACCEPTED.value,
                cls.REJECTED.value,
            }
        if c == cls.ACCEPTED.value:
            return {cls.PUBLISHED.value}
        return set()


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower().replace("-", "_")
    if not v:
        return None
    # 兼容旧状态（迁移未跑/历史数据）
    legacy_map = {
        "pre_check": ManuscriptStatus.TECHNICAL_CHECK.value,
        "editorial_assistant_review": ManuscriptStatus.TECHNICAL_CHECK.value,
        "associate_editor_assignment": ManuscriptStatus.TECHNICAL_CHECK.value,
        "associate_editor_review": ManuscriptStatus.TECHNICAL_CHECK.value,
        "reviewer_assignment": ManuscriptStatus.TECHNICAL_CHECK.value,
        "revision_submitted": ManuscriptStatus.UNDER_REVIEW.value,
        "major_revision": ManuscriptStatus.REVISION_REQUESTED.value,
        "minor_revision": ManuscriptStatus.REVISION_REQUESTED.value,
        "approved": ManuscriptStatus.ACCEPTED.value,
    }
    v = legacy_map.get(v, v)

    try:
        return ManuscriptStatus(v).value
    except ValueError:
        return None


# === Submission input ===


class AuthorInput(BaseModel):
    """投稿作者（含通讯作者标记）"""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    affiliation: str = ""
    orcid: Optional[str] = None
    is_corresponding_author: bool = False


class RecommendedReviewerInput(BaseModel):
    name: str = ""
    email: str = ""
    affiliation: str = ""
    expertise: Optional[str] = None


class SubmissionFile(BaseModel):
    name: str
    kind: str = Field("manuscript", description="manuscript / cover_letter / supplementary ...")
    url: str = ""


class ArticleSubmission(BaseModel):
    """
    投稿载荷。

    中文注释: 这里只做结构校验；长度/数量等业务规则由 WorkflowService 按配置统一校验，
    以便在失败时返回字段级明细而不是直接抛出。
    """

    title: str = ""
    abstract: str = ""
    category: str = ""
    keywords: list[str] = Field(default_factory=list)
    authors: list[AuthorInput] = Field(default_factory=list)
    recommended_reviewers: list[RecommendedReviewerInput] = Field(default_factory=list)
    files: list[SubmissionFile] = Field(default_factory=list)
    cover_letter: Optional[str] = None


# === Persisted record ===


class Manuscript(BaseModel):
    """数据库中完整的稿件模型"""

    id: str
    title: str
    abstract: str
    category: str
    keywords: list[str] = Field(default_factory=list)
    author_id: str
    co_authors: list[AuthorInput] = Field(default_factory=list)
    recommended_reviewers: list[RecommendedReviewerInput] = Field(default_factory=list)
    status: ManuscriptStatus = ManuscriptStatus.SUBMITTED
    version: int = Field(1, ge=1, description="当前版本号，从 1 开始")
    editor_id: Optional[str] = None
    reviewer_ids: list[str] = Field(default_factory=list, description="集合语义，不含重复项")
    issue_label: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, ManuscriptStatus):
            return value
        return normalize_status(str(value)) or value

    @field_validator("reviewer_ids")
    @classmethod
    def _dedupe_reviewers(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def add_reviewer(self, reviewer_id: str) -> None:
        if reviewer_id not in self.reviewer_ids:
            self.reviewer_ids.append(reviewer_id)


class StatusTransition(BaseModel):
    """状态流转日志（审计）"""

    id: str
    manuscript_id: str
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[str] = None
    comment: Optional[str] = None
    created_at: datetime
