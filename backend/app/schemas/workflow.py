from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.models.assignment import TechnicalCheckList
from app.models.revision import RevisionFile


class TechnicalCheckRequest(BaseModel):
    checklist: Optional[TechnicalCheckList] = None
    comment: Optional[str] = Field(None, max_length=2000)


class EditorAssignRequest(BaseModel):
    editor_id: str = Field(..., min_length=1)


class ReviewerAssignRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)


class InvitationResponseRequest(BaseModel):
    accept: bool


class RevisionRequest(BaseModel):
    """修回提交（manuscript_id 取自路径参数）"""

    response_to_reviewers: str = Field("", max_length=50000)
    change_log: str = Field("", max_length=20000)
    files: list[RevisionFile] = Field(default_factory=list)
    expected_version: Optional[int] = Field(None, ge=2)


class PublishIssueRequest(BaseModel):
    manuscript_ids: list[str] = Field(..., min_length=1)
    issue_label: str = Field(..., min_length=1, max_length=200)
