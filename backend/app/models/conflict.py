from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RespondentRole(str, Enum):
    ASSOCIATE_EDITOR = "associate-editor"
    REVIEWER = "reviewer"


class ConflictQuestionnaireInput(BaseModel):
    """
    利益冲突问卷（前端以 camelCase 提交，后端字段为 snake_case，两者都接受）。

    中文注释: 六个布尔项均为必填，缺失时在边界处报 ValidationError，不允许默认 False 蒙混过关。
    """

    has_affiliations: bool
    has_collaborations: bool
    has_financial_interests: bool
    has_personal_relationships: bool
    has_institutional_conflicts: bool
    can_review_objectively: bool
    additional_details: str = ""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ConflictResult(BaseModel):
    has_conflicts: bool
    detail: str = ""


class ConflictQuestionnaire(BaseModel):
    """已完成的问卷（一次写入，不可修改）"""

    id: str
    manuscript_id: str
    respondent_id: str
    role: RespondentRole
    answers: ConflictQuestionnaireInput
    has_conflicts: bool
    conflict_details: str = ""
    additional_details: str = ""
    completed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuestionnaireStatus(BaseModel):
    questionnaire: Optional[ConflictQuestionnaire] = None
    needs_completion: bool = Field(True, description="尚未填写时为 True")
