from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    SUBMISSION_RECEIVED = "submission_received"
    TECHNICAL_CHECK_PASSED = "technical_check_passed"
    EDITOR_ASSIGNED = "editor_assigned"
    EDITOR_UNASSIGNED = "editor_unassigned"
    REVIEWER_INVITED = "reviewer_invited"
    REVIEW_INVITATION_ANSWERED = "review_invitation_answered"
    REVIEW_SUBMITTED = "review_submitted"
    REVIEWS_COMPLETED = "reviews_completed"
    DECISION_RECORDED = "decision_recorded"
    REVISION_SUBMITTED = "revision_submitted"
    MANUSCRIPT_PUBLISHED = "manuscript_published"
    REVIEW_OVERDUE = "review_overdue"


class WorkflowEvent(BaseModel):
    """
    引擎产出的领域事件（由调用方在释放稿件锁之后投递）。

    中文注释:
    - 事件只描述“发生了什么、通知谁”，投递（站内信/邮件）为尽力而为，失败不回滚状态。
    """

    recipient_id: str
    kind: EventKind
    manuscript_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)


class NotificationCreate(BaseModel):
    """
    创建站内通知的输入结构（服务端内部使用）
    """

    user_id: str
    manuscript_id: Optional[str] = None
    type: str
    title: str = Field(..., max_length=255)
    content: str = Field(..., max_length=2000)
