from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ReviewAssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLINED = "declined"


ACTIVE_REVIEW_STATUSES = frozenset(
    {
        ReviewAssignmentStatus.PENDING,
        ReviewAssignmentStatus.ACCEPTED,
        ReviewAssignmentStatus.IN_PROGRESS,
    }
)


class Recommendation(str, Enum):
    ACCEPT = "accept"
    MINOR_REVISION = "minor_revision"
    MAJOR_REVISION = "major_revision"
    REJECT = "reject"


class ReviewFeedback(BaseModel):
    """
    审稿意见（双通道：作者可见 comments_for_author / 仅编辑可见 confidential_comments）。

    中文注释: rating 的上限与评论最短长度依赖期刊配置，由服务层校验。
    """

    recommendation: Recommendation
    rating: int = Field(..., ge=1)
    comments_for_author: str
    confidential_comments: str = ""
    technical_quality: Optional[int] = Field(None, ge=1)
    novelty: Optional[int] = Field(None, ge=1)
    clarity: Optional[int] = Field(None, ge=1)
    significance: Optional[int] = Field(None, ge=1)


class ReviewAssignment(BaseModel):
    """
    审稿任务。

    中文注释:
    - due_at 由 created_at + review_window_days 推导，绝不单独落库。
    - 同一审稿人在同一稿件上最多一个活跃任务（pending/accepted/in_progress）。
    """

    id: str
    manuscript_id: str
    reviewer_id: str
    assigned_by: str
    status: ReviewAssignmentStatus = ReviewAssignmentStatus.PENDING
    created_at: datetime
    review_window_days: int = Field(21, ge=1)
    responded_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    last_reminded_at: Optional[datetime] = None

    recommendation: Optional[Recommendation] = None
    rating: Optional[int] = None
    comments_for_author: Optional[str] = None
    confidential_comments: Optional[str] = None
    technical_quality: Optional[int] = None
    novelty: Optional[int] = None
    clarity: Optional[int] = None
    significance: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def due_at(self) -> datetime:
        return self.created_at + timedelta(days=self.review_window_days)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REVIEW_STATUSES

    @property
    def has_granular_scores(self) -> bool:
        return any(
            v is not None
            for v in (self.technical_quality, self.novelty, self.clarity, self.significance)
        )


class ReviewView(BaseModel):
    """
    合并后的审稿视图（已完成/进行中的报告 + 已接受但未开始的邀请占位）。

    中文注释: sub_scores_derived=True 表示四项子分由总分按固定系数推算，仅为展示近似值。
    """

    assignment_id: str
    reviewer_id: Optional[str] = None
    reviewer_name: Optional[str] = None
    status: ReviewAssignmentStatus
    submitted_at: Optional[datetime] = None
    score: Optional[int] = None
    recommendation: Optional[Recommendation] = None
    comments: Optional[str] = None
    confidential_comments: Optional[str] = None
    technical_quality: Optional[int] = None
    novelty: Optional[int] = None
    clarity: Optional[int] = None
    significance: Optional[int] = None
    sub_scores_derived: bool = False


class ReviewSummary(BaseModel):
    """决策辅助：审稿结论汇总（仅建议，不改变稿件状态）"""

    manuscript_id: str
    total_assignments: int = 0
    active_assignments: int = 0
    completed_reviews: int = 0
    recommendation_counts: dict[str, int] = Field(default_factory=dict)
    mean_rating: Optional[float] = None
    suggested_decision: Optional[Recommendation] = None
