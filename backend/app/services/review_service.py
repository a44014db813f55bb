from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from app.core.errors import (
    AccessDeniedError,
    AlreadyCompletedError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.role_matrix import Capability, Role
from app.models.actor import ActorContext
from app.models.manuscript import Manuscript, ManuscriptStatus
from app.models.reviews import (
    Recommendation,
    ReviewAssignment,
    ReviewAssignmentStatus,
    ReviewFeedback,
    ReviewSummary,
    ReviewView,
)
from app.services.workflow_context import WorkflowContext

logger = logging.getLogger("journalflow.reviews")

# 仅用于展示的近似系数：technical_quality / novelty / clarity / significance
SUB_SCORE_FACTORS: tuple[tuple[str, float], ...] = (
    ("technical_quality", 1.2),
    ("novelty", 1.1),
    ("clarity", 0.9),
    ("significance", 1.0),
)

_REVIEWABLE_STATUSES = frozenset({ManuscriptStatus.UNDER_REVIEW, ManuscriptStatus.REVISION_REQUESTED})


def derive_sub_scores(rating: int, score_max: int) -> dict[str, int]:
    """总分按固定系数推算四项子分（四舍五入，截断到量表上限）。"""
    return {
        name: min(score_max, int((Decimal(rating) * Decimal(str(factor))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))
        for name, factor in SUB_SCORE_FACTORS
    }


def suggest_decision(recommendations: Iterable[Recommendation]) -> Optional[Recommendation]:
    recs = list(recommendations)
    if not recs:
        return None
    unanimous_accept = all(r == Recommendation.ACCEPT for r in recs)
    if Recommendation.REJECT in recs and not unanimous_accept:
        return Recommendation.REJECT
    if Recommendation.MAJOR_REVISION in recs:
        return Recommendation.MAJOR_REVISION
    if Recommendation.MINOR_REVISION in recs:
        return Recommendation.MINOR_REVISION
    if unanimous_accept:
        return Recommendation.ACCEPT
    return None


class ReviewAggregator:
    """
    审稿意见的收集、合并视图与决策辅助汇总。

    中文注释:
    - listReviews 的可见范围：作者本人、责任编辑、持有 VIEW_ALL_REVIEWS 的编辑角色、admin。
    - 仅以“作者”身份访问时，隐藏给编辑的保密意见与审稿人身份（双盲）。
    """

    def __init__(self, ctx: WorkflowContext) -> None:
        self.ctx = ctx

    # --- access ---

    @staticmethod
    def can_view(manuscript: Manuscript, actor: ActorContext) -> bool:
        return (
            actor.user_id == manuscript.author_id
            or (manuscript.editor_id is not None and actor.user_id == manuscript.editor_id)
            or actor.can(Capability.VIEW_ALL_REVIEWS)
            or actor.has_role(Role.ADMIN)
        )

    def require_view(self, manuscript: Manuscript, actor: ActorContext) -> None:
        if not self.can_view(manuscript, actor):
            raise AccessDeniedError("Not allowed to view reviews for this manuscript")

    @staticmethod
    def _author_only(manuscript: Manuscript, actor: ActorContext) -> bool:
        is_editorial = (
            (manuscript.editor_id is not None and actor.user_id == manuscript.editor_id)
            or actor.can(Capability.VIEW_ALL_REVIEWS)
            or actor.has_role(Role.ADMIN)
        )
        return actor.user_id == manuscript.author_id and not is_editorial

    # --- feedback ---

    def validate_feedback(self, feedback: ReviewFeedback) -> None:
        cfg = self.ctx.config
        errors: list[dict[str, str]] = []
        if feedback.rating > cfg.review_score_max:
            errors.append({"field": "rating", "message": f"must be between 1 and {cfg.review_score_max}"})
        if len(feedback.comments_for_author.strip()) < cfg.review_min_comment_length:
            errors.append(
                {
                    "field": "comments_for_author",
                    "message": f"must be at least {cfg.review_min_comment_length} characters",
                }
            )
        for name, _ in SUB_SCORE_FACTORS:
            value = getattr(feedback, name)
            if value is not None and value > cfg.review_score_max:
                errors.append({"field": name, "message": f"must be between 1 and {cfg.review_score_max}"})
        if errors:
            raise ValidationError("Invalid review feedback", details=errors)

    def record_review(
        self,
        assignment: ReviewAssignment,
        manuscript: Manuscript,
        feedback: ReviewFeedback,
        actor: ActorContext,
    ) -> ReviewAssignment:
        if assignment.reviewer_id != actor.user_id:
            raise AccessDeniedError("Only the assigned reviewer may submit this review")
        if assignment.status == ReviewAssignmentStatus.COMPLETED:
            raise AlreadyCompletedError(
                "Review already submitted",
                details=[{"assignment_id": assignment.id, "submitted_at": str(assignment.submitted_at)}],
            )
        if assignment.status == ReviewAssignmentStatus.DECLINED:
            raise InvalidTransitionError("Cannot submit a review for a declined invitation")
        if manuscript.status not in _REVIEWABLE_STATUSES:
            raise InvalidStateError(f"Manuscript is not accepting reviews ({manuscript.status.value})")
        self.validate_feedback(feedback)

        now = self.ctx.now()
        assignment.status = ReviewAssignmentStatus.COMPLETED
        assignment.submitted_at = now
        if assignment.responded_at is None:
            assignment.responded_at = now
        assignment.recommendation = feedback.recommendation
        assignment.rating = feedback.rating
        assignment.comments_for_author = feedback.comments_for_author.strip()
        assignment.confidential_comments = feedback.confidential_comments.strip() or None
        assignment.technical_quality = feedback.technical_quality
        assignment.novelty = feedback.novelty
        assignment.clarity = feedback.clarity
        assignment.significance = feedback.significance
        self.ctx.store.save_review_assignment(assignment)

        # 审稿人统计（推荐排序使用）
        reviewer = self.ctx.store.load_user(actor.user_id)
        if reviewer is not None:
            reviewer.completed_reviews += 1
            if now > assignment.due_at:
                reviewer.late_reviews += 1
            reviewer.last_review_at = now
            self.ctx.store.save_user(reviewer)
        return assignment

    def has_open_assignments(self, manuscript_id: str) -> bool:
        return any(a.is_active for a in self.ctx.store.list_review_assignments(manuscript_id=manuscript_id))

    # --- views ---

    def _to_view(self, assignment: ReviewAssignment, *, hide_private: bool) -> ReviewView:
        reviewer_name: Optional[str] = None
        if not hide_private:
            reviewer = self.ctx.store.load_user(assignment.reviewer_id)
            reviewer_name = reviewer.display_name if reviewer else None

        view = ReviewView(
            assignment_id=assignment.id,
            reviewer_id=None if hide_private else assignment.reviewer_id,
            reviewer_name=reviewer_name,
            status=assignment.status,
            submitted_at=assignment.submitted_at,
            score=assignment.rating,
            recommendation=assignment.recommendation,
            comments=assignment.comments_for_author,
            confidential_comments=None if hide_private else assignment.confidential_comments,
        )
        if assignment.has_granular_scores:
            view.technical_quality = assignment.technical_quality
            view.novelty = assignment.novelty
            view.clarity = assignment.clarity
            view.significance = assignment.significance
        elif assignment.rating is not None:
            for name, value in derive_sub_scores(assignment.rating, self.ctx.config.review_score_max).items():
                setattr(view, name, value)
            view.sub_scores_derived = True
        return view

    def list_reviews(self, manuscript: Manuscript, actor: ActorContext) -> list[ReviewView]:
        self.require_view(manuscript, actor)
        hide_private = self._author_only(manuscript, actor)
        assignments = self.ctx.store.list_review_assignments(manuscript_id=manuscript.id)

        reports = [
            a
            for a in assignments
            if a.status in (ReviewAssignmentStatus.COMPLETED, ReviewAssignmentStatus.IN_PROGRESS)
        ]
        reports.sort(key=lambda a: (a.submitted_at or a.started_at or a.created_at, a.id))
        views = [self._to_view(a, hide_private=hide_private) for a in reports]

        # 已接受但尚未开始的邀请：占位条目，状态统一展示为 in_progress
        for invitation in assignments:
            if invitation.status != ReviewAssignmentStatus.ACCEPTED:
                continue
            views.append(
                ReviewView(
                    assignment_id=invitation.id,
                    reviewer_id=None if hide_private else invitation.reviewer_id,
                    status=ReviewAssignmentStatus.IN_PROGRESS,
                )
            )
        return views

    def summarize(self, manuscript: Manuscript, actor: ActorContext) -> ReviewSummary:
        self.require_view(manuscript, actor)
        assignments = self.ctx.store.list_review_assignments(manuscript_id=manuscript.id)
        completed = [
            a for a in assignments if a.status == ReviewAssignmentStatus.COMPLETED and a.recommendation is not None
        ]
        counts = Counter(a.recommendation.value for a in completed if a.recommendation is not None)
        ratings = [a.rating for a in completed if a.rating is not None]
        return ReviewSummary(
            manuscript_id=manuscript.id,
            total_assignments=len(assignments),
            active_assignments=sum(1 for a in assignments if a.is_active),
            completed_reviews=len(completed),
            recommendation_counts=dict(counts),
            mean_rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
            suggested_decision=suggest_decision(a.recommendation for a in completed if a.recommendation),
        )

    # --- reminders ---

    def overdue_assignments(self, now: datetime) -> list[ReviewAssignment]:
        interval = timedelta(days=self.ctx.config.review_reminder_interval_days)
        due: list[ReviewAssignment] = []
        for a in self.ctx.store.list_review_assignments():
            if not a.is_active or a.due_at >= now:
                continue
            if a.last_reminded_at is not None and now - a.last_reminded_at < interval:
                continue
            due.append(a)
        return due

    def load_assignment(self, assignment_id: str) -> ReviewAssignment:
        assignment = self.ctx.store.load_review_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Review assignment not found", details=[{"assignment_id": assignment_id}])
        return assignment
