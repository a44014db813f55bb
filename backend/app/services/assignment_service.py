from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.core.errors import (
    AccessDeniedError,
    AlreadyAssignedError,
    AmbiguousAssignmentError,
    CapacityExceededError,
    ConflictOfInterestError,
    DuplicateAssignmentError,
    InvalidStateError,
    InvalidTransitionError,
    NoEligibleCandidateError,
    NotFoundError,
    RoleError,
)
from app.core.role_matrix import Capability, Role
from app.models.actor import ActorContext
from app.models.assignment import EditorAssignment, ReviewerCandidate
from app.models.manuscript import Manuscript, ManuscriptStatus
from app.models.reviews import ReviewAssignment, ReviewAssignmentStatus
from app.models.user import UserProfile
from app.services.conflict_service import ConflictService
from app.services.workflow_context import WorkflowContext

logger = logging.getLogger("journalflow.assignment")

# 可以追加审稿人的稿件状态（under_review 为自环）
_REVIEWER_ASSIGNABLE = frozenset(
    {ManuscriptStatus.SUBMITTED, ManuscriptStatus.TECHNICAL_CHECK, ManuscriptStatus.UNDER_REVIEW}
)

# 推荐排序权重
_W_EXPERTISE = 0.4
_W_WORKLOAD = 0.2
_W_QUALITY = 0.2
_W_RELIABILITY = 0.15
_W_RECENCY = 0.05


@dataclass
class AssignmentOutcome:
    manuscript: Manuscript
    warnings: list[str] = field(default_factory=list)
    editor_assignment: Optional[EditorAssignment] = None
    review_assignment: Optional[ReviewAssignment] = None
    status_changed: bool = False


class AssignmentEngine:
    """
    责任编辑 / 审稿人分配。

    中文注释:
    - 所有方法都假设调用方已持有稿件锁并处于 store.atomic() 中：查重与插入因此是原子的。
    - 方法只修改传入的 manuscript 对象，manuscript 行由协调者最后统一落库。
    - 容量：strict 模式下超限直接失败；warn 模式只记录日志并返回 warning。
    """

    def __init__(self, ctx: WorkflowContext, conflicts: ConflictService) -> None:
        self.ctx = ctx
        self.conflicts = conflicts

    # --- load / capacity helpers ---

    def active_editor_assignment(self, manuscript_id: str) -> Optional[EditorAssignment]:
        for a in self.ctx.store.list_editor_assignments(manuscript_id=manuscript_id):
            if a.active:
                return a
        return None

    def editor_load(self, editor_id: str) -> int:
        count = 0
        for a in self.ctx.store.list_editor_assignments(editor_id=editor_id):
            if not a.active:
                continue
            ms = self.ctx.store.load_manuscript(a.manuscript_id)
            if ms is not None and not ms.status.is_terminal:
                count += 1
        return count

    def reviewer_load(self, reviewer_id: str) -> int:
        return sum(1 for a in self.ctx.store.list_review_assignments(reviewer_id=reviewer_id) if a.is_active)

    def _capacity_for(self, user: UserProfile, default_max: int) -> int:
        return user.max_active_assignments or default_max

    def _check_capacity(self, user: UserProfile, *, current: int, default_max: int, kind: str) -> list[str]:
        limit = self._capacity_for(user, default_max)
        if current < limit:
            return []
        message = f"{kind} {user.id} already holds {current} active assignments (limit {limit})"
        if self.ctx.config.strict_capacity:
            raise CapacityExceededError(
                message, details=[{"user_id": user.id, "active": current, "limit": limit}]
            )
        logger.warning("[Assignment] capacity exceeded (warn mode): %s", message)
        return [message]

    def _check_conflict(self, manuscript: Manuscript, user_id: str) -> None:
        if user_id == manuscript.author_id:
            raise ConflictOfInterestError(
                "The manuscript author cannot handle their own submission",
                details=[{"user_id": user_id}],
            )
        if self.conflicts.has_declared_conflict(manuscript.id, user_id):
            raise ConflictOfInterestError(
                "A conflict of interest has been declared for this manuscript",
                details=[{"user_id": user_id}],
            )

    def _require_user(self, user_id: str, *, label: str) -> UserProfile:
        user = self.ctx.store.load_user(user_id)
        if user is None:
            raise NotFoundError(f"{label} not found", details=[{"field": f"{label.lower()}_id", "value": user_id}])
        return user

    @staticmethod
    def _require_open(manuscript: Manuscript) -> None:
        if manuscript.status.is_terminal:
            raise InvalidStateError(f"Manuscript is {manuscript.status.value}")

    # --- associate editor ---

    def _eligible_editor(self, manuscript: Manuscript, user: UserProfile) -> bool:
        if not user.is_active or not user.can(Capability.HANDLE_MANUSCRIPT):
            return False
        if user.id == manuscript.author_id or self.conflicts.has_declared_conflict(manuscript.id, user.id):
            return False
        if self.ctx.config.strict_capacity:
            limit = self._capacity_for(user, self.ctx.config.editor_max_active_assignments)
            if self.editor_load(user.id) >= limit:
                return False
        return True

    def assign_associate_editor(
        self, manuscript: Manuscript, editor_id: str, actor: ActorContext
    ) -> AssignmentOutcome:
        self.ctx.require_capability(actor, Capability.ASSIGN_EDITOR, "Not allowed to assign editors")
        self._require_open(manuscript)
        editor = self._require_user(editor_id, label="Editor")
        if not editor.is_active or not editor.can(Capability.HANDLE_MANUSCRIPT):
            raise RoleError("User cannot act as associate editor", details=[{"editor_id": editor_id}])

        current = self.active_editor_assignment(manuscript.id)
        if current is not None:
            raise AlreadyAssignedError(
                "Manuscript already has an active associate editor; unassign first",
                details=[{"editor_id": current.editor_id, "assignment_id": current.id}],
            )

        self._check_conflict(manuscript, editor_id)
        warnings = self._check_capacity(
            editor,
            current=self.editor_load(editor_id),
            default_max=self.ctx.config.editor_max_active_assignments,
            kind="Editor",
        )

        now = self.ctx.now()
        assignment = EditorAssignment(
            id=self.ctx.new_id(),
            manuscript_id=manuscript.id,
            editor_id=editor_id,
            assigned_by=actor.user_id,
            assigned_at=now,
            window_days=self.ctx.config.editor_assignment_window_days,
        )
        self.ctx.store.save_editor_assignment(assignment)
        manuscript.editor_id = editor_id
        manuscript.updated_at = now
        logger.info("[Assignment] editor %s assigned to manuscript %s by %s", editor_id, manuscript.id, actor.user_id)
        return AssignmentOutcome(manuscript=manuscript, warnings=warnings, editor_assignment=assignment)

    def unassign_associate_editor(self, manuscript: Manuscript, actor: ActorContext) -> AssignmentOutcome:
        self.ctx.require_capability(actor, Capability.ASSIGN_EDITOR, "Not allowed to unassign editors")
        current = self.active_editor_assignment(manuscript.id)
        if current is None:
            raise NotFoundError("Manuscript has no active associate editor")

        now = self.ctx.now()
        current.active = False
        current.unassigned_at = now
        current.unassigned_by = actor.user_id
        self.ctx.store.save_editor_assignment(current)
        manuscript.editor_id = None
        manuscript.updated_at = now
        return AssignmentOutcome(manuscript=manuscript, editor_assignment=current)

    def auto_assign_associate_editor(
        self,
        manuscript: Manuscript,
        actor: ActorContext,
        *,
        candidate_ids: Optional[Iterable[str]] = None,
    ) -> AssignmentOutcome:
        self.ctx.require_capability(actor, Capability.ASSIGN_EDITOR, "Not allowed to assign editors")
        self._require_open(manuscript)
        current = self.active_editor_assignment(manuscript.id)
        if current is not None:
            raise AlreadyAssignedError(
                "Manuscript already has an active associate editor; unassign first",
                details=[{"editor_id": current.editor_id}],
            )

        allowed = set(candidate_ids) if candidate_ids is not None else None
        pool = [
            u
            for u in self.ctx.store.list_users(Role.EDITOR)
            if (allowed is None or u.id in allowed) and self._eligible_editor(manuscript, u)
        ]
        if not pool:
            raise NoEligibleCandidateError("No eligible associate editor available")
        if len(pool) > 1:
            raise AmbiguousAssignmentError(
                "More than one eligible associate editor; choose one explicitly",
                details=[{"candidates": [u.id for u in pool]}],
            )
        return self.assign_associate_editor(manuscript, pool[0].id, actor)

    # --- reviewers ---

    def assign_reviewer(self, manuscript: Manuscript, reviewer_id: str, actor: ActorContext) -> AssignmentOutcome:
        self.ctx.require_capability(actor, Capability.ASSIGN_REVIEWER, "Not allowed to assign reviewers")
        if (
            manuscript.editor_id
            and manuscript.editor_id != actor.user_id
            and not actor.can(Capability.ASSIGN_EDITOR)
        ):
            raise AccessDeniedError("Only the handling editor may invite reviewers for this manuscript")
        if manuscript.status not in _REVIEWER_ASSIGNABLE:
            raise InvalidTransitionError(
                f"Cannot assign reviewers while manuscript is {manuscript.status.value}",
                details=[{"from": manuscript.status.value, "to": ManuscriptStatus.UNDER_REVIEW.value}],
            )

        reviewer = self._require_user(reviewer_id, label="Reviewer")
        if not reviewer.is_active or not reviewer.can(Capability.REVIEW_MANUSCRIPT):
            raise RoleError("User cannot act as reviewer", details=[{"reviewer_id": reviewer_id}])

        for existing in self.ctx.store.list_review_assignments(manuscript_id=manuscript.id, reviewer_id=reviewer_id):
            if existing.is_active:
                raise DuplicateAssignmentError(
                    "Reviewer already has an active assignment on this manuscript",
                    details=[{"assignment_id": existing.id, "status": existing.status.value}],
                )

        self._check_conflict(manuscript, reviewer_id)
        warnings = self._check_capacity(
            reviewer,
            current=self.reviewer_load(reviewer_id),
            default_max=self.ctx.config.reviewer_max_active_assignments,
            kind="Reviewer",
        )

        assignment = ReviewAssignment(
            id=self.ctx.new_id(),
            manuscript_id=manuscript.id,
            reviewer_id=reviewer_id,
            assigned_by=actor.user_id,
            created_at=self.ctx.now(),
            review_window_days=self.ctx.config.review_window_days,
        )
        self.ctx.store.save_review_assignment(assignment)
        manuscript.add_reviewer(reviewer_id)

        status_changed = False
        if manuscript.status != ManuscriptStatus.UNDER_REVIEW:
            self.ctx.transition(
                manuscript,
                ManuscriptStatus.UNDER_REVIEW,
                changed_by=actor.user_id,
                comment=f"reviewer {reviewer_id} assigned",
            )
            status_changed = True
        else:
            manuscript.updated_at = assignment.created_at
        return AssignmentOutcome(
            manuscript=manuscript,
            warnings=warnings,
            review_assignment=assignment,
            status_changed=status_changed,
        )

    def _load_own_assignment(self, assignment_id: str, actor: ActorContext) -> ReviewAssignment:
        assignment = self.ctx.store.load_review_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Review assignment not found", details=[{"assignment_id": assignment_id}])
        if assignment.reviewer_id != actor.user_id:
            raise AccessDeniedError("Only the invited reviewer may act on this assignment")
        return assignment

    def respond_to_invitation(self, assignment_id: str, accept: bool, actor: ActorContext) -> ReviewAssignment:
        assignment = self._load_own_assignment(assignment_id, actor)
        if assignment.status != ReviewAssignmentStatus.PENDING:
            raise InvalidTransitionError(
                f"Invitation already answered ({assignment.status.value})",
                details=[{"status": assignment.status.value}],
            )
        manuscript = self.ctx.require_manuscript(assignment.manuscript_id)
        self._require_open(manuscript)

        assignment.status = ReviewAssignmentStatus.ACCEPTED if accept else ReviewAssignmentStatus.DECLINED
        assignment.responded_at = self.ctx.now()
        self.ctx.store.save_review_assignment(assignment)
        return assignment

    def start_review(self, assignment_id: str, actor: ActorContext) -> ReviewAssignment:
        assignment = self._load_own_assignment(assignment_id, actor)
        if assignment.status != ReviewAssignmentStatus.ACCEPTED:
            raise InvalidTransitionError(
                f"Cannot start a review from {assignment.status.value}",
                details=[{"status": assignment.status.value}],
            )
        assignment.status = ReviewAssignmentStatus.IN_PROGRESS
        assignment.started_at = self.ctx.now()
        self.ctx.store.save_review_assignment(assignment)
        return assignment

    # --- suggestions ---

    def _score_reviewer(self, manuscript: Manuscript, reviewer: UserProfile, active: int, limit: int) -> float:
        keywords = {k.strip().lower() for k in manuscript.keywords if k.strip()}
        expertise = {e.strip().lower() for e in reviewer.expertise if e.strip()}
        expertise_score = len(keywords & expertise) / len(keywords) if keywords else 0.0

        workload_score = max(0.0, 1.0 - active / limit) if limit else 0.0
        quality_score = reviewer.quality_score / 100.0

        finished = reviewer.completed_reviews + 2 * reviewer.late_reviews
        reliability = reviewer.completed_reviews / finished if finished else 0.5

        if reviewer.last_review_at is None:
            recency = 1.0
        else:
            days = (self.ctx.now() - reviewer.last_review_at).days
            if days < 30:
                recency = 0.7
            elif days > 180:
                recency = 0.3
            else:
                recency = 1.0

        return (
            _W_EXPERTISE * expertise_score
            + _W_WORKLOAD * workload_score
            + _W_QUALITY * quality_score
            + _W_RELIABILITY * reliability
            + _W_RECENCY * recency
        )

    def suggest_reviewers(self, manuscript: Manuscript, limit: int = 10) -> list[ReviewerCandidate]:
        active_on_manuscript = {
            a.reviewer_id for a in self.ctx.store.list_review_assignments(manuscript_id=manuscript.id) if a.is_active
        }
        candidates: list[ReviewerCandidate] = []
        for reviewer in self.ctx.store.list_users(Role.REVIEWER):
            if not reviewer.is_active or reviewer.id == manuscript.author_id:
                continue
            if reviewer.id in active_on_manuscript:
                continue
            if self.conflicts.has_declared_conflict(manuscript.id, reviewer.id):
                continue
            active = self.reviewer_load(reviewer.id)
            cap = self._capacity_for(reviewer, self.ctx.config.reviewer_max_active_assignments)
            if active >= cap:
                continue
            candidates.append(
                ReviewerCandidate(
                    reviewer_id=reviewer.id,
                    name=reviewer.display_name,
                    email=reviewer.email,
                    score=round(self._score_reviewer(manuscript, reviewer, active, cap), 4),
                    active_assignments=active,
                )
            )
        candidates.sort(key=lambda c: (-c.score, c.reviewer_id))
        return candidates[: max(0, limit)]
