from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import WorkflowConfig
from app.core.errors import (
    AccessDeniedError,
    InvalidTransitionError,
    NotFoundError,
    RoleError,
    ValidationError,
    WorkflowError,
)
from app.core.keyed_lock import KeyedLock
from app.core.role_matrix import Capability, Role
from app.models.actor import ActorContext
from app.models.assignment import TechnicalCheckList
from app.models.conflict import ConflictQuestionnaireInput, RespondentRole
from app.models.decision import (
    DECISION_LABELS,
    DECISION_TRANSITIONS,
    Decision,
    DecisionKind,
)
from app.models.manuscript import ArticleSubmission, Manuscript, ManuscriptStatus, StatusTransition
from app.models.notification import EventKind, WorkflowEvent
from app.models.result import WorkflowResult
from app.models.reviews import ReviewAssignmentStatus, ReviewFeedback
from app.models.revision import RevisionSubmission
from app.services.assignment_service import AssignmentEngine
from app.services.conflict_service import ConflictOfInterestEvaluator, ConflictService
from app.services.review_service import ReviewAggregator
from app.services.revision_service import RevisionManager
from app.services.store import WorkflowStore
from app.services.workflow_context import WorkflowContext, utc_now

logger = logging.getLogger("journalflow.workflow")

SUBMISSION_FAILED = "Submission failed"

_TECHNICAL_CHECK_SOURCES = frozenset({ManuscriptStatus.SUBMITTED, ManuscriptStatus.TECHNICAL_CHECK})


def _user_key(user_id: str) -> str:
    # 容量按人统计，跨稿件的分配也要串行化
    return f"user:{user_id}"


def _clean_keywords(raw: Iterable[str]) -> list[str]:
    # 去空白、忽略大小写去重，保留首次出现的写法；计数校验与落库用同一份
    seen: dict[str, str] = {}
    for k in raw:
        text = k.strip()
        if text:
            seen.setdefault(text.casefold(), text)
    return list(seen.values())


def _event(recipient_id: Optional[str], kind: EventKind, manuscript: Manuscript, **payload: Any) -> list[WorkflowEvent]:
    if not recipient_id:
        return []
    data = {"title": manuscript.title, **payload}
    return [WorkflowEvent(recipient_id=recipient_id, kind=kind, manuscript_id=manuscript.id, payload=data)]


class WorkflowStateMachine:
    """
    编辑流程引擎（协调者）。

    中文注释:
    - 唯一允许修改稿件 status 的入口；API 层与前端只能调用这里的操作。
    - 写操作：持有稿件级锁 + store.atomic()，在锁内完成“校验 -> 持久化”，失败不留部分写入。
    - 业务规则失败以 WorkflowResult(success=False) 返回；StorageError 直接向上抛出。
    - 通知事件随结果返回，由调用方在释放锁之后投递（尽力而为）。
    """

    def __init__(
        self,
        store: WorkflowStore,
        *,
        config: Optional[WorkflowConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.ctx = WorkflowContext(store=store, config=config or WorkflowConfig(), clock=clock)
        self.store = store
        self.locks = locks or KeyedLock()
        self.conflicts = ConflictService(self.ctx)
        self.assignments = AssignmentEngine(self.ctx, self.conflicts)
        self.reviews = ReviewAggregator(self.ctx)
        self.revisions = RevisionManager(self.ctx)

    # --- plumbing ---

    def _now(self) -> datetime:
        return self.ctx.now()

    def _run(
        self,
        operation: str,
        manuscript_ids: Union[str, Iterable[str], None],
        fn: Callable[[], WorkflowResult],
    ) -> WorkflowResult:
        if manuscript_ids is None:
            guard: Any = nullcontext()
            label = "-"
        elif isinstance(manuscript_ids, str):
            guard = self.locks.hold(manuscript_ids)
            label = manuscript_ids
        else:
            ids = list(manuscript_ids)
            guard = self.locks.hold_many(ids)
            label = ",".join(sorted(ids))

        try:
            with guard, self.store.atomic():
                result = fn()
        except WorkflowError as e:
            logger.info("[Workflow] %s rejected manuscript=%s code=%s: %s", operation, label, e.code, e.message)
            return WorkflowResult.fail(e)
        logger.info("[Workflow] %s ok manuscript=%s events=%d", operation, label, len(result.events))
        return result

    def _read(self, operation: str, fn: Callable[[], Any]) -> WorkflowResult:
        try:
            return WorkflowResult.ok(fn())
        except WorkflowError as e:
            logger.info("[Workflow] %s rejected code=%s: %s", operation, e.code, e.message)
            return WorkflowResult.fail(e)

    # --- submission ---

    def _submission_errors(self, payload: ArticleSubmission) -> list[dict[str, Any]]:
        cfg = self.ctx.config
        errors: list[dict[str, Any]] = []

        def add(field: str, message: str) -> None:
            errors.append({"field": field, "message": message})

        title = payload.title.strip()
        if len(title) < cfg.title_min_length:
            add("title", f"must be at least {cfg.title_min_length} characters")
        elif len(title) > cfg.title_max_length:
            add("title", f"must be at most {cfg.title_max_length} characters")

        abstract = payload.abstract.strip()
        if len(abstract) < cfg.abstract_min_length:
            add("abstract", f"must be at least {cfg.abstract_min_length} characters")
        elif len(abstract) > cfg.abstract_max_length:
            add("abstract", f"must be at most {cfg.abstract_max_length} characters")

        if not payload.category.strip():
            add("category", "is required")

        keywords = _clean_keywords(payload.keywords)
        if not cfg.keywords_min <= len(keywords) <= cfg.keywords_max:
            add("keywords", f"between {cfg.keywords_min} and {cfg.keywords_max} keywords are required")

        if not payload.authors:
            add("authors", "at least one author is required")
        corresponding = sum(1 for a in payload.authors if a.is_corresponding_author)
        if payload.authors and corresponding != 1:
            add("authors", "exactly one corresponding author is required")
        for idx, author in enumerate(payload.authors):
            for name in ("first_name", "last_name", "email", "affiliation"):
                if not str(getattr(author, name) or "").strip():
                    add(f"authors[{idx}].{name}", "is required")

        reviewers = payload.recommended_reviewers
        if not cfg.recommended_reviewers_min <= len(reviewers) <= cfg.recommended_reviewers_max:
            add(
                "recommended_reviewers",
                f"between {cfg.recommended_reviewers_min} and {cfg.recommended_reviewers_max} reviewers are required",
            )
        for idx, reviewer in enumerate(reviewers):
            if not reviewer.name.strip() or not reviewer.email.strip():
                add(f"recommended_reviewers[{idx}]", "name and email are required")
        return errors

    def submit_article(
        self, payload: Union[ArticleSubmission, Mapping[str, Any]], actor: ActorContext
    ) -> WorkflowResult:
        def op() -> WorkflowResult:
            self.ctx.require_capability(actor, Capability.SUBMIT_MANUSCRIPT, "Not allowed to submit manuscripts")
            if isinstance(payload, ArticleSubmission):
                article = payload
            else:
                try:
                    article = ArticleSubmission.model_validate(dict(payload))
                except PydanticValidationError as e:
                    raise ValidationError(
                        SUBMISSION_FAILED,
                        details=[{"field": ".".join(map(str, err["loc"])), "message": err["msg"]} for err in e.errors()],
                    ) from e
            errors = self._submission_errors(article)
            if errors:
                raise ValidationError(SUBMISSION_FAILED, details=errors)

            now = self._now()
            manuscript = Manuscript(
                id=self.ctx.new_id(),
                title=article.title.strip(),
                abstract=article.abstract.strip(),
                category=article.category.strip(),
                keywords=_clean_keywords(article.keywords),
                author_id=actor.user_id,
                co_authors=list(article.authors),
                recommended_reviewers=list(article.recommended_reviewers),
                status=ManuscriptStatus.SUBMITTED,
                version=1,
                submitted_at=now,
                updated_at=now,
            )
            self.store.insert_transition(
                StatusTransition(
                    id=self.ctx.new_id(),
                    manuscript_id=manuscript.id,
                    from_status=None,
                    to_status=ManuscriptStatus.SUBMITTED.value,
                    changed_by=actor.user_id,
                    comment="submitted",
                    created_at=now,
                )
            )
            self.revisions.record_initial_version(manuscript, article.files)
            self.store.save_manuscript(manuscript)
            return WorkflowResult.ok(
                manuscript,
                events=_event(actor.user_id, EventKind.SUBMISSION_RECEIVED, manuscript),
            )

        # 新稿件尚无 id，无需稿件锁
        return self._run("submit_article", None, op)

    def pass_technical_check(
        self,
        manuscript_id: str,
        actor: ActorContext,
        *,
        checklist: Optional[TechnicalCheckList] = None,
        comment: Optional[str] = None,
    ) -> WorkflowResult:
        def op() -> WorkflowResult:
            self.ctx.require_capability(actor, Capability.TECHNICAL_CHECK, "Not allowed to perform technical checks")
            manuscript = self.ctx.require_manuscript(manuscript_id)
            if manuscript.status not in _TECHNICAL_CHECK_SOURCES:
                raise InvalidTransitionError(
                    f"Technical check not allowed from {manuscript.status.value}",
                    details=[{"from": manuscript.status.value}],
                )
            if checklist is not None:
                failed = checklist.failed_items()
                if failed:
                    raise ValidationError(
                        "Technical check failed",
                        details=[{"field": name, "message": "check did not pass"} for name in failed],
                    )
            target = (
                ManuscriptStatus.UNDER_REVIEW if manuscript.reviewer_ids else ManuscriptStatus.TECHNICAL_CHECK
            )
            note = comment or (checklist.notes if checklist and checklist.notes else None)
            self.ctx.transition(manuscript, target, changed_by=actor.user_id, comment=note or "technical check passed")
            self.store.save_manuscript(manuscript)
            return WorkflowResult.ok(
                manuscript,
                events=_event(
                    manuscript.author_id, EventKind.TECHNICAL_CHECK_PASSED, manuscript, status=target.value
                ),
            )

        return self._run("pass_technical_check", manuscript_id, op)

    # --- editor assignment ---

    def assign_associate_editor(self, manuscript_id: str, editor_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> WorkflowResult:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            outcome = self.assignments.assign_associate_editor(manuscript, editor_id, actor)
            self.store.save_manuscript(outcome.manuscript)
            return WorkflowResult.ok(
                outcome.editor_assignment,
                warnings=outcome.warnings,
                events=_event(
                    editor_id,
                    EventKind.EDITOR_ASSIGNED,
                    manuscript,
                    assigned_by=actor.user_id,
                    deadline=outcome.editor_assignment.deadline.isoformat() if outcome.editor_assignment else None,
                ),
            )

        return self._run("assign_associate_editor", [manuscript_id, _user_key(editor_id)], op)

    def unassign_associate_editor(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> WorkflowResult:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            outcome = self.assignments.unassign_associate_editor(manuscript, actor)
            self.store.save_manuscript(outcome.manuscript)
            previous = outcome.editor_assignment.editor_id if outcome.editor_assignment else None
            return WorkflowResult.ok(
                outcome.editor_assignment,
                events=_event(previous, EventKind.EDITOR_UNASSIGNED, manuscript, unassigned_by=actor.user_id),
            )

        return self._run("unassign_associate_editor", manuscript_id, op)

    def auto_assign_to_associate_editor(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> WorkflowResult:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            outcome = self.assignments.auto_assign_associate_editor(manuscript, actor, candidate_ids=editor_ids)
            self.store.save_manuscript(outcome.manuscript)
            assignment = outcome.editor_assignment
            return WorkflowResult.ok(
                assignment,
                warnings=outcome.warnings,
                events=_event(
                    assignment.editor_id if assignment else None,
                    EventKind.EDITOR_ASSIGNED,
                    manuscript,
                    assigned_by=actor.user_id,
                    automatic=True,
                ),
            )

        # 候选编辑全部加人员锁，锁内只在这批人中挑选
        try:
            editor_ids = [u.id for u in self.store.list_users(Role.EDITOR)]
        except WorkflowError as e:
            return WorkflowResult.fail(e)
        return self._run(
            "auto_assign_to_associate_editor",
            [manuscript_id, *(_user_key(eid) for eid in editor_ids)],
            op,
        )

    # --- reviewers ---

    def assign_reviewer(self, manuscript_id: str, reviewer_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> WorkflowResult:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            outcome = self.assignments.assign_reviewer(manuscript, reviewer_id, actor)
            self.store.save_manuscript(outcome.manuscript)
            assignment = outcome.review_assignment
            return WorkflowResult.ok(
                assignment,
                warnings=outcome.warnings,
                events=_event(
                    reviewer_id,
                    EventKind.REVIEWER_INVITED,
                    manuscript,
                    assignment_id=assignment.id if assignment else None,
                    due_at=assignment.due_at.isoformat() if assignment else None,
                ),
            )

        return self._run("assign_reviewer", [manuscript_id, _user_key(reviewer_id)], op)

    def _assignment_manuscript_id(self, assignment_id: str) -> str:
        return self.reviews.load_assignment(assignment_id).manuscript_id

    def respond_to_review_invitation(self, assignment_id: str, accept: bool, actor: ActorContext) -> WorkflowResult:
        try:
            manuscript_id = self._assignment_manuscript_id(assignment_id)
        except WorkflowError as e:
            return WorkflowResult.fail(e)

        def op() -> WorkflowResult:
            assignment = self.assignments.respond_to_invitation(assignment_id, accept, actor)
            manuscript = self.ctx.require_manuscript(manuscript_id)
            recipient = manuscript.editor_id or assignment.assigned_by
            return WorkflowResult.ok(
                assignment,
                events=_event(
                    recipient,
                    EventKind.REVIEW_INVITATION_ANSWERED,
                    manuscript,
                    reviewer_id=actor.user_id,
                    accepted=accept,
                ),
            )

        return self._run("respond_to_review_invitation", manuscript_id, op)

    def start_review(self, assignment_id: str, actor: ActorContext) -> WorkflowResult:
        try:
            manuscript_id = self._assignment_manuscript_id(assignment_id)
        except WorkflowError as e:
            return WorkflowResult.fail(e)

        def op() -> WorkflowResult:
            return WorkflowResult.ok(self.assignments.start_review(assignment_id, actor))

        return self._run("start_review", manuscript_id, op)

    def submit_review(
        self,
        assignment_id: str,
        feedback: Union[ReviewFeedback, Mapping[str, Any]],
        actor: ActorContext,
    ) -> WorkflowResult:
        try:
            target = self.reviews.load_assignment(assignment_id)
        except WorkflowError as e:
            return WorkflowResult.fail(e)
        manuscript_id = target.manuscript_id

        def op() -> WorkflowResult:
            if isinstance(feedback, ReviewFeedback):
                parsed = feedback
            else:
                try:
                    parsed = ReviewFeedback.model_validate(dict(feedback))
                except PydanticValidationError as e:
                    raise ValidationError(
                        "Invalid review feedback",
                        details=[{"field": ".".join(map(str, err["loc"])), "message": err["msg"]} for err in e.errors()],
                    ) from e
            assignment = self.reviews.load_assignment(assignment_id)
            manuscript = self.ctx.require_manuscript(manuscript_id)
            completed = self.reviews.record_review(assignment, manuscript, parsed, actor)

            events = _event(
                manuscript.editor_id or completed.assigned_by,
                EventKind.REVIEW_SUBMITTED,
                manuscript,
                assignment_id=completed.id,
                recommendation=parsed.recommendation.value,
            )
            if not self.reviews.has_open_assignments(manuscript.id):
                for recipient in dict.fromkeys(
                    r for r in (manuscript.editor_id or completed.assigned_by, manuscript.author_id) if r
                ):
                    events += _event(recipient, EventKind.REVIEWS_COMPLETED, manuscript)
            return WorkflowResult.ok(completed, events=events)

        # 审稿人档案（完成数/逾期数）按人累计，需同时持有人员锁
        return self._run("submit_review", [manuscript_id, _user_key(target.reviewer_id)], op)

    # --- decisions / revisions ---

    def record_decision(
        self,
        manuscript_id: str,
        decision: Union[DecisionKind, str],
        comments: str,
        actor: ActorContext,
    ) -> WorkflowResult:
        def op() -> WorkflowResult:
            if not actor.can(Capability.RECORD_DECISION):
                raise RoleError("Only editors can record decisions")
            try:
                kind = DecisionKind(decision)
            except ValueError as e:
                raise ValidationError(
                    "Unknown decision", details=[{"field": "decision", "value": str(decision)}]
                ) from e

            manuscript = self.ctx.require_manuscript(manuscript_id)
            handling_only = not (
                actor.has_role(Role.ADMIN)
                or actor.has_role(Role.MANAGING_EDITOR)
                or actor.has_role(Role.EDITOR_IN_CHIEF)
            )
            if handling_only and manuscript.editor_id and manuscript.editor_id != actor.user_id:
                raise AccessDeniedError("Only the handling editor may decide on this manuscript")

            sources, target = DECISION_TRANSITIONS[kind]
            if manuscript.status not in sources:
                raise InvalidTransitionError(
                    f"Decision {kind.value} not allowed from {manuscript.status.value}",
                    details=[{"from": manuscript.status.value, "to": target.value}],
                )

            from_status = manuscript.status
            record = Decision(
                id=self.ctx.new_id(),
                manuscript_id=manuscript.id,
                editor_id=actor.user_id,
                decision=kind,
                comments=comments or "",
                manuscript_version=manuscript.version,
                from_status=from_status,
                to_status=target,
                created_at=self._now(),
            )
            self.store.insert_decision(record)
            self.ctx.transition(manuscript, target, changed_by=actor.user_id, comment=DECISION_LABELS[kind])
            self.store.save_manuscript(manuscript)
            return WorkflowResult.ok(
                record,
                events=_event(
                    manuscript.author_id,
                    EventKind.DECISION_RECORDED,
                    manuscript,
                    decision=kind.value,
                    label=DECISION_LABELS[kind],
                    comments=record.comments,
                ),
            )

        return self._run("record_decision", manuscript_id, op)

    def validate_revision_submission(
        self, submission: RevisionSubmission, actor: Optional[ActorContext] = None
    ) -> WorkflowResult:
        def op() -> Any:
            if actor is None:
                manuscript = self.store.load_manuscript(submission.manuscript_id)
            else:
                # 版本号等信息只对作者与编辑可见
                manuscript = self.ctx.require_manuscript(submission.manuscript_id)
                if not self.reviews.can_view(manuscript, actor):
                    raise AccessDeniedError("Not allowed to validate revisions for this manuscript")
            return self.revisions.validate_revision_submission(submission, manuscript)

        return self._read("validate_revision_submission", op)

    def submit_revision(self, submission: RevisionSubmission, actor: ActorContext) -> WorkflowResult:
        manuscript_id = submission.manuscript_id

        def op() -> WorkflowResult:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            outcome = self.revisions.submit_revision(manuscript, actor, submission)
            self.store.save_manuscript(outcome.manuscript)
            data = {
                "success": True,
                "version_number": outcome.revision.version_number,
                "revision_id": outcome.revision.id,
                "message": f"Revision v{outcome.revision.version_number} submitted",
                "manuscript_status": outcome.manuscript.status.value,
            }
            recipients = [manuscript.editor_id] + [
                a.reviewer_id
                for a in self.store.list_review_assignments(manuscript_id=manuscript.id)
                if a.status == ReviewAssignmentStatus.COMPLETED
            ]
            events: list[WorkflowEvent] = []
            for recipient in dict.fromkeys(r for r in recipients if r):
                events += _event(
                    recipient,
                    EventKind.REVISION_SUBMITTED,
                    manuscript,
                    version_number=outcome.revision.version_number,
                )
            return WorkflowResult.ok(data, events=events, warnings=outcome.warnings)

        return self._run("submit_revision", manuscript_id, op)

    def publish_issue(self, manuscript_ids: list[str], issue_label: str, actor: ActorContext) -> WorkflowResult:
        ids = list(dict.fromkeys(manuscript_ids))

        def op() -> WorkflowResult:
            self.ctx.require_capability(actor, Capability.PUBLISH_ISSUE, "Not allowed to publish issues")
            if not ids:
                raise ValidationError("No manuscripts to publish", details=[{"field": "manuscript_ids"}])
            if not issue_label.strip():
                raise ValidationError("Issue label is required", details=[{"field": "issue_label"}])

            manuscripts: list[Manuscript] = []
            missing: list[str] = []
            blocked: list[dict[str, str]] = []
            for mid in ids:
                ms = self.store.load_manuscript(mid)
                if ms is None:
                    missing.append(mid)
                elif ms.status != ManuscriptStatus.ACCEPTED:
                    blocked.append({"manuscript_id": mid, "status": ms.status.value})
                else:
                    manuscripts.append(ms)
            if missing:
                raise NotFoundError("Manuscripts not found", details=[{"manuscript_id": m} for m in missing])
            if blocked:
                raise InvalidTransitionError("Only accepted manuscripts can be published", details=blocked)

            now = self._now()
            events: list[WorkflowEvent] = []
            for ms in manuscripts:
                self.ctx.transition(ms, ManuscriptStatus.PUBLISHED, changed_by=actor.user_id, comment=issue_label)
                ms.issue_label = issue_label.strip()
                ms.published_at = now
                self.store.save_manuscript(ms)
                events += _event(ms.author_id, EventKind.MANUSCRIPT_PUBLISHED, ms, issue=ms.issue_label)
            return WorkflowResult.ok(manuscripts, events=events)

        return self._run("publish_issue", ids, op)

    # --- reminders ---

    def remind_overdue_reviewers(self, actor: ActorContext, now: Optional[datetime] = None) -> WorkflowResult:
        at = now or self._now()
        try:
            self.ctx.require_capability(actor, Capability.SEND_REMINDERS, "Not allowed to send reminders")
        except WorkflowError as e:
            return WorkflowResult.fail(e)
        candidates = self.reviews.overdue_assignments(at)
        locked = {a.manuscript_id for a in candidates}

        def op() -> WorkflowResult:
            events: list[WorkflowEvent] = []
            reminded: list[str] = []
            # 锁内重新筛选，避免与并发提交/提醒竞争
            for assignment in self.reviews.overdue_assignments(at):
                if assignment.manuscript_id not in locked:
                    continue
                manuscript = self.store.load_manuscript(assignment.manuscript_id)
                if manuscript is None or manuscript.status.is_terminal:
                    continue
                assignment.last_reminded_at = at
                self.store.save_review_assignment(assignment)
                reminded.append(assignment.id)
                events += _event(
                    assignment.reviewer_id,
                    EventKind.REVIEW_OVERDUE,
                    manuscript,
                    assignment_id=assignment.id,
                    due_at=assignment.due_at.isoformat(),
                    days_overdue=(at - assignment.due_at).days,
                )
            return WorkflowResult.ok(reminded, events=events)

        return self._run("remind_overdue_reviewers", locked, op)

    # --- conflicts ---

    def submit_conflict_questionnaire(
        self,
        manuscript_id: str,
        role: Union[RespondentRole, str],
        answers: Union[ConflictQuestionnaireInput, Mapping[str, Any]],
        actor: ActorContext,
    ) -> WorkflowResult:
        def op() -> WorkflowResult:
            try:
                respondent_role = RespondentRole(role)
            except ValueError as e:
                raise ValidationError("Unknown respondent role", details=[{"field": "role", "value": str(role)}]) from e
            questionnaire = self.conflicts.submit_questionnaire(
                manuscript_id=manuscript_id,
                respondent=actor,
                role=respondent_role,
                answers=answers,
            )
            return WorkflowResult.ok(questionnaire)

        return self._run("submit_conflict_questionnaire", manuscript_id, op)

    def get_conflict_questionnaire(
        self,
        manuscript_id: str,
        role: Union[RespondentRole, str],
        actor: ActorContext,
        respondent_id: Optional[str] = None,
    ) -> WorkflowResult:
        def op() -> Any:
            try:
                respondent_role = RespondentRole(role)
            except ValueError as e:
                raise ValidationError("Unknown respondent role", details=[{"field": "role", "value": str(role)}]) from e
            return self.conflicts.get_questionnaire(
                manuscript_id=manuscript_id, actor=actor, role=respondent_role, respondent_id=respondent_id
            )

        return self._read("get_conflict_questionnaire", op)

    def evaluate_conflicts(self, answers: Union[ConflictQuestionnaireInput, Mapping[str, Any]]) -> WorkflowResult:
        return self._read("evaluate_conflicts", lambda: ConflictOfInterestEvaluator.evaluate(answers))

    # --- reads ---

    def list_reviews(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> Any:
            return self.reviews.list_reviews(self.ctx.require_manuscript(manuscript_id), actor)

        return self._read("list_reviews", op)

    def get_review_summary(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> Any:
            return self.reviews.summarize(self.ctx.require_manuscript(manuscript_id), actor)

        return self._read("get_review_summary", op)

    def get_revision_history(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> Any:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            if not (self.reviews.can_view(manuscript, actor) or actor.user_id in manuscript.reviewer_ids):
                raise AccessDeniedError("Not allowed to view revision history")
            return self.revisions.history(manuscript_id)

        return self._read("get_revision_history", op)

    def get_status_history(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> Any:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            self.reviews.require_view(manuscript, actor)
            return self.store.list_transitions(manuscript_id)

        return self._read("get_status_history", op)

    def get_manuscript(self, manuscript_id: str, actor: ActorContext) -> WorkflowResult:
        def op() -> Any:
            manuscript = self.ctx.require_manuscript(manuscript_id)
            if not (self.reviews.can_view(manuscript, actor) or actor.user_id in manuscript.reviewer_ids):
                raise AccessDeniedError("Not allowed to view this manuscript")
            return manuscript

        return self._read("get_manuscript", op)

    def suggest_reviewers(self, manuscript_id: str, actor: ActorContext, limit: int = 10) -> WorkflowResult:
        def op() -> Any:
            self.ctx.require_capability(actor, Capability.ASSIGN_REVIEWER, "Not allowed to view reviewer suggestions")
            return self.assignments.suggest_reviewers(self.ctx.require_manuscript(manuscript_id), limit)

        return self._read("suggest_reviewers", op)
