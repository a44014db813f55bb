from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import (
    AccessDeniedError,
    DuplicateSubmissionError,
    ValidationError,
)
from app.core.role_matrix import Capability
from app.models.actor import ActorContext
from app.models.conflict import (
    ConflictQuestionnaire,
    ConflictQuestionnaireInput,
    ConflictResult,
    QuestionnaireStatus,
    RespondentRole,
)
from app.services.workflow_context import WorkflowContext

logger = logging.getLogger("journalflow.conflicts")

# 固定顺序：affiliations, collaborations, financial, personal, institutional
_CONFLICT_LABELS: tuple[tuple[str, str], ...] = (
    ("has_affiliations", "affiliations"),
    ("has_collaborations", "collaborations"),
    ("has_financial_interests", "financial interests"),
    ("has_personal_relationships", "personal relationships"),
    ("has_institutional_conflicts", "institutional conflicts"),
)

QuestionnaireLike = Union[ConflictQuestionnaireInput, Mapping[str, Any]]


def _field_errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


class ConflictOfInterestEvaluator:
    """利益冲突判定（纯函数，无副作用）"""

    @staticmethod
    def parse(questionnaire: QuestionnaireLike) -> ConflictQuestionnaireInput:
        if isinstance(questionnaire, ConflictQuestionnaireInput):
            return questionnaire
        try:
            return ConflictQuestionnaireInput.model_validate(dict(questionnaire))
        except PydanticValidationError as e:
            raise ValidationError("Invalid conflict questionnaire", details=_field_errors(e)) from e

    @classmethod
    def evaluate(cls, questionnaire: QuestionnaireLike) -> ConflictResult:
        answers = cls.parse(questionnaire)
        flagged = [label for attr, label in _CONFLICT_LABELS if getattr(answers, attr)]
        has_conflicts = bool(flagged) or not answers.can_review_objectively
        return ConflictResult(has_conflicts=has_conflicts, detail=", ".join(flagged))


class ConflictService:
    """
    问卷的持久化与查询（一次写入，不可修改）。

    中文注释: 调用方负责持有稿件锁，保证“查重 + 插入”原子。
    """

    def __init__(self, ctx: WorkflowContext) -> None:
        self.ctx = ctx

    def submit_questionnaire(
        self,
        *,
        manuscript_id: str,
        respondent: ActorContext,
        role: RespondentRole,
        answers: QuestionnaireLike,
    ) -> ConflictQuestionnaire:
        self.ctx.require_capability(respondent, Capability.DECLARE_CONFLICTS, "Only editors and reviewers may declare conflicts")
        parsed = ConflictOfInterestEvaluator.parse(answers)
        self.ctx.require_manuscript(manuscript_id)

        existing = self.ctx.store.find_questionnaire(manuscript_id, respondent.user_id, role)
        if existing is not None:
            raise DuplicateSubmissionError(
                "Conflict questionnaire already completed",
                details=[{"questionnaire_id": existing.id, "completed_at": existing.completed_at.isoformat()}],
            )

        result = ConflictOfInterestEvaluator.evaluate(parsed)
        questionnaire = ConflictQuestionnaire(
            id=self.ctx.new_id(),
            manuscript_id=manuscript_id,
            respondent_id=respondent.user_id,
            role=role,
            answers=parsed,
            has_conflicts=result.has_conflicts,
            conflict_details=result.detail,
            additional_details=parsed.additional_details,
            completed_at=self.ctx.now(),
        )
        self.ctx.store.insert_questionnaire(questionnaire)
        if result.has_conflicts:
            logger.info(
                "[COI] conflict declared manuscript=%s respondent=%s role=%s",
                manuscript_id,
                respondent.user_id,
                role.value,
            )
        return questionnaire

    def get_questionnaire(
        self,
        *,
        manuscript_id: str,
        actor: ActorContext,
        role: RespondentRole,
        respondent_id: Optional[str] = None,
    ) -> QuestionnaireStatus:
        target = respondent_id or actor.user_id
        if target != actor.user_id and not actor.can(Capability.VIEW_ALL_REVIEWS):
            raise AccessDeniedError("Not allowed to view another respondent's questionnaire")
        found = self.ctx.store.find_questionnaire(manuscript_id, target, role)
        return QuestionnaireStatus(questionnaire=found, needs_completion=found is None)

    def has_declared_conflict(self, manuscript_id: str, user_id: str) -> bool:
        return any(
            q.has_conflicts
            for q in self.ctx.store.list_questionnaires(manuscript_id=manuscript_id, respondent_id=user_id)
        )
