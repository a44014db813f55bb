from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.deps import get_actor, get_dispatcher, get_workflow_engine
from app.core.errors import http_status_for
from app.models.actor import ActorContext
from app.models.conflict import ConflictQuestionnaireInput, RespondentRole
from app.models.decision import DecisionRequest
from app.models.manuscript import ArticleSubmission
from app.models.result import WorkflowResult
from app.models.reviews import ReviewFeedback
from app.models.revision import RevisionSubmission
from app.schemas.workflow import (
    EditorAssignRequest,
    InvitationResponseRequest,
    PublishIssueRequest,
    ReviewerAssignRequest,
    RevisionRequest,
    TechnicalCheckRequest,
)
from app.services.notification_service import NotificationDispatcher
from app.services.workflow_service import WorkflowStateMachine

router = APIRouter(tags=["Workflow"])


def _respond(
    result: WorkflowResult,
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    *,
    success_status: int = 200,
) -> JSONResponse:
    """
    WorkflowResult -> HTTP 响应。

    中文注释:
    - 失败：按 error.code 映射状态码，body 统一为 {success:false, error:{code,message,details}}。
    - 成功：事件交给 BackgroundTasks 在响应发出后投递（此时稿件锁早已释放）。
    """
    if not result.success:
        error = result.error
        return JSONResponse(
            status_code=http_status_for(error.code if error else None),
            content={"success": False, "error": jsonable_encoder(error)},
        )
    if result.events:
        background_tasks.add_task(dispatcher.dispatch, list(result.events))
    return JSONResponse(
        status_code=success_status,
        content={
            "success": True,
            "data": jsonable_encoder(result.data),
            "warnings": result.warnings,
        },
    )


# === Submission / screening ===


@router.post("/manuscripts")
def submit_article(
    background_tasks: BackgroundTasks,
    payload: ArticleSubmission = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.submit_article(payload, actor)
    return _respond(result, background_tasks, dispatcher, success_status=201)


@router.get("/manuscripts/{manuscript_id}")
def get_manuscript(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.get_manuscript(manuscript_id, actor), background_tasks, dispatcher)


@router.post("/manuscripts/{manuscript_id}/technical-check")
def pass_technical_check(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: Optional[TechnicalCheckRequest] = Body(None),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    payload = payload or TechnicalCheckRequest()
    result = engine.pass_technical_check(
        manuscript_id, actor, checklist=payload.checklist, comment=payload.comment
    )
    return _respond(result, background_tasks, dispatcher)


# === Associate editor ===


@router.post("/manuscripts/{manuscript_id}/editor")
def assign_associate_editor(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: EditorAssignRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.assign_associate_editor(manuscript_id, payload.editor_id, actor)
    return _respond(result, background_tasks, dispatcher)


@router.post("/manuscripts/{manuscript_id}/editor/auto")
def auto_assign_associate_editor(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.auto_assign_to_associate_editor(manuscript_id, actor)
    return _respond(result, background_tasks, dispatcher)


@router.delete("/manuscripts/{manuscript_id}/editor")
def unassign_associate_editor(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.unassign_associate_editor(manuscript_id, actor)
    return _respond(result, background_tasks, dispatcher)


# === Reviewers ===


@router.post("/manuscripts/{manuscript_id}/reviewers")
def assign_reviewer(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: ReviewerAssignRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.assign_reviewer(manuscript_id, payload.reviewer_id, actor)
    return _respond(result, background_tasks, dispatcher, success_status=201)


@router.get("/manuscripts/{manuscript_id}/reviewer-suggestions")
def suggest_reviewers(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    limit: int = Query(10, ge=1, le=50),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.suggest_reviewers(manuscript_id, actor, limit), background_tasks, dispatcher)


@router.post("/review-assignments/{assignment_id}/response")
def respond_to_review_invitation(
    assignment_id: str,
    background_tasks: BackgroundTasks,
    payload: InvitationResponseRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.respond_to_review_invitation(assignment_id, payload.accept, actor)
    return _respond(result, background_tasks, dispatcher)


@router.post("/review-assignments/{assignment_id}/start")
def start_review(
    assignment_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.start_review(assignment_id, actor), background_tasks, dispatcher)


@router.post("/review-assignments/{assignment_id}/submit")
def submit_review(
    assignment_id: str,
    background_tasks: BackgroundTasks,
    payload: ReviewFeedback = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.submit_review(assignment_id, payload, actor), background_tasks, dispatcher)


@router.get("/manuscripts/{manuscript_id}/reviews")
def list_reviews(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.list_reviews(manuscript_id, actor), background_tasks, dispatcher)


@router.get("/manuscripts/{manuscript_id}/reviews/summary")
def get_review_summary(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.get_review_summary(manuscript_id, actor), background_tasks, dispatcher)


@router.post("/reviews/reminders")
def remind_overdue_reviewers(
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.remind_overdue_reviewers(actor), background_tasks, dispatcher)


# === Decisions / revisions / publication ===


@router.post("/manuscripts/{manuscript_id}/decision")
def record_decision(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: DecisionRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.record_decision(manuscript_id, payload.decision, payload.comments, actor)
    return _respond(result, background_tasks, dispatcher)


def _to_submission(manuscript_id: str, payload: RevisionRequest) -> RevisionSubmission:
    return RevisionSubmission(manuscript_id=manuscript_id, **payload.model_dump())


@router.post("/manuscripts/{manuscript_id}/revisions/validate")
def validate_revision(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: RevisionRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.validate_revision_submission(_to_submission(manuscript_id, payload), actor)
    return _respond(result, background_tasks, dispatcher)


@router.post("/manuscripts/{manuscript_id}/revisions")
def submit_revision(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    payload: RevisionRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.submit_revision(_to_submission(manuscript_id, payload), actor)
    return _respond(result, background_tasks, dispatcher, success_status=201)


@router.get("/manuscripts/{manuscript_id}/revisions")
def get_revision_history(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.get_revision_history(manuscript_id, actor), background_tasks, dispatcher)


@router.get("/manuscripts/{manuscript_id}/status-history")
def get_status_history(
    manuscript_id: str,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return _respond(engine.get_status_history(manuscript_id, actor), background_tasks, dispatcher)


@router.post("/issues/publish")
def publish_issue(
    background_tasks: BackgroundTasks,
    payload: PublishIssueRequest = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.publish_issue(payload.manuscript_ids, payload.issue_label, actor)
    return _respond(result, background_tasks, dispatcher)


# === Conflict of interest ===


@router.post("/manuscripts/{manuscript_id}/conflicts/{role}")
def submit_conflict_questionnaire(
    manuscript_id: str,
    role: RespondentRole,
    background_tasks: BackgroundTasks,
    payload: ConflictQuestionnaireInput = Body(...),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.submit_conflict_questionnaire(manuscript_id, role, payload, actor)
    return _respond(result, background_tasks, dispatcher, success_status=201)


@router.get("/manuscripts/{manuscript_id}/conflicts/{role}")
def get_conflict_questionnaire(
    manuscript_id: str,
    role: RespondentRole,
    background_tasks: BackgroundTasks,
    respondent_id: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = engine.get_conflict_questionnaire(manuscript_id, role, actor, respondent_id)
    return _respond(result, background_tasks, dispatcher)
