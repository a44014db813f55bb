from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from postgrest.exceptions import APIError

from app.core.mail import EmailService
from app.lib.api_client import supabase_admin
from app.models.notification import EventKind, NotificationCreate, WorkflowEvent
from app.services.store import WorkflowStore

logger = logging.getLogger("journalflow.notifications")

JOURNAL_NAME = "JournalFlow"

# kind -> (标题, 正文模板, 邮件模板)
_EVENT_COPY: dict[EventKind, tuple[str, str, str]] = {
    EventKind.SUBMISSION_RECEIVED: (
        "Submission received",
        "Your manuscript \"{title}\" has been received and is awaiting technical screening.",
        "workflow_event.html",
    ),
    EventKind.TECHNICAL_CHECK_PASSED: (
        "Technical check passed",
        "Your manuscript \"{title}\" passed the technical check.",
        "workflow_event.html",
    ),
    EventKind.EDITOR_ASSIGNED: (
        "New manuscript assignment",
        "You have been assigned as handling editor for \"{title}\".",
        "workflow_event.html",
    ),
    EventKind.EDITOR_UNASSIGNED: (
        "Assignment removed",
        "You are no longer the handling editor for \"{title}\".",
        "workflow_event.html",
    ),
    EventKind.REVIEWER_INVITED: (
        "Invitation to review",
        "You have been invited to review \"{title}\".",
        "reviewer_invited.html",
    ),
    EventKind.REVIEW_INVITATION_ANSWERED: (
        "Review invitation answered",
        "A reviewer has responded to the invitation for \"{title}\".",
        "workflow_event.html",
    ),
    EventKind.REVIEW_SUBMITTED: (
        "Review submitted",
        "A review has been submitted for \"{title}\".",
        "workflow_event.html",
    ),
    EventKind.REVIEWS_COMPLETED: (
        "All reviews completed",
        "All reviews for \"{title}\" are complete.",
        "workflow_event.html",
    ),
    EventKind.DECISION_RECORDED: (
        "Editorial decision",
        "A decision has been recorded for \"{title}\".",
        "decision_recorded.html",
    ),
    EventKind.REVISION_SUBMITTED: (
        "Revision submitted",
        "A revised version of \"{title}\" has been submitted.",
        "workflow_event.html",
    ),
    EventKind.MANUSCRIPT_PUBLISHED: (
        "Manuscript published",
        "Your manuscript \"{title}\" has been published.",
        "workflow_event.html",
    ),
    EventKind.REVIEW_OVERDUE: (
        "Review overdue",
        "Your review of \"{title}\" is overdue.",
        "review_overdue.html",
    ),
}

_REVIEWER_KINDS = frozenset({EventKind.REVIEWER_INVITED, EventKind.REVIEW_OVERDUE})
_EDITOR_KINDS = frozenset(
    {
        EventKind.EDITOR_ASSIGNED,
        EventKind.EDITOR_UNASSIGNED,
        EventKind.REVIEW_INVITATION_ANSWERED,
        EventKind.REVIEW_SUBMITTED,
    }
)


def _action_url(event: WorkflowEvent) -> str:
    if event.kind in _REVIEWER_KINDS:
        return "/dashboard?tab=reviewer"
    if event.kind in _EDITOR_KINDS:
        return "/dashboard?tab=editor"
    if event.manuscript_id:
        return f"/dashboard/author/manuscripts/{event.manuscript_id}"
    return "/dashboard/notifications"


class NotificationService:
    """
    通知服务：封装 notifications 表的写入

    中文注释: 写入使用 supabase_admin（service_role），避免 RLS 导致写入失败。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    def create_notification(self, payload: NotificationCreate, *, action_url: Optional[str] = None) -> Optional[Dict[str, Any]]:
        row = {
            **payload.model_dump(),
            "action_url": action_url or "/dashboard/notifications",
            "is_read": False,
        }
        try:
            res = self.client.table("notifications").insert(row).execute()
        except APIError as e:
            # 23503: user_id 外键指向 auth.users，演示用户写通知会失败，属预期情况
            text = str(e).lower()
            code = str(getattr(e, "code", "") or "").lower()
            if "23503" in code or "23503" in text:
                logger.debug("[Notifications] recipient %s has no auth user (ignored)", payload.user_id)
                return None
            raise
        rows = getattr(res, "data", None) or []
        return rows[0] if rows else None


@dataclass
class DispatchReport:
    delivered: int = 0
    emailed: int = 0
    failed: int = 0


class NotificationDispatcher:
    """
    领域事件投递（站内信 + 邮件）。

    中文注释:
    - 在引擎释放稿件锁之后调用（API 层通过 BackgroundTasks 调度）。
    - 尽力而为：任何失败只记日志，绝不向上抛出，也不会回滚已提交的状态变更。
    """

    def __init__(
        self,
        store: WorkflowStore,
        *,
        notifications: Optional[NotificationService] = None,
        email: Optional[EmailService] = None,
    ) -> None:
        self.store = store
        if notifications is None and store.supports_notifications:
            notifications = NotificationService()
        if notifications is None:
            logger.info("[Notifications] store has no notifications table, in-app notifications disabled")
        self.notifications: Optional[NotificationService] = notifications
        self.email = email or EmailService()

    def _render(self, event: WorkflowEvent) -> tuple[str, str, str]:
        title, body, template = _EVENT_COPY[event.kind]
        manuscript_title = str(event.payload.get("title") or "your manuscript")
        return title, body.format(title=manuscript_title), template

    def _notify_in_app(self, event: WorkflowEvent, subject: str, message: str, report: DispatchReport) -> None:
        try:
            created = self.notifications.create_notification(
                NotificationCreate(
                    user_id=event.recipient_id,
                    manuscript_id=event.manuscript_id,
                    type=event.kind.value,
                    title=subject,
                    content=message[:2000],
                ),
                action_url=_action_url(event),
            )
            if created is not None:
                report.delivered += 1
        except Exception as e:
            report.failed += 1
            logger.error("[Notifications] in-app notification for %s failed: %s", event.recipient_id, e, exc_info=True)

    def dispatch_one(self, event: WorkflowEvent, report: DispatchReport) -> None:
        subject, message, template = self._render(event)

        if self.notifications is not None:
            self._notify_in_app(event, subject, message, report)

        try:
            recipient = self.store.load_user(event.recipient_id)
            if recipient is None or not recipient.email:
                return
            sent = self.email.send_template_email(
                to_email=recipient.email,
                subject=f"[{JOURNAL_NAME}] {subject}",
                template_name=template,
                context={
                    **event.payload,
                    "subject": subject,
                    "message": message,
                    "recipient_name": recipient.display_name,
                    "journal_name": JOURNAL_NAME,
                },
            )
            if sent:
                report.emailed += 1
        except Exception as e:
            report.failed += 1
            logger.error("[Notifications] email for %s failed: %s", event.recipient_id, e, exc_info=True)

    def dispatch(self, events: Iterable[WorkflowEvent]) -> DispatchReport:
        report = DispatchReport()
        for event in events:
            self.dispatch_one(event, report)
        if report.failed:
            logger.warning("[Notifications] dispatch finished with %d failure(s)", report.failed)
        return report
