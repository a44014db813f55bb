from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from app.core.config import WorkflowConfig
from app.core.errors import AccessDeniedError, InvalidTransitionError, NotFoundError
from app.core.role_matrix import Capability
from app.models.actor import ActorContext
from app.models.manuscript import Manuscript, ManuscriptStatus, StatusTransition
from app.services.store import WorkflowStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkflowContext:
    """
    各引擎组件共享的依赖：存储、策略配置、时钟。

    中文注释:
    - clock 可注入，测试里用固定时间推进“逾期/提醒间隔”等逻辑。
    - 所有状态变更必须走 transition()：统一校验状态图并写入审计日志。
    """

    store: WorkflowStore
    config: WorkflowConfig = field(default_factory=WorkflowConfig)
    clock: Callable[[], datetime] = utc_now

    def now(self) -> datetime:
        return self.clock()

    @staticmethod
    def new_id() -> str:
        return str(uuid4())

    def require_manuscript(self, manuscript_id: str) -> Manuscript:
        manuscript = self.store.load_manuscript(manuscript_id)
        if manuscript is None:
            raise NotFoundError(
                "Manuscript not found",
                details=[{"field": "manuscript_id", "value": manuscript_id}],
            )
        return manuscript

    @staticmethod
    def require_capability(actor: ActorContext, capability: Capability, message: str) -> None:
        if not actor.can(capability):
            raise AccessDeniedError(message, details=[{"capability": capability.value}])

    def transition(
        self,
        manuscript: Manuscript,
        to_status: ManuscriptStatus,
        *,
        changed_by: Optional[str],
        comment: Optional[str] = None,
    ) -> StatusTransition:
        """
        校验并执行一次状态流转（只改内存对象 + 写日志，manuscript 行由调用方最后落库）。
        """
        from_status = manuscript.status
        allowed = ManuscriptStatus.allowed_next(from_status.value)
        if to_status.value not in allowed:
            raise InvalidTransitionError(
                f"Invalid transition: {from_status.value} -> {to_status.value}",
                details=[{"from": from_status.value, "to": to_status.value, "allowed": sorted(allowed)}],
            )
        now = self.now()
        manuscript.status = to_status
        manuscript.updated_at = now
        log = StatusTransition(
            id=self.new_id(),
            manuscript_id=manuscript.id,
            from_status=from_status.value,
            to_status=to_status.value,
            changed_by=changed_by,
            comment=comment,
            created_at=now,
        )
        self.store.insert_transition(log)
        return log
