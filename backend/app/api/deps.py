from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from app.core.auth_utils import get_current_user
from app.core.config import WorkflowConfig, app_config
from app.core.role_matrix import Role
from app.models.actor import ActorContext
from app.services.notification_service import NotificationDispatcher
from app.services.store import InMemoryWorkflowStore, WorkflowStore
from app.services.workflow_service import WorkflowStateMachine

logger = logging.getLogger("journalflow.api")


def build_store() -> WorkflowStore:
    if app_config.store_backend == "supabase":
        from app.services.supabase_store import SupabaseWorkflowStore

        return SupabaseWorkflowStore()
    logger.info("[API] using in-memory workflow store")
    return InMemoryWorkflowStore()


@lru_cache(maxsize=1)
def get_workflow_engine() -> WorkflowStateMachine:
    """
    进程内单例引擎（稿件锁必须在同一进程内共享才有意义）。
    """
    return WorkflowStateMachine(build_store(), config=WorkflowConfig.from_env())


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_workflow_engine().store)


def get_actor(
    current_user: dict = Depends(get_current_user),
    engine: WorkflowStateMachine = Depends(get_workflow_engine),
) -> ActorContext:
    """
    组装显式的 ActorContext：身份来自 JWT，角色来自 user_profiles。

    中文注释: 没有 profile 的登录用户按 author 处理（只能投稿/查看自己的稿件）。
    """
    user_id = str(current_user["id"])
    profile = engine.store.load_user(user_id)
    if profile is None or not profile.is_active:
        return ActorContext(user_id=user_id, roles=frozenset({Role.AUTHOR}) if profile is None else frozenset())
    return ActorContext(user_id=user_id, roles=frozenset(profile.roles))
