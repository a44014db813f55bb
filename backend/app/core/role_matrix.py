from __future__ import annotations

from enum import Enum
from typing import Iterable

# 中文注释：
# - 这里集中定义“角色 -> 能力”权限矩阵，避免权限逻辑散落在各服务/路由。
# - 角色为封闭枚举；输入中的连字符写法（editor-in-chief）统一归一化为下划线。


class Role(str, Enum):
    AUTHOR = "author"
    REVIEWER = "reviewer"
    EDITOR = "editor"
    MANAGING_EDITOR = "managing_editor"
    EDITOR_IN_CHIEF = "editor_in_chief"
    EDITORIAL_ASSISTANT = "editorial_assistant"
    ADMIN = "admin"


class Capability(str, Enum):
    SUBMIT_MANUSCRIPT = "manuscript:submit"
    TECHNICAL_CHECK = "precheck:technical_check"
    ASSIGN_EDITOR = "editor:assign"
    HANDLE_MANUSCRIPT = "editor:handle_manuscript"
    ASSIGN_REVIEWER = "reviewer:assign"
    REVIEW_MANUSCRIPT = "reviewer:submit_report"
    VIEW_ALL_REVIEWS = "review:view_all"
    RECORD_DECISION = "decision:record"
    PUBLISH_ISSUE = "issue:publish"
    DECLARE_CONFLICTS = "conflict:declare"
    SEND_REMINDERS = "review:send_reminders"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.AUTHOR: frozenset({Capability.SUBMIT_MANUSCRIPT}),
    Role.REVIEWER: frozenset(
        {
            Capability.REVIEW_MANUSCRIPT,
            Capability.DECLARE_CONFLICTS,
        }
    ),
    Role.EDITORIAL_ASSISTANT: frozenset(
        {
            Capability.TECHNICAL_CHECK,
            Capability.ASSIGN_EDITOR,
            Capability.VIEW_ALL_REVIEWS,
            Capability.SEND_REMINDERS,
        }
    ),
    Role.EDITOR: frozenset(
        {
            Capability.SUBMIT_MANUSCRIPT,
            Capability.TECHNICAL_CHECK,
            Capability.HANDLE_MANUSCRIPT,
            Capability.ASSIGN_REVIEWER,
            Capability.VIEW_ALL_REVIEWS,
            Capability.RECORD_DECISION,
            Capability.DECLARE_CONFLICTS,
            Capability.SEND_REMINDERS,
        }
    ),
    Role.MANAGING_EDITOR: frozenset(
        {
            Capability.TECHNICAL_CHECK,
            Capability.ASSIGN_EDITOR,
            Capability.ASSIGN_REVIEWER,
            Capability.VIEW_ALL_REVIEWS,
            Capability.RECORD_DECISION,
            Capability.PUBLISH_ISSUE,
            Capability.DECLARE_CONFLICTS,
            Capability.SEND_REMINDERS,
        }
    ),
    Role.EDITOR_IN_CHIEF: frozenset(
        {
            Capability.TECHNICAL_CHECK,
            Capability.ASSIGN_EDITOR,
            Capability.HANDLE_MANUSCRIPT,
            Capability.ASSIGN_REVIEWER,
            Capability.VIEW_ALL_REVIEWS,
            Capability.RECORD_DECISION,
            Capability.PUBLISH_ISSUE,
            Capability.DECLARE_CONFLICTS,
            Capability.SEND_REMINDERS,
        }
    ),
    Role.ADMIN: frozenset(Capability),
}


def normalize_role(raw: object) -> Role | None:
    if isinstance(raw, Role):
        return raw
    value = str(raw or "").strip().lower().replace("-", "_")
    if not value:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def normalize_roles(roles: Iterable[object] | None) -> frozenset[Role]:
    """
    将输入角色归一化（小写、连字符转下划线、丢弃未知角色）。
    """
    out: set[Role] = set()
    for raw in roles or []:
        role = normalize_role(raw)
        if role is not None:
            out.add(role)
    return frozenset(out)


def capabilities_for(roles: Iterable[object] | None) -> frozenset[Capability]:
    caps: set[Capability] = set()
    for role in normalize_roles(roles):
        caps.update(ROLE_CAPABILITIES[role])
    return frozenset(caps)


def has_capability(roles: Iterable[object] | None, capability: Capability) -> bool:
    """
    判定角色集合是否具备某能力。

    中文注释：admin 拥有全部能力；其余角色按 ROLE_CAPABILITIES 显式授权。
    """
    return capability in capabilities_for(roles)
