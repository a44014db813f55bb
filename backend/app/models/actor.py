from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.role_matrix import Capability, Role, has_capability, normalize_roles


class ActorContext(BaseModel):
    """
    显式的调用者上下文。

    中文注释: 引擎的每个操作都必须显式传入 actor，不允许从全局 session/请求上下文读取身份。
    """

    user_id: str
    roles: frozenset[Role] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True)

    @field_validator("roles", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        if isinstance(value, (list, tuple, set, frozenset)):
            return normalize_roles(value)
        return value

    def can(self, capability: Capability) -> bool:
        return has_capability(self.roles, capability)

    def has_role(self, role: Role) -> bool:
        return role in self.roles
