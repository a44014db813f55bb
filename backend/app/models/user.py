from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.role_matrix import Capability, Role, has_capability, normalize_roles


class UserProfile(BaseModel):
    """
    Database model for public.user_profiles

    中文注释:
    - roles 为能力来源（capability collaborator）；引擎只读取，不写入。
    - max_active_assignments 为空时使用 WorkflowConfig 中的默认容量。
    - completed/late/quality/last_review_at 用于审稿人推荐排序。
    """

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    affiliation: Optional[str] = None
    roles: List[Role] = Field(default_factory=lambda: [Role.AUTHOR])
    is_active: bool = True
    expertise: List[str] = Field(default_factory=list)
    max_active_assignments: Optional[int] = Field(None, ge=1)
    quality_score: int = Field(70, ge=0, le=100)
    completed_reviews: int = Field(0, ge=0)
    late_reviews: int = Field(0, ge=0)
    last_review_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("roles", mode="before")
    @classmethod
    def _normalize_roles(cls, value: object) -> object:
        if isinstance(value, (list, tuple, set, frozenset)):
            return sorted(normalize_roles(value), key=lambda r: r.value)
        return value

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def can(self, capability: Capability) -> bool:
        return has_capability(self.roles, capability)

    @property
    def display_name(self) -> str:
        return (self.full_name or self.email or self.id).strip()
