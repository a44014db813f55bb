from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class EditorAssignment(BaseModel):
    """
    责任编辑（Associate Editor）分配记录。

    中文注释: 每篇稿件同一时刻最多一条 active 记录；改派必须先 unassign 再 assign。
    """

    id: str
    manuscript_id: str
    editor_id: str
    assigned_by: str
    assigned_at: datetime
    window_days: int = Field(14, ge=1)
    active: bool = True
    unassigned_at: Optional[datetime] = None
    unassigned_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def deadline(self) -> datetime:
        return self.assigned_at + timedelta(days=self.window_days)


class TechnicalCheckList(BaseModel):
    """形式审查清单（全部通过才允许进入下一阶段）"""

    file_completeness: bool = True
    plagiarism_check: bool = True
    format_compliance: bool = True
    ethical_compliance: bool = True
    notes: str = ""

    def failed_items(self) -> list[str]:
        return [
            name
            for name in ("file_completeness", "plagiarism_check", "format_compliance", "ethical_compliance")
            if not getattr(self, name)
        ]


class ReviewerCandidate(BaseModel):
    """审稿人推荐结果"""

    reviewer_id: str
    name: str
    email: Optional[str] = None
    score: float
    active_assignments: int = 0
