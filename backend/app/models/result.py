from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.core.errors import WorkflowError
from app.models.notification import WorkflowEvent


class WorkflowErrorInfo(BaseModel):
    code: str
    message: str
    details: list[dict[str, Any]] = Field(default_factory=list)


class WorkflowResult(BaseModel):
    """
    引擎公开操作的统一返回结构（成功/失败二选一）。

    中文注释:
    - 业务规则/校验失败不抛异常，以 success=False + error 返回；
    - 只有基础设施错误（StorageError）才向上抛出。
    """

    success: bool
    data: Any = None
    error: Optional[WorkflowErrorInfo] = None
    warnings: list[str] = Field(default_factory=list)
    events: list[WorkflowEvent] = Field(default_factory=list)

    @classmethod
    def ok(
        cls,
        data: Any = None,
        *,
        events: list[WorkflowEvent] | None = None,
        warnings: list[str] | None = None,
    ) -> "WorkflowResult":
        return cls(success=True, data=data, events=list(events or []), warnings=list(warnings or []))

    @classmethod
    def fail(cls, exc: WorkflowError) -> "WorkflowResult":
        return cls(
            success=False,
            error=WorkflowErrorInfo(code=exc.code, message=exc.message, details=exc.details),
        )

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None
