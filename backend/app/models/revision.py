"""
Revision Pydantic Models

中文注释: 修订循环的核心模型。版本号从 1 开始严格递增、无空洞；v1 即初始投稿。
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class RevisionFileKind(str, Enum):
    REVISED_MANUSCRIPT = "revised_manuscript"
    CLEAN_COPY = "clean_copy"
    RESPONSE_LETTER = "response_letter"
    CHANGE_TRACKING = "change_tracking"
    SUPPLEMENTARY = "supplementary"


class RevisionFile(BaseModel):
    """文件清单条目（文件本身由存储服务处理，这里只记录引用）"""

    name: str
    kind: RevisionFileKind = RevisionFileKind.REVISED_MANUSCRIPT
    url: str = ""


class RevisionSubmission(BaseModel):
    """Author 提交修订稿时使用的模型"""

    manuscript_id: str
    response_to_reviewers: str = ""
    change_log: str = ""
    files: list[RevisionFile] = Field(default_factory=list)
    expected_version: Optional[int] = Field(
        None, ge=2, description="客户端期望的新版本号（可选，用于版本连续性校验）"
    )


class Revision(BaseModel):
    """数据库中完整的版本记录模型"""

    id: str
    manuscript_id: str
    version_number: int = Field(..., ge=1, description="版本号，从 1 开始")
    submitted_by: str
    response_to_reviewers: Optional[str] = None
    change_log: Optional[str] = None
    files: list[RevisionFile] = Field(default_factory=list)
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RevisionSubmitResult(BaseModel):
    """提交修订稿后的返回"""

    success: bool = True
    version_number: int
    revision_id: str
    message: str
    manuscript_status: str
