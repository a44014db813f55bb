from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """
    业务规则/校验类错误的基类。

    中文注释:
    - 引擎内部以异常形式抛出，公开操作统一捕获并转换为 WorkflowResult（不向调用方抛出）。
    - http_status 仅供 API 层映射使用，服务层不依赖 FastAPI。
    """

    code = "workflow_error"
    http_status = 400

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details or [])


class ValidationError(WorkflowError):
    code = "validation_error"
    http_status = 422


class InvalidTransitionError(WorkflowError):
    code = "invalid_transition"
    http_status = 409


class InvalidStateError(InvalidTransitionError):
    code = "invalid_state"


class AccessDeniedError(WorkflowError):
    code = "access_denied"
    http_status = 403


class NotAuthorError(AccessDeniedError):
    code = "not_author"


class RoleError(AccessDeniedError):
    code = "role_error"


class NotFoundError(WorkflowError):
    code = "not_found"
    http_status = 404


class DuplicateAssignmentError(WorkflowError):
    code = "duplicate_assignment"


class DuplicateSubmissionError(WorkflowError):
    code = "duplicate_submission"


class AlreadyAssignedError(WorkflowError):
    code = "already_assigned"


class AlreadyCompletedError(WorkflowError):
    code = "already_completed"


class AmbiguousAssignmentError(WorkflowError):
    code = "ambiguous_assignment"
    http_status = 409


class NoEligibleCandidateError(WorkflowError):
    code = "no_eligible_candidate"
    http_status = 409


class CapacityExceededError(WorkflowError):
    code = "capacity_exceeded"
    http_status = 409


class ConflictOfInterestError(WorkflowError):
    code = "conflict_of_interest"
    http_status = 409


class StorageError(Exception):
    """
    基础设施错误（存储不可用等）。

    中文注释: 引擎不捕获该异常，直接向调用方传播；API 层由中间件统一转为 503。
    """


ERROR_STATUS_BY_CODE: dict[str, int] = {
    cls.code: cls.http_status
    for cls in (
        WorkflowError,
        ValidationError,
        InvalidTransitionError,
        InvalidStateError,
        AccessDeniedError,
        NotAuthorError,
        RoleError,
        NotFoundError,
        DuplicateAssignmentError,
        DuplicateSubmissionError,
        AlreadyAssignedError,
        AlreadyCompletedError,
        AmbiguousAssignmentError,
        NoEligibleCandidateError,
        CapacityExceededError,
        ConflictOfInterestError,
    )
}


def http_status_for(code: str | None) -> int:
    return ERROR_STATUS_BY_CODE.get(str(code or ""), 400)
