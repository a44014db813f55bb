from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.models.manuscript import ManuscriptStatus


class DecisionKind(str, Enum):
    ACCEPT = "accept"
    MINOR_REVISION = "minor_revision"
    MAJOR_REVISION = "major_revision"
    REJECT = "reject"


# 决策 -> (允许的源状态, 目标状态)
DECISION_TRANSITIONS: dict[DecisionKind, tuple[frozenset[ManuscriptStatus], ManuscriptStatus]] = {
    DecisionKind.ACCEPT: (
        frozenset({ManuscriptStatus.UNDER_REVIEW, ManuscriptStatus.REVISION_REQUESTED}),
        ManuscriptStatus.ACCEPTED,
    ),
    DecisionKind.MINOR_REVISION: (
        frozenset({ManuscriptStatus.UNDER_REVIEW}),
        ManuscriptStatus.REVISION_REQUESTED,
    ),
    DecisionKind.MAJOR_REVISION: (
        frozenset({ManuscriptStatus.UNDER_REVIEW}),
        ManuscriptStatus.REVISION_REQUESTED,
    ),
    DecisionKind.REJECT: (
        frozenset(
            {
                ManuscriptStatus.TECHNICAL_CHECK,
                ManuscriptStatus.UNDER_REVIEW,
                ManuscriptStatus.REVISION_REQUESTED,
            }
        ),
        ManuscriptStatus.REJECTED,
    ),
}

DECISION_LABELS: dict[DecisionKind, str] = {
    DecisionKind.ACCEPT: "Accepted",
    DecisionKind.REJECT: "Rejected",
    DecisionKind.MAJOR_REVISION: "Major Revision Requested",
    DecisionKind.MINOR_REVISION: "Minor Revision Requested",
}


class DecisionRequest(BaseModel):
    decision: DecisionKind
    comments: str = Field("", max_length=20000, description="给作者的决策意见")


class Decision(BaseModel):
    id: str
    manuscript_id: str
    editor_id: str
    decision: DecisionKind
    comments: str = ""
    manuscript_version: int = 1
    from_status: ManuscriptStatus
    to_status: ManuscriptStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
