"""
Revision Service: 修订循环（版本分配 + 完整性校验）

中文注释:
1. 版本号从 1 开始（v1 = 初始投稿），严格递增、无空洞、不复用。
2. 版本分配依赖调用方持有的稿件锁：读当前最大版本 + 插入新版本在同一临界区内完成。
3. 从不覆盖历史版本，每次修回都是一条新记录。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from app.core.errors import InvalidStateError, NotAuthorError, ValidationError
from app.models.actor import ActorContext
from app.models.manuscript import Manuscript, ManuscriptStatus, SubmissionFile
from app.models.revision import (
    Revision,
    RevisionFile,
    RevisionFileKind,
    RevisionSubmission,
    ValidationResult,
)
from app.services.workflow_context import WorkflowContext

logger = logging.getLogger("journalflow.revisions")


@dataclass
class RevisionOutcome:
    manuscript: Manuscript
    revision: Revision
    warnings: list[str] = field(default_factory=list)


class RevisionManager:
    """修订版本管理"""

    def __init__(self, ctx: WorkflowContext) -> None:
        self.ctx = ctx

    def current_version(self, manuscript: Manuscript) -> int:
        revisions = self.ctx.store.list_revisions(manuscript.id)
        latest = revisions[-1].version_number if revisions else 0
        return max(manuscript.version, latest)

    def validate_revision_submission(
        self,
        submission: RevisionSubmission,
        manuscript: Optional[Manuscript] = None,
    ) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        cfg = self.ctx.config

        response = submission.response_to_reviewers.strip()
        kinds = {f.kind for f in submission.files}
        if not response and RevisionFileKind.RESPONSE_LETTER not in kinds:
            errors.append("Response to reviewers is required")

        if not submission.files:
            errors.append("At least one file is required")

        revised = [f for f in submission.files if f.kind == RevisionFileKind.REVISED_MANUSCRIPT]
        if submission.files and not revised:
            errors.append("Revised manuscript file is required")
        for f in revised:
            if not f.name.lower().endswith(cfg.revised_manuscript_extensions):
                errors.append("Revised manuscript must be in PDF, DOC, or DOCX format")
                break

        if manuscript is not None and submission.expected_version is not None:
            expected = self.current_version(manuscript) + 1
            if submission.expected_version != expected:
                errors.append(f"Version mismatch: expected version {expected}, got {submission.expected_version}")

        if RevisionFileKind.CLEAN_COPY not in kinds:
            warnings.append("Clean copy manuscript (without track changes) is strongly recommended")
        if RevisionFileKind.CHANGE_TRACKING not in kinds:
            warnings.append("Change tracking document is recommended for comprehensive review")
        if response and len(response) < cfg.revision_recommended_response_length:
            warnings.append(
                f"Response to reviewers is shorter than the recommended {cfg.revision_recommended_response_length} characters"
            )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def record_initial_version(self, manuscript: Manuscript, files: list[SubmissionFile]) -> Revision:
        revision = Revision(
            id=self.ctx.new_id(),
            manuscript_id=manuscript.id,
            version_number=1,
            submitted_by=manuscript.author_id,
            response_to_reviewers=None,
            change_log="Initial submission",
            files=[
                RevisionFile(name=f.name, kind=RevisionFileKind.REVISED_MANUSCRIPT, url=f.url)
                if f.kind == "manuscript"
                else RevisionFile(name=f.name, kind=RevisionFileKind.SUPPLEMENTARY, url=f.url)
                for f in files
            ],
            submitted_at=manuscript.submitted_at,
        )
        self.ctx.store.insert_revision(revision)
        return revision

    def submit_revision(
        self,
        manuscript: Manuscript,
        actor: ActorContext,
        submission: RevisionSubmission,
    ) -> RevisionOutcome:
        if actor.user_id != manuscript.author_id:
            raise NotAuthorError("Only the manuscript author can submit a revision")
        if manuscript.status != ManuscriptStatus.REVISION_REQUESTED:
            raise InvalidStateError(
                f"Manuscript is not awaiting revision ({manuscript.status.value})",
                details=[{"status": manuscript.status.value}],
            )

        checked = self.validate_revision_submission(submission, manuscript)
        if not checked.is_valid:
            raise ValidationError(
                "Revision submission is incomplete",
                details=[{"message": e} for e in checked.errors],
            )

        next_version = self.current_version(manuscript) + 1
        revision = Revision(
            id=self.ctx.new_id(),
            manuscript_id=manuscript.id,
            version_number=next_version,
            submitted_by=actor.user_id,
            response_to_reviewers=submission.response_to_reviewers.strip(),
            change_log=submission.change_log.strip() or None,
            files=list(submission.files),
            submitted_at=self.ctx.now(),
        )
        self.ctx.store.insert_revision(revision)

        manuscript.version = next_version
        target = ManuscriptStatus(self.ctx.config.rereview_policy)
        self.ctx.transition(
            manuscript,
            target,
            changed_by=actor.user_id,
            comment=f"revision v{next_version} submitted",
        )
        logger.info("[Revision] manuscript %s -> v%s (%s)", manuscript.id, next_version, target.value)
        return RevisionOutcome(manuscript=manuscript, revision=revision, warnings=checked.warnings)

    def history(self, manuscript_id: str) -> list[Revision]:
        return self.ctx.store.list_revisions(manuscript_id)
