"""审阅编排：批准、驳回、评论、开始审阅与内容治理。

每个写操作都在一个 ``transaction(db)`` 内完成，提交行用 ``SELECT ... FOR UPDATE``
加锁，因此同一提交的并发批准会串行化，后到者看到 ``approved`` 状态后失败，
不会重复发放技能。通知在事务提交之后才投递。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import transaction
from app.exceptions import NotFoundError, ReviewValidationError
from app.models import ReviewStatus, SkillAction, Submission, SubmissionStatus
from app.schemas.review import (
    AddCommentRequest,
    ApproveSubmissionRequest,
    RejectSubmissionRequest,
    SkillGenerated,
)
from app.services.authorization import ReviewerCapability
from app.services.notifications import (
    NotificationOutbox,
    Notifier,
    ProjectApproved,
    SkillEarned,
)
from app.services.skill_ledger import SkillLedger
from app.services.submission_state import (
    MODERATION_TARGETS,
    check_transition,
    transition,
)

logger = logging.getLogger(__name__)

COMMENT_SEPARATOR = "\n\n---\n"

LISTABLE_STATUSES = (
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.APPROVED,
    SubmissionStatus.REJECTED,
)


@dataclass
class ReviewOutcome:
    submission: Submission
    skills_generated: Optional[List[SkillGenerated]] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_comment(comment: Optional[str], message: str) -> str:
    cleaned = (comment or "").strip()
    if not cleaned:
        raise ReviewValidationError(message, field="comment")
    return cleaned


class ReviewService:
    def __init__(self, policy: ReviewerCapability, ledger: SkillLedger, notifier: Notifier) -> None:
        self.policy = policy
        self.ledger = ledger
        self.notifier = notifier

    # ---- 读取 ----

    @staticmethod
    def _load_submission(db: Session, submission_id: int, lock: bool = False) -> Submission:
        stmt = select(Submission).where(
            Submission.id == submission_id, Submission.deleted_at.is_(None)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        submission = db.execute(stmt).scalar_one_or_none()
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission

    def get_submission_for_review(self, db: Session, submission_id: int, reviewer_id: int) -> Submission:
        self.policy.require_reviewer(db, reviewer_id, "view submissions for review")
        return self._load_submission(db, submission_id)

    def list_submissions_for_review(
        self,
        db: Session,
        reviewer_id: int,
        status: Optional[SubmissionStatus] = None,
        project_id: Optional[int] = None,
    ) -> List[Submission]:
        self.policy.require_reviewer(db, reviewer_id, "view submissions for review")

        stmt = select(Submission).where(Submission.deleted_at.is_(None))
        if status is not None:
            stmt = stmt.where(Submission.status == status)
        else:
            stmt = stmt.where(Submission.status.in_(LISTABLE_STATUSES))
        if project_id is not None:
            stmt = stmt.where(Submission.project_id == project_id)
        stmt = stmt.order_by(Submission.submitted_at.desc(), Submission.id.desc())
        return list(db.execute(stmt).scalars())

    # ---- 状态迁移 ----

    def approve_submission(
        self,
        db: Session,
        submission_id: int,
        data: ApproveSubmissionRequest,
        reviewer_id: int,
    ) -> ReviewOutcome:
        outbox = NotificationOutbox()
        skills_generated: Optional[List[SkillGenerated]] = None

        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            check_transition(submission, SubmissionStatus.APPROVED, "approve")
            reviewer = self.policy.require_reviewer(db, reviewer_id, "approve submissions")

            transition(submission, SubmissionStatus.APPROVED, "approve")
            submission.reviewed_by = reviewer.id
            submission.reviewed_at = _utcnow()
            submission.review_status = ReviewStatus.APPROVED
            submission.review_comment = data.comment
            if data.grade is not None:
                submission.grade = data.grade
            submission.feedback = data.comment or submission.feedback

            project = submission.project
            student = submission.student
            template = project.template if project is not None else None
            mappings = list(template.skills) if template is not None else []

            if mappings:
                skills_generated = []
            for mapping in mappings:
                try:
                    # 悬空映射（技能行缺失）同样按单技能失败处理
                    skill_name = mapping.skill.name
                    with db.begin_nested():
                        result = self.ledger.advance(
                            db,
                            student_id=submission.student_id,
                            skill_id=mapping.skill_id,
                            required_level=mapping.required_level,
                            project_id=submission.project_id,
                            submission_id=submission.id,
                            endorsed_by=reviewer.id,
                        )
                except Exception:
                    # 单个技能失败只跳过该技能，批准本身继续
                    logger.exception(
                        "Failed to advance skill %s for submission %s",
                        mapping.skill_id,
                        submission.id,
                    )
                    continue

                skills_generated.append(
                    SkillGenerated(
                        skill_id=mapping.skill_id,
                        skill_name=skill_name,
                        action=result.action,
                        level=result.level,
                    )
                )
                if result.action == SkillAction.CREATED:
                    outbox.add(SkillEarned(student.id, skill_name, student.phone_number))

            outbox.add(
                ProjectApproved(
                    student.id,
                    project.name if project is not None else f"#{submission.project_id}",
                    student.phone_number,
                )
            )

        logger.info(
            "Submission %s approved by %s, %d skills generated",
            submission_id,
            reviewer_id,
            len(skills_generated or []),
        )
        outbox.dispatch(self.notifier)
        return ReviewOutcome(submission=submission, skills_generated=skills_generated)

    def reject_submission(
        self,
        db: Session,
        submission_id: int,
        data: RejectSubmissionRequest,
        reviewer_id: int,
    ) -> ReviewOutcome:
        comment = _require_comment(data.comment, "Rejection comment is required")

        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            check_transition(submission, SubmissionStatus.REJECTED, "reject")
            reviewer = self.policy.require_reviewer(db, reviewer_id, "reject submissions")

            transition(submission, SubmissionStatus.REJECTED, "reject")
            submission.reviewed_by = reviewer.id
            submission.reviewed_at = _utcnow()
            submission.review_status = ReviewStatus.REJECTED
            submission.review_comment = comment
            submission.feedback = comment
            # 驳回时未给分数即清空旧分数，0 分照常保留
            submission.grade = data.grade

        logger.info("Submission %s rejected by %s", submission_id, reviewer_id)
        return ReviewOutcome(submission=submission)

    def add_comment(
        self,
        db: Session,
        submission_id: int,
        data: AddCommentRequest,
        reviewer_id: int,
    ) -> Submission:
        """在任意状态下追加带时间戳的评论，不改变状态。"""

        comment = _require_comment(data.comment, "Comment is required")

        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            reviewer = self.policy.require_reviewer(db, reviewer_id, "comment on submissions")

            now = _utcnow()
            existing = submission.review_comment
            history = (
                f"{existing}{COMMENT_SEPARATOR}{now.isoformat()}: {comment}" if existing else comment
            )
            submission.review_comment = history
            submission.feedback = history
            submission.reviewed_by = reviewer.id
            submission.reviewed_at = now

        return submission

    def start_review(self, db: Session, submission_id: int, reviewer_id: int) -> Submission:
        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            check_transition(submission, SubmissionStatus.UNDER_REVIEW, "start review of")
            self.policy.require_reviewer(db, reviewer_id, "start reviews")
            transition(submission, SubmissionStatus.UNDER_REVIEW, "start review of")

        logger.info("Submission %s is under review by %s", submission_id, reviewer_id)
        return submission

    def moderate(
        self,
        db: Session,
        submission_id: int,
        target: SubmissionStatus,
        moderator_id: int,
    ) -> Submission:
        """标记或移除提交；只改状态，不触碰审阅字段。"""

        if target not in MODERATION_TARGETS:
            raise ReviewValidationError(
                "Moderation status must be 'flagged' or 'removed'", field="status"
            )

        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            check_transition(submission, target, "moderate")
            self.policy.require_reviewer(db, moderator_id, "moderate submissions")
            transition(submission, target, "moderate")

        logger.info("Submission %s moderated to %s by %s", submission_id, target.value, moderator_id)
        return submission
