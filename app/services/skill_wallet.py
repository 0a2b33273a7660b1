"""技能钱包只读服务与查看权限。"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.exceptions import ForbiddenError, NotFoundError
from app.models import StudentSkill, User, UserRole
from app.services.authorization import RoleReviewerPolicy

IMMUTABLE_MESSAGE = (
    "Skills in wallet are immutable. Level and progress can only change through "
    "submission approval."
)


class ConsentReader(Protocol):
    def has_approved_consent(self, db: Session, parent_id: int, student_id: int) -> bool:
        ...


class NoConsentReader:
    """家长同意书由外部服务维护；未接入时一律视为未同意。"""

    def has_approved_consent(self, db: Session, parent_id: int, student_id: int) -> bool:
        return False


class SkillWalletService:
    def __init__(self, policy: RoleReviewerPolicy, consent_reader: Optional[ConsentReader] = None):
        self.policy = policy
        self.consent_reader = consent_reader or NoConsentReader()

    def ensure_can_view(self, db: Session, viewer: User, student_id: int) -> None:
        if viewer.id == student_id:
            return
        if viewer.role == UserRole.PARENT:
            if self.consent_reader.has_approved_consent(db, viewer.id, student_id):
                return
            raise ForbiddenError("Parental consent is required to view this skill wallet")
        if self.policy.is_reviewer(viewer):
            return
        raise ForbiddenError("You can only view your own skill wallet")

    def get_wallet(self, db: Session, student_id: int) -> Dict[str, Any]:
        student = self.policy.get_user(db, student_id)
        if student is None:
            raise NotFoundError("Student", student_id)

        entries = list(
            db.execute(
                select(StudentSkill)
                .options(selectinload(StudentSkill.skill))
                .where(StudentSkill.student_id == student_id)
                .order_by(StudentSkill.endorsement_date.desc(), StudentSkill.id.desc())
            ).scalars()
        )
        return {"student_id": student_id, "total_skills": len(entries), "skills": entries}

    def get_wallet_for(self, db: Session, viewer: User, student_id: int) -> Dict[str, Any]:
        self.ensure_can_view(db, viewer, student_id)
        return self.get_wallet(db, student_id)

    @staticmethod
    def reject_modification() -> None:
        """任何对钱包条目的直接新建/修改/删除请求都被拒绝，与角色无关。"""

        raise ForbiddenError(IMMUTABLE_MESSAGE)
