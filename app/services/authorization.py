"""审阅能力判定。

"谁可以批准/驳回/评分" 的规则只在这里定义一次，由审阅编排器和评分
标准评价服务注入使用。
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import ForbiddenError, NotFoundError
from app.models import User


class ReviewerCapability(Protocol):
    """审阅编排器与评价服务依赖的审阅能力接口。"""

    def has_reviewer_capability(self, db: Session, user_id: int) -> bool:
        ...

    def require_reviewer(self, db: Session, user_id: int, action: str) -> User:
        ...


class RoleReviewerPolicy:
    """按用户角色判定审阅能力。"""

    def __init__(self, reviewer_roles: Iterable[str]) -> None:
        self.reviewer_roles = frozenset(role.lower() for role in reviewer_roles)

    def get_user(self, db: Session, user_id: int) -> Optional[User]:
        stmt = select(User).where(User.id == user_id, User.deleted_at.is_(None))
        return db.execute(stmt).scalar_one_or_none()

    def is_reviewer(self, user: User) -> bool:
        return user.role.value in self.reviewer_roles

    def has_reviewer_capability(self, db: Session, user_id: int) -> bool:
        user = self.get_user(db, user_id)
        return user is not None and self.is_reviewer(user)

    def require_reviewer(self, db: Session, user_id: int, action: str) -> User:
        """返回审阅人；不存在抛 404，无审阅能力抛 403。"""

        user = self.get_user(db, user_id)
        if user is None:
            raise NotFoundError("Reviewer", user_id, detail="Reviewer not found")
        if not self.is_reviewer(user):
            raise ForbiddenError(f"Only reviewers can {action}")
        return user
