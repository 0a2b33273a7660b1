"""技能钱包的晋级算法。

这是唯一被允许写 ``student_skills`` 的代码路径：

- 首次获得：新建条目，``level = required_level or 1``，``progress = 0``。
- 再次获得：``level`` 每次 +1 但不超过 ``required_level``（已高于时保持不变），
  ``progress`` 每次 +25，封顶 100。

等级与进度在 SQL 中用 ``CASE`` 计算，单条 UPDATE 完成，行锁保证并发批准时
不会丢失步进。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import SkillAction, StudentSkill
from app.models.skill import LEDGER_WRITE_OPTION, ledger_write

logger = logging.getLogger(__name__)

PROGRESS_STEP = 25
MAX_PROGRESS = 100


@dataclass
class LedgerEntryResult:
    skill_id: int
    action: SkillAction
    level: int
    progress: float


class SkillLedger:
    """按 (学生, 技能) 创建或推进钱包条目。"""

    def advance(
        self,
        db: Session,
        *,
        student_id: int,
        skill_id: int,
        required_level: Optional[int],
        project_id: int,
        submission_id: int,
        endorsed_by: int,
    ) -> LedgerEntryResult:
        existing_id = db.execute(
            select(StudentSkill.id)
            .where(StudentSkill.student_id == student_id, StudentSkill.skill_id == skill_id)
            .with_for_update()
        ).scalar_one_or_none()

        if existing_id is None:
            created = self._create(
                db,
                student_id=student_id,
                skill_id=skill_id,
                required_level=required_level,
                project_id=project_id,
                submission_id=submission_id,
                endorsed_by=endorsed_by,
            )
            if created is not None:
                return created
            # 并发插入撞上唯一约束：对方已建好条目，转为推进
            logger.info(
                "Concurrent first award for student %s skill %s, advancing instead",
                student_id,
                skill_id,
            )

        return self._advance_existing(
            db,
            student_id=student_id,
            skill_id=skill_id,
            required_level=required_level,
            project_id=project_id,
            submission_id=submission_id,
        )

    def _create(
        self,
        db: Session,
        *,
        student_id: int,
        skill_id: int,
        required_level: Optional[int],
        project_id: int,
        submission_id: int,
        endorsed_by: int,
    ) -> Optional[LedgerEntryResult]:
        level = required_level or 1
        entry = StudentSkill(
            student_id=student_id,
            skill_id=skill_id,
            level=level,
            progress=0,
            project_id=project_id,
            submission_id=submission_id,
            endorsed_by=endorsed_by,
        )
        try:
            with db.begin_nested(), ledger_write(db):
                db.add(entry)
                db.flush()
        except IntegrityError:
            return None
        return LedgerEntryResult(skill_id=skill_id, action=SkillAction.CREATED, level=level, progress=0)

    def _advance_existing(
        self,
        db: Session,
        *,
        student_id: int,
        skill_id: int,
        required_level: Optional[int],
        project_id: int,
        submission_id: int,
    ) -> LedgerEntryResult:
        if required_level is None:
            new_level = StudentSkill.level + 1
        else:
            new_level = case(
                (StudentSkill.level < required_level, StudentSkill.level + 1),
                else_=StudentSkill.level,
            )
        new_progress = case(
            (StudentSkill.progress + PROGRESS_STEP >= MAX_PROGRESS, MAX_PROGRESS),
            else_=StudentSkill.progress + PROGRESS_STEP,
        )

        stmt = (
            update(StudentSkill)
            .where(StudentSkill.student_id == student_id, StudentSkill.skill_id == skill_id)
            .values(
                level=new_level,
                progress=new_progress,
                project_id=project_id,
                submission_id=submission_id,
                last_updated=datetime.now(timezone.utc),
            )
            .execution_options(**{LEDGER_WRITE_OPTION: True, "synchronize_session": False})
        )
        db.execute(stmt)

        level, progress = db.execute(
            select(StudentSkill.level, StudentSkill.progress).where(
                StudentSkill.student_id == student_id, StudentSkill.skill_id == skill_id
            )
        ).one()
        return LedgerEntryResult(
            skill_id=skill_id, action=SkillAction.UPDATED, level=level, progress=progress
        )
