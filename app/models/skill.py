"""技能钱包（StudentSkill）模型定义。

每个 (学生, 技能) 一行。等级与进度只增不减，且只能通过批准提交时的
晋级算法修改；任何删除都会被拒绝。除了服务层的 ORM 守卫之外，建表时
还会在 SQLite / PostgreSQL 上安装数据库触发器兜底。
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import (
    DDL,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.db import Base
from app.exceptions import LedgerImmutabilityError


class StudentSkill(Base):
    """技能钱包条目。"""

    __tablename__ = "student_skills"
    __table_args__ = (
        UniqueConstraint("student_id", "skill_id", name="uq_student_skill"),
        CheckConstraint("level >= 1", name="ck_student_skill_level"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_student_skill_progress"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    skill_id: Mapped[int] = mapped_column(ForeignKey("skills.id"), nullable=False)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    # 最近一次推动该条目的项目/提交
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    submission_id: Mapped[int] = mapped_column(ForeignKey("submissions.id"), nullable=False)

    endorsed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    endorsement_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    skill = relationship("Skill")
    project = relationship("Project")
    submission = relationship("Submission")
    endorser = relationship("User", foreign_keys=[endorsed_by])

    @property
    def maturity(self) -> float:
        """展示用的成熟度：整数等级 + 进度百分比的小数部分。"""
        return round(self.level + (self.progress or 0) / 100, 2)

    def __repr__(self) -> str:
        return (
            f"<StudentSkill(student_id={self.student_id}, skill_id={self.skill_id}, "
            f"level={self.level}, progress={self.progress})>"
        )


# === 数据库级不可变约束 ===

_SQLITE_NO_DELETE = DDL(
    "CREATE TRIGGER trg_student_skills_no_delete BEFORE DELETE ON student_skills "
    "BEGIN SELECT RAISE(ABORT, 'student skills are immutable and cannot be deleted'); END"
)
_SQLITE_MONOTONIC = DDL(
    "CREATE TRIGGER trg_student_skills_monotonic BEFORE UPDATE ON student_skills "
    "WHEN NEW.level < OLD.level OR NEW.progress < OLD.progress "
    "BEGIN SELECT RAISE(ABORT, 'student skill level and progress cannot decrease'); END"
)
_PG_GUARD_FUNCTION = DDL(
    "CREATE OR REPLACE FUNCTION student_skills_guard() RETURNS trigger AS $$ "
    "BEGIN "
    "IF TG_OP = 'DELETE' THEN "
    "RAISE EXCEPTION 'student skills are immutable and cannot be deleted'; "
    "END IF; "
    "IF NEW.level < OLD.level OR NEW.progress < OLD.progress THEN "
    "RAISE EXCEPTION 'student skill level and progress cannot decrease'; "
    "END IF; "
    "RETURN NEW; "
    "END; $$ LANGUAGE plpgsql"
)
_PG_GUARD_TRIGGER = DDL(
    "CREATE TRIGGER trg_student_skills_guard BEFORE UPDATE OR DELETE ON student_skills "
    "FOR EACH ROW EXECUTE FUNCTION student_skills_guard()"
)

for _ddl in (_SQLITE_NO_DELETE, _SQLITE_MONOTONIC):
    event.listen(StudentSkill.__table__, "after_create", _ddl.execute_if(dialect="sqlite"))
for _ddl in (_PG_GUARD_FUNCTION, _PG_GUARD_TRIGGER):
    event.listen(StudentSkill.__table__, "after_create", _ddl.execute_if(dialect="postgresql"))


# === ORM 级不可变守卫 ===
#
# 晋级算法在 ``ledger_write`` 上下文中新建条目，或在 UPDATE 语句上带
# ``LEDGER_WRITE_OPTION`` 执行选项；其余任何对 student_skills 的
# 新建/修改/删除都会被拒绝，与调用方角色无关。

LEDGER_WRITE_OPTION = "skill_ledger_write"


@contextmanager
def ledger_write(session: Session) -> Iterator[Session]:
    """允许在当前 Session 中新建技能钱包条目。"""

    previous = session.info.get(LEDGER_WRITE_OPTION, False)
    session.info[LEDGER_WRITE_OPTION] = True
    try:
        yield session
    finally:
        session.info[LEDGER_WRITE_OPTION] = previous


@event.listens_for(Session, "before_flush")
def _guard_ledger_flush(session: Session, flush_context, instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, StudentSkill):
            raise LedgerImmutabilityError(
                "Student skills cannot be deleted. Skills in wallet are immutable."
            )
    for obj in session.dirty:
        if isinstance(obj, StudentSkill) and session.is_modified(obj, include_collections=False):
            raise LedgerImmutabilityError(
                "Student skills cannot be edited. Level and progress only advance "
                "through submission approval."
            )
    if not session.info.get(LEDGER_WRITE_OPTION):
        for obj in session.new:
            if isinstance(obj, StudentSkill):
                raise LedgerImmutabilityError(
                    "Student skills can only be created by approving a submission."
                )


@event.listens_for(Session, "do_orm_execute")
def _guard_ledger_statements(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    table = getattr(orm_execute_state.statement, "table", None)
    if getattr(table, "name", None) != StudentSkill.__tablename__:
        return
    if orm_execute_state.is_delete:
        raise LedgerImmutabilityError(
            "Student skills cannot be deleted. Skills in wallet are immutable."
        )
    if not orm_execute_state.execution_options.get(LEDGER_WRITE_OPTION):
        raise LedgerImmutabilityError(
            "Student skills cannot be edited. Level and progress only advance "
            "through submission approval."
        )
