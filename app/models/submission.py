"""提交与评分标准评价模型定义。"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from app.db import Base
from app.models.enums import ReviewStatus, SubmissionStatus


class Submission(Base):
    """学生对某个项目的一次提交。

    状态/评分/审阅字段只由审阅引擎写入；草稿内容字段只由作者流程写入。
    ``reviewed_by`` / ``reviewed_at`` 仅在批准、驳回或评论后才会被设置。
    """

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # 关联
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # 作业目录不在本服务内，只保留引用
    assignment_id: Mapped[Optional[int]] = mapped_column(Integer)

    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus, native_enum=False, length=20),
        default=SubmissionStatus.DRAFT,
        nullable=False,
    )

    # 提交内容（不透明 JSON）
    submitted_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    # 审阅结果
    grade: Mapped[Optional[float]] = mapped_column(Float)  # 0-100
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    review_comment: Mapped[Optional[str]] = mapped_column(Text)
    review_status: Mapped[Optional[ReviewStatus]] = mapped_column(
        Enum(ReviewStatus, native_enum=False, length=20)
    )
    reviewed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # 时间戳
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # 关系
    project = relationship("Project")
    student = relationship("User", foreign_keys=[student_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
    rubric_evaluation = relationship(
        "RubricEvaluation", back_populates="submission", uselist=False
    )

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, project_id={self.project_id}, status={self.status.value})>"


class RubricEvaluation(Base):
    """按评分标准对提交的逐项评价，每个提交最多一条。

    ``rubric_json`` 是创建时从模板拷贝的快照，之后模板再怎么改也不会影响
    历史评分的含义。
    """

    __tablename__ = "rubric_evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("submissions.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    rubric_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # 格式: {"Code Quality": {"score": 20, "comment": "..."}}
    scores_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    # 格式: {"Code Quality": "..."}，从 scores 中抽取
    comments_json: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON)

    overall_score: Mapped[Optional[float]] = mapped_column(Float)
    overall_comment: Mapped[Optional[str]] = mapped_column(Text)
    evaluated_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    submission = relationship("Submission", back_populates="rubric_evaluation")
    evaluator = relationship("User", foreign_keys=[evaluated_by])

    def __repr__(self) -> str:
        return f"<RubricEvaluation(id={self.id}, submission_id={self.submission_id})>"
