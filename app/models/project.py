"""项目、项目模板与技能目录模型。

模板携带可选的评分标准（rubric）与技能映射；这些是审阅引擎只读的
外部目录数据。
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from app.db import Base


class Skill(Base):
    """技能目录。"""

    __tablename__ = "skills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<Skill(id={self.id}, name={self.name})>"


class ProjectTemplate(Base):
    """可复用的项目定义。"""

    __tablename__ = "project_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # 评分标准
    # 格式: {"criteria": [{"id": "code-quality", "name": "Code Quality", "maxPoints": 25}], "totalPoints": 100}
    rubric_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    skills: Mapped[List["TemplateSkill"]] = relationship(
        back_populates="template", cascade="all, delete-orphan", order_by="TemplateSkill.id"
    )

    def __repr__(self) -> str:
        return f"<ProjectTemplate(id={self.id}, title={self.title})>"


class TemplateSkill(Base):
    """模板 → 技能映射；``required_level`` 是该模板能认证的最高等级。"""

    __tablename__ = "template_skills"
    __table_args__ = (UniqueConstraint("template_id", "skill_id", name="uq_template_skill"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("project_templates.id", ondelete="CASCADE"), nullable=False
    )
    skill_id: Mapped[int] = mapped_column(ForeignKey("skills.id"), nullable=False)
    required_level: Mapped[Optional[int]] = mapped_column(Integer)

    template: Mapped[ProjectTemplate] = relationship(back_populates="skills")
    skill: Mapped[Skill] = relationship()


class Project(Base):
    """学生项目（可能来自模板）。"""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("project_templates.id", ondelete="SET NULL")
    )

    template: Mapped[Optional[ProjectTemplate]] = relationship()

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name})>"
