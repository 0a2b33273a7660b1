"""ORM 模型汇总导出。"""

from app.models.enums import ReviewStatus, SkillAction, SubmissionStatus, UserRole
from app.models.project import Project, ProjectTemplate, Skill, TemplateSkill
from app.models.skill import StudentSkill
from app.models.submission import RubricEvaluation, Submission
from app.models.user import User

__all__ = [
    "Project",
    "ProjectTemplate",
    "ReviewStatus",
    "RubricEvaluation",
    "Skill",
    "SkillAction",
    "StudentSkill",
    "Submission",
    "SubmissionStatus",
    "TemplateSkill",
    "User",
    "UserRole",
]
