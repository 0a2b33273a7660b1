"""审阅引擎相关枚举定义 - 提交状态、审阅结论、用户角色等。"""

import enum


class UserRole(str, enum.Enum):
    """用户角色枚举。"""
    STUDENT = "student"
    TEACHER = "teacher"
    SCHOOL_ADMIN = "school_admin"
    PLATFORM_ADMIN = "platform_admin"
    PARENT = "parent"


class SubmissionStatus(str, enum.Enum):
    """提交状态机。

    draft → submitted → under_review → approved | rejected；
    flagged / removed 为审核（moderation）终态分支。
    """
    DRAFT = "draft"                  # 草稿
    SUBMITTED = "submitted"          # 已提交
    UNDER_REVIEW = "under_review"    # 审阅中
    APPROVED = "approved"            # 已通过
    REJECTED = "rejected"            # 已驳回
    FLAGGED = "flagged"              # 被标记
    REMOVED = "removed"              # 已下架


class ReviewStatus(str, enum.Enum):
    """审阅结论。"""
    APPROVED = "approved"
    REJECTED = "rejected"


class SkillAction(str, enum.Enum):
    """一次批准对技能钱包条目的作用。"""
    CREATED = "created"
    UPDATED = "updated"
