"""审阅操作的请求/响应模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.enums import ReviewStatus, SkillAction, SubmissionStatus


class ApproveSubmissionRequest(BaseModel):
    comment: Optional[str] = None
    grade: Optional[float] = Field(default=None, ge=0, le=100)


class RejectSubmissionRequest(BaseModel):
    comment: str = Field(min_length=1)
    grade: Optional[float] = Field(default=None, ge=0, le=100)  # 驳回时也允许给部分分


class AddCommentRequest(BaseModel):
    comment: str = Field(min_length=1)


class ModerateSubmissionRequest(BaseModel):
    status: SubmissionStatus


class SkillGenerated(BaseModel):
    skill_id: int
    skill_name: str
    action: SkillAction
    level: Optional[int] = None


class SubmissionResponse(BaseModel):
    id: int
    project_id: int
    student_id: int
    assignment_id: Optional[int]
    status: SubmissionStatus
    submitted_data: Optional[Dict[str, Any]] = None
    grade: Optional[float]
    feedback: Optional[str]
    review_comment: Optional[str]
    review_status: Optional[ReviewStatus]
    reviewed_by: Optional[int]
    reviewed_at: Optional[datetime]
    submitted_at: Optional[datetime]
    created_at: datetime
    # 仅当模板带有技能映射时出现
    skills_generated: Optional[List[SkillGenerated]] = None

    class Config:
        from_attributes = True


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]
    total: int
