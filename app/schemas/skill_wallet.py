"""技能钱包只读视图。"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class SkillBrief(BaseModel):
    id: int
    name: str
    category: Optional[str]
    description: Optional[str]

    class Config:
        from_attributes = True


class WalletEntry(BaseModel):
    id: int
    skill: SkillBrief
    level: int
    progress: float
    maturity: float
    project_id: int
    submission_id: int
    endorsed_by: int
    endorsement_date: datetime
    last_updated: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class SkillWalletResponse(BaseModel):
    student_id: int
    total_skills: int
    skills: List[WalletEntry]
