"""评分标准与评分结果的结构化模型。

评分标准文档与分数映射在边界处被解析为这里的强类型模型；结构是否合法
由 ``app.services.rubric.RubricValidator`` 统一判定。
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_POINTS = 100


class Criterion(BaseModel):
    """评分标准中的单个评分项。"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    max_points: Optional[float] = Field(default=None, alias="maxPoints")

    @field_validator("id", "name", mode="before")
    @classmethod
    def _scalar_to_str(cls, value):
        # 评分项 id 允许是数字，分数映射的键总是字符串
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def key(self) -> str:
        """分数映射中首选的键：优先 id，其次 name。"""
        return self.id or self.name or ""

    @property
    def label(self) -> str:
        return self.name or self.id or ""

    @property
    def bound(self) -> float:
        return DEFAULT_MAX_POINTS if self.max_points is None else self.max_points

    def matches(self, key: str) -> bool:
        return key in (self.id, self.name)


class Rubric(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    criteria: List[Criterion]
    total_points: Optional[float] = Field(default=None, alias="totalPoints")

    def find(self, key: str) -> Optional[Criterion]:
        for criterion in self.criteria:
            if criterion.matches(key):
                return criterion
        return None


class ScoreEntry(BaseModel):
    """某一评分项的得分与评语，两者都可选。"""

    score: Optional[float] = None
    comment: Optional[str] = None


class EvaluateRubricRequest(BaseModel):
    scores: Optional[Dict[str, ScoreEntry]] = None
    overall_score: Optional[float] = Field(default=None, ge=0, le=100, alias="overallScore")
    overall_comment: Optional[str] = Field(default=None, alias="overallComment")

    model_config = ConfigDict(populate_by_name=True)


class UpdateRubricEvaluationRequest(BaseModel):
    """部分更新；未出现的字段保持原值。"""

    scores: Optional[Dict[str, ScoreEntry]] = None
    overall_score: Optional[float] = Field(default=None, ge=0, le=100, alias="overallScore")
    overall_comment: Optional[str] = Field(default=None, alias="overallComment")

    model_config = ConfigDict(populate_by_name=True)


class RubricEvaluationResponse(BaseModel):
    id: int
    submission_id: int
    rubric: Dict = Field(validation_alias="rubric_json")
    scores: Optional[Dict[str, ScoreEntry]] = Field(default=None, validation_alias="scores_json")
    comments: Optional[Dict[str, str]] = Field(default=None, validation_alias="comments_json")
    overall_score: Optional[float]
    overall_comment: Optional[str]
    evaluated_by: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class RubricForSubmissionResponse(BaseModel):
    submission_id: int
    submission_status: str
    project_id: int
    project_name: str
    rubric: Dict
    evaluation: Optional[RubricEvaluationResponse] = None


class OverallScoreResponse(BaseModel):
    submission_id: int
    overall_score: Optional[float]
