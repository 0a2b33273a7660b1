"""按评分标准评价提交的API。"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.v2.auth import get_current_user
from app.db import get_db
from app.dependencies import get_rubric_service
from app.models import User
from app.schemas.rubric import (
    EvaluateRubricRequest,
    OverallScoreResponse,
    RubricEvaluationResponse,
    RubricForSubmissionResponse,
    UpdateRubricEvaluationRequest,
)
from app.services.rubric import RubricEvaluationService

router = APIRouter()


@router.post(
    "/submissions/{submission_id}/evaluate",
    response_model=RubricEvaluationResponse,
    status_code=status.HTTP_201_CREATED,
)
def evaluate_rubric(
    submission_id: int,
    payload: EvaluateRubricRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: RubricEvaluationService = Depends(get_rubric_service),
):
    """创建评价；每个提交只能有一条，之后请使用 PATCH 更新。"""
    evaluation = service.evaluate(db, submission_id, payload, current_user.id)
    return RubricEvaluationResponse.model_validate(evaluation)


@router.patch("/submissions/{submission_id}/evaluation", response_model=RubricEvaluationResponse)
def update_rubric_evaluation(
    submission_id: int,
    payload: UpdateRubricEvaluationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: RubricEvaluationService = Depends(get_rubric_service),
):
    """按评分项合并更新分数与评语。"""
    evaluation = service.update(db, submission_id, payload, current_user.id)
    return RubricEvaluationResponse.model_validate(evaluation)


@router.get("/submissions/{submission_id}/evaluation", response_model=RubricEvaluationResponse)
def get_rubric_evaluation(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: RubricEvaluationService = Depends(get_rubric_service),
):
    return RubricEvaluationResponse.model_validate(service.get_evaluation(db, submission_id))


@router.get("/submissions/{submission_id}/rubric", response_model=RubricForSubmissionResponse)
def get_rubric_for_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: RubricEvaluationService = Depends(get_rubric_service),
):
    data = service.get_rubric_for_submission(db, submission_id)
    evaluation = data.pop("evaluation")
    return RubricForSubmissionResponse(
        **data,
        evaluation=RubricEvaluationResponse.model_validate(evaluation) if evaluation else None,
    )


@router.get("/submissions/{submission_id}/calculate-score", response_model=OverallScoreResponse)
def calculate_overall_score(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: RubricEvaluationService = Depends(get_rubric_service),
):
    """由逐项得分折算的百分制总分，仅计算不落库。"""
    return OverallScoreResponse(
        submission_id=submission_id,
        overall_score=service.calculate_overall_score(db, submission_id),
    )
