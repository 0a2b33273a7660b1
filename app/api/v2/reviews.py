"""提交审阅API：列表、详情、开始审阅、批准、驳回、评论与内容治理。"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v2.auth import get_current_user
from app.db import get_db
from app.dependencies import get_review_service
from app.models import Submission, SubmissionStatus, User
from app.schemas.review import (
    AddCommentRequest,
    ApproveSubmissionRequest,
    ModerateSubmissionRequest,
    RejectSubmissionRequest,
    SubmissionListResponse,
    SubmissionResponse,
)
from app.services.reviews import ReviewOutcome, ReviewService

router = APIRouter()


def _to_response(submission: Submission, outcome: Optional[ReviewOutcome] = None) -> SubmissionResponse:
    response = SubmissionResponse.model_validate(submission)
    if outcome is not None and outcome.skills_generated is not None:
        response.skills_generated = outcome.skills_generated
    return response


@router.get("/submissions", response_model=SubmissionListResponse)
def list_submissions(
    status: Optional[SubmissionStatus] = None,
    project_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """待审阅/已审阅提交列表（按提交时间倒序）。"""
    submissions = service.list_submissions_for_review(db, current_user.id, status, project_id)
    return SubmissionListResponse(
        submissions=[_to_response(s) for s in submissions], total=len(submissions)
    )


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return _to_response(service.get_submission_for_review(db, submission_id, current_user.id))


@router.post("/submissions/{submission_id}/start", response_model=SubmissionResponse)
def start_review(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return _to_response(service.start_review(db, submission_id, current_user.id))


@router.post("/submissions/{submission_id}/approve", response_model=SubmissionResponse)
def approve_submission(
    submission_id: int,
    payload: ApproveSubmissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """批准提交并发放模板映射的技能。"""
    outcome = service.approve_submission(db, submission_id, payload, current_user.id)
    return _to_response(outcome.submission, outcome)


@router.post("/submissions/{submission_id}/reject", response_model=SubmissionResponse)
def reject_submission(
    submission_id: int,
    payload: RejectSubmissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """驳回提交，必须附带意见。"""
    outcome = service.reject_submission(db, submission_id, payload, current_user.id)
    return _to_response(outcome.submission)


@router.patch("/submissions/{submission_id}/comment", response_model=SubmissionResponse)
def add_comment(
    submission_id: int,
    payload: AddCommentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return _to_response(service.add_comment(db, submission_id, payload, current_user.id))


@router.post("/submissions/{submission_id}/moderate", response_model=SubmissionResponse)
def moderate_submission(
    submission_id: int,
    payload: ModerateSubmissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """标记（flagged）或移除（removed）提交。"""
    return _to_response(service.moderate(db, submission_id, payload.status, current_user.id))
