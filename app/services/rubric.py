"""评分标准校验与按评分标准的评价存储。"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import transaction
from app.exceptions import ForbiddenError, NotFoundError, ReviewValidationError
from app.models import Project, RubricEvaluation, Submission
from app.schemas.rubric import (
    EvaluateRubricRequest,
    Rubric,
    ScoreEntry,
    UpdateRubricEvaluationRequest,
)
from app.services.authorization import ReviewerCapability

logger = logging.getLogger(__name__)


def _format_points(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class RubricValidator:
    """评分标准结构与分数映射的纯函数校验。"""

    @staticmethod
    def validate_structure(raw: Any) -> Rubric:
        if not isinstance(raw, dict):
            raise ReviewValidationError("Invalid rubric structure: must be an object", field="rubric")
        criteria = raw.get("criteria")
        if not isinstance(criteria, list):
            raise ReviewValidationError(
                "Invalid rubric structure: must have a criteria array", field="criteria"
            )

        for index, criterion in enumerate(criteria):
            if not isinstance(criterion, dict):
                raise ReviewValidationError(
                    f"Criterion at index {index} must have a name", field="criteria"
                )
            label = None
            for key in ("name", "id"):
                value = criterion.get(key)
                if _is_number(value) or (isinstance(value, str) and value.strip()):
                    label = str(value)
                    break
            if label is None:
                raise ReviewValidationError(
                    f"Criterion at index {index} must have a name", field="criteria"
                )
            max_points = criterion.get("maxPoints")
            if max_points is not None and not _is_number(max_points):
                raise ReviewValidationError(
                    f'Criterion "{label}" maxPoints must be a number', criterion=label
                )

        try:
            return Rubric.model_validate(raw)
        except ValidationError as exc:
            raise ReviewValidationError(f"Invalid rubric structure: {exc.errors()[0]['msg']}") from exc

    @staticmethod
    def validate_scores(rubric: Rubric, scores: Mapping[str, ScoreEntry]) -> None:
        """未知键只告警；已知键的数值分必须落在 [0, maxPoints]。"""

        for key, entry in scores.items():
            criterion = rubric.find(key)
            if criterion is None:
                logger.warning("Unknown criterion %r in score map, ignoring bounds check", key)
                continue
            if entry.score is None:
                continue
            if entry.score < 0 or entry.score > criterion.bound:
                raise ReviewValidationError(
                    f'Score for "{criterion.label}" must be between 0 and '
                    f"{_format_points(criterion.bound)}",
                    criterion=criterion.label,
                    max_points=criterion.bound,
                )


def extract_comments(scores: Mapping[str, ScoreEntry]) -> Optional[Dict[str, str]]:
    comments = {key: entry.comment for key, entry in scores.items() if entry.comment}
    return comments or None


def _dump_scores(scores: Mapping[str, ScoreEntry]) -> Dict[str, Dict[str, Any]]:
    return {key: entry.model_dump(exclude_none=True) for key, entry in scores.items()}


class RubricEvaluationService:
    """评分标准评价：每个提交最多一条，创建时快照模板的评分标准。"""

    def __init__(self, policy: ReviewerCapability) -> None:
        self.policy = policy

    def _load_submission(self, db: Session, submission_id: int, lock: bool = False) -> Submission:
        stmt = select(Submission).where(
            Submission.id == submission_id, Submission.deleted_at.is_(None)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        submission = db.execute(stmt).scalar_one_or_none()
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission

    @staticmethod
    def _template_rubric(db: Session, submission: Submission) -> Optional[Dict[str, Any]]:
        project = db.get(Project, submission.project_id)
        if project is None or project.template is None:
            return None
        return project.template.rubric_json

    def evaluate(
        self,
        db: Session,
        submission_id: int,
        data: EvaluateRubricRequest,
        evaluator_id: int,
    ) -> RubricEvaluation:
        with transaction(db):
            submission = self._load_submission(db, submission_id, lock=True)
            self.policy.require_reviewer(db, evaluator_id, "evaluate rubrics")

            raw_rubric = self._template_rubric(db, submission)
            if not raw_rubric:
                raise ReviewValidationError("Project template does not have a rubric defined")
            rubric = RubricValidator.validate_structure(raw_rubric)

            existing = db.execute(
                select(RubricEvaluation.id).where(RubricEvaluation.submission_id == submission_id)
            ).scalar_one_or_none()
            if existing is not None:
                raise ReviewValidationError(
                    "Rubric evaluation already exists for this submission. Use update instead."
                )

            scores = data.scores or {}
            RubricValidator.validate_scores(rubric, scores)

            evaluation = RubricEvaluation(
                submission_id=submission_id,
                rubric_json=copy.deepcopy(raw_rubric),
                scores_json=_dump_scores(scores),
                comments_json=extract_comments(scores),
                overall_score=data.overall_score,
                overall_comment=data.overall_comment,
                evaluated_by=evaluator_id,
            )
            db.add(evaluation)
            try:
                db.flush()
            except IntegrityError as exc:
                raise ReviewValidationError(
                    "Rubric evaluation already exists for this submission. Use update instead."
                ) from exc

        db.refresh(evaluation)
        logger.info("Rubric evaluation created for submission %s by %s", submission_id, evaluator_id)
        return evaluation

    def update(
        self,
        db: Session,
        submission_id: int,
        data: UpdateRubricEvaluationRequest,
        evaluator_id: int,
    ) -> RubricEvaluation:
        with transaction(db):
            evaluation = db.execute(
                select(RubricEvaluation)
                .where(RubricEvaluation.submission_id == submission_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if evaluation is None:
                raise NotFoundError(
                    "Rubric evaluation", detail="Rubric evaluation not found"
                )

            if evaluation.evaluated_by != evaluator_id and not self.policy.has_reviewer_capability(
                db, evaluator_id
            ):
                raise ForbiddenError("You can only update your own rubric evaluations")

            if data.scores is not None:
                rubric = RubricValidator.validate_structure(evaluation.rubric_json)
                RubricValidator.validate_scores(rubric, data.scores)

                # 赋新字典，JSON 列才会被识别为已修改
                merged_scores = dict(evaluation.scores_json or {})
                merged_scores.update(_dump_scores(data.scores))
                evaluation.scores_json = merged_scores

                new_comments = extract_comments(data.scores)
                if new_comments:
                    merged_comments = dict(evaluation.comments_json or {})
                    merged_comments.update(new_comments)
                    evaluation.comments_json = merged_comments

            if "overall_score" in data.model_fields_set:
                evaluation.overall_score = data.overall_score
            if "overall_comment" in data.model_fields_set:
                evaluation.overall_comment = data.overall_comment

        db.refresh(evaluation)
        logger.info("Rubric evaluation updated for submission %s by %s", submission_id, evaluator_id)
        return evaluation

    def get_evaluation(self, db: Session, submission_id: int) -> RubricEvaluation:
        evaluation = db.execute(
            select(RubricEvaluation).where(RubricEvaluation.submission_id == submission_id)
        ).scalar_one_or_none()
        if evaluation is None:
            raise NotFoundError("Rubric evaluation", detail="Rubric evaluation not found")
        return evaluation

    def get_rubric_for_submission(self, db: Session, submission_id: int) -> Dict[str, Any]:
        submission = self._load_submission(db, submission_id)
        raw_rubric = self._template_rubric(db, submission)
        if not raw_rubric:
            raise NotFoundError("Rubric", detail="Rubric not found for this submission")
        return {
            "submission_id": submission.id,
            "submission_status": submission.status.value,
            "project_id": submission.project_id,
            "project_name": submission.project.name,
            "rubric": raw_rubric,
            "evaluation": submission.rubric_evaluation,
        }

    def calculate_overall_score(self, db: Session, submission_id: int) -> Optional[float]:
        """按快照评分标准把逐项得分折算为百分制；没有评价或可计分项时返回 None。"""

        evaluation = db.execute(
            select(RubricEvaluation).where(RubricEvaluation.submission_id == submission_id)
        ).scalar_one_or_none()
        if evaluation is None or not evaluation.scores_json:
            return None

        rubric = RubricValidator.validate_structure(evaluation.rubric_json)
        scores = evaluation.scores_json
        total = 0.0
        max_total = 0.0
        for criterion in rubric.criteria:
            entry = None
            for key in (criterion.id, criterion.name):
                if key and key in scores:
                    entry = scores[key]
                    break
            score = entry.get("score") if isinstance(entry, dict) else None
            if _is_number(score):
                total += score
                max_total += criterion.bound

        if max_total <= 0:
            return None
        return round(total / max_total * 100, 2)
