import logging

import pytest

from app.exceptions import ForbiddenError, NotFoundError, ReviewValidationError
from app.schemas.rubric import (
    EvaluateRubricRequest,
    ScoreEntry,
    UpdateRubricEvaluationRequest,
)
from app.services.authorization import RoleReviewerPolicy
from app.services.rubric import RubricEvaluationService, RubricValidator, extract_comments

REVIEWER_ROLES = ["teacher", "school_admin", "platform_admin"]


def make_service() -> RubricEvaluationService:
    return RubricEvaluationService(RoleReviewerPolicy(REVIEWER_ROLES))


def scores(**entries):
    return {key.replace("_", " "): ScoreEntry(**value) for key, value in entries.items()}


# === 结构校验 ===

@pytest.mark.parametrize(
    "raw, message",
    [
        (["not", "an", "object"], "must be an object"),
        ({"totalPoints": 10}, "must have a criteria array"),
        ({"criteria": {"name": "x"}}, "must have a criteria array"),
        ({"criteria": [{"maxPoints": 5}]}, "Criterion at index 0 must have a name"),
        ({"criteria": [{"name": "A"}, {"name": "   "}]}, "Criterion at index 1 must have a name"),
        ({"criteria": ["Code Quality"]}, "Criterion at index 0 must have a name"),
        ({"criteria": [{"name": "A", "maxPoints": "10"}]}, 'Criterion "A" maxPoints must be a number'),
        ({"criteria": [{"name": "A", "maxPoints": True}]}, 'Criterion "A" maxPoints must be a number'),
    ],
)
def test_validate_structure_rejects_malformed_rubrics(raw, message) -> None:
    with pytest.raises(ReviewValidationError) as exc_info:
        RubricValidator.validate_structure(raw)
    assert message in exc_info.value.detail


def test_validate_structure_accepts_id_only_and_default_bounds() -> None:
    rubric = RubricValidator.validate_structure(
        {"criteria": [{"id": "clarity"}, {"name": "Depth", "maxPoints": 40, "weight": 2}]}
    )
    assert [c.label for c in rubric.criteria] == ["clarity", "Depth"]
    assert rubric.criteria[0].bound == 100
    assert rubric.criteria[1].bound == 40


def test_validate_structure_accepts_numeric_ids() -> None:
    rubric = RubricValidator.validate_structure(
        {"criteria": [{"id": 1, "maxPoints": 10}, {"id": 2, "name": "Style"}]}
    )
    assert [c.id for c in rubric.criteria] == ["1", "2"]
    assert rubric.criteria[0].label == "1"

    RubricValidator.validate_scores(rubric, {"1": ScoreEntry(score=10)})
    with pytest.raises(ReviewValidationError) as exc_info:
        RubricValidator.validate_scores(rubric, {"1": ScoreEntry(score=11)})
    assert exc_info.value.detail == 'Score for "1" must be between 0 and 10'


# === 分数校验 ===

def test_score_above_max_points_names_criterion_and_bound() -> None:
    rubric = RubricValidator.validate_structure({"criteria": [{"name": "Code Quality", "maxPoints": 25}]})

    with pytest.raises(ReviewValidationError) as exc_info:
        RubricValidator.validate_scores(rubric, scores(Code_Quality={"score": 30}))

    assert exc_info.value.detail == 'Score for "Code Quality" must be between 0 and 25'
    assert exc_info.value.extra == {"criterion": "Code Quality", "max_points": 25}


def test_scores_matched_by_id_and_default_bound() -> None:
    rubric = RubricValidator.validate_structure(
        {"criteria": [{"id": "code-quality", "name": "Code Quality", "maxPoints": 25}, {"name": "Creativity"}]}
    )

    RubricValidator.validate_scores(rubric, {"Creativity": ScoreEntry(score=100)})
    with pytest.raises(ReviewValidationError, match="between 0 and 100"):
        RubricValidator.validate_scores(rubric, {"Creativity": ScoreEntry(score=100.5)})
    with pytest.raises(ReviewValidationError, match="Code Quality"):
        RubricValidator.validate_scores(rubric, {"code-quality": ScoreEntry(score=26)})
    with pytest.raises(ReviewValidationError):
        RubricValidator.validate_scores(rubric, {"code-quality": ScoreEntry(score=-1)})


def test_unknown_criteria_only_warn(caplog) -> None:
    rubric = RubricValidator.validate_structure({"criteria": [{"name": "Code Quality", "maxPoints": 25}]})

    with caplog.at_level(logging.WARNING, logger="app.services.rubric"):
        RubricValidator.validate_scores(
            rubric,
            {"Presentation": ScoreEntry(score=500), "Code Quality": ScoreEntry(comment="ok")},
        )

    assert "Presentation" in caplog.text


def test_extract_comments() -> None:
    assert extract_comments({"A": ScoreEntry(score=1)}) is None
    assert extract_comments(
        {"A": ScoreEntry(score=1, comment="tidy"), "B": ScoreEntry(score=2)}
    ) == {"A": "tidy"}


# === 评价存储 ===

def test_evaluate_snapshots_rubric(session, world, make_submission):
    submission = make_submission()
    service = make_service()

    evaluation = service.evaluate(
        session,
        submission.id,
        EvaluateRubricRequest(
            scores=scores(Code_Quality={"score": 20, "comment": "clean"}),
            overallScore=80,
            overallComment="Solid",
        ),
        world.teacher.id,
    )

    assert evaluation.scores_json == {"Code Quality": {"score": 20, "comment": "clean"}}
    assert evaluation.comments_json == {"Code Quality": "clean"}
    assert evaluation.overall_score == 80
    assert evaluation.evaluated_by == world.teacher.id

    world.template.rubric_json = {"criteria": [{"name": "Code Quality", "maxPoints": 5}]}
    session.commit()
    session.refresh(evaluation)
    assert evaluation.rubric_json["criteria"][0]["maxPoints"] == 25


def test_evaluate_rejects_out_of_bound_score(session, world, make_submission):
    submission = make_submission()
    with pytest.raises(ReviewValidationError) as exc_info:
        make_service().evaluate(
            session,
            submission.id,
            EvaluateRubricRequest(scores=scores(Code_Quality={"score": 30})),
            world.teacher.id,
        )
    assert "Code Quality" in exc_info.value.detail
    assert "25" in exc_info.value.detail


def test_evaluate_twice_requires_update(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(session, submission.id, EvaluateRubricRequest(), world.teacher.id)

    with pytest.raises(ReviewValidationError, match="Use update instead"):
        service.evaluate(session, submission.id, EvaluateRubricRequest(), world.admin.id)


def test_evaluate_requires_template_rubric(session, world, make_submission):
    submission = make_submission(project=world.bare_project)
    with pytest.raises(ReviewValidationError, match="does not have a rubric"):
        make_service().evaluate(session, submission.id, EvaluateRubricRequest(), world.teacher.id)


def test_evaluate_requires_reviewer_and_submission(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    with pytest.raises(ForbiddenError):
        service.evaluate(session, submission.id, EvaluateRubricRequest(), world.student.id)
    with pytest.raises(NotFoundError):
        service.evaluate(session, 9999, EvaluateRubricRequest(), world.teacher.id)


def test_update_merges_scores_and_comments(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(
        session,
        submission.id,
        EvaluateRubricRequest(
            scores=scores(Code_Quality={"score": 20, "comment": "clean"}), overallScore=70
        ),
        world.teacher.id,
    )

    updated = service.update(
        session,
        submission.id,
        UpdateRubricEvaluationRequest(
            scores={"Documentation": ScoreEntry(score=10, comment="thin README")},
            overallComment="Better",
        ),
        world.teacher.id,
    )

    assert updated.scores_json == {
        "Code Quality": {"score": 20, "comment": "clean"},
        "Documentation": {"score": 10, "comment": "thin README"},
    }
    assert updated.comments_json == {"Code Quality": "clean", "Documentation": "thin README"}
    assert updated.overall_score == 70
    assert updated.overall_comment == "Better"


def test_update_validates_against_snapshot(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(session, submission.id, EvaluateRubricRequest(), world.teacher.id)

    with pytest.raises(ReviewValidationError, match="between 0 and 25"):
        service.update(
            session,
            submission.id,
            UpdateRubricEvaluationRequest(scores={"documentation": ScoreEntry(score=26)}),
            world.teacher.id,
        )


def test_update_authorization(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(session, submission.id, EvaluateRubricRequest(), world.teacher.id)

    with pytest.raises(ForbiddenError, match="your own rubric evaluations"):
        service.update(
            session, submission.id, UpdateRubricEvaluationRequest(overallScore=10), world.student.id
        )

    # 其他审阅人可以更新
    updated = service.update(
        session, submission.id, UpdateRubricEvaluationRequest(overallScore=90), world.admin.id
    )
    assert updated.overall_score == 90


def test_update_and_get_missing_evaluation(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    with pytest.raises(NotFoundError):
        service.update(session, submission.id, UpdateRubricEvaluationRequest(), world.teacher.id)
    with pytest.raises(NotFoundError):
        service.get_evaluation(session, submission.id)


def test_get_rubric_for_submission(session, world, make_submission):
    submission = make_submission()
    service = make_service()

    data = service.get_rubric_for_submission(session, submission.id)
    assert data["project_name"] == "Weather Dashboard"
    assert data["submission_status"] == "submitted"
    assert len(data["rubric"]["criteria"]) == 3
    assert data["evaluation"] is None

    bare = make_submission(project=world.bare_project)
    with pytest.raises(NotFoundError):
        service.get_rubric_for_submission(session, bare.id)


# === 总分折算 ===

def test_overall_score_is_none_without_scores(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    assert service.calculate_overall_score(session, submission.id) is None

    service.evaluate(
        session,
        submission.id,
        EvaluateRubricRequest(scores={"Code Quality": ScoreEntry(comment="no number yet")}),
        world.teacher.id,
    )
    assert service.calculate_overall_score(session, submission.id) is None


def test_overall_score_sums_scored_criteria(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(
        session,
        submission.id,
        EvaluateRubricRequest(
            scores={
                "code-quality": ScoreEntry(score=20),
                "Creativity": ScoreEntry(score=50),
            }
        ),
        world.teacher.id,
    )
    # (20 + 50) / (25 + 100)
    assert service.calculate_overall_score(session, submission.id) == 56.0


def test_overall_score_rounds_to_two_decimals_and_uses_snapshot(session, world, make_submission):
    submission = make_submission()
    service = make_service()
    service.evaluate(
        session,
        submission.id,
        EvaluateRubricRequest(
            scores={
                "Code Quality": ScoreEntry(score=10),
                "Documentation": ScoreEntry(score=0),
                "Creativity": ScoreEntry(score=0),
            }
        ),
        world.teacher.id,
    )

    world.template.rubric_json = {"criteria": [{"name": "Code Quality", "maxPoints": 10}]}
    session.commit()

    # 10 / 150
    assert service.calculate_overall_score(session, submission.id) == 6.67
