"""提交状态机：合法状态迁移表与守卫。"""

from __future__ import annotations

from typing import Dict, FrozenSet, List

from app.exceptions import InvalidStateError
from app.models import Submission, SubmissionStatus

S = SubmissionStatus

# flagged / removed 可由任一非终态进入；approved / rejected / flagged / removed 为终态
TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.FLAGGED, S.REMOVED}),
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.APPROVED, S.REJECTED, S.FLAGGED, S.REMOVED}),
    S.UNDER_REVIEW: frozenset({S.APPROVED, S.REJECTED, S.FLAGGED, S.REMOVED}),
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
    S.FLAGGED: frozenset(),
    S.REMOVED: frozenset(),
}

MODERATION_TARGETS = (S.FLAGGED, S.REMOVED)


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def allowed_sources(target: SubmissionStatus) -> List[str]:
    return [source.value for source, targets in TRANSITIONS.items() if target in targets]


def is_terminal(status: SubmissionStatus) -> bool:
    return not TRANSITIONS.get(status)


def check_transition(submission: Submission, target: SubmissionStatus, action: str) -> None:
    """不允许迁移到 ``target`` 时抛出带当前状态的 InvalidStateError。"""

    current = SubmissionStatus(submission.status)
    if not can_transition(current, target):
        raise InvalidStateError(current.value, action, allowed_sources(target))


def transition(submission: Submission, target: SubmissionStatus, action: str) -> None:
    check_transition(submission, target, action)
    submission.status = target
