"""审阅通知：提交后的发件箱与可替换的通知器。

审阅事务内只把事件放进 ``NotificationOutbox``；事务提交成功后才逐条投递。
任何投递失败都只写日志，不会抛给调用方，也不会重试。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Union

import requests

from app.config import Settings

logger = logging.getLogger(__name__)

SKILL_EARNED_MESSAGE = 'Great news! You\'ve earned a new skill: "{skill}". Keep up the excellent work!'
PROJECT_APPROVED_MESSAGE = (
    'Congratulations! Your project "{project}" has been approved. '
    "Check your dashboard for details."
)


@dataclass(frozen=True)
class SkillEarned:
    student_id: int
    skill_name: str
    phone_number: Optional[str] = None


@dataclass(frozen=True)
class ProjectApproved:
    student_id: int
    project_name: str
    phone_number: Optional[str] = None


NotificationEvent = Union[SkillEarned, ProjectApproved]


class Notifier(Protocol):
    def notify_skill_earned(self, student_id: int, skill_name: str) -> None:
        ...

    def notify_approval(self, student_id: int, project_name: str) -> None:
        ...


class LoggingNotifier:
    """只把通知文本写入日志，未配置 Webhook 时的默认实现。"""

    def notify_skill_earned(self, student_id: int, skill_name: str) -> None:
        logger.info("Notify student %s: %s", student_id, SKILL_EARNED_MESSAGE.format(skill=skill_name))

    def notify_approval(self, student_id: int, project_name: str) -> None:
        logger.info(
            "Notify student %s: %s", student_id, PROJECT_APPROVED_MESSAGE.format(project=project_name)
        )


class WebhookNotifier:
    """把通知以 JSON POST 到外部通知服务。"""

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: dict) -> None:
        response = self.session.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    def notify_skill_earned(self, student_id: int, skill_name: str) -> None:
        self._post(
            {
                "event": "skill_earned",
                "student_id": student_id,
                "skill_name": skill_name,
                "message": SKILL_EARNED_MESSAGE.format(skill=skill_name),
            }
        )

    def notify_approval(self, student_id: int, project_name: str) -> None:
        self._post(
            {
                "event": "project_approved",
                "student_id": student_id,
                "project_name": project_name,
                "message": PROJECT_APPROVED_MESSAGE.format(project=project_name),
            }
        )


@dataclass
class NotificationOutbox:
    """事务内收集的待发通知。"""

    events: List[NotificationEvent] = field(default_factory=list)

    def add(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def dispatch(self, notifier: Notifier) -> int:
        """逐条投递并返回成功条数；失败只记录日志。"""

        delivered = 0
        for event in self.events:
            if not event.phone_number:
                logger.warning("Student %s has no contact channel for notifications", event.student_id)
            try:
                if isinstance(event, SkillEarned):
                    notifier.notify_skill_earned(event.student_id, event.skill_name)
                else:
                    notifier.notify_approval(event.student_id, event.project_name)
            except Exception as exc:  # noqa: BLE001 - 通知失败不影响已提交的审阅
                logger.error("Failed to deliver %s notification: %s", type(event).__name__, exc)
                continue
            delivered += 1
        self.events.clear()
        return delivered


def build_notifier(settings: Settings) -> Notifier:
    if settings.notification_webhook_url:
        return WebhookNotifier(
            settings.notification_webhook_url, timeout=settings.notification_timeout_seconds
        )
    return LoggingNotifier()
