"""FastAPI 依赖注入工具：按配置组装审阅相关服务。"""

from functools import lru_cache

from fastapi import Depends

from app.config import get_settings
from app.services.authorization import RoleReviewerPolicy
from app.services.notifications import Notifier, build_notifier
from app.services.reviews import ReviewService
from app.services.rubric import RubricEvaluationService
from app.services.skill_ledger import SkillLedger
from app.services.skill_wallet import ConsentReader, NoConsentReader, SkillWalletService


def get_reviewer_policy() -> RoleReviewerPolicy:
    return RoleReviewerPolicy(get_settings().reviewer_roles)


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    """进程内共享一个通知器（Webhook 模式下复用 HTTP 连接）。"""

    return build_notifier(get_settings())


def get_consent_reader() -> ConsentReader:
    return NoConsentReader()


def get_review_service(
    policy: RoleReviewerPolicy = Depends(get_reviewer_policy),
    notifier: Notifier = Depends(get_notifier),
) -> ReviewService:
    return ReviewService(policy, SkillLedger(), notifier)


def get_rubric_service(
    policy: RoleReviewerPolicy = Depends(get_reviewer_policy),
) -> RubricEvaluationService:
    return RubricEvaluationService(policy)


def get_skill_wallet_service(
    policy: RoleReviewerPolicy = Depends(get_reviewer_policy),
    consent_reader: ConsentReader = Depends(get_consent_reader),
) -> SkillWalletService:
    return SkillWalletService(policy, consent_reader)
