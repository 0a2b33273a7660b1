"""API v2 路由包入口。"""

from fastapi import APIRouter

from app.api.v2 import auth, reviews, rubric_evaluations, skill_wallet

router = APIRouter(prefix="/api/v2")

# 注册子路由
router.include_router(auth.router, prefix="/auth", tags=["认证"])
router.include_router(reviews.router, prefix="/reviews", tags=["审阅"])
router.include_router(rubric_evaluations.router, prefix="/rubric-evaluation", tags=["评分标准评价"])
router.include_router(skill_wallet.router, prefix="/skill-wallet", tags=["技能钱包"])
