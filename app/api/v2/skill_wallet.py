"""技能钱包API：只读。任何新建/修改/删除请求一律 403。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v2.auth import get_current_user
from app.db import get_db
from app.dependencies import get_skill_wallet_service
from app.models import User
from app.schemas.skill_wallet import SkillWalletResponse
from app.services.skill_wallet import SkillWalletService

router = APIRouter()


@router.get("/my-wallet", response_model=SkillWalletResponse)
def get_my_wallet(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: SkillWalletService = Depends(get_skill_wallet_service),
):
    return service.get_wallet(db, current_user.id)


@router.get("/student/{student_id}", response_model=SkillWalletResponse)
def get_student_wallet(
    student_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: SkillWalletService = Depends(get_skill_wallet_service),
):
    """学生本人、获同意的家长或审阅角色可查看。"""
    return service.get_wallet_for(db, current_user, student_id)


# 钱包条目不可变：写端点一律 403，与角色和认证无关

@router.post("")
def create_wallet_entry():
    SkillWalletService.reject_modification()


@router.put("/{entry_id}")
@router.patch("/{entry_id}")
def update_wallet_entry(entry_id: str):
    SkillWalletService.reject_modification()


@router.delete("/{entry_id}")
def delete_wallet_entry(entry_id: str):
    SkillWalletService.reject_modification()
