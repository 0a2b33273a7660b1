"""用户认证API - 简化版本（无外部JWT依赖）。"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import get_db, transaction
from app.exceptions import AuthenticationError, ReviewValidationError
from app.models import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter()

PBKDF2_ITERATIONS = 100_000


# === Schemas ===

class Token(BaseModel):
    access_token: str
    token_type: str


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=6)
    role: UserRole
    name: str
    phone_number: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    username: str
    role: UserRole
    name: str
    phone_number: Optional[str]

    class Config:
        from_attributes = True


# === Token 工具函数 ===

def hash_password(password: str) -> str:
    """PBKDF2 加盐哈希，格式为 ``salt$digest``。"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    salt, _, expected = hashed_password.partition("$")
    digest = hashlib.pbkdf2_hmac("sha256", plain_password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), expected)


def _sign(payload_b64: str) -> str:
    secret_key = get_settings().secret_key
    return hmac.new(secret_key.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: int, role: str) -> str:
    """创建简单的Token。"""
    expire = datetime.now(timezone.utc) + timedelta(hours=get_settings().token_expire_hours)
    payload = {"sub": user_id, "role": role, "exp": expire.isoformat()}
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    return f"{payload_b64}.{_sign(payload_b64)}"


def decode_token(token: str) -> Optional[dict]:
    """校验签名与过期时间，失败返回 None。"""
    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, signature = parts
    if not hmac.compare_digest(signature, _sign(payload_b64)):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        exp = datetime.fromisoformat(payload["exp"])
    except (ValueError, KeyError, TypeError):
        return None
    if datetime.now(timezone.utc) > exp:
        return None
    return payload


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    stmt = select(User).where(User.username == username, User.deleted_at.is_(None))
    return db.execute(stmt).scalar_one_or_none()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """从Token获取当前用户。"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError()

    payload = decode_token(authorization[len("Bearer "):])
    if not payload or payload.get("sub") is None:
        logger.debug("Rejected bearer token")
        raise AuthenticationError()

    user = db.get(User, payload["sub"])
    if user is None or user.deleted_at is not None:
        raise AuthenticationError()
    return user


# === API 端点 ===

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """用户注册。"""
    if get_user_by_username(db, user_data.username):
        raise ReviewValidationError("Username already exists", field="username")

    user = User(
        username=user_data.username,
        password_hash=hash_password(user_data.password),
        role=user_data.role,
        name=user_data.name,
        phone_number=user_data.phone_number,
    )
    with transaction(db):
        db.add(user)
    db.refresh(user)
    logger.info("Registered user %s with role %s", user.id, user.role.value)
    return user


@router.post("/login", response_model=Token)
def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    """用户登录，返回Token。"""
    user = get_user_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Incorrect username or password")

    return {"access_token": create_token(user.id, user.role.value), "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """获取当前登录用户信息。"""
    return current_user
