"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，便于在本地/生产之间切换。
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，便于快速启动。
    - ``reviewer_roles``：具备审阅能力（批准/驳回/评分）的角色。
    - ``notification_webhook_url``：为空时通知只写日志，不对外发送。
    """

    database_url: str = Field(
        default="sqlite:///./storage/review.db", description="SQLAlchemy 数据库 URL"
    )
    sql_echo: bool = Field(default=False, description="是否输出 SQL 日志")
    log_level: str = Field(default="INFO", description="根日志级别")

    secret_key: str = Field(
        default="dev-secret-key-change-in-production", description="Token 签名密钥"
    )
    token_expire_hours: int = Field(default=24, description="Token 有效期（小时）")

    reviewer_roles: List[str] = Field(
        default_factory=lambda: ["teacher", "school_admin", "platform_admin"],
        description="拥有审阅能力的角色",
    )

    notification_webhook_url: Optional[str] = Field(
        default=None, description="通知 Webhook 地址，为空则仅记录日志"
    )
    notification_timeout_seconds: float = Field(
        default=5.0, description="单次通知请求超时（秒）"
    )

    model_config = {
        "env_prefix": "REVIEW_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()
