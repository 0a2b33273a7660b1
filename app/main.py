"""FastAPI 入口：提交审阅、评分标准评价与技能钱包服务。"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v2 import router as api_v2_router
from app.config import get_settings
from app.db import Base, engine
from app.exceptions import LedgerImmutabilityError
from app.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """应用工厂，便于测试与拓展路由。"""

    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Skill Review API", version="0.1.0")
    app.include_router(api_v2_router)

    @app.on_event("startup")
    def init_models() -> None:
        """启动时确保表存在。后续可替换为 Alembic 迁移。"""

        Base.metadata.create_all(bind=engine)

    @app.exception_handler(LedgerImmutabilityError)
    def ledger_immutability_handler(request: Request, exc: LedgerImmutabilityError) -> JSONResponse:
        logger.warning("Blocked skill wallet write on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
