"""数据库连接、会话与事务管理。"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings


settings = get_settings()


class Base(DeclarativeBase):
    """SQLAlchemy 基类。"""

    pass


def enable_sqlite_transactions(target: Engine) -> None:
    """让 pysqlite 由 SQLAlchemy 显式发出 BEGIN。

    pysqlite 默认推迟 BEGIN 到第一条 DML，导致 SAVEPOINT 可能落在事务
    之外；审阅流程依赖 ``begin_nested`` 做逐技能回滚，必须关闭这一行为。
    """

    @event.listens_for(target, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def _ensure_sqlite_directory(database_url: str) -> None:
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


# SQLite 需要 ``check_same_thread=False`` 以支持多线程；其他数据库可忽略
if settings.database_url.startswith("sqlite"):
    _ensure_sqlite_directory(settings.database_url)
engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
if engine.dialect.name == "sqlite":
    enable_sqlite_transactions(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """FastAPI 依赖，用于获取数据库会话。"""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """在调用方传入的 Session 上划定一个原子事务边界。

    成功退出时提交；任何异常都会回滚并继续抛出。事务内的所有读写都应
    显式使用这里 yield 出来的同一个 Session。
    """

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
