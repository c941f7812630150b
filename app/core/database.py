"""
本文件用于提供异步数据库引擎与会话的惰性初始化，以及连通性检查与释放。
主要函数:
- `get_engine`: 懒加载创建 `AsyncEngine`
- `get_sessionmaker`: 懒加载创建 `async_sessionmaker`
- `AsyncSessionLocal`: 获取新的 `AsyncSession`
- `init_db`: 创建数据库表结构
- `check_db_connection`: 检查数据库连通性
- `dispose_engine`: 释放连接池
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import get_settings
from app.core.logger import logger

settings = get_settings()

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is not None:
        return _engine
    if not (settings.DATABASE_URL or "").strip():
        raise RuntimeError("未配置 DATABASE_URL，数据库功能不可用")

    if "sqlite" in settings.DATABASE_URL:
        _engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

        # 针对 SQLite 启用 WAL 模式以提高并发稳定性
        @event.listens_for(_engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()
    else:
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DB_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )

    return _engine


def get_sessionmaker() -> async_sessionmaker:
    global _sessionmaker
    if _sessionmaker is not None:
        return _sessionmaker

    _sessionmaker = async_sessionmaker(bind=get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _sessionmaker


def AsyncSessionLocal() -> AsyncSession:
    return get_sessionmaker()()


Base = declarative_base()


async def init_db() -> None:
    """
    输入:
    - 无

    输出:
    - 无

    作用:
    - 初始化数据库表结构（根据 ORM 模型创建缺失的表）
    """

    from app.models.inventory import Order, OrderItem, Product, Supplier  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_connection(verbose: bool = True) -> bool:
    """
    检查数据库连接是否可用
    """
    try:
        if not (settings.DATABASE_URL or "").strip():
            if verbose:
                logger.warning("⚠️ 未配置 DATABASE_URL")
            return False
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        if verbose:
            logger.warning(f"⚠️ 数据库连接检查失败: {e}")
        return False


async def dispose_engine() -> None:
    """
    输入:
    - 无

    输出:
    - 无

    作用:
    - 释放数据库引擎的连接池（应用退出时调用）
    """
    global _engine, _sessionmaker
    if _engine:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None
