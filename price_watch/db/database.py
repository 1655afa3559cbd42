from __future__ import annotations

from pathlib import Path

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from price_watch.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    pass


def ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-based SQLite database."""
    prefix = "sqlite:///"
    url = url.replace("+aiosqlite", "")
    if url.startswith(prefix) and ":memory:" not in url:
        Path(url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


engine = create_async_engine(settings.database_url, echo=settings.debug)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# 同步版本的資料庫連線（給排程與 CLI 使用）
_sync_engine = None


def get_sync_sessionmaker() -> sessionmaker:
    global _sync_engine
    if _sync_engine is None:
        ensure_sqlite_dir(settings.sync_database_url)
        _sync_engine = create_engine(settings.sync_database_url)
    return sessionmaker(bind=_sync_engine, class_=Session, expire_on_commit=False)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """建立所有資料表"""
    # models must be imported so their tables are registered on Base.metadata
    import price_watch.models  # noqa: F401

    ensure_sqlite_dir(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
