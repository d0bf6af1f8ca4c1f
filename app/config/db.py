from functools import lru_cache
from typing import Any, Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from app.settings import settings as s
from app.utils.logging_config import logger


def _engine_options(url: str) -> dict[str, Any]:
    # SQLite pools (used for local runs) take no sizing arguments.
    if url.startswith("sqlite"):
        return {"echo": s.DEBUG}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_size": 20,
        "max_overflow": 20,
        "echo": s.DEBUG,
    }


engine = create_async_engine(s.DATABASE_URL, **_engine_options(s.DATABASE_URL))

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


@lru_cache(maxsize=1)
def get_sync_engine() -> Engine:
    """
    Synchronous engine for Celery tasks, built on first use.
    """
    url = (
        s.DATABASE_URL.replace("postgresql+asyncpg", "postgresql+psycopg2")
        .replace("sqlite+aiosqlite", "sqlite")
    )
    return create_engine(url, **_engine_options(url))


def get_db_sync() -> Generator[Session, None, None]:
    """
    Synchronous session generator for Celery tasks or other synchronous contexts.
    """
    db = sessionmaker(autocommit=False, autoflush=False, bind=get_sync_engine())()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


async def check_db_connection():
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
            logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        raise
