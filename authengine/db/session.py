"""
Database engine dan session factories untuk AuthEngine.
Engine tidak dibuat secara global; host application membuatnya dari Settings
dan meneruskan session ke store / manager.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)

from authengine.core.config import Settings
from authengine.db.base import Base

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings, url: Optional[str] = None) -> Engine:
    """
    Create blocking SQLAlchemy engine.

    Args:
        settings: AuthEngine settings
        url: Override database URL

    Returns:
        Configured Engine
    """
    return create_engine(url or settings.database_url, echo=settings.database_echo)


def create_async_db_engine(settings: Settings, url: Optional[str] = None) -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    Args:
        settings: AuthEngine settings
        url: Override database URL (harus memakai async driver)

    Returns:
        Configured AsyncEngine
    """
    return create_async_engine(url or settings.database_url, echo=settings.database_echo)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory untuk blocking calling convention."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False
    )


def create_async_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory untuk async calling convention."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def init_db(engine: Engine) -> None:
    """
    Create semua tables. Biasanya hanya dipakai untuk development dan tests.
    """
    from authengine import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Database tables created")


async def init_async_db(engine: AsyncEngine) -> None:
    """
    Async variant dari init_db.
    """
    from authengine import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
