"""
Database module untuk AuthEngine.
Berisi base model, session factories, dan persistence retry wrapper.
"""

from authengine.db.base import Base, BaseModel
from authengine.db.session import (
    create_db_engine,
    create_async_db_engine,
    create_session_factory,
    create_async_session_factory,
    init_db,
    init_async_db
)
from authengine.db.retry import PersistenceRetryWrapper

__all__ = [
    "Base",
    "BaseModel",
    "create_db_engine",
    "create_async_db_engine",
    "create_session_factory",
    "create_async_session_factory",
    "init_db",
    "init_async_db",
    "PersistenceRetryWrapper"
]
