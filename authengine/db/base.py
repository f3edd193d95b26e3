"""
Base model untuk SQLAlchemy.
Semua model harus inherit dari BaseModel untuk mendapatkan common fields dan behavior.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import Column, DateTime, Uuid, inspect
from sqlalchemy.orm import as_declarative, declared_attr


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Pastikan datetime timezone-aware (UTC).
    Beberapa backend (misal SQLite) mengembalikan naive datetime.
    """
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@as_declarative()
class Base:
    """
    Base class untuk semua SQLAlchemy models.
    """

    def dict(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Args:
            exclude: Set of fields to exclude

        Returns:
            Dictionary representation of model
        """
        exclude = exclude or set()

        result = {}
        for column in inspect(self.__class__).columns:
            if column.key in exclude:
                continue
            value = getattr(self, column.key)

            # Handle special types
            if isinstance(value, datetime):
                value = ensure_aware(value).isoformat()
            elif isinstance(value, uuid.UUID):
                value = str(value)

            result[column.key] = value

        return result

    def __repr__(self) -> str:
        """
        String representation of model instance.
        """
        class_name = self.__class__.__name__

        primary_keys = []
        for column in inspect(self.__class__).primary_key:
            primary_keys.append(f"{column.key}={getattr(self, column.key, None)}")

        if primary_keys:
            return f"<{class_name}({', '.join(primary_keys)})>"
        return f"<{class_name}>"


class BaseModel(Base):
    """
    Abstract base model dengan UUID primary key dan timestamp fields.
    """
    __abstract__ = True

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False
    )

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    updated_at = Column(
        DateTime(timezone=True),
        default=None,
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=True
    )

    @declared_attr
    def __mapper_args__(cls):
        """
        SQLAlchemy mapper arguments.
        Enable eager defaults untuk mendapatkan server-generated values.
        """
        return {
            "eager_defaults": True
        }
