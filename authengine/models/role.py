"""
Role model untuk AuthEngine.
"""

from sqlalchemy import Column, String, UniqueConstraint

from authengine.db.base import BaseModel


class Role(BaseModel):
    """
    Role dengan nama unik dan optional sub-type tag.
    """

    __tablename__ = "roles"

    name = Column(String(100), nullable=False)
    type = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("name", name="uq_roles_name"),
    )
