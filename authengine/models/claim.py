"""
User claim model untuk AuthEngine.
"""

from sqlalchemy import Column, String, ForeignKey, Index, Uuid

from authengine.db.base import BaseModel


class UserClaim(BaseModel):
    """
    Typed key/value fact tentang user.

    Beberapa claim dengan type yang sama untuk satu user diperbolehkan;
    uniqueness per (user, type) tidak di-enforce.
    """

    __tablename__ = "user_claims"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    claim_type = Column(String(255), nullable=False)
    claim_value = Column(String(1024), nullable=False)

    __table_args__ = (
        Index("idx_user_claims_user_type", "user_id", "claim_type"),
    )
