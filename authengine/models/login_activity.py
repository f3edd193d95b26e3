"""
Login activity model untuk AuthEngine.
Satu record per (user, IP address); dibuat pada sign-in pertama dari IP tersebut.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Uuid

from authengine.db.base import BaseModel


class LoginActivity(BaseModel):
    """
    Session fingerprint untuk auditing dan device/location tracking.

    Attributes:
        user_id: Owner
        device: Device label dari User-Agent
        ip_address: Client IP
        city: City hasil IP lookup
        country: Country hasil IP lookup
        last_login_at: Most recent sign-in dari IP ini
    """

    __tablename__ = "login_activities"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    device = Column(String(255), nullable=False)
    ip_address = Column(String(45), nullable=False)  # IPv4 dan IPv6
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    last_login_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "ip_address", name="uq_login_activities_user_ip"),
    )
