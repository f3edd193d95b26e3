"""
Models module untuk AuthEngine.
Berisi semua SQLAlchemy models.
"""

from authengine.models.role import Role
from authengine.models.user import User
from authengine.models.claim import UserClaim
from authengine.models.login_activity import LoginActivity

__all__ = [
    "Role",
    "User",
    "UserClaim",
    "LoginActivity"
]
