"""
User model untuk AuthEngine.
Model utama yang merepresentasikan account beserta security state-nya.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid,
    UniqueConstraint
)

from authengine.db.base import BaseModel, ensure_aware


class User(BaseModel):
    """
    User model untuk authentication dan account management.

    Attributes:
        id: Unique user ID (UUID)
        email: User's email address (unique)
        username: Username (unique, optional)
        password_hash: Argon2 hash
        salt: Base64 salt yang dipakai untuk password_hash
        email_confirmed: Whether email is confirmed
        phone_number_confirmed: Whether phone number is confirmed
        lockout_enabled: Whether account is locked
        lockout_expiration: Lockout berakhir pada timestamp ini (None = tanpa batas)
        two_factor_enabled: Whether 2FA is required on sign-in
        authenticator_key: Base32 TOTP secret (None untuk SMS atau tanpa 2FA)
        role_id: Role reference
        version: Optimistic concurrency token
    """

    __tablename__ = "users"

    # Identity fields
    email = Column(String(255), nullable=False, index=True)
    username = Column(String(100), nullable=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(32), nullable=True)

    # Credential fields
    password_hash = Column(String(255), nullable=False)
    salt = Column(String(64), nullable=False)

    # Status fields
    email_confirmed = Column(Boolean, default=False, nullable=False)
    phone_number_confirmed = Column(Boolean, default=False, nullable=False)

    # Security fields
    lockout_enabled = Column(Boolean, default=False, nullable=False)
    lockout_expiration = Column(DateTime(timezone=True), nullable=True)
    two_factor_enabled = Column(Boolean, default=False, nullable=False)
    authenticator_key = Column(String(64), nullable=True)

    role_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True
    )

    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("username", name="uq_users_username"),
    )

    __mapper_args__ = {
        "version_id_col": version,
        "eager_defaults": True
    }

    # Properties
    @property
    def full_name(self) -> str:
        """Get full name."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def is_locked_now(self, at: Optional[datetime] = None) -> bool:
        """
        Check if user is currently locked.
        Lockout expiration hanya berarti jika lockout_enabled True.

        Args:
            at: Waktu pengecekan; default UTC now
        """
        if not self.lockout_enabled:
            return False

        expiration = ensure_aware(self.lockout_expiration)
        if expiration is None:
            return True

        return (at or datetime.now(timezone.utc)) < expiration

    # Methods
    def set_password_hash(self, password_hash: str, salt: str) -> None:
        """
        Set credential material. Hash dibuat oleh PasswordHasher.

        Args:
            password_hash: Hashed password
            salt: Salt yang dipakai
        """
        self.password_hash = password_hash
        self.salt = salt

    def lock_account(self, until: Optional[datetime]) -> None:
        """
        Lock user account until specified time.

        Args:
            until: Lock expiration timestamp
        """
        self.lockout_enabled = True
        self.lockout_expiration = until

    def unlock_account(self) -> None:
        """Unlock user account."""
        self.lockout_enabled = False
        self.lockout_expiration = None

    def confirm_email(self) -> None:
        """Mark email as confirmed."""
        self.email_confirmed = True

    def confirm_phone_number(self) -> None:
        """Mark phone number as confirmed."""
        self.phone_number_confirmed = True

    def enable_two_factor(self, authenticator_key: Optional[str] = None) -> None:
        """
        Enable 2FA.

        Args:
            authenticator_key: TOTP secret; None untuk SMS
        """
        self.two_factor_enabled = True
        self.authenticator_key = authenticator_key

    def disable_two_factor(self) -> None:
        """Disable 2FA dan hapus secret."""
        self.two_factor_enabled = False
        self.authenticator_key = None

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """
        Convert user to dictionary.
        Credential material dan authenticator secret tidak pernah disertakan.

        Args:
            include_sensitive: Include security state fields

        Returns:
            User dictionary
        """
        data = self.dict(exclude={"password_hash", "salt", "authenticator_key", "version"})
        if not include_sensitive:
            for key in ("lockout_enabled", "lockout_expiration", "two_factor_enabled"):
                data.pop(key, None)
        return data
