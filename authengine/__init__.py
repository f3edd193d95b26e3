"""
AuthEngine - embeddable authentication engine.

Menyediakan:
- Salted password hashing (Argon2)
- Sign-in state machine dengan lockout dan two-factor gates
- Signed access tokens dan opaque refresh tokens
- TOTP enrollment dan verifikasi
- Account lifecycle, claims, dan roles di atas SQLAlchemy
- Optimistic concurrency retry untuk setiap commit

Engine dipakai sebagai library oleh host application; tidak ada transport layer.
"""

from authengine.core.config import Settings, get_settings
from authengine.core.security import PasswordHasher, TokenIssuer
from authengine.schemas.response import AccessResult, SignInResult, SessionToken
from authengine.services import (
    SignInManager,
    AsyncSignInManager,
    AccountManager,
    AsyncAccountManager,
    RoleManager,
    AsyncRoleManager,
    TotpProvider,
    HeaderDeviceLocator
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "PasswordHasher",
    "TokenIssuer",
    "AccessResult",
    "SignInResult",
    "SessionToken",
    "SignInManager",
    "AsyncSignInManager",
    "AccountManager",
    "AsyncAccountManager",
    "RoleManager",
    "AsyncRoleManager",
    "TotpProvider",
    "HeaderDeviceLocator"
]
