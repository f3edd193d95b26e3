"""
Schemas module untuk AuthEngine.
Berisi result types dan value objects yang dikembalikan ke host application.
"""

from authengine.schemas.response import (
    AccessError,
    AccessResult,
    SessionToken,
    LoginActivitySnapshot,
    SignInResult
)
from authengine.schemas.auth import AuthenticatorSetup, DeviceInfo, Location

__all__ = [
    "AccessError",
    "AccessResult",
    "SessionToken",
    "LoginActivitySnapshot",
    "SignInResult",
    "AuthenticatorSetup",
    "DeviceInfo",
    "Location"
]
