"""
Core module untuk AuthEngine.
Berisi komponen inti seperti konfigurasi, keamanan, exceptions, dan konstanta.
"""

from authengine.core.config import Settings, get_settings
from authengine.core.exceptions import (
    AuthEngineException,
    ValidationError,
    EmailNotConfirmedException,
    ConflictError,
    UnsupportedConflictError,
    TokenError
)
from authengine.core.security import PasswordHasher, TokenIssuer

__all__ = [
    "Settings",
    "get_settings",
    "AuthEngineException",
    "ValidationError",
    "EmailNotConfirmedException",
    "ConflictError",
    "UnsupportedConflictError",
    "TokenError",
    "PasswordHasher",
    "TokenIssuer"
]
