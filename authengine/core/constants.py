"""
Konstanta yang digunakan di seluruh AuthEngine.
"""

from enum import Enum


class SignInStatus(str, Enum):
    """Hasil akhir dari satu sign-in attempt."""
    FAILED = "FAILED"
    LOCKED_OUT = "LOCKED_OUT"
    REQUIRE_TWO_FACTOR = "REQUIRE_TWO_FACTOR"
    SUCCESS = "SUCCESS"


class ClaimType(str, Enum):
    """Claim types yang dibuat oleh engine sendiri."""
    SUBJECT = "sub"
    EMAIL = "email"
    NAME_IDENTIFIER = "nameid"
    ROLE = "role"


class TokenPurpose(str, Enum):
    """Nilai claim `purpose` untuk token yang bukan session token."""
    TWO_FACTOR = "two_factor"
    IDENTITY = "identity"  # email/phone confirmation dan password reset


class TwoFactorMethod(str, Enum):
    """Metode two-factor authentication."""
    AUTHENTICATOR = "AUTHENTICATOR"  # TOTP authenticator app
    SMS = "SMS"


class ErrorCode(str, Enum):
    """Kode error untuk AccessError."""
    NOT_FOUND = "NOT_FOUND"
    UPDATE_FAILED = "UPDATE_FAILED"
    CREATE_FAILED = "CREATE_FAILED"
    DELETE_FAILED = "DELETE_FAILED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    INVALID_CODE = "INVALID_CODE"
    DUPLICATE = "DUPLICATE"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    TWO_FACTOR_NOT_ENABLED = "TWO_FACTOR_NOT_ENABLED"


class DeviceType(str, Enum):
    """Tipe-tipe device."""
    MOBILE = "MOBILE"
    DESKTOP = "DESKTOP"
    TABLET = "TABLET"
    BOT = "BOT"
    UNKNOWN = "UNKNOWN"


class Platform(str, Enum):
    """Platform device."""
    IOS = "IOS"
    ANDROID = "ANDROID"
    WINDOWS = "WINDOWS"
    MACOS = "MACOS"
    LINUX = "LINUX"
    UNKNOWN = "UNKNOWN"


UNKNOWN = "unknown"


# Response Messages
class ResponseMessage:
    """Pesan standar untuk AccessError dan SignInResult."""
    SIGN_IN_SUCCESS = "Sign-in successful"
    INVALID_CREDENTIALS = "Invalid credentials"
    ACCOUNT_LOCKED = "Account is locked"
    TWO_FACTOR_REQUIRED = "Two-factor authentication required"
    TWO_FACTOR_INVALID = "Invalid two-factor code"
    TWO_FACTOR_NOT_ENABLED = "Two-factor authentication is not enabled"
    EMAIL_NOT_CONFIRMED = "Email address has not been confirmed"
    USER_NOT_FOUND = "User not found"
    ROLE_NOT_FOUND = "Role not found"
    ROLE_EXISTS = "Role already exists"
    CLAIM_NOT_FOUND = "Claim not found"
    UPDATE_FAILED = "Failed to update record"
    CREATE_FAILED = "Failed to create record"
    DELETE_FAILED = "Failed to delete record"
    INVALID_TOKEN = "Invalid or expired token"
    TOKEN_MISMATCH = "Token does not belong to this user"
    EMAIL_EXISTS = "Email already registered"
    USERNAME_EXISTS = "Username already taken"


# Regex Patterns
class RegexPattern:
    """Regex patterns untuk validasi."""
    USERNAME = r'^[a-zA-Z0-9_.-]{3,100}$'
    NAME = r"^[^\d\W]([^\d\W]|[ '\-])*$"
    SPECIAL_CHARACTER = r"[!@#$%^&*(),.?\":{}|<>_\-+=\[\]\\/;'`~]"
