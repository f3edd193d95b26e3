"""
Custom exceptions untuk AuthEngine.
Semua custom exceptions harus inherit dari base exception ini.

Expected domain outcomes (wrong password, not found, update conflict) tidak
di-raise; mereka dikembalikan sebagai AccessResult / SignInResult.
"""

from typing import Optional, Dict, Any, List


class AuthEngineException(Exception):
    """Base exception untuk semua custom exceptions di AuthEngine."""

    def __init__(
        self,
        message: str,
        code: str = "AUTH_ENGINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            code: Machine readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AuthEngineException):
    """Exception untuk input yang tidak boleh sampai ke engine (programmer error)."""

    def __init__(self, message: str = "Validation failed", errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message, code="VALIDATION_ERROR", details={"errors": self.errors})


class EmailNotConfirmedException(ValidationError):
    """Exception untuk sign-in ketika email wajib dikonfirmasi tapi belum."""

    def __init__(self, message: str = "Email address has not been confirmed"):
        super().__init__(message, errors=[message])
        self.code = "EMAIL_NOT_CONFIRMED"


class ConflictError(AuthEngineException):
    """Exception untuk konflik data (misal: duplicate entry)."""

    def __init__(self, message: str = "Resource conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class UnsupportedConflictError(ConflictError):
    """Concurrency conflict pada entity type yang tidak dikelola retry wrapper."""

    def __init__(self, entity_type: str):
        super().__init__(
            f"Concurrency conflict on unsupported entity type: {entity_type}",
            details={"entity_type": entity_type}
        )
        self.code = "UNSUPPORTED_CONFLICT"


class TokenError(AuthEngineException):
    """Exception untuk error terkait token."""

    def __init__(self, message: str = "Invalid token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="TOKEN_ERROR", details=details)


class ExpiredTokenException(TokenError):
    """Exception untuk token yang sudah expired."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, details={"expired": True})


class InvalidTokenException(TokenError):
    """Exception untuk token yang tidak valid."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
