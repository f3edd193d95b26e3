"""
Utility functions untuk AuthEngine.
"""

from authengine.utils.validators import (
    Validator,
    is_valid_email,
    is_valid_username,
    is_valid_name,
    is_valid_phone_number,
    normalize_email,
    normalize_phone_number,
    password_policy_errors
)

__all__ = [
    "Validator",
    "is_valid_email",
    "is_valid_username",
    "is_valid_name",
    "is_valid_phone_number",
    "normalize_email",
    "normalize_phone_number",
    "password_policy_errors"
]
