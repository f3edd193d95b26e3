"""
Validator utilities untuk AuthEngine.
Semua violations untuk satu call dikumpulkan lalu dikembalikan sekaligus
sebelum ada interaksi dengan store.
"""

import re
from typing import Any, List, Optional

import phonenumbers
from email_validator import validate_email as validate_email_lib, EmailNotValidError

from authengine.core.config import PasswordPolicy
from authengine.core.constants import RegexPattern
from authengine.schemas.response import AccessResult


USERNAME_PATTERN = re.compile(RegexPattern.USERNAME)
NAME_PATTERN = re.compile(RegexPattern.NAME)
SPECIAL_CHARACTER_PATTERN = re.compile(RegexPattern.SPECIAL_CHARACTER)


def is_valid_email(email: str) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        True if email is valid, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    try:
        validate_email_lib(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


def is_valid_username(username: str) -> bool:
    """
    Validate username format: 3-100 karakter alphanumeric, underscore, dot, hyphen.
    """
    if not username or not isinstance(username, str):
        return False
    return bool(USERNAME_PATTERN.match(username))


def is_valid_name(name: str) -> bool:
    """Validate first/last name."""
    if not name or not isinstance(name, str) or len(name) > 100:
        return False
    return bool(NAME_PATTERN.match(name))


def is_valid_phone_number(phone: str, region: Optional[str] = None) -> bool:
    """
    Validate phone number format.

    Args:
        phone: Phone number to validate
        region: ISO 3166-1 alpha-2 country code; None berarti format internasional (+...)

    Returns:
        True if phone number is valid, False otherwise
    """
    if not phone or not isinstance(phone, str):
        return False

    try:
        parsed = phonenumbers.parse(phone, region)
        return phonenumbers.is_valid_number(parsed)
    except phonenumbers.NumberParseException:
        return False


def normalize_email(email: str) -> str:
    """Lowercase dan strip whitespace."""
    if not email:
        return email
    return email.strip().lower()


def normalize_phone_number(phone: str, region: Optional[str] = None) -> Optional[str]:
    """
    Normalize phone number ke format E164.

    Returns:
        Normalized phone number or None if invalid
    """
    if not phone:
        return None

    try:
        parsed = phonenumbers.parse(phone, region)
        if not phonenumbers.is_valid_number(parsed):
            return None
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except phonenumbers.NumberParseException:
        return None


def password_policy_errors(password: str, policy: PasswordPolicy) -> List[str]:
    """
    Cek password terhadap policy.

    Args:
        password: Password to validate
        policy: Password policy

    Returns:
        List of errors (kosong jika valid)
    """
    if not password or not isinstance(password, str):
        return ["Password is required"]

    errors = []

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")

    if len(password) > policy.max_length:
        errors.append(f"Password must be at most {policy.max_length} characters long")

    if policy.require_upper and not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")

    if policy.require_lower and not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")

    if policy.require_digit and not re.search(r'\d', password):
        errors.append("Password must contain at least one number")

    if policy.require_special and not SPECIAL_CHARACTER_PATTERN.search(password):
        errors.append("Password must contain at least one special character")

    return errors


class Validator:
    """
    Mengumpulkan semua validation errors untuk satu operasi.

    Example:
        invalid = Validator().email(email).password(password, policy).failure()
    """

    def __init__(self):
        self.errors: List[str] = []

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def check(self, condition: bool, message: str) -> "Validator":
        """Tambah error jika condition False."""
        if not condition:
            self.errors.append(message)
        return self

    def required(self, value: Any, field: str) -> bool:
        """
        Cek required value. Returns True jika value ada.
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            self.errors.append(f"{field} is required")
            return False
        return True

    def email(self, value: Optional[str], field: str = "email") -> "Validator":
        if self.required(value, field):
            self.check(is_valid_email(value), f"{field} is not a valid email address")
        return self

    def username(self, value: Optional[str], field: str = "username") -> "Validator":
        if self.required(value, field):
            self.check(is_valid_username(value), f"{field} may only contain letters, digits, '.', '_' or '-' (3-100 characters)")
        return self

    def name(self, value: Optional[str], field: str) -> "Validator":
        if self.required(value, field):
            self.check(is_valid_name(value), f"{field} contains invalid characters")
        return self

    def phone_number(self, value: Optional[str], field: str = "phone_number") -> "Validator":
        if self.required(value, field):
            self.check(is_valid_phone_number(value), f"{field} is not a valid international phone number")
        return self

    def password(self, value: Optional[str], policy: PasswordPolicy, field: str = "password") -> "Validator":
        if self.required(value, field):
            self.errors.extend(password_policy_errors(value, policy))
        return self

    def failure(self) -> Optional[AccessResult]:
        """
        Semua errors sebagai satu failed AccessResult.

        Returns:
            None jika valid
        """
        if self.errors:
            return AccessResult.invalid(self.errors)
        return None
