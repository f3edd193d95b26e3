"""
Account service untuk AuthEngine.
Menangani user lifecycle dan mutasi security state: lockout, konfirmasi
email/phone, enrollment two-factor, password reset, dan claims.

Input di-validasi di awal dan semua violations dikembalikan sekaligus sebagai
AccessResult (code VALIDATION_FAILED) sebelum ada interaksi dengan store;
expected failures (not found, update conflict) dikembalikan sebagai AccessResult.
"""

import logging
from datetime import timedelta
from typing import Optional, Any, List, Tuple, Union, Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import Settings
from authengine.core.constants import ClaimType, ErrorCode, ResponseMessage, TokenPurpose
from authengine.core.exceptions import ConflictError, UnsupportedConflictError, TokenError
from authengine.core.security import PasswordHasher, TokenIssuer
from authengine.models.user import User
from authengine.models.claim import UserClaim
from authengine.schemas.response import AccessResult
from authengine.services.two_factor import TotpProvider
from authengine.stores.base import (
    UserStore,
    ClaimStore,
    RoleStore,
    AsyncUserStore,
    AsyncClaimStore,
    AsyncRoleStore
)
from authengine.stores.sql import SqlUserStore, SqlClaimStore, SqlRoleStore
from authengine.stores.async_sql import AsyncSqlUserStore, AsyncSqlClaimStore, AsyncSqlRoleStore
from authengine.utils.validators import Validator, normalize_email, normalize_phone_number

logger = logging.getLogger(__name__)

UserRef = Union[User, UUID]
ClaimInput = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


class AccountOperations:
    """
    Logic yang tidak menyentuh store, dipakai bersama oleh
    AccountManager dan AsyncAccountManager.
    """

    def __init__(
        self,
        settings: Settings,
        hasher: Optional[PasswordHasher] = None,
        token_issuer: Optional[TokenIssuer] = None,
        totp: Optional[TotpProvider] = None
    ):
        """
        Initialize shared account components.

        Args:
            settings: AuthEngine settings
            hasher: Password hasher
            token_issuer: Token issuer
            totp: TOTP provider
        """
        self.settings = settings
        self.hasher = hasher or PasswordHasher()
        self.token_issuer = token_issuer or TokenIssuer(settings.token)
        self.totp = totp or TotpProvider(settings.totp)

    # Policy
    def is_locked_out(self, user: User) -> bool:
        """
        Check apakah account sedang locked.

        Args:
            user: User

        Returns:
            True jika lockout aktif dan belum expired
        """
        return user.is_locked_now(self.token_issuer.now())

    # Tokens
    def _identity_token(self, user: User) -> str:
        claims = {
            ClaimType.EMAIL.value: user.email,
            ClaimType.NAME_IDENTIFIER.value: str(user.id)
        }
        return self.token_issuer.issue_access_token(
            claims,
            ttl_minutes=self.settings.token.confirmation_expiration_minutes,
            purpose=TokenPurpose.IDENTITY
        )

    def generate_confirmation_token(self, user: User) -> str:
        """
        Generate token untuk konfirmasi email atau phone number.

        Args:
            user: User

        Returns:
            Signed token berisi email dan user id
        """
        return self._identity_token(user)

    def generate_reset_token(self, user: User) -> str:
        """
        Generate token untuk password reset.

        Args:
            user: User

        Returns:
            Signed token berisi email dan user id
        """
        return self._identity_token(user)

    def _token_claim(self, token: str, claim_type: ClaimType) -> Optional[str]:
        try:
            claims = self.token_issuer.read_claims(token, claim_type.value, purpose=TokenPurpose.IDENTITY)
        except TokenError as e:
            logger.info("Rejected %s token: %s", claim_type.value, e.message)
            return None
        value = claims.get(claim_type.value)
        return str(value) if value is not None else None

    # Builders
    def _validate_new_user(
        self,
        email: str,
        password: str,
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        phone_number: Optional[str]
    ) -> Optional[AccessResult]:
        validator = Validator().email(email).password(password, self.settings.password)
        if username is not None:
            validator.username(username)
        if first_name is not None:
            validator.name(first_name, "first_name")
        if last_name is not None:
            validator.name(last_name, "last_name")
        if phone_number is not None:
            validator.phone_number(phone_number)
        return validator.failure()

    def _build_user(
        self,
        email: str,
        password: str,
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        phone_number: Optional[str]
    ) -> User:
        password_hash, salt = self.hasher.hash(password)
        user = User(
            email=normalize_email(email),
            username=username.strip() if username else None,
            first_name=first_name,
            last_name=last_name,
            phone_number=normalize_phone_number(phone_number) if phone_number else None,
            email_confirmed=False,
            phone_number_confirmed=False,
            lockout_enabled=False,
            two_factor_enabled=False
        )
        user.set_password_hash(password_hash, salt)
        return user

    @staticmethod
    def _default_claims(user: User) -> List[UserClaim]:
        return [
            UserClaim(user_id=user.id, claim_type=ClaimType.EMAIL.value, claim_value=user.email),
            UserClaim(user_id=user.id, claim_type=ClaimType.NAME_IDENTIFIER.value, claim_value=str(user.id)),
        ]

    @staticmethod
    def _claim_pairs(claims: ClaimInput) -> Tuple[List[Tuple[str, str]], Optional[AccessResult]]:
        items = claims.items() if isinstance(claims, Mapping) else claims
        pairs = [(str(claim_type).strip(), str(value)) for claim_type, value in items]

        validator = Validator()
        validator.check(bool(pairs), "At least one claim is required")
        for claim_type, value in pairs:
            validator.check(bool(claim_type), "claim type is required")
            validator.check(bool(value), f"claim value for '{claim_type}' is required")
        return pairs, validator.failure()

    # Results
    @staticmethod
    def _user_not_found() -> AccessResult:
        return AccessResult.failed(ResponseMessage.USER_NOT_FOUND, ErrorCode.NOT_FOUND)

    @staticmethod
    def _commit_result(
        succeeded: bool,
        data: Any = None,
        message: str = ResponseMessage.UPDATE_FAILED,
        code: ErrorCode = ErrorCode.UPDATE_FAILED
    ) -> AccessResult:
        if succeeded:
            return AccessResult.success(data)
        return AccessResult.failed(message, code)


class AccountManager(AccountOperations):
    """
    Account operations dengan blocking calling convention.
    """

    def __init__(
        self,
        users: UserStore,
        claims: ClaimStore,
        roles: RoleStore,
        settings: Settings,
        **kwargs
    ):
        """
        Initialize account manager.

        Args:
            users: User store
            claims: Claim store
            roles: Role store
            settings: AuthEngine settings
            **kwargs: hasher, token_issuer, totp
        """
        super().__init__(settings, **kwargs)
        self.users = users
        self.claims = claims
        self.roles = roles

    @classmethod
    def from_session(cls, db: Session, settings: Settings, **kwargs) -> "AccountManager":
        """Buat manager dengan SQLAlchemy stores di atas satu session."""
        return cls(
            SqlUserStore(db, settings.retry),
            SqlClaimStore(db, settings.retry),
            SqlRoleStore(db, settings.retry),
            settings,
            **kwargs
        )

    def _resolve(self, user: UserRef) -> Optional[User]:
        if isinstance(user, User):
            return user
        return self.users.fetch_by_id(user)

    def _save(self, user: User) -> AccessResult:
        try:
            succeeded = self.users.update(user)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.UPDATE_FAILED, ErrorCode.DUPLICATE)
        return self._commit_result(succeeded, user)

    # Lifecycle
    def create_user(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone_number: Optional[str] = None
    ) -> AccessResult:
        """
        Create user baru dengan hashed password dan default claims.

        Args:
            email: User email
            password: Plain text password
            username: Optional username
            first_name: Optional first name
            last_name: Optional last name
            phone_number: Optional phone number (format internasional)

        Returns:
            AccessResult dengan user sebagai data
        """
        invalid = self._validate_new_user(email, password, username, first_name, last_name, phone_number)
        if invalid is not None:
            return invalid

        if self.users.fetch_by_email(email) is not None:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)
        if username and self.users.fetch_by_username(username) is not None:
            return AccessResult.failed(ResponseMessage.USERNAME_EXISTS, ErrorCode.DUPLICATE)

        user = self._build_user(email, password, username, first_name, last_name, phone_number)

        try:
            created = self.users.create(user)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)
        if not created:
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        if not self.claims.create(self._default_claims(user)):
            user_id = user.id
            logger.warning("Default claims could not be stored for user %s; removing user", user_id)
            if not self.users.delete(user):
                logger.error("User %s was created without default claims", user_id)
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        logger.info("Created user %s", user.id)
        return AccessResult.success(user)

    def delete_user(self, user: UserRef) -> AccessResult:
        """
        Delete user beserta claims dan login activities.

        Args:
            user: User atau user id

        Returns:
            AccessResult
        """
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        user_id = target.id
        deleted = self.users.delete(target)
        if deleted:
            logger.info("Deleted user %s", user_id)
        return self._commit_result(deleted, message=ResponseMessage.DELETE_FAILED, code=ErrorCode.DELETE_FAILED)

    def fetch_user_by_id(self, user_id: UUID) -> AccessResult:
        """Fetch user berdasarkan id."""
        invalid = Validator().check(user_id is not None, "user_id is required").failure()
        if invalid is not None:
            return invalid
        user = self.users.fetch_by_id(user_id)
        return AccessResult.success(user) if user else self._user_not_found()

    def fetch_user_by_email(self, email: str) -> AccessResult:
        """Fetch user berdasarkan email."""
        invalid = Validator().email(email).failure()
        if invalid is not None:
            return invalid
        user = self.users.fetch_by_email(email)
        return AccessResult.success(user) if user else self._user_not_found()

    def fetch_user_by_username(self, username: str) -> AccessResult:
        """Fetch user berdasarkan username."""
        validator = Validator()
        validator.required(username, "username")
        invalid = validator.failure()
        if invalid is not None:
            return invalid
        user = self.users.fetch_by_username(username)
        return AccessResult.success(user) if user else self._user_not_found()

    # Field mutators
    def set_username(self, user: UserRef, username: str) -> AccessResult:
        """
        Update username.

        Args:
            user: User atau user id
            username: Username baru

        Returns:
            AccessResult
        """
        invalid = Validator().username(username).failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        existing = self.users.fetch_by_username(username)
        if existing is not None and existing.id != target.id:
            return AccessResult.failed(ResponseMessage.USERNAME_EXISTS, ErrorCode.DUPLICATE)

        target.username = username.strip()
        return self._save(target)

    def set_email(self, user: UserRef, email: str) -> AccessResult:
        """
        Update email. Email confirmation di-reset dan email claims ikut diperbarui.

        Args:
            user: User atau user id
            email: Email baru

        Returns:
            AccessResult
        """
        invalid = Validator().email(email).failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        existing = self.users.fetch_by_email(email)
        if existing is not None and existing.id != target.id:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)

        target.email = normalize_email(email)
        target.email_confirmed = False
        result = self._save(target)
        if not result.succeeded:
            return result

        for claim in self.claims.fetch_by_type(target.id, ClaimType.EMAIL.value):
            if claim.claim_value == target.email:
                continue
            claim.claim_value = target.email
            if not self.claims.update(claim):
                logger.warning("Email claim of user %s is out of date", target.id)
                return AccessResult.failed(ResponseMessage.UPDATE_FAILED, ErrorCode.UPDATE_FAILED)
        return result

    def set_first_name(self, user: UserRef, first_name: str) -> AccessResult:
        """Update first name."""
        invalid = Validator().name(first_name, "first_name").failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.first_name = first_name
        return self._save(target)

    def set_last_name(self, user: UserRef, last_name: str) -> AccessResult:
        """Update last name."""
        invalid = Validator().name(last_name, "last_name").failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.last_name = last_name
        return self._save(target)

    def set_phone_number(self, user: UserRef, phone_number: str) -> AccessResult:
        """
        Update phone number (disimpan dalam format E164). Phone confirmation di-reset.
        """
        invalid = Validator().phone_number(phone_number).failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.phone_number = normalize_phone_number(phone_number)
        target.phone_number_confirmed = False
        return self._save(target)

    # Lockout
    def enable_lockout(self, user: UserRef, duration_minutes: Optional[int] = None) -> AccessResult:
        """
        Lock account.

        Args:
            user: User atau user id
            duration_minutes: Durasi lockout; None berarti sampai di-unlock

        Returns:
            AccessResult
        """
        invalid = Validator().check(
            duration_minutes is None or duration_minutes > 0,
            "duration_minutes must be positive"
        ).failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        until = None
        if duration_minutes is not None:
            until = self.token_issuer.now() + timedelta(minutes=duration_minutes)

        target.lock_account(until)
        result = self._save(target)
        if result.succeeded:
            logger.info("Locked user %s until %s", target.id, until or "unlocked")
        return result

    def unlock(self, user: UserRef) -> AccessResult:
        """Unlock account."""
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.unlock_account()
        return self._save(target)

    # Confirmation
    def _confirm_identity(self, target: User, token: str) -> Optional[AccessResult]:
        identity = self._token_claim(token, ClaimType.NAME_IDENTIFIER)
        if identity is None:
            return AccessResult.failed(ResponseMessage.INVALID_TOKEN, ErrorCode.INVALID_TOKEN)
        if identity != str(target.id):
            logger.warning("Confirmation token for another user presented for user %s", target.id)
            return AccessResult.failed(ResponseMessage.TOKEN_MISMATCH, ErrorCode.TOKEN_MISMATCH)
        return None

    def confirm_email(self, user: UserRef, token: str) -> AccessResult:
        """
        Konfirmasi email dengan token dari generate_confirmation_token.

        Args:
            user: User atau user id
            token: Confirmation token

        Returns:
            AccessResult; mismatch user tidak mengubah apapun
        """
        validator = Validator()
        validator.required(token, "token")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        failure = self._confirm_identity(target, token)
        if failure is not None:
            return failure

        if target.email_confirmed:
            return AccessResult.success(target)

        target.confirm_email()
        return self._save(target)

    def confirm_phone_number(self, user: UserRef, token: str) -> AccessResult:
        """
        Konfirmasi phone number dengan token dari generate_confirmation_token.
        """
        validator = Validator()
        validator.required(token, "token")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        failure = self._confirm_identity(target, token)
        if failure is not None:
            return failure

        if target.phone_number_confirmed:
            return AccessResult.success(target)

        target.confirm_phone_number()
        return self._save(target)

    def confirm_phone_number_by_authenticator(self, user: UserRef, code: str) -> AccessResult:
        """
        Konfirmasi phone number dengan TOTP code dari authenticator user.
        """
        validator = Validator()
        validator.required(code, "code")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        if not target.two_factor_enabled or not target.authenticator_key:
            return AccessResult.failed(ResponseMessage.TWO_FACTOR_NOT_ENABLED, ErrorCode.TWO_FACTOR_NOT_ENABLED)

        if not self.totp.verify_code(code, target.authenticator_key, at_time=self.token_issuer.now()):
            return AccessResult.failed(ResponseMessage.TWO_FACTOR_INVALID, ErrorCode.INVALID_CODE)

        if target.phone_number_confirmed:
            return AccessResult.success(target)

        target.confirm_phone_number()
        return self._save(target)

    # Two-factor
    def enroll_google_authenticator(self, user: UserRef, issuer: Optional[str] = None) -> AccessResult:
        """
        Enroll TOTP authenticator: generate secret, simpan di user, enable 2FA.

        Args:
            user: User atau user id
            issuer: Issuer name; default dari TOTP config

        Returns:
            AccessResult dengan AuthenticatorSetup sebagai data
        """
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        secret = self.totp.generate_secret()
        setup = self.totp.setup_enrollment(issuer, target.email, secret)

        target.enable_two_factor(secret)
        result = self._save(target)
        if not result.succeeded:
            return result

        logger.info("Authenticator enrolled for user %s", target.id)
        return AccessResult.success(setup)

    def enroll_sms_authenticator(self, user: UserRef) -> AccessResult:
        """
        Enable 2FA tanpa TOTP secret. Pengiriman code adalah tanggung jawab host.
        """
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.enable_two_factor(None)
        return self._save(target)

    def remove_two_factor(self, user: UserRef) -> AccessResult:
        """Disable 2FA dan hapus authenticator secret."""
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.disable_two_factor()
        return self._save(target)

    # Password
    def reset_password(self, token: str, new_password: str) -> AccessResult:
        """
        Reset password dengan token dari generate_reset_token.

        Args:
            token: Reset token
            new_password: Password baru

        Returns:
            AccessResult
        """
        validator = Validator()
        validator.required(token, "token")
        validator.password(new_password, self.settings.password)
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        email = self._token_claim(token, ClaimType.EMAIL)
        if email is None:
            return AccessResult.failed(ResponseMessage.INVALID_TOKEN, ErrorCode.INVALID_TOKEN)

        target = self.users.fetch_by_email(email)
        if target is None:
            return self._user_not_found()

        password_hash, salt = self.hasher.hash(new_password)
        target.set_password_hash(password_hash, salt)
        return self._save(target)

    # Claims
    def add_claims(self, user: UserRef, claims: ClaimInput) -> AccessResult:
        """
        Tambah claims untuk user. Claim type yang sama boleh muncul lebih dari sekali.

        Args:
            user: User atau user id
            claims: Mapping type -> value atau iterable of (type, value)

        Returns:
            AccessResult dengan list UserClaim sebagai data
        """
        pairs, invalid = self._claim_pairs(claims)
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        rows = [
            UserClaim(user_id=target.id, claim_type=claim_type, claim_value=value)
            for claim_type, value in pairs
        ]
        return self._commit_result(
            self.claims.create(rows), rows,
            message=ResponseMessage.CREATE_FAILED, code=ErrorCode.CREATE_FAILED
        )

    def fetch_claims(self, user: UserRef) -> AccessResult:
        """Fetch semua claims user."""
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()
        return AccessResult.success(self.claims.fetch_by_user(target.id))

    def fetch_claims_by_type(self, user: UserRef, claim_type: str) -> AccessResult:
        """Fetch claims user dengan type tertentu."""
        validator = Validator()
        validator.required(claim_type, "claim_type")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()
        return AccessResult.success(self.claims.fetch_by_type(target.id, claim_type))

    def update_claim(self, claim: UserClaim, value: str) -> AccessResult:
        """Update value dari satu claim."""
        validator = Validator()
        validator.required(value, "value")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        claim.claim_value = value
        return self._commit_result(self.claims.update(claim), claim)

    def remove_claims(self, claims: Sequence[UserClaim]) -> AccessResult:
        """Hapus claims."""
        invalid = Validator().check(bool(claims), "At least one claim is required").failure()
        if invalid is not None:
            return invalid
        return self._commit_result(
            self.claims.delete(claims),
            message=ResponseMessage.DELETE_FAILED, code=ErrorCode.DELETE_FAILED
        )

    def remove_claim(self, claim: UserClaim) -> AccessResult:
        """Hapus satu claim."""
        return self.remove_claims([claim])

    # Roles
    def add_user_role(self, user: UserRef, role_name: str) -> AccessResult:
        """
        Assign role ke user dan simpan role claim.

        Args:
            user: User atau user id
            role_name: Nama role yang sudah ada

        Returns:
            AccessResult
        """
        validator = Validator()
        validator.required(role_name, "role_name")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        role = self.roles.fetch_by_name(role_name)
        if role is None:
            return AccessResult.failed(ResponseMessage.ROLE_NOT_FOUND, ErrorCode.NOT_FOUND)

        target.role_id = role.id
        result = self._save(target)
        if not result.succeeded:
            return result

        stale = self.claims.fetch_by_type(target.id, ClaimType.ROLE.value)
        if stale:
            self.claims.delete(stale)
        self.claims.create([
            UserClaim(user_id=target.id, claim_type=ClaimType.ROLE.value, claim_value=role.name)
        ])
        return result

    def remove_user_role(self, user: UserRef) -> AccessResult:
        """Hapus role assignment dan role claims user."""
        target = self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.role_id = None
        result = self._save(target)
        if not result.succeeded:
            return result

        stale = self.claims.fetch_by_type(target.id, ClaimType.ROLE.value)
        if stale:
            self.claims.delete(stale)
        return result


class AsyncAccountManager(AccountOperations):
    """
    Account operations dengan async calling convention.
    """

    def __init__(
        self,
        users: AsyncUserStore,
        claims: AsyncClaimStore,
        roles: AsyncRoleStore,
        settings: Settings,
        **kwargs
    ):
        """
        Initialize async account manager.

        Args:
            users: Async user store
            claims: Async claim store
            roles: Async role store
            settings: AuthEngine settings
            **kwargs: hasher, token_issuer, totp
        """
        super().__init__(settings, **kwargs)
        self.users = users
        self.claims = claims
        self.roles = roles

    @classmethod
    def from_session(cls, db: AsyncSession, settings: Settings, **kwargs) -> "AsyncAccountManager":
        """Buat manager dengan async SQLAlchemy stores di atas satu session."""
        return cls(
            AsyncSqlUserStore(db, settings.retry),
            AsyncSqlClaimStore(db, settings.retry),
            AsyncSqlRoleStore(db, settings.retry),
            settings,
            **kwargs
        )

    async def _resolve(self, user: UserRef) -> Optional[User]:
        if isinstance(user, User):
            return user
        return await self.users.fetch_by_id(user)

    async def _save(self, user: User) -> AccessResult:
        try:
            succeeded = await self.users.update(user)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.UPDATE_FAILED, ErrorCode.DUPLICATE)
        return self._commit_result(succeeded, user if succeeded else None)

    # Lifecycle
    async def create_user(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone_number: Optional[str] = None
    ) -> AccessResult:
        """
        Create user baru dengan hashed password dan default claims.
        """
        invalid = self._validate_new_user(email, password, username, first_name, last_name, phone_number)
        if invalid is not None:
            return invalid

        if await self.users.fetch_by_email(email) is not None:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)
        if username and await self.users.fetch_by_username(username) is not None:
            return AccessResult.failed(ResponseMessage.USERNAME_EXISTS, ErrorCode.DUPLICATE)

        user = self._build_user(email, password, username, first_name, last_name, phone_number)

        try:
            created = await self.users.create(user)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)
        if not created:
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        user_id = user.id
        if not await self.claims.create(self._default_claims(user)):
            logger.warning("Default claims could not be stored for user %s; removing user", user_id)
            if not await self.users.delete(user):
                logger.error("User %s was created without default claims", user_id)
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        logger.info("Created user %s", user_id)
        return AccessResult.success(user)

    async def delete_user(self, user: UserRef) -> AccessResult:
        """Delete user beserta claims dan login activities."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        user_id = target.id
        deleted = await self.users.delete(target)
        if deleted:
            logger.info("Deleted user %s", user_id)
        return self._commit_result(deleted, message=ResponseMessage.DELETE_FAILED, code=ErrorCode.DELETE_FAILED)

    async def fetch_user_by_id(self, user_id: UUID) -> AccessResult:
        """Fetch user berdasarkan id."""
        invalid = Validator().check(user_id is not None, "user_id is required").failure()
        if invalid is not None:
            return invalid
        user = await self.users.fetch_by_id(user_id)
        return AccessResult.success(user) if user else self._user_not_found()

    async def fetch_user_by_email(self, email: str) -> AccessResult:
        """Fetch user berdasarkan email."""
        invalid = Validator().email(email).failure()
        if invalid is not None:
            return invalid
        user = await self.users.fetch_by_email(email)
        return AccessResult.success(user) if user else self._user_not_found()

    async def fetch_user_by_username(self, username: str) -> AccessResult:
        """Fetch user berdasarkan username."""
        validator = Validator()
        validator.required(username, "username")
        invalid = validator.failure()
        if invalid is not None:
            return invalid
        user = await self.users.fetch_by_username(username)
        return AccessResult.success(user) if user else self._user_not_found()

    # Field mutators
    async def set_username(self, user: UserRef, username: str) -> AccessResult:
        """Update username."""
        invalid = Validator().username(username).failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        existing = await self.users.fetch_by_username(username)
        if existing is not None and existing.id != target.id:
            return AccessResult.failed(ResponseMessage.USERNAME_EXISTS, ErrorCode.DUPLICATE)

        target.username = username.strip()
        return await self._save(target)

    async def set_email(self, user: UserRef, email: str) -> AccessResult:
        """Update email. Email confirmation di-reset dan email claims ikut diperbarui."""
        invalid = Validator().email(email).failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        existing = await self.users.fetch_by_email(email)
        if existing is not None and existing.id != target.id:
            return AccessResult.failed(ResponseMessage.EMAIL_EXISTS, ErrorCode.DUPLICATE)

        user_id = target.id
        new_email = normalize_email(email)
        target.email = new_email
        target.email_confirmed = False
        result = await self._save(target)
        if not result.succeeded:
            return result

        for claim in await self.claims.fetch_by_type(user_id, ClaimType.EMAIL.value):
            if claim.claim_value == new_email:
                continue
            claim.claim_value = new_email
            if not await self.claims.update(claim):
                logger.warning("Email claim of user %s is out of date", user_id)
                return AccessResult.failed(ResponseMessage.UPDATE_FAILED, ErrorCode.UPDATE_FAILED)
        return result

    async def set_first_name(self, user: UserRef, first_name: str) -> AccessResult:
        """Update first name."""
        invalid = Validator().name(first_name, "first_name").failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.first_name = first_name
        return await self._save(target)

    async def set_last_name(self, user: UserRef, last_name: str) -> AccessResult:
        """Update last name."""
        invalid = Validator().name(last_name, "last_name").failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.last_name = last_name
        return await self._save(target)

    async def set_phone_number(self, user: UserRef, phone_number: str) -> AccessResult:
        """Update phone number (E164). Phone confirmation di-reset."""
        invalid = Validator().phone_number(phone_number).failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.phone_number = normalize_phone_number(phone_number)
        target.phone_number_confirmed = False
        return await self._save(target)

    # Lockout
    async def enable_lockout(self, user: UserRef, duration_minutes: Optional[int] = None) -> AccessResult:
        """
        Lock account.

        Args:
            user: User atau user id
            duration_minutes: Durasi lockout; None berarti sampai di-unlock
        """
        invalid = Validator().check(
            duration_minutes is None or duration_minutes > 0,
            "duration_minutes must be positive"
        ).failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        until = None
        if duration_minutes is not None:
            until = self.token_issuer.now() + timedelta(minutes=duration_minutes)

        user_id = target.id
        target.lock_account(until)
        result = await self._save(target)
        if result.succeeded:
            logger.info("Locked user %s until %s", user_id, until or "unlocked")
        return result

    async def unlock(self, user: UserRef) -> AccessResult:
        """Unlock account."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.unlock_account()
        return await self._save(target)

    # Confirmation
    def _confirm_identity(self, target: User, token: str) -> Optional[AccessResult]:
        identity = self._token_claim(token, ClaimType.NAME_IDENTIFIER)
        if identity is None:
            return AccessResult.failed(ResponseMessage.INVALID_TOKEN, ErrorCode.INVALID_TOKEN)
        if identity != str(target.id):
            logger.warning("Confirmation token for another user presented for user %s", target.id)
            return AccessResult.failed(ResponseMessage.TOKEN_MISMATCH, ErrorCode.TOKEN_MISMATCH)
        return None

    async def confirm_email(self, user: UserRef, token: str) -> AccessResult:
        """Konfirmasi email dengan token; mismatch user tidak mengubah apapun."""
        validator = Validator()
        validator.required(token, "token")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        failure = self._confirm_identity(target, token)
        if failure is not None:
            return failure

        if target.email_confirmed:
            return AccessResult.success(target)

        target.confirm_email()
        return await self._save(target)

    async def confirm_phone_number(self, user: UserRef, token: str) -> AccessResult:
        """Konfirmasi phone number dengan token."""
        validator = Validator()
        validator.required(token, "token")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        failure = self._confirm_identity(target, token)
        if failure is not None:
            return failure

        if target.phone_number_confirmed:
            return AccessResult.success(target)

        target.confirm_phone_number()
        return await self._save(target)

    async def confirm_phone_number_by_authenticator(self, user: UserRef, code: str) -> AccessResult:
        """Konfirmasi phone number dengan TOTP code dari authenticator user."""
        validator = Validator()
        validator.required(code, "code")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        if not target.two_factor_enabled or not target.authenticator_key:
            return AccessResult.failed(ResponseMessage.TWO_FACTOR_NOT_ENABLED, ErrorCode.TWO_FACTOR_NOT_ENABLED)

        if not self.totp.verify_code(code, target.authenticator_key, at_time=self.token_issuer.now()):
            return AccessResult.failed(ResponseMessage.TWO_FACTOR_INVALID, ErrorCode.INVALID_CODE)

        if target.phone_number_confirmed:
            return AccessResult.success(target)

        target.confirm_phone_number()
        return await self._save(target)

    # Two-factor
    async def enroll_google_authenticator(self, user: UserRef, issuer: Optional[str] = None) -> AccessResult:
        """
        Enroll TOTP authenticator.

        Returns:
            AccessResult dengan AuthenticatorSetup sebagai data
        """
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        secret = self.totp.generate_secret()
        setup = self.totp.setup_enrollment(issuer, target.email, secret)

        user_id = target.id
        target.enable_two_factor(secret)
        result = await self._save(target)
        if not result.succeeded:
            return result

        logger.info("Authenticator enrolled for user %s", user_id)
        return AccessResult.success(setup)

    async def enroll_sms_authenticator(self, user: UserRef) -> AccessResult:
        """Enable 2FA tanpa TOTP secret."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.enable_two_factor(None)
        return await self._save(target)

    async def remove_two_factor(self, user: UserRef) -> AccessResult:
        """Disable 2FA dan hapus authenticator secret."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        target.disable_two_factor()
        return await self._save(target)

    # Password
    async def reset_password(self, token: str, new_password: str) -> AccessResult:
        """
        Reset password dengan token dari generate_reset_token.
        """
        validator = Validator()
        validator.required(token, "token")
        validator.password(new_password, self.settings.password)
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        email = self._token_claim(token, ClaimType.EMAIL)
        if email is None:
            return AccessResult.failed(ResponseMessage.INVALID_TOKEN, ErrorCode.INVALID_TOKEN)

        target = await self.users.fetch_by_email(email)
        if target is None:
            return self._user_not_found()

        password_hash, salt = self.hasher.hash(new_password)
        target.set_password_hash(password_hash, salt)
        return await self._save(target)

    # Claims
    async def add_claims(self, user: UserRef, claims: ClaimInput) -> AccessResult:
        """Tambah claims untuk user."""
        pairs, invalid = self._claim_pairs(claims)
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        rows = [
            UserClaim(user_id=target.id, claim_type=claim_type, claim_value=value)
            for claim_type, value in pairs
        ]
        return self._commit_result(
            await self.claims.create(rows), rows,
            message=ResponseMessage.CREATE_FAILED, code=ErrorCode.CREATE_FAILED
        )

    async def fetch_claims(self, user: UserRef) -> AccessResult:
        """Fetch semua claims user."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()
        return AccessResult.success(await self.claims.fetch_by_user(target.id))

    async def fetch_claims_by_type(self, user: UserRef, claim_type: str) -> AccessResult:
        """Fetch claims user dengan type tertentu."""
        validator = Validator()
        validator.required(claim_type, "claim_type")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()
        return AccessResult.success(await self.claims.fetch_by_type(target.id, claim_type))

    async def update_claim(self, claim: UserClaim, value: str) -> AccessResult:
        """Update value dari satu claim."""
        validator = Validator()
        validator.required(value, "value")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        claim.claim_value = value
        succeeded = await self.claims.update(claim)
        return self._commit_result(succeeded, claim if succeeded else None)

    async def remove_claims(self, claims: Sequence[UserClaim]) -> AccessResult:
        """Hapus claims."""
        invalid = Validator().check(bool(claims), "At least one claim is required").failure()
        if invalid is not None:
            return invalid
        return self._commit_result(
            await self.claims.delete(claims),
            message=ResponseMessage.DELETE_FAILED, code=ErrorCode.DELETE_FAILED
        )

    async def remove_claim(self, claim: UserClaim) -> AccessResult:
        """Hapus satu claim."""
        return await self.remove_claims([claim])

    # Roles
    async def add_user_role(self, user: UserRef, role_name: str) -> AccessResult:
        """Assign role ke user dan simpan role claim."""
        validator = Validator()
        validator.required(role_name, "role_name")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        role = await self.roles.fetch_by_name(role_name)
        if role is None:
            return AccessResult.failed(ResponseMessage.ROLE_NOT_FOUND, ErrorCode.NOT_FOUND)

        user_id = target.id
        role_id, name = role.id, role.name
        target.role_id = role_id
        result = await self._save(target)
        if not result.succeeded:
            return result

        stale = await self.claims.fetch_by_type(user_id, ClaimType.ROLE.value)
        if stale:
            await self.claims.delete(stale)
        await self.claims.create([
            UserClaim(user_id=user_id, claim_type=ClaimType.ROLE.value, claim_value=name)
        ])
        return result

    async def remove_user_role(self, user: UserRef) -> AccessResult:
        """Hapus role assignment dan role claims user."""
        target = await self._resolve(user)
        if target is None:
            return self._user_not_found()

        user_id = target.id
        target.role_id = None
        result = await self._save(target)
        if not result.succeeded:
            return result

        stale = await self.claims.fetch_by_type(user_id, ClaimType.ROLE.value)
        if stale:
            await self.claims.delete(stale)
        return result
