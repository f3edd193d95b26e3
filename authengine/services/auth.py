"""
Sign-in service untuk AuthEngine.
Menjalankan sign-in state machine: credential check, policy gates,
two-factor challenge, token issuance, dan login activity recording.
"""

import logging
from typing import Optional, Dict, Any, List
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import Settings
from authengine.core.constants import ClaimType, ResponseMessage, SignInStatus, TokenPurpose
from authengine.core.exceptions import (
    ConflictError,
    UnsupportedConflictError,
    EmailNotConfirmedException,
    TokenError
)
from authengine.models.claim import UserClaim
from authengine.models.login_activity import LoginActivity
from authengine.models.user import User
from authengine.schemas.auth import DeviceInfo, Location
from authengine.schemas.response import SignInResult, SessionToken, LoginActivitySnapshot
from authengine.services.device import HeaderDeviceLocator
from authengine.services.user import AccountManager, AsyncAccountManager
from authengine.stores.base import DeviceLocator, LoginActivityStore, AsyncLoginActivityStore
from authengine.stores.sql import SqlLoginActivityStore
from authengine.stores.async_sql import AsyncSqlLoginActivityStore

logger = logging.getLogger(__name__)


# Claims yang dikelola token issuer sendiri; tidak boleh ditimpa user claims
RESERVED_CLAIMS = frozenset({"exp", "iat", "nbf", "iss", "aud", "sub", "jti", "purpose"})


class SignInOperations:
    """
    Bagian state machine yang tidak menyentuh store, dipakai bersama oleh
    SignInManager dan AsyncSignInManager.
    """

    def __init__(self, accounts, locator: Optional[DeviceLocator] = None):
        self.accounts = accounts
        self.settings: Settings = accounts.settings
        self.hasher = accounts.hasher
        self.token_issuer = accounts.token_issuer
        self.totp = accounts.totp
        self.locator = locator

    def _locator(self, locator: Optional[DeviceLocator]) -> DeviceLocator:
        return locator or self.locator or HeaderDeviceLocator(config=self.settings.locator)

    def _password_matches(self, user: User, password: str) -> bool:
        return self.hasher.verify(password, user.password_hash, user.salt)

    def _gate(self, user: User) -> Optional[SignInResult]:
        """
        Policy gates setelah password terverifikasi (step 4-6).

        Returns:
            Terminal SignInResult, atau None jika sign-in boleh dilanjutkan

        Raises:
            EmailNotConfirmedException: Jika email confirmation wajib dan belum dilakukan
        """
        if self.settings.account.require_email_confirmation and not user.email_confirmed:
            logger.info("Sign-in blocked for user %s: email not confirmed", user.id)
            raise EmailNotConfirmedException(ResponseMessage.EMAIL_NOT_CONFIRMED)

        if self.accounts.is_locked_out(user):
            logger.info("Sign-in rejected for user %s: account locked", user.id)
            return SignInResult.locked_out()

        if user.two_factor_enabled:
            logger.info("Sign-in for user %s requires two-factor verification", user.id)
            return SignInResult.require_two_factor(user.id, self._challenge_token(user.id))

        return None

    def _challenge_token(self, user_id: UUID) -> str:
        return self.token_issuer.issue_access_token(
            {ClaimType.SUBJECT.value: user_id},
            ttl_minutes=self.settings.token.two_factor_expiration_minutes,
            purpose=TokenPurpose.TWO_FACTOR
        )

    def _read_challenge(self, challenge_token: str) -> Optional[UUID]:
        try:
            payload = self.token_issuer.decode(challenge_token, purpose=TokenPurpose.TWO_FACTOR)
        except TokenError as e:
            logger.info("Two-factor challenge rejected: %s", e.message)
            return None

        try:
            return UUID(str(payload.get(ClaimType.SUBJECT.value)))
        except ValueError:
            logger.info("Two-factor challenge rejected: malformed subject")
            return None

    def _code_matches(self, user: User, code: str) -> bool:
        if not user.two_factor_enabled or not user.authenticator_key:
            return False
        return self.totp.verify_code(code, user.authenticator_key, at_time=self.token_issuer.now())

    @staticmethod
    def _token_claims(user_id: UUID, email: str, claims: List[UserClaim]) -> Dict[str, Any]:
        """
        Susun claims untuk access token.
        Claim type yang muncul lebih dari sekali menjadi list.
        """
        payload: Dict[str, Any] = {
            ClaimType.SUBJECT.value: str(user_id),
            ClaimType.EMAIL.value: email,
            ClaimType.NAME_IDENTIFIER.value: str(user_id),
        }
        canonical = {ClaimType.EMAIL.value, ClaimType.NAME_IDENTIFIER.value}

        for claim in claims:
            claim_type, value = claim.claim_type, claim.claim_value
            if claim_type in RESERVED_CLAIMS or claim_type in canonical:
                continue

            existing = payload.get(claim_type)
            if existing is None:
                payload[claim_type] = value
            elif isinstance(existing, list):
                if value not in existing:
                    existing.append(value)
            elif existing != value:
                payload[claim_type] = [existing, value]

        return payload

    def _issue(self, user_id: UUID, email: str, claims: List[UserClaim]) -> SessionToken:
        return self.token_issuer.issue_session_token(self._token_claims(user_id, email, claims))

    def _apply_activity(
        self,
        existing: Optional[LoginActivity],
        user_id: UUID,
        device: DeviceInfo,
        ip_address: str,
        location: Location
    ) -> LoginActivity:
        now = self.token_issuer.now()
        if existing is None:
            return LoginActivity(
                user_id=user_id,
                device=device.label,
                ip_address=ip_address,
                city=location.city,
                country=location.country,
                last_login_at=now
            )

        existing.device = device.label
        existing.city = location.city
        existing.country = location.country
        existing.last_login_at = now
        return existing

    @staticmethod
    def _success(user_id: UUID, token: SessionToken, snapshot: Optional[LoginActivitySnapshot]) -> SignInResult:
        logger.info("Sign-in succeeded for user %s", user_id)
        return SignInResult(
            status=SignInStatus.SUCCESS,
            message=ResponseMessage.SIGN_IN_SUCCESS,
            user_id=user_id,
            token=token,
            login_activity=snapshot
        )

    @staticmethod
    def _rejected(reason: str) -> SignInResult:
        logger.info("Sign-in failed: %s", reason)
        return SignInResult.failed()


class SignInManager(SignInOperations):
    """
    Sign-in orchestrator dengan blocking calling convention.
    """

    def __init__(
        self,
        accounts: AccountManager,
        activities: LoginActivityStore,
        locator: Optional[DeviceLocator] = None
    ):
        """
        Initialize sign-in manager.

        Args:
            accounts: Account manager (user/claim lookups, policy, hasher, tokens)
            activities: Login activity store
            locator: Default device locator
        """
        super().__init__(accounts, locator)
        self.activities = activities

    @classmethod
    def from_session(
        cls,
        db: Session,
        settings: Settings,
        locator: Optional[DeviceLocator] = None,
        **kwargs
    ) -> "SignInManager":
        """Buat manager dengan SQLAlchemy stores di atas satu session."""
        return cls(
            AccountManager.from_session(db, settings, **kwargs),
            SqlLoginActivityStore(db, settings.retry),
            locator
        )

    def _find_user(self, identifier: str) -> Optional[User]:
        user = self.accounts.users.fetch_by_email(identifier)
        if user is None:
            user = self.accounts.users.fetch_by_username(identifier)
        return user

    def sign_in(
        self,
        identifier: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """
        Sign in dengan email atau username.

        Proses:
        1. Tolak identifier/password kosong
        2. Cari user berdasarkan email, lalu username
        3. Verifikasi password
        4. Email confirmation gate (jika diwajibkan)
        5. Lockout gate
        6. Two-factor gate
        7. Claims, login activity, dan token

        Args:
            identifier: Email atau username
            password: Plain text password
            locator: Device locator untuk request ini

        Returns:
            SignInResult

        Raises:
            EmailNotConfirmedException: Jika email confirmation wajib dan belum dilakukan
        """
        if not identifier or not password:
            return self._rejected("missing credentials")
        return self._authenticate(self._find_user(identifier), password, locator)

    def sign_in_by_email(
        self,
        email: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """Sign in dengan email saja."""
        if not email or not password:
            return self._rejected("missing credentials")
        return self._authenticate(self.accounts.users.fetch_by_email(email), password, locator)

    def sign_in_by_username(
        self,
        username: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """Sign in dengan username saja."""
        if not username or not password:
            return self._rejected("missing credentials")
        return self._authenticate(self.accounts.users.fetch_by_username(username), password, locator)

    def _authenticate(
        self,
        user: Optional[User],
        password: str,
        locator: Optional[DeviceLocator]
    ) -> SignInResult:
        if user is None:
            return self._rejected("unknown account")

        if not self._password_matches(user, password):
            return self._rejected(f"wrong password for user {user.id}")

        gated = self._gate(user)
        if gated is not None:
            return gated

        return self._complete_sign_in(user, locator)

    def two_factor_sign_in(
        self,
        challenge_token: str,
        code: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """
        Selesaikan sign-in setelah RequireTwoFactor.

        Args:
            challenge_token: two_factor_token dari SignInResult sebelumnya
            code: TOTP code dari authenticator
            locator: Device locator untuk request ini

        Returns:
            SignInResult
        """
        if not challenge_token or not code:
            return self._rejected("missing two-factor input")

        user_id = self._read_challenge(challenge_token)
        if user_id is None:
            return SignInResult.failed()

        user = self.accounts.users.fetch_by_id(user_id)
        if user is None:
            return self._rejected("unknown account")

        if self.accounts.is_locked_out(user):
            return SignInResult.locked_out()

        if not self._code_matches(user, code):
            return self._rejected(f"invalid two-factor code for user {user.id}")

        return self._complete_sign_in(user, locator)

    def _complete_sign_in(self, user: User, locator: Optional[DeviceLocator]) -> SignInResult:
        user_id, email = user.id, user.email
        claims = self.accounts.claims.fetch_by_user(user_id)
        snapshot = self._record_activity(user_id, self._locator(locator))
        token = self._issue(user_id, email, claims)
        return self._success(user_id, token, snapshot)

    def _record_activity(self, user_id: UUID, locator: DeviceLocator) -> Optional[LoginActivitySnapshot]:
        """
        Create atau update LoginActivity untuk (user, IP).

        Returns:
            Snapshot, atau None jika activity tidak bisa disimpan
        """
        ip_address = locator.current_ip()
        device = locator.current_device()
        location = locator.location_for_ip(ip_address)

        existing = self.activities.fetch_by_user_and_ip(user_id, ip_address)
        activity = self._apply_activity(existing, user_id, device, ip_address, location)

        try:
            if existing is None:
                saved = self.activities.create(activity)
            else:
                saved = self.activities.update(activity)
        except UnsupportedConflictError:
            raise
        except ConflictError as e:
            logger.warning("Login activity for user %s not recorded: %s", user_id, e.message)
            return None

        if not saved:
            logger.warning("Login activity for user %s not recorded", user_id)
            return None
        return LoginActivitySnapshot.model_validate(activity)


class AsyncSignInManager(SignInOperations):
    """
    Sign-in orchestrator dengan async calling convention.
    """

    def __init__(
        self,
        accounts: AsyncAccountManager,
        activities: AsyncLoginActivityStore,
        locator: Optional[DeviceLocator] = None
    ):
        """
        Initialize async sign-in manager.

        Args:
            accounts: Async account manager
            activities: Async login activity store
            locator: Default device locator
        """
        super().__init__(accounts, locator)
        self.activities = activities

    @classmethod
    def from_session(
        cls,
        db: AsyncSession,
        settings: Settings,
        locator: Optional[DeviceLocator] = None,
        **kwargs
    ) -> "AsyncSignInManager":
        """Buat manager dengan async SQLAlchemy stores di atas satu session."""
        return cls(
            AsyncAccountManager.from_session(db, settings, **kwargs),
            AsyncSqlLoginActivityStore(db, settings.retry),
            locator
        )

    async def _find_user(self, identifier: str) -> Optional[User]:
        user = await self.accounts.users.fetch_by_email(identifier)
        if user is None:
            user = await self.accounts.users.fetch_by_username(identifier)
        return user

    async def sign_in(
        self,
        identifier: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """
        Sign in dengan email atau username. Urutan langkah sama dengan SignInManager.sign_in.

        Raises:
            EmailNotConfirmedException: Jika email confirmation wajib dan belum dilakukan
        """
        if not identifier or not password:
            return self._rejected("missing credentials")
        return await self._authenticate(await self._find_user(identifier), password, locator)

    async def sign_in_by_email(
        self,
        email: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        if not email or not password:
            return self._rejected("missing credentials")
        return await self._authenticate(await self.accounts.users.fetch_by_email(email), password, locator)

    async def sign_in_by_username(
        self,
        username: str,
        password: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        if not username or not password:
            return self._rejected("missing credentials")
        return await self._authenticate(await self.accounts.users.fetch_by_username(username), password, locator)

    async def _authenticate(
        self,
        user: Optional[User],
        password: str,
        locator: Optional[DeviceLocator]
    ) -> SignInResult:
        if user is None:
            return self._rejected("unknown account")

        if not self._password_matches(user, password):
            return self._rejected(f"wrong password for user {user.id}")

        gated = self._gate(user)
        if gated is not None:
            return gated

        return await self._complete_sign_in(user, locator)

    async def two_factor_sign_in(
        self,
        challenge_token: str,
        code: str,
        locator: Optional[DeviceLocator] = None
    ) -> SignInResult:
        """Selesaikan sign-in setelah RequireTwoFactor."""
        if not challenge_token or not code:
            return self._rejected("missing two-factor input")

        user_id = self._read_challenge(challenge_token)
        if user_id is None:
            return SignInResult.failed()

        user = await self.accounts.users.fetch_by_id(user_id)
        if user is None:
            return self._rejected("unknown account")

        if self.accounts.is_locked_out(user):
            return SignInResult.locked_out()

        if not self._code_matches(user, code):
            return self._rejected(f"invalid two-factor code for user {user.id}")

        return await self._complete_sign_in(user, locator)

    async def _complete_sign_in(self, user: User, locator: Optional[DeviceLocator]) -> SignInResult:
        user_id, email = user.id, user.email
        claims = await self.accounts.claims.fetch_by_user(user_id)
        snapshot = await self._record_activity(user_id, self._locator(locator))
        token = self._issue(user_id, email, claims)
        return self._success(user_id, token, snapshot)

    async def _record_activity(self, user_id: UUID, locator: DeviceLocator) -> Optional[LoginActivitySnapshot]:
        ip_address = locator.current_ip()
        device = locator.current_device()
        location = await locator.alocation_for_ip(ip_address)

        existing = await self.activities.fetch_by_user_and_ip(user_id, ip_address)
        activity = self._apply_activity(existing, user_id, device, ip_address, location)

        try:
            if existing is None:
                saved = await self.activities.create(activity)
            else:
                saved = await self.activities.update(activity)
        except UnsupportedConflictError:
            raise
        except ConflictError as e:
            logger.warning("Login activity for user %s not recorded: %s", user_id, e.message)
            return None

        if not saved:
            logger.warning("Login activity for user %s not recorded", user_id)
            return None
        return LoginActivitySnapshot.model_validate(activity)
