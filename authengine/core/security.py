"""
Modul keamanan terpusat untuk AuthEngine.
Menangani salted password hashing, signing/validasi JWT, dan opaque token.

Semua class di sini stateless setelah konstruksi dan aman dipanggil
secara concurrent tanpa locking.
"""

import base64
import binascii
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple, Callable
from uuid import UUID

from passlib.hash import argon2
from jose import jwt, JWTError

from authengine.core.config import TokenConfig
from authengine.core.exceptions import (
    TokenError,
    ExpiredTokenException,
    InvalidTokenException,
    ValidationError
)
from authengine.schemas.response import SessionToken


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


class PasswordHasher:
    """
    Salted password hasher berbasis Argon2.

    Salt di-generate terpisah dan disimpan di kolom sendiri, sehingga setiap
    hash punya salt unik dan bisa dihitung ulang saat verifikasi.
    """

    SALT_BYTES = 16

    def __init__(
        self,
        rounds: int = 4,
        memory_cost: int = 65536,
        digest_size: int = 32
    ):
        """
        Initialize hasher.

        Args:
            rounds: Argon2 time cost
            memory_cost: Argon2 memory cost dalam KiB
            digest_size: Panjang hash output dalam bytes
        """
        self.rounds = rounds
        self.memory_cost = memory_cost
        self.digest_size = digest_size

    def _handler(self, salt: bytes):
        return argon2.using(
            salt=salt,
            rounds=self.rounds,
            memory_cost=self.memory_cost,
            digest_size=self.digest_size
        )

    def hash(self, password: str) -> Tuple[str, str]:
        """
        Hash password dengan salt baru.

        Args:
            password: Plain text password

        Returns:
            Tuple (password_hash, base64_salt)

        Raises:
            TypeError: Jika password bukan string
        """
        if not isinstance(password, str):
            raise TypeError("password must be a string")

        salt = secrets.token_bytes(self.SALT_BYTES)
        password_hash = self._handler(salt).hash(password)
        return password_hash, base64.b64encode(salt).decode("ascii")

    def verify(self, password: str, password_hash: str, salt: str) -> bool:
        """
        Verifikasi password terhadap stored hash + salt.
        Menggunakan constant-time comparison.

        Args:
            password: Plain text password
            password_hash: Stored hash
            salt: Stored base64 salt

        Returns:
            True jika password cocok, False jika tidak
        """
        if not isinstance(password, str) or not password_hash or not salt:
            return False

        try:
            salt_bytes = base64.b64decode(salt.encode("ascii"), validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Stored salt is not valid base64")
            return False

        # Cost parameters dibaca dari stored hash, bukan dari instance
        try:
            stored = argon2.from_string(password_hash)
        except ValueError:
            logger.warning("Stored password hash is not a valid argon2 hash")
            return False

        handler = argon2.using(
            type=stored.type,
            salt=salt_bytes,
            rounds=stored.rounds,
            memory_cost=stored.memory_cost,
            parallelism=stored.parallelism,
            digest_size=len(stored.checksum)
        )
        computed = handler.hash(password)
        return hmac.compare_digest(computed.encode("utf-8"), password_hash.encode("utf-8"))


class TokenIssuer:
    """
    Membuat dan memvalidasi signed access token (JWT HS256) serta opaque refresh token.
    """

    def __init__(self, config: TokenConfig, clock: Optional[Clock] = None):
        """
        Initialize token issuer.

        Args:
            config: Token configuration
            clock: Sumber waktu; default UTC now
        """
        self.config = config
        self._clock = clock or utc_now

    def now(self) -> datetime:
        """Waktu sekarang menurut clock issuer."""
        return self._clock()

    @staticmethod
    def _normalize(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, (list, tuple, set)):
            return [TokenIssuer._normalize(v) for v in value]
        return value

    def issue_access_token(
        self,
        claims: Dict[str, Any],
        ttl_minutes: Optional[int] = None,
        purpose: Optional[str] = None
    ) -> str:
        """
        Membuat signed access token.

        Args:
            claims: Claims untuk ditambahkan ke token
            ttl_minutes: Masa berlaku; default dari config
            purpose: Nilai claim `purpose`; token dengan purpose hanya diterima
                oleh decode yang meminta purpose yang sama

        Returns:
            Encoded JWT token

        Raises:
            ValidationError: Jika ttl tidak positif
        """
        token, _, _ = self._encode(claims, ttl_minutes, purpose)
        return token

    def _encode(
        self,
        claims: Dict[str, Any],
        ttl_minutes: Optional[int],
        purpose: Optional[str] = None
    ) -> Tuple[str, datetime, datetime]:
        ttl = self.config.expiration_minutes if ttl_minutes is None else ttl_minutes
        if ttl <= 0:
            raise ValidationError("Invalid token lifetime", errors=["ttl_minutes must be positive"])

        issued_at = self.now()
        expire = issued_at + timedelta(minutes=ttl)

        to_encode = {key: self._normalize(value) for key, value in claims.items()}
        to_encode.pop("purpose", None)
        if purpose:
            to_encode["purpose"] = getattr(purpose, "value", purpose)
        to_encode.update({
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp())
        })
        if self.config.issuer:
            to_encode["iss"] = self.config.issuer
        if self.config.audience:
            to_encode["aud"] = self.config.audience

        encoded = jwt.encode(to_encode, self.config.secret, algorithm=self.config.algorithm)
        return encoded, issued_at, expire

    def issue_opaque_token(self, byte_length: Optional[int] = None) -> str:
        """
        Generate opaque refresh token (random bytes, base64).

        Args:
            byte_length: Jumlah random bytes; default dari config

        Returns:
            Base64 encoded random string
        """
        length = byte_length or self.config.refresh_token_bytes
        return base64.b64encode(secrets.token_bytes(length)).decode("ascii")

    def issue_session_token(
        self,
        claims: Dict[str, Any],
        ttl_minutes: Optional[int] = None
    ) -> SessionToken:
        """
        Membuat pasangan access + refresh token.

        Args:
            claims: Claims untuk access token
            ttl_minutes: Masa berlaku access token

        Returns:
            SessionToken
        """
        access_token, issued_at, expires_at = self._encode(claims, ttl_minutes)
        return SessionToken(
            access_token=access_token,
            refresh_token=self.issue_opaque_token(),
            issued_at=issued_at,
            expires_at=expires_at
        )

    def decode(
        self,
        token: str,
        at_time: Optional[datetime] = None,
        purpose: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Decode dan validasi token: signature, issuer/audience (jika dikonfigurasi), expiration,
        dan purpose. Tanpa `purpose` hanya session token (tanpa claim purpose) yang diterima.

        Args:
            token: JWT token
            at_time: Waktu validasi; default clock issuer
            purpose: Purpose yang diharapkan

        Returns:
            Decoded token payload

        Raises:
            ExpiredTokenException: Jika token expired
            InvalidTokenException: Jika token tidak valid
        """
        if not token or not isinstance(token, str):
            raise InvalidTokenException()

        options = {
            "verify_exp": False,
            "verify_aud": self.config.audience is not None,
            "verify_iss": self.config.issuer is not None,
            "require_aud": self.config.audience is not None,
            "require_iss": self.config.issuer is not None
        }

        try:
            payload = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
                options=options
            )
        except JWTError as e:
            raise InvalidTokenException(f"Invalid token: {e}") from e

        # Expiration dicek terhadap clock issuer
        try:
            expires = int(payload["exp"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenException("Invalid expiration claim") from e

        now = at_time or self.now()
        if now.timestamp() >= expires:
            raise ExpiredTokenException()

        expected = getattr(purpose, "value", purpose) or None
        if payload.get("purpose") != expected:
            raise InvalidTokenException("Token purpose mismatch")

        return payload

    def validate(
        self,
        token: str,
        at_time: Optional[datetime] = None,
        purpose: Optional[str] = None
    ) -> bool:
        """
        Validasi token tanpa raise.

        Args:
            token: JWT token
            at_time: Waktu validasi
            purpose: Purpose yang diharapkan

        Returns:
            True jika token valid
        """
        try:
            self.decode(token, at_time=at_time, purpose=purpose)
            return True
        except TokenError as e:
            logger.debug("Token rejected: %s", e.message)
            return False

    def read_claims(
        self,
        token: str,
        *claim_names: str,
        at_time: Optional[datetime] = None,
        purpose: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Decode token lalu ambil claim yang diminta saja.

        Args:
            token: JWT token
            claim_names: Nama claim yang diminta
            at_time: Waktu validasi
            purpose: Purpose yang diharapkan

        Returns:
            Dict berisi claim yang ada di token

        Raises:
            TokenError: Jika token tidak valid atau expired
        """
        payload = self.decode(token, at_time=at_time, purpose=purpose)
        return {name: payload[name] for name in claim_names if name in payload}
