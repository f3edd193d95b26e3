"""
Tests for password hashing and token issuance.
"""

import base64
from datetime import timedelta

import pytest
from jose import jwt

from authengine.core.config import TokenConfig
from authengine.core.exceptions import (
    ExpiredTokenException,
    InvalidTokenException,
    TokenError,
    ValidationError
)
from authengine.core.security import PasswordHasher, TokenIssuer


@pytest.mark.unit
@pytest.mark.security
class TestPasswordHasher:
    """Test salted password hashing."""

    def test_hash_and_verify(self, hasher: PasswordHasher):
        """Hash lalu verify password yang sama."""
        password_hash, salt = hasher.hash("TestPassword123!")

        assert password_hash != "TestPassword123!"
        assert password_hash.startswith("$argon2")
        assert hasher.verify("TestPassword123!", password_hash, salt) is True

    def test_verify_wrong_password(self, hasher: PasswordHasher):
        password_hash, salt = hasher.hash("TestPassword123!")

        assert hasher.verify("WrongPassword", password_hash, salt) is False

    def test_fresh_salt_per_hash(self, hasher: PasswordHasher):
        """Password yang sama menghasilkan salt dan hash berbeda."""
        first_hash, first_salt = hasher.hash("same-password")
        second_hash, second_salt = hasher.hash("same-password")

        assert first_salt != second_salt
        assert first_hash != second_hash
        assert len(base64.b64decode(first_salt)) == PasswordHasher.SALT_BYTES

    def test_verify_with_other_salt_fails(self, hasher: PasswordHasher):
        password_hash, _ = hasher.hash("same-password")
        _, other_salt = hasher.hash("same-password")

        assert hasher.verify("same-password", password_hash, other_salt) is False

    def test_verify_rejects_malformed_salt(self, hasher: PasswordHasher):
        password_hash, _ = hasher.hash("password")

        assert hasher.verify("password", password_hash, "not base64!!") is False
        assert hasher.verify("password", password_hash, "") is False

    def test_hash_requires_string(self, hasher: PasswordHasher):
        with pytest.raises(TypeError):
            hasher.hash(None)

    def test_verify_after_cost_change(self, hasher: PasswordHasher):
        """Hash lama tetap valid setelah Argon2 cost dinaikkan."""
        password_hash, salt = hasher.hash("TestPassword123!")
        stronger = PasswordHasher(rounds=2, memory_cost=2048)

        assert stronger.verify("TestPassword123!", password_hash, salt) is True
        assert stronger.verify("WrongPassword", password_hash, salt) is False

    def test_verify_rejects_non_argon2_hash(self, hasher: PasswordHasher):
        _, salt = hasher.hash("password")

        assert hasher.verify("password", "plain-text", salt) is False


@pytest.mark.unit
@pytest.mark.security
class TestTokenIssuer:
    """Test signed access tokens dan opaque refresh tokens."""

    def test_issue_and_read_claims(self, token_issuer: TokenIssuer):
        token = token_issuer.issue_access_token({"sub": "user-1", "email": "a@x.com", "role": "admin"})

        assert token.count(".") == 2
        claims = token_issuer.read_claims(token, "email", "role", "missing")
        assert claims == {"email": "a@x.com", "role": "admin"}

    def test_token_is_hs256(self, token_issuer: TokenIssuer):
        token = token_issuer.issue_access_token({"sub": "user-1"})

        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_expiration_uses_clock(self, token_issuer: TokenIssuer, clock):
        """Token default 30 menit: valid di menit 29, expired di menit 31."""
        token = token_issuer.issue_access_token({"sub": "user-1"})

        assert token_issuer.validate(token, at_time=clock() + timedelta(minutes=29)) is True
        assert token_issuer.validate(token, at_time=clock() + timedelta(minutes=31)) is False

        clock.advance(minutes=31)
        with pytest.raises(ExpiredTokenException):
            token_issuer.decode(token)

    def test_expiration_ignores_wall_clock(self, settings, clock):
        """Expiration hanya mengikuti clock issuer, bukan waktu sistem."""
        clock.advance(days=365 * 100)
        issuer = TokenIssuer(settings.token, clock=clock)
        token = issuer.issue_access_token({"sub": "user-1"})

        assert issuer.validate(token, at_time=clock() + timedelta(minutes=1)) is True
        with pytest.raises(ExpiredTokenException):
            issuer.decode(token, at_time=clock() + timedelta(hours=1))

    def test_expired_by_issuer_clock_not_invalid(self, token_issuer: TokenIssuer, clock):
        token = token_issuer.issue_access_token({"sub": "user-1"})

        assert token_issuer.validate(token) is True
        with pytest.raises(ExpiredTokenException):
            token_issuer.decode(token, at_time=clock() + timedelta(days=1))

    def test_missing_expiration_rejected(self, token_issuer: TokenIssuer):
        token = jwt.encode({"sub": "user-1"}, token_issuer.config.secret, algorithm="HS256")

        with pytest.raises(InvalidTokenException):
            token_issuer.decode(token)

    def test_custom_ttl(self, token_issuer: TokenIssuer, clock):
        token = token_issuer.issue_access_token({"sub": "user-1"}, ttl_minutes=5)

        clock.advance(minutes=6)
        assert token_issuer.validate(token) is False

    def test_non_positive_ttl_rejected(self, token_issuer: TokenIssuer):
        with pytest.raises(ValidationError):
            token_issuer.issue_access_token({"sub": "user-1"}, ttl_minutes=0)

    def test_tampered_token_rejected(self, token_issuer: TokenIssuer):
        token = token_issuer.issue_access_token({"sub": "user-1"})
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])

        assert token_issuer.validate(tampered) is False
        with pytest.raises(InvalidTokenException):
            token_issuer.read_claims(tampered, "sub")

    def test_other_secret_rejected(self, clock):
        issuer = TokenIssuer(TokenConfig(secret="secret-one"), clock=clock)
        other = TokenIssuer(TokenConfig(secret="secret-two"), clock=clock)

        token = issuer.issue_access_token({"sub": "user-1"})

        assert other.validate(token) is False

    def test_issuer_and_audience_enforced(self, clock):
        """Token dengan issuer/audience berbeda ditolak seragam."""
        config = TokenConfig(secret="shared", issuer="authengine", audience="web")
        issuer = TokenIssuer(config, clock=clock)
        token = issuer.issue_access_token({"sub": "user-1"})

        assert issuer.validate(token) is True

        wrong_audience = TokenIssuer(
            TokenConfig(secret="shared", issuer="authengine", audience="mobile"), clock=clock
        )
        wrong_issuer = TokenIssuer(
            TokenConfig(secret="shared", issuer="someone-else", audience="web"), clock=clock
        )
        assert wrong_audience.validate(token) is False
        assert wrong_issuer.validate(token) is False

        # Token tanpa aud/iss juga ditolak ketika issuer mengharuskannya
        bare = TokenIssuer(TokenConfig(secret="shared"), clock=clock).issue_access_token({"sub": "user-1"})
        assert issuer.validate(bare) is False

    def test_purpose_bound_token(self, token_issuer: TokenIssuer):
        """Token dengan purpose hanya diterima untuk purpose yang sama."""
        token = token_issuer.issue_access_token({"sub": "user-1"}, purpose="two_factor")

        assert token_issuer.validate(token) is False
        assert token_issuer.validate(token, purpose="identity") is False
        assert token_issuer.validate(token, purpose="two_factor") is True
        assert token_issuer.read_claims(token, "sub", purpose="two_factor") == {"sub": "user-1"}
        with pytest.raises(InvalidTokenException):
            token_issuer.read_claims(token, "sub")

    def test_session_token_rejected_for_purpose(self, token_issuer: TokenIssuer):
        token = token_issuer.issue_access_token({"sub": "user-1"})

        assert token_issuer.validate(token, purpose="identity") is False

    def test_purpose_not_injectable_through_claims(self, token_issuer: TokenIssuer):
        token = token_issuer.issue_access_token({"sub": "user-1", "purpose": "identity"})

        assert token_issuer.validate(token) is True
        assert token_issuer.validate(token, purpose="identity") is False

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c", None])
    def test_malformed_tokens(self, token_issuer: TokenIssuer, token):
        assert token_issuer.validate(token) is False
        with pytest.raises(TokenError):
            token_issuer.decode(token)

    def test_uuid_claims_serialized(self, token_issuer: TokenIssuer):
        from uuid import uuid4

        user_id = uuid4()
        token = token_issuer.issue_access_token({"sub": user_id, "ids": [user_id]})

        claims = token_issuer.read_claims(token, "sub", "ids")
        assert claims == {"sub": str(user_id), "ids": [str(user_id)]}

    def test_session_token(self, token_issuer: TokenIssuer, clock):
        session = token_issuer.issue_session_token({"sub": "user-1"})

        assert session.access_token
        assert session.refresh_token
        assert session.token_type == "bearer"
        assert session.issued_at == clock()
        assert session.expires_at == clock() + timedelta(minutes=30)

    def test_opaque_tokens(self, token_issuer: TokenIssuer):
        first = token_issuer.issue_opaque_token()
        second = token_issuer.issue_opaque_token()

        assert first != second
        assert len(base64.b64decode(first)) == 32
        assert len(base64.b64decode(token_issuer.issue_opaque_token(10))) == 10
