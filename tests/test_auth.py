"""
Tests for the sign-in state machine.
"""

from datetime import timedelta

import pytest

from authengine.core.config import AccountPolicy
from authengine.core.constants import SignInStatus
from authengine.core.exceptions import EmailNotConfirmedException, TokenError
from authengine.models.login_activity import LoginActivity
from authengine.services.auth import SignInManager
from authengine.services.device import HeaderDeviceLocator
from authengine.services.user import AccountManager

from tests.conftest import TEST_PASSWORD


def activities_for(db_session, user_id):
    return db_session.query(LoginActivity).filter(LoginActivity.user_id == user_id).all()


@pytest.mark.integration
@pytest.mark.requires_db
class TestSignInOrdering:
    """Urutan gate: password, lockout, two-factor, lalu token."""

    def test_locked_account_with_correct_password(self, sign_in_manager, accounts, test_user):
        """Correct credentials + lockout -> LockedOut."""
        assert accounts.enable_lockout(test_user).succeeded

        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert result.status == SignInStatus.LOCKED_OUT
        assert result.token is None

    def test_locked_account_with_wrong_password(self, sign_in_manager, accounts, test_user):
        """Wrong password + lockout -> Failed, never LockedOut."""
        assert accounts.enable_lockout(test_user).succeeded

        result = sign_in_manager.sign_in("a@x.com", "wrong-password")

        assert result.status == SignInStatus.FAILED
        assert result.is_locked_out is False

    def test_two_factor_required(self, sign_in_manager, accounts, db_session, test_user):
        """Correct credentials + 2FA -> RequireTwoFactor tanpa token dan tanpa activity."""
        assert accounts.enroll_google_authenticator(test_user).succeeded

        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert result.status == SignInStatus.REQUIRE_TWO_FACTOR
        assert result.user_id == test_user.id
        assert result.two_factor_token
        assert result.token is None
        assert result.login_activity is None
        assert activities_for(db_session, test_user.id) == []

    def test_success(self, sign_in_manager, token_issuer, db_session, test_user):
        """No lockout, no 2FA -> Success dengan token pair dan login activity."""
        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert result.succeeded
        assert result.token.access_token
        assert result.token.refresh_token
        assert result.token.expires_at == token_issuer.now() + timedelta(minutes=30)

        claims = token_issuer.read_claims(result.token.access_token, "sub", "email", "nameid")
        assert claims == {"sub": str(test_user.id), "email": "a@x.com", "nameid": str(test_user.id)}

        activity = result.login_activity
        assert activity.user_id == test_user.id
        assert activity.ip_address == "203.0.113.7"
        assert activity.device == "Chrome on Windows (desktop)"
        assert activity.city == "unknown"
        assert len(activities_for(db_session, test_user.id)) == 1

    def test_wrong_password_and_unknown_user_indistinguishable(self, sign_in_manager, test_user):
        wrong_password = sign_in_manager.sign_in("a@x.com", "nope")
        unknown_user = sign_in_manager.sign_in("ghost@x.com", TEST_PASSWORD)

        assert wrong_password.model_dump() == unknown_user.model_dump()
        assert wrong_password.user_id is None

    @pytest.mark.parametrize("identifier,password", [("", TEST_PASSWORD), ("a@x.com", ""), (None, None)])
    def test_empty_credentials(self, sign_in_manager, test_user, identifier, password):
        assert sign_in_manager.sign_in(identifier, password).status == SignInStatus.FAILED

    def test_failed_sign_in_records_no_activity(self, sign_in_manager, db_session, test_user):
        sign_in_manager.sign_in("a@x.com", "nope")

        assert activities_for(db_session, test_user.id) == []

    def test_expired_lockout_allows_sign_in(self, sign_in_manager, accounts, clock, test_user):
        assert accounts.enable_lockout(test_user, duration_minutes=15).succeeded
        assert sign_in_manager.sign_in("a@x.com", TEST_PASSWORD).is_locked_out

        clock.advance(minutes=16)

        assert sign_in_manager.sign_in("a@x.com", TEST_PASSWORD).succeeded


@pytest.mark.integration
@pytest.mark.requires_db
class TestSignInVariants:
    """Test lookup variants dan claims di token."""

    def test_sign_in_by_username(self, sign_in_manager, test_user):
        assert sign_in_manager.sign_in("alice", TEST_PASSWORD).succeeded
        assert sign_in_manager.sign_in_by_username("ALICE", TEST_PASSWORD).succeeded

    def test_sign_in_by_email_ignores_username(self, sign_in_manager, test_user):
        assert sign_in_manager.sign_in_by_email("A@X.com", TEST_PASSWORD).succeeded
        assert sign_in_manager.sign_in_by_email("alice", TEST_PASSWORD).status == SignInStatus.FAILED

    def test_claims_in_token(self, sign_in_manager, accounts, roles, token_issuer, test_user):
        assert roles.create_role("admin").succeeded
        assert accounts.add_user_role(test_user, "admin").succeeded
        assert accounts.add_claims(test_user, [("scope", "read"), ("scope", "write"), ("tier", "gold")]).succeeded

        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        claims = token_issuer.read_claims(result.token.access_token, "role", "scope", "tier")
        assert claims["role"] == "admin"
        assert sorted(claims["scope"]) == ["read", "write"]
        assert claims["tier"] == "gold"

    def test_reserved_claims_not_overridden(self, sign_in_manager, accounts, token_issuer, test_user):
        assert accounts.add_claims(test_user, {"sub": "someone-else", "exp": "0"}).succeeded

        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        payload = token_issuer.decode(result.token.access_token)
        assert payload["sub"] == str(test_user.id)
        assert payload["exp"] > 0

    def test_repeat_sign_in_updates_activity(self, sign_in_manager, db_session, clock, test_user):
        first = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        clock.advance(hours=1)
        second = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert first.login_activity.id == second.login_activity.id
        assert second.login_activity.last_login_at == clock()
        assert len(activities_for(db_session, test_user.id)) == 1

    def test_new_ip_creates_activity(self, sign_in_manager, db_session, test_user):
        sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        other = HeaderDeviceLocator({"User-Agent": "curl/8.0"}, "198.51.100.9")

        result = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD, locator=other)

        assert result.login_activity.ip_address == "198.51.100.9"
        assert len(activities_for(db_session, test_user.id)) == 2

    def test_without_locator_records_unknown(self, db_session, settings, hasher, token_issuer, test_user):
        manager = SignInManager.from_session(db_session, settings, hasher=hasher, token_issuer=token_issuer)

        result = manager.sign_in("a@x.com", TEST_PASSWORD)

        assert result.succeeded
        assert result.login_activity.ip_address == "unknown"
        assert result.login_activity.device == "unknown"


@pytest.mark.integration
@pytest.mark.requires_db
class TestEmailConfirmationGate:
    """Test email confirmation policy."""

    @pytest.fixture
    def strict_manager(self, db_session, settings, hasher, token_issuer, totp, locator):
        strict = settings.model_copy(update={"account": AccountPolicy(require_email_confirmation=True)})
        return SignInManager.from_session(
            db_session, strict, locator=locator, hasher=hasher, token_issuer=token_issuer, totp=totp
        )

    def test_unconfirmed_email_raises(self, strict_manager, test_user):
        with pytest.raises(EmailNotConfirmedException) as exc_info:
            strict_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert exc_info.value.code == "EMAIL_NOT_CONFIRMED"

    def test_wrong_password_still_failed(self, strict_manager, test_user):
        """Gate hanya dicek setelah password benar."""
        assert strict_manager.sign_in("a@x.com", "nope").status == SignInStatus.FAILED

    def test_confirmed_email_passes(self, strict_manager, accounts: AccountManager, test_user):
        token = accounts.generate_confirmation_token(test_user)
        assert accounts.confirm_email(test_user, token).succeeded

        assert strict_manager.sign_in("a@x.com", TEST_PASSWORD).succeeded


@pytest.mark.integration
@pytest.mark.requires_db
@pytest.mark.security
class TestTwoFactorSignIn:
    """Test two_factor_sign_in setelah RequireTwoFactor."""

    @pytest.fixture
    def enrolled(self, accounts, test_user):
        setup = accounts.enroll_google_authenticator(test_user).data
        return setup.manual_entry_key

    def test_valid_code_completes_sign_in(self, sign_in_manager, totp, clock, enrolled, test_user):
        challenge = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        code = totp.generate_code(enrolled, at_time=clock())

        result = sign_in_manager.two_factor_sign_in(challenge.two_factor_token, code)

        assert result.succeeded
        assert result.user_id == test_user.id
        assert result.token.access_token
        assert result.login_activity is not None

    def test_wrong_code_fails(self, sign_in_manager, totp, clock, enrolled):
        challenge = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        code = totp.generate_code(enrolled, at_time=clock() + timedelta(minutes=10))

        result = sign_in_manager.two_factor_sign_in(challenge.two_factor_token, code)

        assert result.status == SignInStatus.FAILED

    def test_expired_challenge_fails(self, sign_in_manager, totp, clock, enrolled):
        challenge = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        clock.advance(minutes=6)
        code = totp.generate_code(enrolled, at_time=clock())

        assert sign_in_manager.two_factor_sign_in(challenge.two_factor_token, code).status == SignInStatus.FAILED

    def test_confirmation_token_is_not_a_challenge(self, sign_in_manager, accounts, totp, clock, enrolled, test_user):
        """Token tanpa purpose two_factor ditolak."""
        token = accounts.generate_confirmation_token(test_user)
        code = totp.generate_code(enrolled, at_time=clock())

        assert sign_in_manager.two_factor_sign_in(token, code).status == SignInStatus.FAILED

    def test_session_token_is_not_a_challenge(self, sign_in_manager, token_issuer, totp, clock, enrolled, test_user):
        session = token_issuer.issue_access_token({"sub": str(test_user.id)})
        code = totp.generate_code(enrolled, at_time=clock())

        assert sign_in_manager.two_factor_sign_in(session, code).status == SignInStatus.FAILED

    def test_challenge_is_not_a_session_token(self, sign_in_manager, token_issuer, enrolled):
        """Challenge token tidak boleh dipakai sebagai session token oleh host."""
        challenge = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)

        assert challenge.requires_two_factor
        assert token_issuer.validate(challenge.two_factor_token) is False
        with pytest.raises(TokenError):
            token_issuer.read_claims(challenge.two_factor_token, "sub")

    def test_lockout_rechecked(self, sign_in_manager, accounts, totp, clock, enrolled, test_user):
        challenge = sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        assert accounts.enable_lockout(test_user).succeeded
        code = totp.generate_code(enrolled, at_time=clock())

        result = sign_in_manager.two_factor_sign_in(challenge.two_factor_token, code)

        assert result.status == SignInStatus.LOCKED_OUT


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.requires_db
class TestAsyncSignIn:
    """Test async calling convention."""

    async def test_async_scenarios(self, async_sign_in_manager, async_accounts, token_issuer):
        created = await async_accounts.create_user("a@x.com", TEST_PASSWORD, username="alice")
        assert created.succeeded
        user_id = created.data.id

        result = await async_sign_in_manager.sign_in("a@x.com", TEST_PASSWORD)
        assert result.succeeded
        assert token_issuer.read_claims(result.token.access_token, "sub") == {"sub": str(user_id)}
        assert result.login_activity.ip_address == "203.0.113.7"

        assert (await async_sign_in_manager.sign_in("a@x.com", "nope")).status == SignInStatus.FAILED

        assert (await async_accounts.enable_lockout(user_id)).succeeded
        assert (await async_sign_in_manager.sign_in("alice", TEST_PASSWORD)).is_locked_out
        assert (await async_sign_in_manager.sign_in("alice", "nope")).status == SignInStatus.FAILED

    async def test_async_two_factor(self, async_sign_in_manager, async_accounts, totp, clock):
        created = await async_accounts.create_user("b@x.com", TEST_PASSWORD)
        user_id = created.data.id
        setup = (await async_accounts.enroll_google_authenticator(user_id)).data

        challenge = await async_sign_in_manager.sign_in_by_email("b@x.com", TEST_PASSWORD)
        assert challenge.requires_two_factor
        assert challenge.token is None

        code = totp.generate_code(setup.manual_entry_key, at_time=clock())
        result = await async_sign_in_manager.two_factor_sign_in(challenge.two_factor_token, code)

        assert result.succeeded
        assert result.user_id == user_id
