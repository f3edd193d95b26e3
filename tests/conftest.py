"""
Pytest configuration and fixtures for AuthEngine tests.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Generator

import pytest
import pytest_asyncio
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import Settings, TokenConfig, RetryPolicy
from authengine.core.security import PasswordHasher, TokenIssuer
from authengine.db.session import (
    create_db_engine,
    create_async_db_engine,
    create_session_factory,
    create_async_session_factory,
    init_db,
    init_async_db
)
from authengine.models.user import User
from authengine.services.auth import SignInManager, AsyncSignInManager
from authengine.services.device import HeaderDeviceLocator
from authengine.services.role import RoleManager
from authengine.services.two_factor import TotpProvider
from authengine.services.user import AccountManager, AsyncAccountManager


TEST_PASSWORD = "Secret123!"
CHROME_ON_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FrozenClock:
    """Clock yang bisa dimajukan secara manual."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def settings() -> Settings:
    """Settings untuk tests: tanpa backoff supaya retry tests cepat."""
    return Settings(
        token=TokenConfig(secret="test-secret-key-for-authengine"),
        retry=RetryPolicy(max_attempts=3, base_backoff_seconds=0, max_backoff_seconds=0)
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def hasher() -> PasswordHasher:
    """Argon2 dengan cost rendah; parameter produksi terlalu lambat untuk tests."""
    return PasswordHasher(rounds=1, memory_cost=1024)


@pytest.fixture
def token_issuer(settings: Settings, clock: FrozenClock) -> TokenIssuer:
    return TokenIssuer(settings.token, clock=clock)


@pytest.fixture
def totp(settings: Settings) -> TotpProvider:
    return TotpProvider(settings.totp)


@pytest.fixture
def locator(settings: Settings) -> HeaderDeviceLocator:
    """Locator untuk request dari Chrome di belakang proxy."""
    return HeaderDeviceLocator(
        headers={
            "User-Agent": CHROME_ON_WINDOWS,
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1"
        },
        remote_addr="10.0.0.1",
        config=settings.locator
    )


# Blocking database fixtures
@pytest.fixture
def engine(settings: Settings, tmp_path):
    """SQLite engine per test."""
    engine = create_db_engine(settings, url=f"sqlite:///{tmp_path / 'authengine.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    with session_factory() as session:
        yield session


@pytest.fixture
def accounts(db_session: Session, settings: Settings, hasher, token_issuer, totp) -> AccountManager:
    return AccountManager.from_session(
        db_session, settings, hasher=hasher, token_issuer=token_issuer, totp=totp
    )


@pytest.fixture
def roles(db_session: Session, settings: Settings) -> RoleManager:
    return RoleManager.from_session(db_session, settings)


@pytest.fixture
def sign_in_manager(db_session: Session, settings: Settings, hasher, token_issuer, totp, locator) -> SignInManager:
    return SignInManager.from_session(
        db_session, settings, locator=locator,
        hasher=hasher, token_issuer=token_issuer, totp=totp
    )


@pytest.fixture
def user_factory(accounts: AccountManager) -> Callable[..., User]:
    """Create users lewat AccountManager."""
    def create(email: str = "a@x.com", password: str = TEST_PASSWORD, **kwargs) -> User:
        result = accounts.create_user(email, password, **kwargs)
        assert result.succeeded, result.errors
        return result.data

    return create


@pytest.fixture
def test_user(user_factory) -> User:
    """Create a test user."""
    return user_factory("a@x.com", username="alice")


# Async database fixtures
@pytest_asyncio.fixture
async def async_engine(settings: Settings, tmp_path):
    """aiosqlite engine per test."""
    engine = create_async_db_engine(
        settings, url=f"sqlite+aiosqlite:///{tmp_path / 'authengine_async.db'}"
    )
    await init_async_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async test database session."""
    factory = create_async_session_factory(async_engine)
    async with factory() as session:
        yield session


@pytest.fixture
def async_accounts(async_db_session: AsyncSession, settings: Settings, hasher, token_issuer, totp) -> AsyncAccountManager:
    return AsyncAccountManager.from_session(
        async_db_session, settings, hasher=hasher, token_issuer=token_issuer, totp=totp
    )


@pytest.fixture
def async_sign_in_manager(
    async_db_session: AsyncSession, settings: Settings, hasher, token_issuer, totp, locator
) -> AsyncSignInManager:
    return AsyncSignInManager.from_session(
        async_db_session, settings, locator=locator,
        hasher=hasher, token_issuer=token_issuer, totp=totp
    )
