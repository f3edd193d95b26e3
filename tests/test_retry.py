"""
Tests for PersistenceRetryWrapper.
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from authengine.core.config import RetryPolicy
from authengine.core.exceptions import ConflictError, UnsupportedConflictError
from authengine.db.retry import PersistenceRetryWrapper
from authengine.db.session import create_async_session_factory
from authengine.models.claim import UserClaim
from authengine.models.role import Role
from authengine.models.user import User

from tests.conftest import TEST_PASSWORD


@pytest.mark.unit
class TestRetryPolicy:
    """Test backoff calculation."""

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(base_backoff_seconds=0.1, max_backoff_seconds=0.5)

        assert policy.backoff_for(1) == pytest.approx(0.1)
        assert policy.backoff_for(2) == pytest.approx(0.2)
        assert policy.backoff_for(3) == pytest.approx(0.4)
        assert policy.backoff_for(4) == pytest.approx(0.5)


@pytest.mark.integration
@pytest.mark.requires_db
class TestPersistenceRetryWrapper:
    """Test commit, conflict rebase, dan retry bounds."""

    def test_commit_new_row(self, db_session):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), Role)
        db_session.add(Role(name="auditor"))

        assert wrapper.commit(db_session) is True

    def test_zero_rows_is_soft_failure(self, db_session):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), User)

        assert wrapper.commit(db_session) is False

    def test_zero_rows_as_success(self, db_session):
        wrapper = PersistenceRetryWrapper(RetryPolicy(zero_rows_as_success=True), User)

        assert wrapper.commit(db_session) is True

    def test_mutation_callable(self, db_session, test_user):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), User)

        def rename():
            test_user.first_name = "Alice"

        assert wrapper.commit(db_session, rename) is True
        assert test_user.first_name == "Alice"

    def test_concurrent_update_rebased(self, session_factory, test_user):
        """Dua writer pada user yang sama: keduanya berhasil, last writer wins per field."""
        policy = RetryPolicy(max_attempts=3, base_backoff_seconds=0, max_backoff_seconds=0)
        sleeps = []
        wrapper = PersistenceRetryWrapper(policy, User, sleep=sleeps.append)

        with session_factory() as first, session_factory() as second:
            mine = first.get(User, test_user.id)
            theirs = second.get(User, test_user.id)
            assert mine.version == theirs.version

            theirs.first_name = "Theirs"
            assert wrapper.commit(second) is True

            mine.last_name = "Mine"
            assert wrapper.commit(first) is True
            assert sleeps == [0]

        with session_factory() as check:
            stored = check.get(User, test_user.id)
            assert stored.first_name == "Theirs"
            assert stored.last_name == "Mine"
            assert stored.version == test_user.version + 2

    def test_same_field_last_writer_wins(self, session_factory, test_user):
        wrapper = PersistenceRetryWrapper(RetryPolicy(base_backoff_seconds=0), User, sleep=lambda _: None)

        with session_factory() as first, session_factory() as second:
            mine = first.get(User, test_user.id)
            theirs = second.get(User, test_user.id)

            theirs.first_name = "Early"
            assert wrapper.commit(second) is True

            mine.first_name = "Late"
            assert wrapper.commit(first) is True

        with session_factory() as check:
            stored = check.get(User, test_user.id)
            assert stored.first_name == "Late"

    def test_retries_bounded(self, db_session, test_user, monkeypatch):
        """Conflict yang terus terjadi berhenti setelah max_attempts."""
        sleeps = []
        policy = RetryPolicy(max_attempts=3, base_backoff_seconds=0.01, max_backoff_seconds=1)
        wrapper = PersistenceRetryWrapper(policy, User, sleep=sleeps.append)
        calls = []

        def conflicting_commit():
            calls.append(1)
            raise StaleDataError("row was updated concurrently")

        monkeypatch.setattr(db_session, "commit", conflicting_commit)
        test_user.first_name = "Never"

        assert wrapper.commit(db_session) is False
        assert len(calls) == 3
        assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]

    def test_unmanaged_type_conflict_raises(self, session_factory, test_user):
        """Conflict pada entity type lain tidak di-rebase."""
        wrapper = PersistenceRetryWrapper(RetryPolicy(), UserClaim, sleep=lambda _: None)

        with session_factory() as first, session_factory() as second:
            mine = first.get(User, test_user.id)
            theirs = second.get(User, test_user.id)

            theirs.first_name = "Theirs"
            second.commit()

            mine.first_name = "Mine"
            with pytest.raises(UnsupportedConflictError):
                wrapper.commit(first)

    def test_deleted_row_gives_up(self, session_factory, test_user):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), User, sleep=lambda _: None)

        with session_factory() as first, session_factory() as second:
            mine = first.get(User, test_user.id)
            second.delete(second.get(User, test_user.id))
            second.commit()

            mine.first_name = "Ghost"
            assert wrapper.commit(first) is False

    def test_integrity_error_becomes_conflict(self, db_session, test_user):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), Role)
        db_session.add(Role(name="dup"))
        assert wrapper.commit(db_session) is True

        db_session.add(Role(name="dup"))
        with pytest.raises(ConflictError):
            wrapper.commit(db_session)


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.requires_db
class TestAsyncPersistenceRetryWrapper:
    """Test async commit path."""

    async def test_commit_async(self, async_db_session):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), Role)
        async_db_session.add(Role(name="async-role"))

        assert await wrapper.commit_async(async_db_session) is True

    async def test_zero_rows_async(self, async_db_session):
        wrapper = PersistenceRetryWrapper(RetryPolicy(), Role)

        assert await wrapper.commit_async(async_db_session) is False

    async def test_concurrent_update_rebased_async(self, async_engine, async_accounts):
        """Conflict antar dua AsyncSession di-rebase seperti pada blocking path."""
        user = (await async_accounts.create_user("a@x.com", TEST_PASSWORD)).data
        user_id, version = user.id, user.version

        sleeps = []

        async def record_sleep(delay):
            sleeps.append(delay)

        policy = RetryPolicy(max_attempts=3, base_backoff_seconds=0, max_backoff_seconds=0)
        wrapper = PersistenceRetryWrapper(policy, User, async_sleep=record_sleep)
        factory = create_async_session_factory(async_engine)

        async with factory() as first, factory() as second:
            mine = await first.get(User, user_id)
            theirs = await second.get(User, user_id)

            theirs.first_name = "Theirs"
            assert await wrapper.commit_async(second) is True

            mine.last_name = "Mine"
            assert await wrapper.commit_async(first) is True
            assert sleeps == [0]

        async with factory() as check:
            stored = await check.get(User, user_id)
            assert stored.first_name == "Theirs"
            assert stored.last_name == "Mine"
            assert stored.version == version + 2

    async def test_retries_bounded_async(self, async_db_session, async_accounts, monkeypatch):
        user = (await async_accounts.create_user("a@x.com", TEST_PASSWORD)).data
        sleeps = []
        calls = []

        async def record_sleep(delay):
            sleeps.append(delay)

        async def conflicting_commit():
            calls.append(1)
            raise StaleDataError("row was updated concurrently")

        policy = RetryPolicy(max_attempts=3, base_backoff_seconds=0.01, max_backoff_seconds=1)
        wrapper = PersistenceRetryWrapper(policy, User, async_sleep=record_sleep)
        monkeypatch.setattr(async_db_session, "commit", conflicting_commit)
        user.first_name = "Never"

        assert await wrapper.commit_async(async_db_session) is False
        assert len(calls) == 3
        assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]
