"""
SQLAlchemy store implementations untuk async calling convention.
Semua write melewati PersistenceRetryWrapper.commit_async.
"""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import RetryPolicy
from authengine.db.retry import PersistenceRetryWrapper
from authengine.models.user import User
from authengine.models.role import Role
from authengine.models.claim import UserClaim
from authengine.models.login_activity import LoginActivity


class AsyncSqlStore:
    """Base class: satu async session dan retry wrapper untuk satu entity type."""

    entity_type = None

    def __init__(self, db: AsyncSession, retry_policy: Optional[RetryPolicy] = None):
        """
        Initialize store.

        Args:
            db: Async database session
            retry_policy: Retry policy untuk commits
        """
        self.db = db
        self.retry = PersistenceRetryWrapper(retry_policy, self.entity_type)

    async def _commit(self) -> bool:
        return await self.retry.commit_async(self.db)


class AsyncSqlUserStore(AsyncSqlStore):
    entity_type = User

    async def fetch_by_id(self, user_id: UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def fetch_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def fetch_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()

    async def create(self, user: User) -> bool:
        self.db.add(user)
        return await self._commit()

    async def update(self, user: User) -> bool:
        self.db.add(user)
        return await self._commit()

    async def delete(self, user: User) -> bool:
        for model in (UserClaim, LoginActivity):
            result = await self.db.execute(select(model).where(model.user_id == user.id))
            for row in result.scalars().all():
                await self.db.delete(row)
        await self.db.delete(user)
        return await self._commit()


class AsyncSqlClaimStore(AsyncSqlStore):
    entity_type = UserClaim

    async def fetch_by_user(self, user_id: UUID) -> List[UserClaim]:
        result = await self.db.execute(
            select(UserClaim)
            .where(UserClaim.user_id == user_id)
            .order_by(UserClaim.created_at)
        )
        return list(result.scalars().all())

    async def fetch_by_type(self, user_id: UUID, claim_type: str) -> List[UserClaim]:
        result = await self.db.execute(
            select(UserClaim).where(
                UserClaim.user_id == user_id,
                UserClaim.claim_type == claim_type
            )
        )
        return list(result.scalars().all())

    async def create(self, claims: Sequence[UserClaim]) -> bool:
        self.db.add_all(claims)
        return await self._commit()

    async def update(self, claim: UserClaim) -> bool:
        self.db.add(claim)
        return await self._commit()

    async def delete(self, claims: Sequence[UserClaim]) -> bool:
        for claim in claims:
            await self.db.delete(claim)
        return await self._commit()


class AsyncSqlLoginActivityStore(AsyncSqlStore):
    entity_type = LoginActivity

    async def fetch_by_user_and_ip(self, user_id: UUID, ip_address: str) -> Optional[LoginActivity]:
        result = await self.db.execute(
            select(LoginActivity).where(
                LoginActivity.user_id == user_id,
                LoginActivity.ip_address == ip_address
            )
        )
        return result.scalar_one_or_none()

    async def create(self, activity: LoginActivity) -> bool:
        self.db.add(activity)
        return await self._commit()

    async def update(self, activity: LoginActivity) -> bool:
        self.db.add(activity)
        return await self._commit()


class AsyncSqlRoleStore(AsyncSqlStore):
    entity_type = Role

    async def fetch_by_id(self, role_id: UUID) -> Optional[Role]:
        return await self.db.get(Role, role_id)

    async def fetch_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def fetch_all(self) -> List[Role]:
        result = await self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def create(self, roles: Sequence[Role]) -> bool:
        self.db.add_all(roles)
        return await self._commit()

    async def delete(self, roles: Sequence[Role]) -> bool:
        for role in roles:
            await self.db.delete(role)
        return await self._commit()
