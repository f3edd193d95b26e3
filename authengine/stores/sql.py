"""
SQLAlchemy store implementations untuk blocking calling convention.
Semua write melewati PersistenceRetryWrapper.
"""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from authengine.core.config import RetryPolicy
from authengine.db.retry import PersistenceRetryWrapper
from authengine.models.user import User
from authengine.models.role import Role
from authengine.models.claim import UserClaim
from authengine.models.login_activity import LoginActivity


class SqlStore:
    """Base class: satu session dan retry wrapper untuk satu entity type."""

    entity_type = None

    def __init__(self, db: Session, retry_policy: Optional[RetryPolicy] = None):
        """
        Initialize store.

        Args:
            db: Database session
            retry_policy: Retry policy untuk commits
        """
        self.db = db
        self.retry = PersistenceRetryWrapper(retry_policy, self.entity_type)

    def _commit(self) -> bool:
        return self.retry.commit(self.db)


class SqlUserStore(SqlStore):
    entity_type = User

    def fetch_by_id(self, user_id: UUID) -> Optional[User]:
        return self.db.get(User, user_id)

    def fetch_by_email(self, email: str) -> Optional[User]:
        result = self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    def fetch_by_username(self, username: str) -> Optional[User]:
        result = self.db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()

    def create(self, user: User) -> bool:
        self.db.add(user)
        return self._commit()

    def update(self, user: User) -> bool:
        self.db.add(user)
        return self._commit()

    def delete(self, user: User) -> bool:
        # Hapus dependent rows lewat ORM supaya ikut dalam snapshot retry
        for model in (UserClaim, LoginActivity):
            result = self.db.execute(select(model).where(model.user_id == user.id))
            for row in result.scalars().all():
                self.db.delete(row)
        self.db.delete(user)
        return self._commit()


class SqlClaimStore(SqlStore):
    entity_type = UserClaim

    def fetch_by_user(self, user_id: UUID) -> List[UserClaim]:
        result = self.db.execute(
            select(UserClaim)
            .where(UserClaim.user_id == user_id)
            .order_by(UserClaim.created_at)
        )
        return list(result.scalars().all())

    def fetch_by_type(self, user_id: UUID, claim_type: str) -> List[UserClaim]:
        result = self.db.execute(
            select(UserClaim).where(
                UserClaim.user_id == user_id,
                UserClaim.claim_type == claim_type
            )
        )
        return list(result.scalars().all())

    def create(self, claims: Sequence[UserClaim]) -> bool:
        self.db.add_all(claims)
        return self._commit()

    def update(self, claim: UserClaim) -> bool:
        self.db.add(claim)
        return self._commit()

    def delete(self, claims: Sequence[UserClaim]) -> bool:
        for claim in claims:
            self.db.delete(claim)
        return self._commit()


class SqlLoginActivityStore(SqlStore):
    entity_type = LoginActivity

    def fetch_by_user_and_ip(self, user_id: UUID, ip_address: str) -> Optional[LoginActivity]:
        result = self.db.execute(
            select(LoginActivity).where(
                LoginActivity.user_id == user_id,
                LoginActivity.ip_address == ip_address
            )
        )
        return result.scalar_one_or_none()

    def create(self, activity: LoginActivity) -> bool:
        self.db.add(activity)
        return self._commit()

    def update(self, activity: LoginActivity) -> bool:
        self.db.add(activity)
        return self._commit()


class SqlRoleStore(SqlStore):
    entity_type = Role

    def fetch_by_id(self, role_id: UUID) -> Optional[Role]:
        return self.db.get(Role, role_id)

    def fetch_by_name(self, name: str) -> Optional[Role]:
        result = self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    def fetch_all(self) -> List[Role]:
        result = self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    def create(self, roles: Sequence[Role]) -> bool:
        self.db.add_all(roles)
        return self._commit()

    def delete(self, roles: Sequence[Role]) -> bool:
        for role in roles:
            self.db.delete(role)
        return self._commit()
