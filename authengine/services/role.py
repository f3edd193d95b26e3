"""
Role service untuk AuthEngine.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import Settings
from authengine.core.constants import ErrorCode, ResponseMessage
from authengine.core.exceptions import ConflictError, UnsupportedConflictError
from authengine.models.role import Role
from authengine.schemas.response import AccessResult
from authengine.stores.base import RoleStore, AsyncRoleStore
from authengine.stores.sql import SqlRoleStore
from authengine.stores.async_sql import AsyncSqlRoleStore
from authengine.utils.validators import Validator

logger = logging.getLogger(__name__)


def _validate_names(names: Sequence[str]) -> Optional[AccessResult]:
    validator = Validator()
    validator.check(bool(names), "At least one role name is required")
    for name in names:
        validator.required(name, "role name")
    validator.check(len(set(names)) == len(names), "Role names must be unique")
    return validator.failure()


def _role_not_found() -> AccessResult:
    return AccessResult.failed(ResponseMessage.ROLE_NOT_FOUND, ErrorCode.NOT_FOUND)


class RoleManager:
    """
    Role CRUD dengan blocking calling convention.
    """

    def __init__(self, roles: RoleStore):
        self.roles = roles

    @classmethod
    def from_session(cls, db: Session, settings: Settings) -> "RoleManager":
        return cls(SqlRoleStore(db, settings.retry))

    def create_roles(self, names: Sequence[str], role_type: Optional[str] = None) -> AccessResult:
        """
        Create satu atau lebih roles.

        Args:
            names: Nama roles
            role_type: Optional role type untuk semua roles

        Returns:
            AccessResult dengan list Role sebagai data
        """
        names = list(names)
        invalid = _validate_names(names)
        if invalid is not None:
            return invalid

        for name in names:
            if self.roles.fetch_by_name(name) is not None:
                return AccessResult.failed(ResponseMessage.ROLE_EXISTS, ErrorCode.DUPLICATE)

        roles = [Role(name=name, type=role_type) for name in names]
        try:
            created = self.roles.create(roles)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.ROLE_EXISTS, ErrorCode.DUPLICATE)

        if not created:
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        logger.info("Created roles: %s", ", ".join(names))
        return AccessResult.success(roles)

    def create_role(self, name: str, role_type: Optional[str] = None) -> AccessResult:
        """Create satu role. Data berisi Role yang dibuat."""
        result = self.create_roles([name], role_type)
        if result.succeeded:
            return AccessResult.success(result.data[0])
        return result

    def fetch_role(self, name: str) -> AccessResult:
        validator = Validator()
        validator.required(name, "role name")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        role = self.roles.fetch_by_name(name)
        return AccessResult.success(role) if role else _role_not_found()

    def fetch_roles(self) -> AccessResult:
        return AccessResult.success(self.roles.fetch_all())

    def delete_roles(self, names: Sequence[str]) -> AccessResult:
        """
        Delete roles berdasarkan nama. Semua nama harus ada.

        Returns:
            AccessResult
        """
        names = list(names)
        invalid = _validate_names(names)
        if invalid is not None:
            return invalid

        roles = []
        for name in names:
            role = self.roles.fetch_by_name(name)
            if role is None:
                return _role_not_found()
            roles.append(role)

        if not self.roles.delete(roles):
            return AccessResult.failed(ResponseMessage.DELETE_FAILED, ErrorCode.DELETE_FAILED)
        return AccessResult.success()

    def delete_role(self, name: str) -> AccessResult:
        return self.delete_roles([name])


class AsyncRoleManager:
    """
    Role CRUD dengan async calling convention.
    """

    def __init__(self, roles: AsyncRoleStore):
        self.roles = roles

    @classmethod
    def from_session(cls, db: AsyncSession, settings: Settings) -> "AsyncRoleManager":
        return cls(AsyncSqlRoleStore(db, settings.retry))

    async def create_roles(self, names: Sequence[str], role_type: Optional[str] = None) -> AccessResult:
        """
        Create satu atau lebih roles.
        """
        names = list(names)
        invalid = _validate_names(names)
        if invalid is not None:
            return invalid

        for name in names:
            if await self.roles.fetch_by_name(name) is not None:
                return AccessResult.failed(ResponseMessage.ROLE_EXISTS, ErrorCode.DUPLICATE)

        roles = [Role(name=name, type=role_type) for name in names]
        try:
            created = await self.roles.create(roles)
        except UnsupportedConflictError:
            raise
        except ConflictError:
            return AccessResult.failed(ResponseMessage.ROLE_EXISTS, ErrorCode.DUPLICATE)

        if not created:
            return AccessResult.failed(ResponseMessage.CREATE_FAILED, ErrorCode.CREATE_FAILED)

        logger.info("Created roles: %s", ", ".join(names))
        return AccessResult.success(roles)

    async def create_role(self, name: str, role_type: Optional[str] = None) -> AccessResult:
        result = await self.create_roles([name], role_type)
        if result.succeeded:
            return AccessResult.success(result.data[0])
        return result

    async def fetch_role(self, name: str) -> AccessResult:
        validator = Validator()
        validator.required(name, "role name")
        invalid = validator.failure()
        if invalid is not None:
            return invalid

        role = await self.roles.fetch_by_name(name)
        return AccessResult.success(role) if role else _role_not_found()

    async def fetch_roles(self) -> AccessResult:
        return AccessResult.success(await self.roles.fetch_all())

    async def delete_roles(self, names: Sequence[str]) -> AccessResult:
        """Delete roles berdasarkan nama. Semua nama harus ada."""
        names = list(names)
        invalid = _validate_names(names)
        if invalid is not None:
            return invalid

        roles = []
        for name in names:
            role = await self.roles.fetch_by_name(name)
            if role is None:
                return _role_not_found()
            roles.append(role)

        if not await self.roles.delete(roles):
            return AccessResult.failed(ResponseMessage.DELETE_FAILED, ErrorCode.DELETE_FAILED)
        return AccessResult.success()

    async def delete_role(self, name: str) -> AccessResult:
        return await self.delete_roles([name])
