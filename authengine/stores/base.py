"""
Collaborator interfaces yang dibutuhkan oleh AuthEngine.
Host application boleh menyediakan implementasi sendiri; implementasi
SQLAlchemy tersedia di authengine.stores.sql dan authengine.stores.async_sql.
"""

from typing import List, Optional, Protocol, Sequence
from uuid import UUID

from authengine.models.user import User
from authengine.models.role import Role
from authengine.models.claim import UserClaim
from authengine.models.login_activity import LoginActivity
from authengine.schemas.auth import DeviceInfo, Location


class UserStore(Protocol):
    def fetch_by_id(self, user_id: UUID) -> Optional[User]: ...
    def fetch_by_email(self, email: str) -> Optional[User]: ...
    def fetch_by_username(self, username: str) -> Optional[User]: ...
    def create(self, user: User) -> bool: ...
    def update(self, user: User) -> bool: ...
    def delete(self, user: User) -> bool: ...


class ClaimStore(Protocol):
    def fetch_by_user(self, user_id: UUID) -> List[UserClaim]: ...
    def fetch_by_type(self, user_id: UUID, claim_type: str) -> List[UserClaim]: ...
    def create(self, claims: Sequence[UserClaim]) -> bool: ...
    def update(self, claim: UserClaim) -> bool: ...
    def delete(self, claims: Sequence[UserClaim]) -> bool: ...


class LoginActivityStore(Protocol):
    def fetch_by_user_and_ip(self, user_id: UUID, ip_address: str) -> Optional[LoginActivity]: ...
    def create(self, activity: LoginActivity) -> bool: ...
    def update(self, activity: LoginActivity) -> bool: ...


class RoleStore(Protocol):
    def fetch_by_id(self, role_id: UUID) -> Optional[Role]: ...
    def fetch_by_name(self, name: str) -> Optional[Role]: ...
    def fetch_all(self) -> List[Role]: ...
    def create(self, roles: Sequence[Role]) -> bool: ...
    def delete(self, roles: Sequence[Role]) -> bool: ...


class AsyncUserStore(Protocol):
    async def fetch_by_id(self, user_id: UUID) -> Optional[User]: ...
    async def fetch_by_email(self, email: str) -> Optional[User]: ...
    async def fetch_by_username(self, username: str) -> Optional[User]: ...
    async def create(self, user: User) -> bool: ...
    async def update(self, user: User) -> bool: ...
    async def delete(self, user: User) -> bool: ...


class AsyncClaimStore(Protocol):
    async def fetch_by_user(self, user_id: UUID) -> List[UserClaim]: ...
    async def fetch_by_type(self, user_id: UUID, claim_type: str) -> List[UserClaim]: ...
    async def create(self, claims: Sequence[UserClaim]) -> bool: ...
    async def update(self, claim: UserClaim) -> bool: ...
    async def delete(self, claims: Sequence[UserClaim]) -> bool: ...


class AsyncLoginActivityStore(Protocol):
    async def fetch_by_user_and_ip(self, user_id: UUID, ip_address: str) -> Optional[LoginActivity]: ...
    async def create(self, activity: LoginActivity) -> bool: ...
    async def update(self, activity: LoginActivity) -> bool: ...


class AsyncRoleStore(Protocol):
    async def fetch_by_id(self, role_id: UUID) -> Optional[Role]: ...
    async def fetch_by_name(self, name: str) -> Optional[Role]: ...
    async def fetch_all(self) -> List[Role]: ...
    async def create(self, roles: Sequence[Role]) -> bool: ...
    async def delete(self, roles: Sequence[Role]) -> bool: ...


class DeviceLocator(Protocol):
    """
    Device dan location lookup untuk request saat ini. Best-effort:
    implementasi mengembalikan "unknown" daripada raise.
    """

    def current_device(self) -> DeviceInfo: ...
    def current_ip(self) -> str: ...
    def location_for_ip(self, ip_address: str) -> Location: ...
    async def alocation_for_ip(self, ip_address: str) -> Location: ...
