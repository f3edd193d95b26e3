"""
Stores module untuk AuthEngine.
Berisi collaborator interfaces dan implementasi SQLAlchemy-nya.
"""

from authengine.stores.base import (
    UserStore,
    ClaimStore,
    LoginActivityStore,
    RoleStore,
    AsyncUserStore,
    AsyncClaimStore,
    AsyncLoginActivityStore,
    AsyncRoleStore,
    DeviceLocator
)
from authengine.stores.sql import (
    SqlUserStore,
    SqlClaimStore,
    SqlLoginActivityStore,
    SqlRoleStore
)
from authengine.stores.async_sql import (
    AsyncSqlUserStore,
    AsyncSqlClaimStore,
    AsyncSqlLoginActivityStore,
    AsyncSqlRoleStore
)

__all__ = [
    "UserStore",
    "ClaimStore",
    "LoginActivityStore",
    "RoleStore",
    "AsyncUserStore",
    "AsyncClaimStore",
    "AsyncLoginActivityStore",
    "AsyncRoleStore",
    "DeviceLocator",
    "SqlUserStore",
    "SqlClaimStore",
    "SqlLoginActivityStore",
    "SqlRoleStore",
    "AsyncSqlUserStore",
    "AsyncSqlClaimStore",
    "AsyncSqlLoginActivityStore",
    "AsyncSqlRoleStore"
]
