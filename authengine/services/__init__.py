"""
Services module untuk AuthEngine.
Berisi sign-in orchestration, account management, dan provider-provider pendukungnya.
"""

from authengine.services.auth import SignInManager, AsyncSignInManager
from authengine.services.user import AccountManager, AsyncAccountManager
from authengine.services.role import RoleManager, AsyncRoleManager
from authengine.services.two_factor import TotpProvider
from authengine.services.device import HeaderDeviceLocator

__all__ = [
    "SignInManager",
    "AsyncSignInManager",
    "AccountManager",
    "AsyncAccountManager",
    "RoleManager",
    "AsyncRoleManager",
    "TotpProvider",
    "HeaderDeviceLocator"
]
