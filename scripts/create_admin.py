#!/usr/bin/env python
"""
Script untuk membuat tables dan admin user AuthEngine.
Usage: python scripts/create_admin.py [--non-interactive <email> <username> <password>]
"""

import asyncio
import getpass
import logging
import sys

from authengine.core.config import Settings, get_settings
from authengine.core.constants import ResponseMessage
from authengine.db.session import (
    create_async_db_engine,
    create_async_session_factory,
    init_async_db
)
from authengine.services.role import AsyncRoleManager
from authengine.services.user import AsyncAccountManager
from authengine.utils.validators import password_policy_errors

ADMIN_ROLE = "admin"

logger = logging.getLogger(__name__)


def get_user_input(settings: Settings) -> dict:
    """Get admin user details from user input."""
    print("\n=== Create Admin User ===\n")

    email = input("Admin email address: ").strip()
    username = input("Admin username: ").strip()

    while True:
        password = getpass.getpass("Admin password: ")
        errors = password_policy_errors(password, settings.password)
        if errors:
            print("\nPassword does not meet requirements:")
            for error in errors:
                print(f"  - {error}")
            print()
            continue

        if password != getpass.getpass("Confirm password: "):
            print("Passwords do not match. Please try again.")
            continue
        break

    return {"email": email, "username": username, "password": password}


async def create_admin_user(settings: Settings, email: str, username: str, password: str) -> None:
    """
    Create tables, role admin, dan admin user dengan email terkonfirmasi.

    Args:
        settings: AuthEngine settings
        email: Admin email
        username: Admin username
        password: Admin password

    Raises:
        ValueError: Jika user tidak bisa dibuat
    """
    engine = create_async_db_engine(settings)
    try:
        await init_async_db(engine)
        session_factory = create_async_session_factory(engine)

        async with session_factory() as db:
            roles = AsyncRoleManager.from_session(db, settings)
            if not (await roles.fetch_role(ADMIN_ROLE)).succeeded:
                await roles.create_role(ADMIN_ROLE)

            accounts = AsyncAccountManager.from_session(db, settings)
            result = await accounts.create_user(email, password, username=username)
            if not result.succeeded:
                raise ValueError("; ".join(error.description for error in result.errors))

            user = result.data
            user_id = user.id
            await accounts.confirm_email(user, accounts.generate_confirmation_token(user))

            assigned = await accounts.add_user_role(user_id, ADMIN_ROLE)
            if not assigned.succeeded:
                raise ValueError(ResponseMessage.UPDATE_FAILED)

            logger.info("Admin user %s created", user_id)
            print("\nAdmin user created successfully!")
            print(f"   Email: {email}")
            print(f"   Username: {username}")
            print(f"   ID: {user_id}")
    finally:
        await engine.dispose()


async def main():
    """Main function."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level), format=settings.log_format)

    try:
        if len(sys.argv) > 1 and sys.argv[1] == "--non-interactive":
            if len(sys.argv) != 5:
                print("Usage: python create_admin.py --non-interactive <email> <username> <password>")
                sys.exit(1)
            user_data = {"email": sys.argv[2], "username": sys.argv[3], "password": sys.argv[4]}
        else:
            user_data = get_user_input(settings)

        await create_admin_user(settings, **user_data)

    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user.")
        sys.exit(0)
    except ValueError as e:
        print(f"\nError creating admin user: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
