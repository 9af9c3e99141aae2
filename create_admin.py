# create_admin.py
"""Creates a faculty or admin account; self-registration only offers student and public roles."""
import asyncio
from getpass import getpass

from loguru import logger
from pydantic import TypeAdapter, EmailStr, ValidationError

from acadlib.core.security import get_password_hash
from acadlib.db.database import init_db
from acadlib.db.repositories import MongoUserRepository, UserRepository
from acadlib.models.user import User, UserRole

STAFF_ROLES = (UserRole.ADMIN, UserRole.FACULTY)


async def create_staff_user(
    users: UserRepository, name: str, email: str, password: str, role: UserRole = UserRole.ADMIN
) -> User.Response:
    if role not in STAFF_ROLES:
        raise ValueError(f"Role must be one of: {', '.join(r.value for r in STAFF_ROLES)}")
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters.")
    email = TypeAdapter(EmailStr).validate_python(email.strip())
    if await users.email_exists(email):
        raise ValueError(f"Email '{email}' already exists.")

    created = await users.create(
        name=name.strip(), email=email, hashed_password=get_password_hash(password), role=role.value
    )
    logger.info(f"{role.value.capitalize()} user '{created.email}' created ({created.id}).")
    return created


def _prompt(label: str) -> str:
    while True:
        value = input(label).strip()
        if value:
            return value
        print("Value cannot be empty.")


def _prompt_password() -> str:
    while True:
        password = getpass("Enter password: ")
        if password and password == getpass("Confirm password: "):
            return password
        print("Passwords do not match or are empty. Please try again.")


async def main():
    client, _ = await init_db()
    try:
        role = UserRole(_prompt("Role (admin/faculty): ").lower())
        name = _prompt("Full name: ")
        email = _prompt("Email: ")
        password = _prompt_password()
        user = await create_staff_user(MongoUserRepository(), name, email, password, role)
        print(f"User '{user.email}' created with role '{user.role}'.")
    except (ValueError, ValidationError) as e:
        print(f"Error: {e}")
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
