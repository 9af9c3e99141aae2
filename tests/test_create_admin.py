import pytest

from acadlib.core.security import verify_password
from acadlib.models.user import UserRole
from create_admin import create_staff_user


@pytest.mark.asyncio
async def test_creates_faculty_account(users):
    created = await create_staff_user(users, " Ada Lovelace ", "ada@campus.edu", "analytical", UserRole.FACULTY)

    assert created.role == "faculty"
    assert created.name == "Ada Lovelace"
    _, hashed = await users.get_credentials("ada@campus.edu")
    assert verify_password("analytical", hashed)


@pytest.mark.asyncio
async def test_rejects_duplicate_email(users, admin):
    with pytest.raises(ValueError):
        await create_staff_user(users, "Someone", admin.email, "password1")


@pytest.mark.asyncio
async def test_rejects_self_service_roles(users):
    with pytest.raises(ValueError):
        await create_staff_user(users, "Someone", "someone@campus.edu", "password1", UserRole.STUDENT)
    assert users.docs == {}
