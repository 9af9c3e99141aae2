"""
Academic Library API - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import timedelta
from typing import AsyncGenerator

import pytest
from faker import Faker
from httpx import AsyncClient, ASGITransport

# Set testing environment before the application reads its configuration
_tmp_root = tempfile.mkdtemp(prefix="acadlib-tests-")
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["MONGODB_URL"] = "mongodb://localhost:27017/acadlib_test"
os.environ["MONGODB_TRANSACTIONS"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp_root, "uploads")
os.environ["LOG_FILE_PATH"] = os.path.join(_tmp_root, "logs", "acadlib_test.log")
os.environ["LOG_LEVEL"] = "WARNING"

from acadlib.main import app
from acadlib.api import deps
from acadlib.core.inventory import InventoryEngine
from acadlib.core.ledger import BookingLedger
from acadlib.core.security import create_access_token, get_password_hash
from acadlib.core.storage import BlobStore
from acadlib.models.user import User, UserRole

from fakes import (
    FakeBookingRepository,
    FakeMaterialRepository,
    FakeRequestRepository,
    FakeUserRepository,
)

fake = Faker()

TEST_PASSWORD = "testpassword123"
# bcrypt is slow; hash once for every fixture user.
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture
def materials() -> FakeMaterialRepository:
    return FakeMaterialRepository()


@pytest.fixture
def bookings() -> FakeBookingRepository:
    return FakeBookingRepository()


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def requests_repo() -> FakeRequestRepository:
    return FakeRequestRepository()


@pytest.fixture
def ledger(bookings, materials, users) -> BookingLedger:
    return BookingLedger(bookings, materials=materials, users=users)


@pytest.fixture
def engine(materials, ledger) -> InventoryEngine:
    """Engine on the compensating path (no transaction manager)."""
    return InventoryEngine(materials, ledger, loan_period=timedelta(days=14))


@pytest.fixture
def blob_store(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "uploads", max_size_bytes=1024 * 1024)


@pytest.fixture
async def client(materials, bookings, users, requests_repo, blob_store) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with the repositories swapped for in-memory ones"""
    app.dependency_overrides[deps.get_material_repository] = lambda: materials
    app.dependency_overrides[deps.get_booking_repository] = lambda: bookings
    app.dependency_overrides[deps.get_user_repository] = lambda: users
    app.dependency_overrides[deps.get_request_repository] = lambda: requests_repo
    app.dependency_overrides[deps.get_transaction_manager] = lambda: None
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _make_user(users: FakeUserRepository, role: UserRole) -> User.Response:
    return users.add(fake.name(), f"{fake.unique.user_name()}@campus.edu", TEST_PASSWORD_HASH, role)


@pytest.fixture
def student(users) -> User.Response:
    return _make_user(users, UserRole.STUDENT)


@pytest.fixture
def other_student(users) -> User.Response:
    return _make_user(users, UserRole.STUDENT)


@pytest.fixture
def faculty(users) -> User.Response:
    return _make_user(users, UserRole.FACULTY)


@pytest.fixture
def admin(users) -> User.Response:
    return _make_user(users, UserRole.ADMIN)


def auth_headers_for(user: User.Response) -> dict:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers(student) -> dict:
    return auth_headers_for(student)


@pytest.fixture
def other_student_headers(other_student) -> dict:
    return auth_headers_for(other_student)


@pytest.fixture
def faculty_headers(faculty) -> dict:
    return auth_headers_for(faculty)


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_headers_for(admin)
