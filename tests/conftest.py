"""
Test configuration and fixtures
"""
import os

# Keep the startup hook away from the development database
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime
from zoneinfo import ZoneInfo
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.clock import FixedClock, get_clock
from app.core.database import Base, get_db
from app.core.security import get_password_hash
from app.models.models import User, Booking
from app.utils import slot_manager


# Create an in-memory SQLite database for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BUSINESS_TZ = "Europe/Madrid"
# Sunday 2025-11-09, 10:00 in Madrid
FIXED_NOW = datetime(2025, 11, 9, 10, 0, tzinfo=ZoneInfo(BUSINESS_TZ))


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    """Business clock frozen at FIXED_NOW"""
    return FixedClock(BUSINESS_TZ, FIXED_NOW)


@pytest.fixture(scope="function")
def client(db, clock):
    """Create a test client with overridden database and clock dependencies"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app=app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_admin_user(db):
    """Create a test admin user"""
    user = User(
        username="admin",
        email="admin@test.com",
        name="Test Admin",
        hashed_password=get_password_hash("testpassword123"),
        role="admin"
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_staff_user(db):
    """Create a back office user without user-management rights"""
    user = User(
        username="staff",
        email="staff@test.com",
        name="Test Staff",
        hashed_password=get_password_hash("staffpassword123"),
        role="staff"
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def open_day(db):
    """2025-11-10 opened with 09:00 and 09:30, one booking each"""
    return slot_manager.set_day(db, "2025-11-10", ["09:00", "09:30"], 1)


@pytest.fixture
def test_booking(db, open_day):
    """A confirmed booking on 2025-11-10 09:00"""
    booking = Booking(
        name="Ana Lopez",
        email="ana@example.com",
        phone="+34 600 123 456",
        date=datetime(2025, 11, 10).date(),
        time="09:00",
        status="confirmed",
        source="web"
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def _login(client, username, password):
    response = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password}
    )
    if response.status_code == 200:
        return response.json()["access_token"]
    return None


@pytest.fixture
def admin_token(client, test_admin_user):
    """Get an admin authentication token"""
    return _login(client, "admin", "testpassword123")


@pytest.fixture
def staff_token(client, test_staff_user):
    """Get a staff authentication token"""
    return _login(client, "staff", "staffpassword123")


@pytest.fixture
def auth_headers(admin_token):
    """Get authorization headers for admin"""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def staff_headers(staff_token):
    """Get authorization headers for staff"""
    return {"Authorization": f"Bearer {staff_token}"}
