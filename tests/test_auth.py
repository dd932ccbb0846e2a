"""
Unit tests for authentication endpoints
"""
import inspect
import pytest
from fastapi import status
from app.core import security
from app.models.models import ActivityLog


@pytest.mark.unit
class TestAuthLogin:
    """Tests for login endpoint"""

    def test_login_success(self, client, test_admin_user):
        """Test successful login with valid credentials"""
        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "admin",
                "password": "testpassword123"
            }
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"
        assert data["user"]["username"] == "admin"
        assert "hashed_password" not in data["user"]

    def test_login_with_email(self, client, test_admin_user):
        """The username field also accepts the account email"""
        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "admin@test.com",
                "password": "testpassword123"
            }
        )

        assert response.status_code == status.HTTP_200_OK

    def test_login_unknown_user(self, client, test_admin_user):
        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "nobody",
                "password": "testpassword123"
            }
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert "Incorrect username or password" in response.json()["detail"]

    def test_login_invalid_password(self, client, test_admin_user):
        """Test login with incorrect password"""
        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "admin",
                "password": "wrongpassword"
            }
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert "Incorrect username or password" in response.json()["detail"]

    def test_login_missing_password(self, client):
        """Test login with missing password field"""
        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "admin"
            }
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_login_creates_activity_log(self, client, test_admin_user, db):
        """Test that login creates an activity log entry"""
        initial_log_count = db.query(ActivityLog).count()

        response = client.post(
            "/api/v1/auth/login",
            json={
                "username": "admin",
                "password": "testpassword123"
            }
        )

        assert response.status_code == status.HTTP_200_OK
        assert db.query(ActivityLog).count() == initial_log_count + 1

        log = db.query(ActivityLog).filter(
            ActivityLog.user_id == test_admin_user.id,
            ActivityLog.action == "login"
        ).first()
        assert log is not None
        assert log.entity_type == "user"


@pytest.mark.unit
class TestTokens:
    """Tests for token refresh and the current user"""

    def test_refresh_token(self, client, test_admin_user):
        login = client.post(
            "/api/v1/auth/login",
            json={"username": "admin", "password": "testpassword123"}
        ).json()

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["id"] == test_admin_user.id

    def test_access_token_cannot_refresh(self, client, admin_token):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": admin_token})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_garbage_refresh_token(self, client):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-jwt"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_me(self, client, auth_headers):
        response = client.get("/api/v1/auth/me", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "admin@test.com"
        assert response.json()["role"] == "admin"

    def test_me_without_token(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_refresh_token_is_not_an_access_token(self, client, test_admin_user):
        login = client.post(
            "/api/v1/auth/login",
            json={"username": "admin", "password": "testpassword123"}
        ).json()

        response = client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {login['refresh_token']}"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_token_lookup_runs_in_threadpool(self):
        """The user lookup behind every protected route is a plain function"""
        assert not inspect.iscoroutinefunction(security.get_current_user)
