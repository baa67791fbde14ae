"""Tests for health and auth endpoints (F6)."""

from datetime import timedelta

from mentra.web.auth import create_access_token


def _register(client, **overrides):
    body = {
        "email": "ana@example.com",
        "password": "secret-pass",
        "first_name": "Ana",
        "last_name": "Lopez",
        "grade_level": 7,
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"].endswith("mentra.db")


class TestRegister:
    """Tests for POST /api/auth/register."""

    def test_register_returns_token(self, client):
        response = _register(client)
        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["email"] == "ana@example.com"
        assert data["user"]["role"] == "student"
        assert "password_hash" not in data["user"]

    def test_duplicate_email(self, client):
        _register(client)
        response = _register(client, email="ANA@example.com")
        assert response.status_code == 409
        assert response.json() == {"error": "Email already registered"}

    def test_validation_error_body(self, client):
        """Validation failures use the error body and never echo the password."""
        response = _register(client, password="abc12")
        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "Validation failed"
        assert "abc12" not in response.text

    def test_admin_cannot_self_register(self, client):
        assert _register(client, role="admin").status_code == 422


class TestLogin:
    """Tests for login, me and refresh."""

    def test_login_and_me(self, client):
        _register(client)
        response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "secret-pass"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["first_name"] == "Ana"

    def test_wrong_password(self, client):
        _register(client)
        response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    def test_invalid_and_expired_tokens(self, client, student):
        expired = create_access_token(student, expires_delta=timedelta(minutes=-1))
        for token in ("garbage", expired):
            response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 401

    def test_refresh(self, client, student, auth):
        response = client.post("/api/auth/refresh", headers=auth(student))
        assert response.status_code == 200
        assert response.json()["user"]["id"] == student.id
