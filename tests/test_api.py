"""
Unit and integration tests for the API service.
Run: pytest tests/ -v
"""

from __future__ import annotations

import pytest

# HTTPBearer answers a missing token with 403 on older FastAPI, 401 on newer
NO_TOKEN = (401, 403)


class TestHealthEndpoints:
    """Test health, readiness, and liveness probes."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "bookstore_api"

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness_checks_database(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok"}


class TestAuthEndpoints:
    """Test registration, login, token refresh and profile."""

    @pytest.mark.asyncio
    async def test_register_success(self, client):
        response = await client.post(
            "/auth/register",
            json={
                "name": "Test User",
                "email": "test@example.com",
                "password": "SecurePass123",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client, make_user):
        await make_user(email="dup@example.com")
        response = await client.post(
            "/auth/register",
            json={
                "name": "Someone Else",
                "email": "DUP@example.com",
                "password": "SecurePass123",
            },
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    @pytest.mark.asyncio
    async def test_login_success(self, client, make_user):
        await make_user(email="login@example.com")
        response = await client.post(
            "/auth/login",
            json={"email": "login@example.com", "password": "SecurePass123"},
        )
        assert response.status_code == 200
        assert "access_token" in response.json()

    @pytest.mark.asyncio
    async def test_login_invalid_password(self, client, make_user):
        await make_user(email="login@example.com")
        response = await client.post(
            "/auth/login",
            json={"email": "login@example.com", "password": "WrongPass"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_unknown_email(self, client):
        response = await client.post(
            "/auth/login",
            json={"email": "nobody@example.com", "password": "SecurePass123"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_input_validation_short_password(self, client):
        response = await client.post(
            "/auth/register",
            json={"name": "Val User", "email": "val@example.com", "password": "short"},
        )
        assert response.status_code == 422  # Pydantic validation error

    @pytest.mark.asyncio
    async def test_input_validation_invalid_email(self, client):
        response = await client.post(
            "/auth/register",
            json={"name": "Val User", "email": "not-an-email", "password": "SecurePass123"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, client):
        reg = await client.post(
            "/auth/register",
            json={"name": "Refresher", "email": "refresh@example.com", "password": "SecurePass123"},
        )
        response = await client.post(
            "/auth/refresh", json={"refresh_token": reg.json()["refresh_token"]}
        )
        assert response.status_code == 200
        assert "access_token" in response.json()
        # Tokens minted in the same second still differ by jti; the old one is not revoked
        assert response.json()["refresh_token"] != reg.json()["refresh_token"]
        again = await client.post(
            "/auth/refresh", json={"refresh_token": reg.json()["refresh_token"]}
        )
        assert again.status_code == 200
        assert again.json()["refresh_token"] != response.json()["refresh_token"]

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(self, client):
        reg = await client.post(
            "/auth/register",
            json={"name": "Refresher", "email": "refresh@example.com", "password": "SecurePass123"},
        )
        response = await client.post(
            "/auth/refresh", json={"refresh_token": reg.json()["access_token"]}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me_and_profile_update(self, client, make_user):
        headers = await make_user(name="Alice", email="alice@example.com")

        me = await client.get("/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["name"] == "Alice"
        assert me.json()["role"] == "user"

        response = await client.put(
            "/auth/me", json={"name": "Alice Liddell"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Alice Liddell"
        assert response.json()["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_profile_update_rejects_taken_email(self, client, make_user):
        await make_user(email="taken@example.com")
        headers = await make_user(email="mine@example.com")
        response = await client.put("/auth/me", json={"email": "taken@example.com"}, headers=headers)
        assert response.status_code == 409


class TestRBAC:
    """Test role-based access control."""

    @pytest.mark.asyncio
    async def test_admin_endpoint_requires_admin(self, client, make_user):
        headers = await make_user()
        response = await client.get("/users", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_analytics_requires_admin(self, client, make_user):
        headers = await make_user()
        response = await client.get("/analytics/dashboard", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unauthenticated_request(self, client):
        response = await client.get("/users")
        assert response.status_code in NO_TOKEN

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_lists_users(self, client, make_user):
        admin = await make_user(name="Admin", admin=True)
        await make_user(name="Reader")
        response = await client.get("/users", headers=admin)
        assert response.status_code == 200
        assert {u["name"] for u in response.json()} == {"Admin", "Reader"}


class TestUserAdministration:
    @pytest.mark.asyncio
    async def test_promote_user(self, client, make_user):
        admin = await make_user(admin=True)
        reader = await make_user(name="Reader")
        reader_id = (await client.get("/auth/me", headers=reader)).json()["id"]

        response = await client.patch(f"/users/{reader_id}/role", json={"role": "admin"}, headers=admin)
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

        # Role is read from the database, so the old token now has admin rights
        assert (await client.get("/users", headers=reader)).status_code == 200

    @pytest.mark.asyncio
    async def test_cannot_change_own_role(self, client, make_user):
        admin = await make_user(admin=True)
        admin_id = (await client.get("/auth/me", headers=admin)).json()["id"]
        response = await client.patch(f"/users/{admin_id}/role", json={"role": "user"}, headers=admin)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_role_rejected(self, client, make_user):
        admin = await make_user(admin=True)
        response = await client.patch("/users/1/role", json={"role": "superuser"}, headers=admin)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_deactivated_user_is_locked_out(self, client, make_user):
        admin = await make_user(admin=True)
        reader = await make_user(email="reader@example.com")
        reader_id = (await client.get("/auth/me", headers=reader)).json()["id"]

        response = await client.patch(f"/users/{reader_id}/status", headers=admin)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        assert (await client.get("/auth/me", headers=reader)).status_code == 401
        login = await client.post(
            "/auth/login", json={"email": "reader@example.com", "password": "SecurePass123"}
        )
        assert login.status_code == 403

        response = await client.patch(f"/users/{reader_id}/status", headers=admin)
        assert response.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_cannot_deactivate_self(self, client, make_user):
        admin = await make_user(admin=True)
        admin_id = (await client.get("/auth/me", headers=admin)).json()["id"]
        response = await client.patch(f"/users/{admin_id}/status", headers=admin)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, make_user):
        admin = await make_user(admin=True)
        assert (await client.get("/users/99999", headers=admin)).status_code == 404


class TestBookEndpoints:
    """Test book CRUD operations."""

    @pytest.mark.asyncio
    async def test_list_books_is_public(self, client):
        response = await client.get("/books")
        assert response.status_code == 200
        assert response.json()["books"] == []
        assert response.json()["total_pages"] == 0

    @pytest.mark.asyncio
    async def test_create_book_requires_auth(self, client, book_payload):
        response = await client.post("/books", json=book_payload())
        assert response.status_code in NO_TOKEN

    @pytest.mark.asyncio
    async def test_get_nonexistent_book(self, client):
        response = await client.get("/books/99999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Book not found"


class TestMetrics:
    """Test Prometheus metrics endpoint."""

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client):
        await client.get("/health")
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text
