"""
Tests for authentication endpoints: registration and login.
"""

import pytest
from httpx import AsyncClient
from jose import jwt

from ticketing.core.config import settings


@pytest.mark.asyncio
async def test_register_user(client: AsyncClient):
    """Successful registration returns the user and a token."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "New@Example.com",
        "name": "  New User ",
        "password": "securepassword123",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully."
    user = body["data"]["user"]
    assert user["email"] == "new@example.com"
    assert user["name"] == "New User"
    assert user["role"] == "user"
    assert "hashedPassword" not in user  # Never expose password hash
    assert body["data"]["token"]


@pytest.mark.asyncio
async def test_register_token_carries_id_and_role(client: AsyncClient):
    response = await client.post("/api/v1/auth/register", json={
        "email": "org@example.com",
        "name": "Org",
        "password": "securepassword123",
        "role": "organizer",
    })
    data = response.json()["data"]
    claims = jwt.decode(data["token"], settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    assert claims["sub"] == str(data["user"]["id"])
    assert claims["role"] == "organizer"


@pytest.mark.asyncio
async def test_register_cannot_grant_admin(client: AsyncClient):
    response = await client.post("/api/v1/auth/register", json={
        "email": "sneaky@example.com",
        "name": "Sneaky",
        "password": "securepassword123",
        "role": "admin",
    })
    assert response.status_code == 201
    assert response.json()["data"]["user"]["role"] == "user"


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, test_user):
    """Duplicate email returns 409."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "test@example.com",
        "name": "Different",
        "password": "securepassword123",
    })
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "User already exists."


@pytest.mark.asyncio
async def test_register_weak_password(client: AsyncClient):
    """Password under 6 chars returns 422 with a field error."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "weak@example.com",
        "name": "Weak",
        "password": "short",
    })
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert "password" in body["errors"]


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, test_user):
    """Valid credentials return JWT token."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "test@example.com",
        "password": "testpassword123",
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["tokenType"] == "bearer"
    assert data["user"]["id"] == test_user.id


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    """Wrong password returns 401."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "test@example.com",
        "password": "wrongpassword",
    })
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials."


@pytest.mark.asyncio
async def test_login_nonexistent_email(client: AsyncClient):
    """Non-existent email returns 401."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "nobody@example.com",
        "password": "anypassword123",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get(
        "/api/v1/bookings/", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token."


@pytest.mark.asyncio
async def test_missing_token_rejected(client: AsyncClient):
    response = await client.get("/api/v1/bookings/")
    assert response.status_code == 401
    assert response.json()["message"] == "Access token required."


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/v1/auth/me", "/api/v1/auth/verify"])
async def test_profile_returns_current_user(client: AsyncClient, auth_headers, test_user, path):
    response = await client.get(path, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["id"] == test_user.id
    assert user["email"] == "test@example.com"
    assert user["role"] == "user"
    assert "hashedPassword" not in user


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/v1/auth/me", "/api/v1/auth/verify"])
async def test_profile_of_deleted_user(client: AsyncClient, path):
    from ticketing.core.security import create_access_token

    token = create_access_token({"sub": "424242", "role": "user"})
    response = await client.get(path, headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "User not found.", "errors": None}


@pytest.mark.asyncio
async def test_profile_requires_token(client: AsyncClient):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
