import pytest
from httpx import AsyncClient

from studio_api.auth.jwt import auth_service
from studio_api.models.user import User


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "adminpass123"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["username"] == "admin"
    assert data["user"]["role"] == "admin"

    payload = auth_service.decode_token(data["access_token"])
    assert payload["sub"] == str(admin_user.id)
    assert payload["role"] == "admin"


@pytest.mark.asyncio
async def test_login_invalid_credentials(client: AsyncClient, client_user: User):
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "client", "password": "wrongpass"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect username or password"


@pytest.mark.asyncio
async def test_get_current_user(client: AsyncClient, client_user: User, client_headers):
    response = await client.get("/api/v1/auth/me", headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(client_user.id)
    assert data["role"] == "client"


@pytest.mark.asyncio
async def test_missing_token_is_unauthorized(client: AsyncClient):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client: AsyncClient):
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token(client: AsyncClient, client_user: User):
    refresh = auth_service.create_refresh_token(client_user)

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})

    assert response.status_code == 200
    assert auth_service.decode_token(response.json()["access_token"])["sub"] == str(client_user.id)


@pytest.mark.asyncio
async def test_tokens_are_not_interchangeable(client: AsyncClient, client_user: User, client_headers):
    access = auth_service.create_access_token(client_user)
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access})
    assert response.status_code == 401

    refresh = auth_service.create_refresh_token(client_user)
    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh}"})
    assert response.status_code == 401
