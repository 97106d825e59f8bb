"""Identity resolution at the HTTP edge."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.factories import auth_headers

pytestmark = pytest.mark.asyncio


class TestAuthentication:
    async def test_missing_credentials(self, client: AsyncClient):
        resp = await client.get("/api/v1/users/me/points")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Not authenticated"}

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get("/api/v1/users/me/points", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_bearer_token(self, client: AsyncClient, seed):
        user = await seed.user(points=42)
        resp = await client.get("/api/v1/users/me/points", headers=auth_headers(user.id))
        assert resp.status_code == 200
        assert resp.json()["points"] == 42

    async def test_dev_headers(self, client: AsyncClient, seed):
        user = await seed.user(points=7)
        resp = await client.get("/api/v1/users/me/points", headers={"X-Dev-Actor-Id": str(user.id)})
        assert resp.status_code == 200
        assert resp.json()["points"] == 7

    async def test_dev_headers_ignored_outside_development(self, client: AsyncClient, seed, monkeypatch):
        from t4g.config import get_settings

        user = await seed.user()
        monkeypatch.setenv("T4G_ENVIRONMENT", "production")
        get_settings.cache_clear()
        resp = await client.get("/api/v1/users/me/points", headers={"X-Dev-Actor-Id": str(user.id)})
        assert resp.status_code == 401

    async def test_unknown_actor(self, client: AsyncClient):
        resp = await client.get("/api/v1/users/me/points", headers=auth_headers(9999))
        assert resp.status_code == 401


class TestAuthorization:
    async def test_inactive_user(self, client: AsyncClient, seed):
        user = await seed.user(status="suspended")
        resp = await client.get("/api/v1/users/me/points", headers=auth_headers(user.id))
        assert resp.status_code == 403

    async def test_tenant_cannot_use_user_endpoints(self, client: AsyncClient, seed):
        tenant = await seed.tenant()
        resp = await client.get("/api/v1/users/me/points", headers=auth_headers(tenant.id, "tenant"))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "User account required"

    async def test_user_cannot_create_tags(self, client: AsyncClient, seed):
        user = await seed.user()
        resp = await client.post(
            "/api/v1/nfc/tags",
            json={"tag_identifier": "NEW-1", "latitude": 48.2, "longitude": 16.3},
            headers=auth_headers(user.id),
        )
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Tenant account required"
