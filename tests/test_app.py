"""
Tests for the application factory: startup bootstrap and error rendering.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from authgate.config import Settings
from authgate.main import create_app


@pytest.fixture
def file_settings(tmp_path):
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'data' / 'auth.db'}",
        SECRET_KEY="lifespan-test-secret",
        ADMIN_EMAILS=["root@example.com"],
        ADMIN_SEED_PASSWORD="seed-pass-1",
        ADMIN_SEED_NAME="Root",
        RATE_LIMIT_ENABLED=False,
    )


class TestLifespan:

    async def test_startup_seeds_allow_listed_admin(self, file_settings, tmp_path):
        app = create_app(file_settings)
        async with app.router.lifespan_context(app):
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as ac:
                response = await ac.post(
                    "/api/auth/login",
                    json={"email": "root@example.com", "password": "seed-pass-1"},
                )
                assert response.status_code == 200
                assert response.json()["user"]["name"] == "Root"
                assert response.json()["user"]["role"] == "admin"

        # The store's directory is created on demand
        assert (tmp_path / "data" / "auth.db").exists()

    async def test_restart_keeps_data(self, file_settings):
        first = create_app(file_settings)
        async with first.router.lifespan_context(first):
            async with AsyncClient(
                transport=ASGITransport(app=first), base_url="http://test"
            ) as ac:
                registered = await ac.post(
                    "/api/auth/register",
                    json={"name": "Kept", "email": "kept@example.com", "password": "secret1"},
                )
                token = registered.json()["token"]
                await ac.post(
                    "/api/auth/logout", headers={"Authorization": f"Bearer {token}"}
                )

        second = create_app(file_settings)
        async with second.router.lifespan_context(second):
            async with AsyncClient(
                transport=ASGITransport(app=second), base_url="http://test"
            ) as ac:
                login = await ac.post(
                    "/api/auth/login",
                    json={"email": "kept@example.com", "password": "secret1"},
                )
                assert login.status_code == 200

                # Revocations survive a restart too
                profile = await ac.get(
                    "/api/auth/profile", headers={"Authorization": f"Bearer {token}"}
                )
                assert profile.status_code == 403


class TestErrorRendering:

    async def test_unexpected_error_is_generic_500(self, app, authenticated_client):
        async def broken(db, claims):
            raise RuntimeError("connection string with password=hunter2")

        app.state.gateway.get_profile = broken
        async with AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
            headers=dict(authenticated_client.headers),
        ) as ac:
            response = await ac.get("/api/auth/profile")

        assert response.status_code == 500
        assert response.json() == {
            "detail": "Internal server error",
            "error_type": "internal_error",
        }
