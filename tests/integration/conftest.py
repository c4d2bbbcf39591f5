"""Integration test fixtures: app wired to the in-memory identity provider."""

import pytest
from httpx import ASGITransport, AsyncClient

from main import create_app
from .fake_identity_provider import FakeIdentityProvider

USER_TOKEN = "user-token"
ADMIN_TOKEN = "admin-token"


@pytest.fixture
def fake_provider() -> FakeIdentityProvider:
    provider = FakeIdentityProvider()
    provider.add_user(USER_TOKEN, "user-1111", profile={})
    provider.add_user(ADMIN_TOKEN, "admin-2222", profile={"role": "admin", "plan": "pro"})
    return provider


@pytest.fixture
def test_app(test_config, fake_provider):
    return create_app(config=test_config, provider=fake_provider)


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {USER_TOKEN}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


def stored_files(upload_dir):
    if not upload_dir.exists():
        return []
    return sorted(p.name for p in upload_dir.iterdir())
