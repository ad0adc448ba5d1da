from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest
from httpx import ASGITransport, AsyncClient

from boxcheckr.core.config import Settings
from boxcheckr.core.errors import IdentityProviderError
from boxcheckr.db.session import init_models
from boxcheckr.main import create_app
from boxcheckr.services.identity import Identity

ADMIN_ROLE = "InventoryAdmin"

# Login codes understood by the fake identity provider.
IDENTITIES = {
    "alice": Identity(subject="sub-alice", email="alice@example.com", name="Alice Anders"),
    "bob": Identity(subject="sub-bob", email="bob@example.com", name="Bob Brown"),
    "admin": Identity(subject="sub-admin", email="admin@example.com", name="Ada Admin", roles=(ADMIN_ROLE,)),
}


class FakeIdentityProvider:
    """Stands in for the OIDC issuer; the authorization code names the user."""

    def __init__(self):
        self.nonces: list[str] = []

    async def authorization_url(self, *, state: str, nonce: str, redirect_uri: str) -> str:
        self.nonces.append(nonce)
        return f"https://idp.test/authorize?state={state}&redirect_uri={redirect_uri}"

    async def exchange(self, *, code: str, nonce: str, redirect_uri: str) -> Identity:
        if code not in IDENTITIES:
            raise IdentityProviderError("Token exchange failed")
        return IDENTITIES[code]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'boxcheckr.db'}",
        base_url="http://test",
        session_secret="test-session-secret",
        azure_admin_role=ADMIN_ROLE,
    )


@pytest.fixture
async def app(settings):
    app = create_app(settings, identity_provider=FakeIdentityProvider())
    # ASGITransport does not run the lifespan, so build the schema here.
    await init_models(app.state.engine)
    yield app
    await app.state.engine.dispose()


@pytest.fixture
async def db(app):
    async with app.state.sessionmaker() as session:
        yield session


@pytest.fixture
async def make_client(app):
    clients: list[AsyncClient] = []

    async def _make() -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()


@pytest.fixture
async def client(make_client) -> AsyncClient:
    return await make_client()


async def login(client: AsyncClient, who: str) -> None:
    r = await client.get("/auth/login")
    assert r.status_code == 307
    state = parse_qs(urlparse(r.headers["location"]).query)["state"][0]

    r = await client.get("/auth/callback", params={"state": state, "code": who})
    assert r.status_code == 303
    assert r.headers["location"] == "/"


@pytest.fixture
def login_as(make_client):
    async def _login(who: str) -> AsyncClient:
        client = await make_client()
        await login(client, who)
        return client

    return _login
