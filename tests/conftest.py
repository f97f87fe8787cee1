import os

# Settings are read at import time; tests never use a real secret
os.environ.setdefault("SECRET_KEY", "wiki-test-secret-key-0123456789abcdef")
os.environ.setdefault("SESSION_SECRET", "wiki-test-session-secret")

import json

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wiki.main import app
from wiki.core import security
from wiki.core.backup import BackupClient
from wiki.core.database import Base, build_engine
from wiki.core.runtime import WikiRuntime
from wiki.core.schemas import UserRole

# Cheapest bcrypt cost, hashes are only compared within the test run
security.pwd_context.update(bcrypt__default_rounds=4)

BACKUP_URL = "https://backup.test/gists"
GIST_URL = "https://gist.test/0123456789"

# username: (password, role)
USERS = {
    "root": ("w00t", UserRole.ADMIN),
    "foo": ("bar", UserRole.EDITOR),
    "bar": ("baz", UserRole.WRITER),
    "baz": ("baz", UserRole.READER),
}


class BackupStub:
    """Plays the gist endpoint behind an httpx.MockTransport."""

    def __init__(self):
        self.status_code = 201
        self.gist_url = GIST_URL
        self.payloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        if self.status_code == 201:
            return httpx.Response(201, json={"html_url": GIST_URL})
        return httpx.Response(self.status_code, json={"message": "Bad credentials"})


# A fresh sqlite file per test, so the pool hands out real connections
@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wiki.db'}")
    async with engine.begin() as conn:
        # Create the users table; pages are created by the data service
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def backup_stub():
    return BackupStub()


# Worker + proxy deployed on the test database
@pytest_asyncio.fixture(scope="function")
async def runtime(test_engine, session_factory, backup_stub):
    wiki_runtime = WikiRuntime(
        db_engine=test_engine,
        session_factory=session_factory,
        backup=BackupClient(url=BACKUP_URL, transport=httpx.MockTransport(backup_stub)),
        proxy_timeout=5.0,
    )
    await wiki_runtime.start()
    yield wiki_runtime
    await wiki_runtime.stop()


@pytest_asyncio.fixture(scope="function")
async def users(runtime):
    for username, (password, role) in USERS.items():
        await runtime.credentials.create_user(username, password, role)
    return USERS


# Client
@pytest_asyncio.fixture(scope="function")
async def client(runtime):
    app.state.runtime = runtime

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# Every method name that crosses the proxy during a test
@pytest.fixture
def proxy_calls(runtime, monkeypatch):
    calls = []
    invoke = runtime.proxy.invoke

    async def counting_invoke(method, *args):
        calls.append(method)
        return await invoke(method, *args)

    monkeypatch.setattr(runtime.proxy, "invoke", counting_invoke)
    return calls


async def _token_headers(client: AsyncClient, username: str) -> dict:
    password = USERS[username][0]
    response = await client.get(
        "/api/token", headers={"login": username, "password": password}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.text}"}


# Token for editor (create, update, delete)
@pytest_asyncio.fixture(scope="function")
async def auth_headers_editor(client, users):
    return await _token_headers(client, "foo")


# Token for writer (update only)
@pytest_asyncio.fixture(scope="function")
async def auth_headers_writer(client, users):
    return await _token_headers(client, "bar")


# Token for reader (no capability)
@pytest_asyncio.fixture(scope="function")
async def auth_headers_reader(client, users):
    return await _token_headers(client, "baz")


# Log the client in through the form, the session cookie stays on the client
@pytest.fixture
def login(client, users):
    async def _login(username: str):
        response = await client.post(
            "/login-auth",
            data={"username": username, "password": USERS[username][0]},
        )
        assert response.status_code == 303
        return response

    return _login
