# tests/conftest.py
import os

# Settings are read at import time, so the test environment goes in first
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy-0123456789")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("HOUSEKEEPING_INTERVAL_SECONDS", "0")
os.environ.setdefault("TRUST_PROXY_HEADERS", "true")
os.environ.pop("DATABASE_URL", None)

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from account_security.core.keyed_store import InMemoryKeyedStore  # noqa: E402
from account_security.main import create_app  # noqa: E402
from account_security.services.accounts import Account, InMemoryAccountStore  # noqa: E402
from account_security.services.container import SecurityServices, build_services  # noqa: E402
from tests.helpers import TEST_PASSWORD, FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryKeyedStore:
    return InMemoryKeyedStore(clock=clock)


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def user(accounts: InMemoryAccountStore) -> Account:
    return accounts.add("alice@example.com", TEST_PASSWORD)


@pytest.fixture
def services(
    accounts: InMemoryAccountStore, store: InMemoryKeyedStore, clock: FakeClock
) -> SecurityServices:
    return build_services(accounts, store=store, clock=clock)


@pytest_asyncio.fixture
async def client(services: SecurityServices) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
