import pytest

from storefront.app.db import init_db, make_engine, make_sessionmaker
from storefront.app.services.document_store import DocumentStore


@pytest.fixture(autouse=True)
def no_network_calls(monkeypatch):
    """Block all Redis traffic (safety). Tests use the in-memory presence store."""
    async def blocked(*a, **kw):
        raise RuntimeError("NETWORK CALL BLOCKED IN TEST")

    monkeypatch.setattr("redis.asyncio.client.Redis.execute_command", blocked)
    yield


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'storefront-test.db'}"


@pytest.fixture
def open_store(db_url):
    """
    Async context factory: the engine must live inside the test's event loop,
    so tests do `async with open_store() as store:` within asyncio.run.
    """
    class _StoreContext:
        async def __aenter__(self):
            self.engine = make_engine(db_url)
            await init_db(self.engine)
            return DocumentStore(make_sessionmaker(self.engine))

        async def __aexit__(self, *exc):
            await self.engine.dispose()

    return _StoreContext
