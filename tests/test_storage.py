from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from servicedesk.storage import InMemoryKeyValueStore, SQLKeyValueStore, StorageError
from servicedesk.storage.sql import to_asyncpg_dsn


@pytest.mark.asyncio
async def test_memory_store_round_trip_and_missing_key():
    store = InMemoryKeyValueStore()
    assert await store.get("absent") is None

    await store.set("k", b"payload")

    assert await store.get("k") == b"payload"
    assert store.keys() == ["k"]


@pytest.mark.asyncio
async def test_memory_store_enforces_quota_and_keeps_previous_value():
    store = InMemoryKeyValueStore(max_bytes=8)
    await store.set("k", b"12345678")

    with pytest.raises(StorageError):
        await store.set("k", b"123456789")

    assert await store.get("k") == b"12345678"


@pytest.mark.asyncio
async def test_memory_store_rejects_non_bytes():
    with pytest.raises(StorageError):
        await InMemoryKeyValueStore().set("k", "text")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("dsn", "expected"),
    [
        ("postgresql://u:p@db/sd", "postgresql+asyncpg://u:p@db/sd"),
        ("postgresql+asyncpg://u:p@db/sd", "postgresql+asyncpg://u:p@db/sd"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ],
)
def test_to_asyncpg_dsn(dsn, expected):
    assert to_asyncpg_dsn(dsn) == expected


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(engine: AsyncEngine) -> SQLKeyValueStore:
    store = SQLKeyValueStore(async_sessionmaker(engine, expire_on_commit=False), engine=engine)
    await store.ensure_schema()
    return store


@pytest.mark.asyncio
async def test_ensure_schema_creates_kv_table(engine: AsyncEngine, sql_store: SQLKeyValueStore):
    async with engine.begin() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(sa_inspect(sync_conn).get_table_names()))

    assert "kv_store" in tables


@pytest.mark.asyncio
async def test_sql_store_upserts_values(sql_store: SQLKeyValueStore):
    assert await sql_store.get("sd_tickets") is None

    await sql_store.set("sd_tickets", b"[]")
    await sql_store.set("sd_tickets", b'[{"id": "1"}]')

    assert await sql_store.get("sd_tickets") == b'[{"id": "1"}]'


@pytest.mark.asyncio
async def test_ensure_schema_requires_engine(engine: AsyncEngine):
    store = SQLKeyValueStore(async_sessionmaker(engine, expire_on_commit=False))
    with pytest.raises(RuntimeError):
        await store.ensure_schema()


class _BrokenSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_sql_store_wraps_driver_errors():
    store = SQLKeyValueStore(lambda: _BrokenSession())  # type: ignore[arg-type]

    with pytest.raises(StorageError):
        await store.get("k")
    with pytest.raises(StorageError):
        await store.set("k", b"v")
