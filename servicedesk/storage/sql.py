from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from .base import StorageError
from .models import KeyValueTable

logger = logging.getLogger(__name__)


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


class SQLKeyValueStore:
    """Key-value store persisted in the ``kv_store`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def get(self, key: str) -> bytes | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(KeyValueTable, key)
        except SQLAlchemyError as exc:
            logger.error("Failed to read key '%s': %s", key, exc)
            raise StorageError(f"Failed to read '{key}'") from exc
        if row is None:
            return None
        return bytes(row.value)

    async def set(self, key: str, value: bytes) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(
                        KeyValueTable(key=key, value=bytes(value), updated_at=datetime.now(timezone.utc))
                    )
        except SQLAlchemyError as exc:
            logger.error("Failed to write key '%s': %s", key, exc)
            raise StorageError(f"Failed to write '{key}'") from exc
