from __future__ import annotations

import asyncio
import logging

from .base import StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 4 * 1024 * 1024


class InMemoryKeyValueStore:
    """Process local blob store with a size quota per value."""

    def __init__(self, *, max_bytes: int = DEFAULT_MAX_BYTES, latency_ms: int = 0) -> None:
        self._data: dict[str, bytes] = {}
        self._max_bytes = max_bytes
        self._latency = max(0, latency_ms) / 1000.0

    async def get(self, key: str) -> bytes | None:
        await self._simulate_latency()
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        await self._simulate_latency()
        if not isinstance(value, (bytes, bytearray)):
            raise StorageError(f"Value for '{key}' must be bytes, got {type(value).__name__}")
        if len(value) > self._max_bytes:
            message = f"Value for '{key}' is {len(value)} bytes, exceeding the {self._max_bytes} byte quota"
            logger.error(message)
            raise StorageError(message)
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return sorted(self._data)

    async def _simulate_latency(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)
