from __future__ import annotations

from typing import Protocol


class StorageError(RuntimeError):
    """Raised when the key-value store cannot read or durably write a value."""


class KeyValueStore(Protocol):
    """Blob store: reads return the latest durable value, writes are atomic per call."""

    async def get(self, key: str) -> bytes | None:
        ...

    async def set(self, key: str, value: bytes) -> None:
        ...
