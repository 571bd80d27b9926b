"""Key-value storage backends for ticket collections."""

from .base import KeyValueStore, StorageError
from .memory import InMemoryKeyValueStore
from .sql import SQLKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLKeyValueStore",
    "StorageError",
]
