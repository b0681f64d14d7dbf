"""
Storage Services Package

Abstract interfaces plus concrete backends: a local key-value cache
(JSON file or in-memory) and remote per-user document storage
(Google Sheets or in-memory).
"""

from ledger_sync.services.storage.interface import (
    BackendConnectionError,
    DocumentStorageInterface,
    KeyValueStorageInterface,
    NotFoundError,
    RemoteRecord,
    StorageError,
)
from ledger_sync.services.storage.local_cache import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    LocalCacheStore,
)
from ledger_sync.services.storage.memory import InMemoryDocumentStorage
from ledger_sync.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
)

__all__ = [
    # Interfaces
    "DocumentStorageInterface",
    "KeyValueStorageInterface",
    "RemoteRecord",
    # Exceptions
    "BackendConnectionError",
    "NotFoundError",
    "StorageError",
    # Local cache
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "LocalCacheStore",
    # Remote backends
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
    "InMemoryDocumentStorage",
]
