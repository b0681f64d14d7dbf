"""Services package."""

from ledger_sync.services.auth import (
    AuthError,
    AuthProviderInterface,
    LocalAuthProvider,
)
from ledger_sync.services.storage import (
    BackendConnectionError,
    DocumentStorageInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    InMemoryDocumentStorage,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStorageInterface,
    LocalCacheStore,
    NotFoundError,
    StorageError,
)
from ledger_sync.services.sync import RemoteSyncClient, SyncStatus

__all__ = [
    # Auth
    "AuthError",
    "AuthProviderInterface",
    "LocalAuthProvider",
    # Storage
    "BackendConnectionError",
    "DocumentStorageInterface",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
    "InMemoryDocumentStorage",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStorageInterface",
    "LocalCacheStore",
    "NotFoundError",
    "StorageError",
    # Sync
    "RemoteSyncClient",
    "SyncStatus",
]
