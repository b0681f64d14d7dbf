"""
Abstract Storage Interfaces

Two boundaries, both deliberately small:

1. KeyValueStorageInterface - the local cache (synchronous get/set/remove).
   A JSON file on disk in production, a dict in tests.
2. DocumentStorageInterface - the remote store. One record per user,
   keyed by user id; writing a record for an existing user replaces it.

Business logic only talks to these interfaces, so Google Sheets can be
swapped for a database without touching the sync client.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from ledger_sync.models.document import format_timestamp


class RemoteRecord(BaseModel):
    """A user's document as stored remotely."""

    user_id: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    updated_at: str = Field(default_factory=format_timestamp)


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for the local string key-value cache.

    Implementations may raise StorageError; callers decide whether a
    failure is fatal (it never is for the ledger).
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store a value under a key, replacing any previous value.

        Raises:
            StorageError: If the value cannot be written
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass


class DocumentStorageInterface(ABC):
    """
    Abstract interface for remote per-user document storage.

    Any remote implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def select(self, user_id: str) -> Optional[RemoteRecord]:
        """
        Retrieve the record for a user.

        Args:
            user_id: Owner of the document

        Returns:
            The record if one exists, None otherwise

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def upsert(self, record: RemoteRecord) -> bool:
        """
        Insert or replace the record for `record.user_id`.

        Args:
            record: The record to write

        Returns:
            True if written successfully

        Raises:
            StorageError: If the write fails
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class BackendConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
