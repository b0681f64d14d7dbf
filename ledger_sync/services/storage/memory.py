"""
In-memory remote storage.

Used when Google Sheets is not configured, and by the tests. Records
are deep-copied on the way in and out so callers never share state
with the "remote" side.
"""

from typing import Optional

from ledger_sync.services.storage.interface import (
    DocumentStorageInterface,
    RemoteRecord,
)


class InMemoryDocumentStorage(DocumentStorageInterface):
    """One record per user id, held in a dict."""

    def __init__(self):
        self._records: dict[str, RemoteRecord] = {}
        self.select_calls = 0
        self.upsert_calls = 0

    async def select(self, user_id: str) -> Optional[RemoteRecord]:
        self.select_calls += 1
        record = self._records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def upsert(self, record: RemoteRecord) -> bool:
        self.upsert_calls += 1
        self._records[record.user_id] = record.model_copy(deep=True)
        return True

    def records(self) -> dict[str, RemoteRecord]:
        """Snapshot of everything stored, keyed by user id."""
        return {k: v.model_copy(deep=True) for k, v in self._records.items()}
