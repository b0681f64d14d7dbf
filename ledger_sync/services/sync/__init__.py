"""Remote sync package."""

from ledger_sync.services.sync.remote_sync import RemoteSyncClient, SyncStatus

__all__ = ["RemoteSyncClient", "SyncStatus"]
