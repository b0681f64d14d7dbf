"""
Remote Sync Client

Keeps the remote copy of the user's Document in step with local edits.

WRITE PIPELINE:
1. Local cache write, synchronous, always first
2. Remote upsert, either awaited (immediate) or debounced

DEBOUNCE: the client owns a single pending-write slot. Every save during
the quiet period cancels the pending task and schedules a new one with
the latest snapshot, so a burst of edits produces one upsert. Once a
task has slept through the quiet period it leaves the slot before
writing; a write already in flight is never cancelled.

FAILURES: a remote failure is logged, audited and shown as a warning.
The local state stays authoritative and nothing is queued for retry;
the next save carries the full document anyway.
"""

import asyncio
from enum import Enum
from typing import Any, Optional

import structlog

from ledger_sync.audit.logger import AuditLogger
from ledger_sync.models.document import (
    DEFAULT_CURRENCY,
    Document,
    build_default_document,
    format_timestamp,
)
from ledger_sync.notifications import Notifier
from ledger_sync.services.storage.interface import (
    DocumentStorageInterface,
    RemoteRecord,
    StorageError,
)
from ledger_sync.services.storage.local_cache import LocalCacheStore
from ledger_sync.validation.normalizer import normalize_document


logger = structlog.get_logger(__name__)


class SyncStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"
    OFFLINE = "offline"


class RemoteSyncClient:
    """
    Fetches and saves the Document for the bound user.

    Without a remote backend the client runs offline: saves go to the
    local cache only and fetch returns the cached document.
    """

    def __init__(
        self,
        storage: Optional[DocumentStorageInterface],
        cache: LocalCacheStore,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: float = 0.4,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self._storage = storage
        self._cache = cache
        self._notifier = notifier or Notifier()
        self._audit = audit_logger or AuditLogger()
        self._debounce_seconds = debounce_seconds
        self._default_currency = default_currency

        self._user_id: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None
        self._pending_write: Optional[tuple[str, dict[str, Any]]] = None
        self._in_flight: set[asyncio.Task] = set()
        self._status = SyncStatus.IDLE if storage else SyncStatus.OFFLINE

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._storage is not None

    @property
    def has_pending_write(self) -> bool:
        return self._pending is not None or bool(self._in_flight)

    def bind(self, user_id: str) -> None:
        self._user_id = user_id

    def unbind(self) -> None:
        """Forget the user. Pending and in-flight writes still complete."""
        self._user_id = None
        if self._storage is not None and self._pending is None and not self._in_flight:
            self._status = SyncStatus.IDLE

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    async def fetch(self, user_id: Optional[str] = None) -> Document:
        """
        Load the user's document from the remote store.

        A missing record means first login: a default document is created
        and written remotely before this returns. A read failure falls
        back to the local cache.

        Args:
            user_id: User to load; binds the client to it. Defaults to
                     the currently bound user.

        Returns:
            The normalized document, also written to the local cache
        """
        if user_id is not None:
            self.bind(user_id)
        user_id = self._user_id

        if self._storage is None or user_id is None:
            document = self._cache.load()
            self._audit.log_document_loaded("cache", user_id, len(document.transactions))
            return document

        try:
            record = await self._storage.select(user_id)
        except StorageError as e:
            logger.warning("remote_fetch_failed", user_id=user_id, error=str(e))
            self._audit.log_remote_fetch_failed(user_id, str(e))
            self._notifier.warning("Could not load cloud data, showing the copy on this device")
            self._status = SyncStatus.FAILED
            document = self._cache.load()
            self._audit.log_document_loaded("cache", user_id, len(document.transactions))
            return document

        if record is None:
            document = build_default_document(currency=self._default_currency)
            self._cache.save(document)
            if await self._write(user_id, document.to_payload(), immediate=True):
                self._audit.log_remote_record_created(user_id)
            self._audit.log_document_loaded("default", user_id, 0)
            return document

        document = normalize_document(record.payload)
        self._cache.save(document)
        self._status = SyncStatus.SYNCED
        self._audit.log_document_loaded("remote", user_id, len(document.transactions))
        return document

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    async def save(self, document: Document, immediate: bool = False) -> bool:
        """
        Persist the document locally, then remotely.

        Args:
            document: Current in-memory document
            immediate: Write remotely now instead of after the quiet period

        Returns:
            For immediate saves, whether the remote write succeeded;
            otherwise whether the local write succeeded
        """
        saved_locally = self._cache.save(document)

        if self._storage is None or self._user_id is None:
            return saved_locally

        payload = document.to_payload()
        if immediate:
            self._cancel_pending()
            return await self._write(self._user_id, payload, immediate=True)

        self._schedule(self._user_id, payload)
        return saved_locally

    async def flush(self) -> None:
        """Send a pending debounced write now and wait for in-flight writes."""
        pending_write = self._pending_write
        self._cancel_pending()
        if pending_write is not None:
            user_id, payload = pending_write
            await self._write(user_id, payload, immediate=True)
        if self._in_flight:
            await asyncio.gather(*self._in_flight)

    def _schedule(self, user_id: str, payload: dict[str, Any]) -> None:
        self._cancel_pending()
        self._pending_write = (user_id, payload)
        self._pending = asyncio.create_task(self._debounced_write(user_id, payload))
        self._status = SyncStatus.PENDING

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = None
        self._pending_write = None

    async def _debounced_write(self, user_id: str, payload: dict[str, Any]) -> None:
        await asyncio.sleep(self._debounce_seconds)

        # Leave the slot: from here on this write cannot be cancelled
        task = asyncio.current_task()
        if self._pending is task:
            self._pending = None
            self._pending_write = None
        self._in_flight.add(task)
        try:
            await self._write(user_id, payload, immediate=False)
        finally:
            self._in_flight.discard(task)

    async def _write(self, user_id: str, payload: dict[str, Any], immediate: bool) -> bool:
        self._status = SyncStatus.SYNCING
        record = RemoteRecord(
            user_id=user_id,
            payload=payload,
            updated_at=format_timestamp(),
        )
        try:
            await self._storage.upsert(record)
        except StorageError as e:
            logger.warning("remote_save_failed", user_id=user_id, error=str(e))
            self._audit.log_remote_save_failed(user_id, str(e))
            self._notifier.warning("Cloud sync failed, your changes are saved on this device")
            self._status = SyncStatus.FAILED
            return False

        self._audit.log_remote_save_completed(user_id, immediate)
        self._status = SyncStatus.PENDING if self._pending is not None else SyncStatus.SYNCED
        return True
