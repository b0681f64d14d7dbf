"""
Shared fixtures for the Ledger Sync tests.

Everything runs against in-memory backends; no network, no real files
unless a test asks for tmp_path.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest
import pytest_asyncio

from ledger_sync.audit import AuditLogger
from ledger_sync.models.document import build_default_document
from ledger_sync.notifications import Notifier
from ledger_sync.orchestrator import LedgerController
from ledger_sync.services.auth import AuthResult, LocalAuthProvider
from ledger_sync.services.storage import (
    BackendConnectionError,
    DocumentStorageInterface,
    InMemoryDocumentStorage,
    InMemoryKeyValueStore,
    LocalCacheStore,
    RemoteRecord,
    StorageError,
)
from ledger_sync.services.sync import RemoteSyncClient


FIXED_NOW = datetime(2024, 5, 15, 12, 0, 0, tzinfo=timezone.utc)
CACHE_KEY = "ledger_document"
TEST_EMAIL = "alex@example.com"
TEST_PASSWORD = "secret123"
DEBOUNCE = 0.05


class FailingDocumentStorage(DocumentStorageInterface):
    """Remote store that fails on demand."""

    def __init__(self, fail_select: bool = False, fail_upsert: bool = True):
        self.inner = InMemoryDocumentStorage()
        self.fail_select = fail_select
        self.fail_upsert = fail_upsert
        self.failed_upserts = 0

    async def select(self, user_id: str) -> Optional[RemoteRecord]:
        if self.fail_select:
            raise BackendConnectionError("remote unreachable")
        return await self.inner.select(user_id)

    async def upsert(self, record: RemoteRecord) -> bool:
        if self.fail_upsert:
            self.failed_upserts += 1
            raise StorageError("remote write failed")
        return await self.inner.upsert(record)


class CountingAuthProvider(LocalAuthProvider):
    """LocalAuthProvider that records how often it was contacted."""

    def __init__(self, **kwargs):
        super().__init__(rounds=4, **kwargs)
        self.calls = 0

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        self.calls += 1
        return await super().sign_in_with_password(email, password)

    async def sign_up(self, email: str, password: str) -> AuthResult:
        self.calls += 1
        return await super().sign_up(email, password)


@pytest.fixture
def document():
    return build_default_document(now=FIXED_NOW)


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(kv, notifier, audit_logger):
    return LocalCacheStore(kv, CACHE_KEY, notifier=notifier, audit_logger=audit_logger)


@pytest.fixture
def remote():
    return InMemoryDocumentStorage()


@pytest.fixture
def auth_provider():
    return CountingAuthProvider()


@pytest.fixture
def sync_client(remote, cache, notifier, audit_logger):
    return RemoteSyncClient(
        remote,
        cache,
        notifier=notifier,
        audit_logger=audit_logger,
        debounce_seconds=DEBOUNCE,
    )


def build_controller(storage, kv, auth_provider, notifier=None) -> LedgerController:
    notifier = notifier or Notifier()
    audit_logger = AuditLogger()
    cache = LocalCacheStore(kv, CACHE_KEY, notifier=notifier, audit_logger=audit_logger)
    sync = RemoteSyncClient(
        storage,
        cache,
        notifier=notifier,
        audit_logger=audit_logger,
        debounce_seconds=DEBOUNCE,
    )
    return LedgerController(
        sync,
        cache,
        auth_provider,
        notifier=notifier,
        audit_logger=audit_logger,
    )


@pytest.fixture
def controller(remote, kv, auth_provider, notifier):
    return build_controller(remote, kv, auth_provider, notifier)


@pytest_asyncio.fixture
async def unlocked(controller):
    """A started controller with a freshly signed-up user."""
    await controller.start()
    result = await controller.sign_up(TEST_EMAIL, TEST_PASSWORD)
    assert result.success
    yield controller
    await controller.shutdown()
