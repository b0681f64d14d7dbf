"""
Local Cache

The cache holds the last known document so the app opens instantly and
keeps working offline. Writes are synchronous and always happen before
the matching remote write.

A failed cache write is reported (log, audit, warning notification) and
returned as False. It is never raised: the in-memory document stays the
source of truth for the running session.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog

from ledger_sync.audit.logger import AuditLogger
from ledger_sync.models.document import Document, build_default_document
from ledger_sync.notifications import Notifier
from ledger_sync.services.storage.interface import (
    KeyValueStorageInterface,
    StorageError,
)
from ledger_sync.validation.normalizer import normalize_document


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStorageInterface):
    """Dict-backed store for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStorageInterface):
    """
    Key-value store persisted as one JSON object in a file.

    Every write replaces the file atomically (temp file + os.replace),
    so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read cache file {self._path}: {e}")

        try:
            data = json.loads(text)
        except ValueError:
            # Also covers integers past the int-to-str digit limit
            logger.warning("cache_file_corrupt", path=str(self._path))
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_path, self._path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write cache file {self._path}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


class LocalCacheStore:
    """Reads and writes the Document under a single cache key."""

    def __init__(
        self,
        kv: KeyValueStorageInterface,
        cache_key: str,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._cache_key = cache_key
        self._notifier = notifier
        self._audit = audit_logger

    @property
    def cache_key(self) -> str:
        return self._cache_key

    def save(self, document: Document) -> bool:
        """
        Serialize the document and write it under the cache key.

        Returns:
            True on success, False if the write failed
        """
        try:
            self._kv.set(self._cache_key, document.to_json())
        except (StorageError, OSError, TypeError, ValueError) as e:
            logger.error("local_cache_save_failed", cache_key=self._cache_key, error=str(e))
            if self._audit:
                self._audit.log_local_save_failed(self._cache_key, str(e))
            if self._notifier:
                self._notifier.warning("Could not save data locally")
            return False
        return True

    def load(self) -> Document:
        """
        Read and normalize the cached document.

        An absent key, an unreadable store or unparsable JSON all yield
        the default document.
        """
        try:
            raw = self._kv.get(self._cache_key)
        except StorageError as e:
            logger.warning("local_cache_read_failed", cache_key=self._cache_key, error=str(e))
            return build_default_document()

        if raw is None:
            return build_default_document()

        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            # ValueError also covers integers past the digit limit
            logger.warning("local_cache_parse_failed", cache_key=self._cache_key, error=str(e))
            return build_default_document()

        return normalize_document(data)

    def clear(self) -> None:
        try:
            self._kv.remove(self._cache_key)
        except StorageError as e:
            logger.warning("local_cache_clear_failed", cache_key=self._cache_key, error=str(e))
