"""
Data Models Package

All data flowing through Ledger Sync conforms to these pydantic schemas.
"""

from ledger_sync.models.document import (
    Account,
    Budget,
    Category,
    Document,
    DocumentMeta,
    DocumentSettings,
    EntryType,
    Transaction,
    build_default_document,
    format_timestamp,
)
from ledger_sync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledger_sync.models.notification import (
    Notification,
    NotificationLevel,
    OperationResult,
)

__all__ = [
    # Document models
    "Account",
    "Budget",
    "Category",
    "Document",
    "DocumentMeta",
    "DocumentSettings",
    "EntryType",
    "Transaction",
    "build_default_document",
    "format_timestamp",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Notifications
    "Notification",
    "NotificationLevel",
    "OperationResult",
]
