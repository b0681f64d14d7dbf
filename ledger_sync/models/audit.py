"""
Audit Models for Ledger Sync

Every significant action in the data layer is logged as an AuditEvent:
document loads, saves, sync failures, auth transitions and entity changes.
This gives a traceable history when a user reports "my data is gone".
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Document lifecycle
    DOCUMENT_LOADED = "document_loaded"
    DOCUMENT_RESET = "document_reset"
    DOCUMENT_CLEARED = "document_cleared"

    # Persistence
    LOCAL_SAVE_FAILED = "local_save_failed"
    REMOTE_RECORD_CREATED = "remote_record_created"
    REMOTE_SAVE_COMPLETED = "remote_save_completed"
    REMOTE_SAVE_FAILED = "remote_save_failed"
    REMOTE_FETCH_FAILED = "remote_fetch_failed"

    # Session
    AUTH_STATE_CHANGED = "auth_state_changed"
    AUTH_REJECTED = "auth_rejected"

    # User operations
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    OPERATION_REFUSED = "operation_refused"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_REJECTED = "import_rejected"
    EXPORT_COMPLETED = "export_completed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? Ledger ids are plain strings.
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'document')"
    )
    entity_id: Optional[str] = None
    user_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.document_loaded("remote", user_id)
        event = AuditEventBuilder.remote_save_failed(user_id, str(exc))
    """

    @staticmethod
    def document_loaded(
        source: str,
        user_id: Optional[str],
        transaction_count: int = 0,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_LOADED,
            entity_type="document",
            user_id=user_id,
            description=f"Document loaded from {source}",
            details={
                "source": source,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def document_reset(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_RESET,
            entity_type="document",
            description=f"Document reset to defaults: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def document_cleared(user_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            user_id=user_id,
            description="All data cleared by user",
            is_user_action=True,
        )

    @staticmethod
    def local_save_failed(cache_key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="document",
            description="Failed to write local cache",
            details={"cache_key": cache_key},
            error_message=error_message,
        )

    @staticmethod
    def remote_record_created(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_RECORD_CREATED,
            entity_type="document",
            user_id=user_id,
            description="First login: default document created remotely",
        )

    @staticmethod
    def remote_save_completed(user_id: str, immediate: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SAVE_COMPLETED,
            severity=AuditSeverity.DEBUG,
            entity_type="document",
            user_id=user_id,
            description="Document upserted remotely",
            details={"immediate": immediate},
        )

    @staticmethod
    def remote_save_failed(user_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SAVE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            user_id=user_id,
            description="Remote upsert failed, local cache kept",
            error_message=error_message,
        )

    @staticmethod
    def remote_fetch_failed(user_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            user_id=user_id,
            description="Remote fetch failed, falling back to local cache",
            error_message=error_message,
        )

    @staticmethod
    def auth_state_changed(
        previous: str,
        current: str,
        trigger: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_STATE_CHANGED,
            entity_type="session",
            user_id=user_id,
            description=f"Session {previous} -> {current} ({trigger})",
            details={
                "previous": previous,
                "current": current,
                "trigger": trigger,
            },
        )

    @staticmethod
    def auth_rejected(email: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description="Authentication rejected",
            details={"email": email},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def entity_changed(
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        event_type = {
            "create": AuditEventType.ENTITY_CREATED,
            "update": AuditEventType.ENTITY_UPDATED,
            "delete": AuditEventType.ENTITY_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            description=f"{entity_type.capitalize()} {action}d: {entity_id}",
            is_user_action=True,
        )

    @staticmethod
    def operation_refused(operation: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REFUSED,
            severity=AuditSeverity.WARNING,
            description=f"Operation refused: {operation}",
            details={"operation": operation},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def import_completed(
        user_id: Optional[str],
        counts: dict[str, int],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="document",
            user_id=user_id,
            description="Data imported",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            description="Import rejected",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def export_completed(user_id: Optional[str], size_bytes: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_COMPLETED,
            entity_type="document",
            user_id=user_id,
            description="Data exported",
            details={"size_bytes": size_bytes},
            is_user_action=True,
        )
