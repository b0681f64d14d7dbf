"""
Audit Logger

Every significant action in the data layer is logged as a structured
event: where a document was loaded from, when a remote write failed, which
session transition happened, which entity a user changed.

The audit logger:
- Is synchronous and local-only (structlog JSON lines)
- Never raises into the caller
"""

import logging
from typing import Optional

import structlog

from ledger_sync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """Central audit logging service."""

    def __init__(self, logger_name: str = "ledger_sync.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> AuditEvent:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        return event

    def log_document_loaded(
        self,
        source: str,
        user_id: Optional[str],
        transaction_count: int = 0,
    ) -> None:
        self.log(AuditEventBuilder.document_loaded(source, user_id, transaction_count))

    def log_document_reset(self, reason: str) -> None:
        self.log(AuditEventBuilder.document_reset(reason))

    def log_document_cleared(self, user_id: Optional[str]) -> None:
        self.log(AuditEventBuilder.document_cleared(user_id))

    def log_local_save_failed(self, cache_key: str, error_message: str) -> None:
        self.log(AuditEventBuilder.local_save_failed(cache_key, error_message))

    def log_remote_record_created(self, user_id: str) -> None:
        self.log(AuditEventBuilder.remote_record_created(user_id))

    def log_remote_save_completed(self, user_id: str, immediate: bool) -> None:
        self.log(AuditEventBuilder.remote_save_completed(user_id, immediate))

    def log_remote_save_failed(self, user_id: str, error_message: str) -> None:
        self.log(AuditEventBuilder.remote_save_failed(user_id, error_message))

    def log_remote_fetch_failed(self, user_id: str, error_message: str) -> None:
        self.log(AuditEventBuilder.remote_fetch_failed(user_id, error_message))

    def log_auth_state_changed(
        self,
        previous: str,
        current: str,
        trigger: str,
        user_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.auth_state_changed(previous, current, trigger, user_id))

    def log_auth_rejected(self, email: str, reason: str) -> None:
        self.log(AuditEventBuilder.auth_rejected(email, reason))

    def log_entity_changed(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.entity_changed(action, entity_type, entity_id, user_id))

    def log_operation_refused(self, operation: str, reason: str) -> None:
        self.log(AuditEventBuilder.operation_refused(operation, reason))

    def log_import_completed(self, user_id: Optional[str], counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.import_completed(user_id, counts))

    def log_import_rejected(self, reason: str) -> None:
        self.log(AuditEventBuilder.import_rejected(reason))

    def log_export_completed(self, user_id: Optional[str], size_bytes: int) -> None:
        self.log(AuditEventBuilder.export_completed(user_id, size_bytes))
