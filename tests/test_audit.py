"""Tests for the audit logger and the notifier."""

import pytest
from structlog.testing import capture_logs

from ledger_sync.audit import AuditLogger
from ledger_sync.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger_sync.models.notification import NotificationLevel
from ledger_sync.notifications import Notifier


class TestAuditLogger:
    """Structured audit output."""

    @pytest.mark.parametrize(
        "severity, level",
        [
            (AuditSeverity.DEBUG, "debug"),
            (AuditSeverity.INFO, "info"),
            (AuditSeverity.WARNING, "warning"),
            (AuditSeverity.ERROR, "error"),
        ],
    )
    def test_log_level_follows_severity(self, severity, level):
        """Test each severity maps onto the matching log method."""
        event = AuditEvent(
            event_type=AuditEventType.DOCUMENT_LOADED,
            severity=severity,
            description="test",
        )
        with capture_logs() as logs:
            AuditLogger().log(event)
        assert logs[0]["log_level"] == level
        assert logs[0]["event"] == "audit_event"
        assert logs[0]["event_type"] == "document_loaded"

    def test_builder_wrappers(self):
        """Test the log_* helpers emit the expected event types."""
        with capture_logs() as logs:
            audit = AuditLogger()
            audit.log_remote_save_failed("user-1", "timeout")
            audit.log_entity_changed("delete", "account", "acc_1", "user-1")
        assert logs[0]["event_type"] == "remote_save_failed"
        assert logs[0]["error_message"] == "timeout"
        assert logs[0]["log_level"] == "warning"
        assert logs[1]["event_type"] == "entity_deleted"
        assert logs[1]["is_user_action"] is True


class TestNotifier:
    """Notification history and subscribers."""

    def test_history_and_latest(self):
        """Test notifications are recorded in order."""
        notifier = Notifier()
        assert notifier.latest is None
        notifier.info("one")
        notifier.error("two")
        assert [n.message for n in notifier.history] == ["one", "two"]
        assert notifier.latest.level == NotificationLevel.ERROR

    def test_history_is_bounded(self):
        """Test old notifications fall off."""
        notifier = Notifier(max_history=3)
        for i in range(5):
            notifier.info(f"n{i}")
        assert [n.message for n in notifier.history] == ["n2", "n3", "n4"]

    def test_subscribe_and_unsubscribe(self):
        """Test subscribers get pushed notifications until they leave."""
        notifier = Notifier()
        received = []
        unsubscribe = notifier.subscribe(received.append)
        notifier.success("saved")
        unsubscribe()
        notifier.success("ignored")
        assert [n.message for n in received] == ["saved"]

    def test_broken_subscriber_isolated(self):
        """Test one failing subscriber does not block the others."""
        notifier = Notifier()
        received = []

        def broken(notification):
            raise RuntimeError("ui gone")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)
        notifier.warning("sync failed")
        assert len(received) == 1

    def test_clear(self):
        """Test clearing the history."""
        notifier = Notifier()
        notifier.info("x")
        notifier.clear()
        assert notifier.history == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
