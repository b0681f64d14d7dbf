"""
Notifier

Collects user-visible notifications (inline errors, sync warnings,
auth messages) and fans them out to the front end's subscribers.
"""

from collections import deque
from typing import Callable, Optional

import structlog

from ledger_sync.models.notification import Notification, NotificationLevel


logger = structlog.get_logger(__name__)

Subscriber = Callable[[Notification], None]


class Notifier:
    """Bounded notification history plus push-style subscribers."""

    def __init__(self, max_history: int = 50):
        self._history: deque[Notification] = deque(maxlen=max_history)
        self._subscribers: list[Subscriber] = []

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    @property
    def latest(self) -> Optional[Notification]:
        return self._history[-1] if self._history else None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self._history.append(notification)
        for callback in list(self._subscribers):
            try:
                callback(notification)
            except Exception:
                # A broken UI callback must not break the data layer
                logger.exception("notification_subscriber_failed")
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(NotificationLevel.INFO, message)

    def success(self, message: str) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message)

    def warning(self, message: str) -> Notification:
        return self.notify(NotificationLevel.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.notify(NotificationLevel.ERROR, message)

    def clear(self) -> None:
        self._history.clear()
