"""
MQTT Dialer - Notification Center

Fan-out of transient user-visible notifications. Subscribers (the WebSocket
event stream) receive each notification as it is published; a bounded list of
recent notifications is kept for polling clients.
"""

from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Callable, Deque, List, Optional

from dialer.config import Settings
from dialer.core.types import Notification, NotificationVariant

logger = logging.getLogger(__name__)

NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """Publishes notifications to listeners and keeps the most recent ones."""

    def __init__(self, max_entries: int = 100):
        self._lock = Lock()
        self._recent: Deque[Notification] = deque(maxlen=max_entries)
        self._listeners: List[NotificationListener] = []

    def publish(
        self,
        title: str,
        description: str,
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> Notification:
        """Create, store and broadcast a notification."""
        notification = Notification(title=title, description=description, variant=variant)

        with self._lock:
            self._recent.appendleft(notification)
            listeners = list(self._listeners)

        if notification.is_error:
            logger.warning("Notification: %s - %s", title, description)
        else:
            logger.info("Notification: %s", title)

        for listener in listeners:
            try:
                listener(notification)
            except Exception as e:
                logger.error("Notification listener failed: %s", str(e))

        return notification

    def error(self, title: str, description: str) -> Notification:
        return self.publish(title, description, NotificationVariant.DESTRUCTIVE)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        """Recent notifications, newest first."""
        with self._lock:
            snapshot = list(self._recent)
        return snapshot if limit is None else snapshot[:limit]


def create_notification_center(settings: Settings) -> NotificationCenter:
    return NotificationCenter(max_entries=settings.notifications_max_entries)
