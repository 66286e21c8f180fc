"""
MQTT Dialer - Message Log

Bounded, newest-first record of inbound messages for display.

Notes:
    - Memory only; lost on restart
    - Oldest entries are evicted once the cap is reached
    - Written from the transport thread, read from API handlers (thread-safe)
"""

from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Deque, List, Optional

from dialer.config import Settings
from dialer.core.exceptions import ConfigurationError
from dialer.core.types import MessageRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class MessageLog:
    """
    In-memory message log with ring-buffer semantics.

    ``append`` inserts at the front; the deque drops from the back when full,
    so order is always newest first and entries are never reordered.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ConfigurationError(
                f"Message log needs room for at least one entry (got {max_entries})"
            )
        self._max_entries = max_entries
        self._lock = Lock()
        self._records: Deque[MessageRecord] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def append(self, record: MessageRecord) -> None:
        """Insert a record at the front, evicting the oldest beyond the cap."""
        with self._lock:
            evicting = len(self._records) == self._max_entries
            self._records.appendleft(record)

        if evicting:
            logger.debug("Message log full, evicted oldest entry")

    def records(self, limit: Optional[int] = None) -> List[MessageRecord]:
        """Snapshot of the log, newest first."""
        with self._lock:
            snapshot = list(self._records)
        return snapshot if limit is None else snapshot[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def create_message_log(settings: Settings) -> MessageLog:
    """Create the message log sized from settings."""
    logger.info("Creating MessageLog: max_entries=%d", settings.message_log_max_entries)
    return MessageLog(max_entries=settings.message_log_max_entries)
