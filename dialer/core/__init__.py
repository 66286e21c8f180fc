"""
MQTT Dialer - Core Package

Contains the message pipeline and domain types:
- types: domain records and enums
- extractor: phone number heuristic
- message_log: bounded record of received messages
- notifications: user-visible notices
- session: connection session state machine (import from dialer.core.session)
"""

from .types import (
    BrokerConfig,
    ConnectionStatus,
    MessageRecord,
    Notification,
    NotificationVariant,
    SessionEvent,
    SessionState,
    SessionUpdate,
    parse_port,
)
from .extractor import extract_phone_number
from .message_log import MessageLog, create_message_log
from .notifications import NotificationCenter, create_notification_center

__all__ = [
    # Types
    "BrokerConfig",
    "ConnectionStatus",
    "MessageRecord",
    "Notification",
    "NotificationVariant",
    "SessionEvent",
    "SessionState",
    "SessionUpdate",
    "parse_port",
    # Pipeline pieces
    "extract_phone_number",
    "MessageLog",
    "create_message_log",
    "NotificationCenter",
    "create_notification_center",
]
