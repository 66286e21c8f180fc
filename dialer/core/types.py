"""
MQTT Dialer - Core Domain Types

Internal type definitions shared by the session, the message log and the
API layer.

Design Notes:
- API layer converts these to/from Pydantic schemas for external communication.
- Records are frozen dataclasses: created once per inbound message, never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


DEFAULT_PORT = 8000
"""Port used when the configured value cannot be parsed."""


# =============================================================================
# Enums
# =============================================================================

class ConnectionStatus(str, Enum):
    """Status shown to the user."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class SessionState(str, Enum):
    """Connection session lifecycle state."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"

    @property
    def status(self) -> ConnectionStatus:
        if self is SessionState.CONNECTED:
            return ConnectionStatus.CONNECTED
        return ConnectionStatus.DISCONNECTED


class SessionEvent(str, Enum):
    """Inputs of the session state machine."""
    CONNECT_REQUESTED = "connect_requested"
    CONNECT_FAILED = "connect_failed"
    TRANSPORT_CONNECTED = "transport_connected"
    TRANSPORT_CLOSED = "transport_closed"
    DISCONNECT_REQUESTED = "disconnect_requested"


class NotificationVariant(str, Enum):
    """Visual weight of a notification."""
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


# =============================================================================
# Broker Configuration
# =============================================================================

def parse_port(value: Any, default: int = DEFAULT_PORT) -> int:
    """
    Parse a user-supplied port.

    Anything that is not a positive integer falls back to ``default``.
    """
    if isinstance(value, bool):
        return default
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return port if port > 0 else default


@dataclass(frozen=True)
class BrokerConfig:
    """
    Broker connection settings for one connection attempt.

    Editable between attempts by replacing the whole object.
    """
    host: str = "broker.hivemq.com"
    port: int = DEFAULT_PORT
    topic: str = "dialer/phone"
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_form(
        cls,
        host: str,
        port: Any,
        topic: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> BrokerConfig:
        """Build a config from loosely-typed form values."""
        return cls(
            host=host.strip(),
            port=parse_port(port),
            topic=topic,
            username=username or None,
            password=password or None,
        )

    def with_changes(self, **changes: Any) -> BrokerConfig:
        if "port" in changes:
            changes["port"] = parse_port(changes["port"])
        return replace(self, **changes)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)


# =============================================================================
# Message Records
# =============================================================================

@dataclass(frozen=True)
class MessageRecord:
    """One inbound message as received from the broker."""
    topic: str
    payload: str
    received_at: datetime
    phone_number: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "payload": self.payload,
            "received_at": self.received_at.isoformat(),
            "phone_number": self.phone_number,
        }


# =============================================================================
# Notifications
# =============================================================================

@dataclass(frozen=True)
class Notification:
    """Transient user-visible notice (the UI's toast)."""
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        return self.variant is NotificationVariant.DESTRUCTIVE

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "variant": self.variant.value,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Session Updates
# =============================================================================

@dataclass(frozen=True)
class SessionUpdate:
    """
    Change published to session listeners.

    ``kind`` is "status" for state transitions and "message" for new records.
    """
    kind: str
    state: SessionState
    record: Optional[MessageRecord] = None

    def to_dict(self) -> dict:
        data: dict = {
            "type": self.kind,
            "state": self.state.value,
            "status": self.state.status.value,
        }
        if self.record is not None:
            data["record"] = self.record.to_dict()
        return data
