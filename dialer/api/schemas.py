"""
MQTT Dialer - API Schemas

Pydantic models for request/response validation.
These define the contract between the control client and the service.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from dialer import __version__
from dialer.core.types import (
    BrokerConfig,
    DEFAULT_PORT,
    MessageRecord,
    Notification,
)


# ===========================================
# Broker Configuration
# ===========================================

class BrokerConfigRequest(BaseModel):
    """
    Broker settings submitted by the client.

    ``port`` accepts any value; anything unparsable becomes 8000.
    """

    host: str = Field(default="broker.hivemq.com", description="Broker host name")
    port: Any = Field(default=DEFAULT_PORT, description="Broker WebSocket port")
    topic: str = Field(default="dialer/phone", description="Topic to subscribe to")
    username: Optional[str] = Field(default=None, description="Optional username")
    password: Optional[str] = Field(default=None, description="Optional password")

    def to_domain(self) -> BrokerConfig:
        return BrokerConfig.from_form(
            host=self.host,
            port=self.port,
            topic=self.topic,
            username=self.username,
            password=self.password,
        )


class BrokerConfigUpdate(BaseModel):
    """Partial update of the broker settings; unset fields are kept."""

    host: Optional[str] = None
    port: Any = None
    topic: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def apply_to(self, config: BrokerConfig) -> BrokerConfig:
        changes = self.model_dump(exclude_unset=True)
        for key in ("username", "password"):
            if key in changes:
                changes[key] = changes[key] or None
        return config.with_changes(**changes)


class BrokerConfigResponse(BaseModel):
    """Current broker settings. The password is never echoed."""

    host: str
    port: int
    topic: str
    username: Optional[str] = None
    has_password: bool = False

    @classmethod
    def from_domain(cls, config: BrokerConfig) -> "BrokerConfigResponse":
        return cls(
            host=config.host,
            port=config.port,
            topic=config.topic,
            username=config.username,
            has_password=bool(config.password),
        )


# ===========================================
# Session Status
# ===========================================

class SessionStatusResponse(BaseModel):
    """Connection status badge."""

    status: str = Field(description="connected | disconnected")
    state: str = Field(description="idle | connecting | connected | disconnected | error")
    connected: bool
    client_id: Optional[str] = None
    url: Optional[str] = None
    topic: Optional[str] = None
    message_count: int = 0


class DisconnectResponse(BaseModel):
    """Result of a disconnect request."""

    disconnected: bool = Field(description="False if there was no live connection")


# ===========================================
# Messages & Notifications
# ===========================================

class MessageSchema(BaseModel):
    """One received message."""

    topic: str
    payload: str
    received_at: datetime
    phone_number: Optional[str] = None

    @classmethod
    def from_domain(cls, record: MessageRecord) -> "MessageSchema":
        return cls(
            topic=record.topic,
            payload=record.payload,
            received_at=record.received_at,
            phone_number=record.phone_number,
        )


class NotificationSchema(BaseModel):
    """One user-visible notification."""

    title: str
    description: str
    variant: str
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationSchema":
        return cls(
            title=notification.title,
            description=notification.description,
            variant=notification.variant.value,
            created_at=notification.created_at,
        )


class ErrorResponse(BaseModel):
    """Error body for DialerError subclasses."""

    error: str
    message: str
    details: dict = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Service health."""

    status: str
    components: dict
    version: str = __version__


class MessageListResponse(BaseModel):
    """Messages, newest first."""

    count: int
    max_entries: int
    messages: List[MessageSchema]
