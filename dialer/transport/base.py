"""
MQTT Dialer - Transport Interface

The session talks to the broker through this narrow interface so that tests
can drive connect/message/error/close events without a network.

Events are delivered on the transport's own thread, one at a time.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from dialer.config import Settings
from dialer.core.types import BrokerConfig

SubscribeCallback = Callable[[Optional[str]], None]
"""Called once with None on success or an error description on failure."""


@dataclass(frozen=True)
class TransportOptions:
    """Everything needed to open one broker connection."""
    host: str
    port: int
    client_id: str
    secure: bool = False
    path: str = "/mqtt"
    keepalive: int = 60
    clean_session: bool = True
    reconnect_period: float = 1.0
    connect_timeout: float = 30.0
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def scheme(self) -> str:
        return "wss" if self.secure else "ws"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"


def build_transport_options(
    config: BrokerConfig,
    client_id: str,
    settings: Settings,
) -> TransportOptions:
    """
    Derive transport options from a broker config and the transport policy.

    The secure sub-protocol is chosen only when the port equals the
    configured secure port. Credentials are applied only with a username.
    """
    username = config.username or None
    return TransportOptions(
        host=config.host,
        port=config.port,
        client_id=client_id,
        secure=config.port == settings.mqtt_secure_port,
        path=settings.mqtt_ws_path,
        keepalive=settings.mqtt_keepalive_seconds,
        clean_session=True,
        reconnect_period=settings.mqtt_reconnect_period_seconds,
        connect_timeout=settings.mqtt_connect_timeout_seconds,
        username=username,
        password=config.password if username else None,
    )


@dataclass(frozen=True)
class TransportEvents:
    """Callbacks a transport invokes. Mirrors connect/message/error/close."""
    on_connect: Callable[[], None]
    on_message: Callable[[str, bytes], None]
    on_error: Callable[[str], None]
    on_close: Callable[[], None]


@runtime_checkable
class Transport(Protocol):
    """
    Protocol for broker transports.

    Implementations own reconnection: after a close they may emit
    on_connect again without being asked.
    """

    @abstractmethod
    def start(self, events: TransportEvents) -> None:
        """
        Begin connecting. Returns immediately; progress arrives as events.

        Raises:
            TransportConnectError: If the connection cannot be initiated
        """
        ...

    @abstractmethod
    def subscribe(self, topic: str, on_result: SubscribeCallback) -> None:
        """Subscribe to a topic; the outcome is reported via on_result."""
        ...

    @abstractmethod
    def end(self) -> None:
        """Close the connection and release the network resource."""
        ...


TransportFactory = Callable[[TransportOptions], Transport]
