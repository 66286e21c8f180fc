"""
MQTT Dialer - Connection Session

Owns the lifecycle of one broker subscription and routes every inbound
message through the phone number extractor into the message log and the
call trigger.

Architecture:
    The session is a finite-state machine with a single state field and an
    explicit transition table (TRANSITIONS). Transport callbacks are mapped
    to SessionEvents; anything not in the table is ignored.

        idle ──connect──▶ connecting ──transport connected──▶ connected
          ▲                   │                                   │
          │             connect failed                     transport closed /
          │                   ▼                            disconnect requested
          └──(new connect)── error / disconnected ◀───────────────┘

    Transport errors only produce a notification; the transport's own
    reconnect policy decides what happens next.

Threading:
    Transport events arrive on the transport thread; connect/disconnect come
    from API handlers. A single RLock serializes state changes. Events from a
    transport handle that has since been released are dropped.

    A handle is detached under the lock but ended after the lock is
    released: ending it joins the transport thread, and that thread may be
    waiting on the lock to deliver a close event.

Usage:
    session = ConnectionSession(
        settings=settings,
        transport_factory=paho_transport_factory,
        call_trigger=call_trigger,
        notifications=notifications,
        message_log=message_log,
    )
    session.connect(BrokerConfig(host="broker.hivemq.com", port=8000, topic="dialer/phone"))
    ...
    session.close()
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, List, Optional, Tuple

from dialer.config import Settings
from dialer.core.exceptions import SessionActiveError
from dialer.core.extractor import extract_phone_number
from dialer.core.logging import LogContext
from dialer.core.message_log import MessageLog
from dialer.core.notifications import NotificationCenter
from dialer.core.types import (
    BrokerConfig,
    ConnectionStatus,
    MessageRecord,
    SessionEvent,
    SessionState,
    SessionUpdate,
)
from dialer.telephony.call_trigger import CallTrigger
from dialer.telephony.privacy import mask_phone_number
from dialer.transport.base import (
    Transport,
    TransportEvents,
    TransportFactory,
    TransportOptions,
    build_transport_options,
)

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionUpdate], None]


# =============================================================================
# Transition Table
# =============================================================================

TRANSITIONS: Dict[Tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.CONNECT_REQUESTED): SessionState.CONNECTING,
    (SessionState.DISCONNECTED, SessionEvent.CONNECT_REQUESTED): SessionState.CONNECTING,
    (SessionState.ERROR, SessionEvent.CONNECT_REQUESTED): SessionState.CONNECTING,

    (SessionState.CONNECTING, SessionEvent.CONNECT_FAILED): SessionState.ERROR,

    # Reconnects arrive as a fresh "connected" after a close
    (SessionState.CONNECTING, SessionEvent.TRANSPORT_CONNECTED): SessionState.CONNECTED,
    (SessionState.DISCONNECTED, SessionEvent.TRANSPORT_CONNECTED): SessionState.CONNECTED,
    (SessionState.ERROR, SessionEvent.TRANSPORT_CONNECTED): SessionState.CONNECTED,

    (SessionState.CONNECTING, SessionEvent.TRANSPORT_CLOSED): SessionState.DISCONNECTED,
    (SessionState.CONNECTED, SessionEvent.TRANSPORT_CLOSED): SessionState.DISCONNECTED,

    (SessionState.CONNECTING, SessionEvent.DISCONNECT_REQUESTED): SessionState.DISCONNECTED,
    (SessionState.CONNECTED, SessionEvent.DISCONNECT_REQUESTED): SessionState.DISCONNECTED,
    (SessionState.DISCONNECTED, SessionEvent.DISCONNECT_REQUESTED): SessionState.DISCONNECTED,
    (SessionState.ERROR, SessionEvent.DISCONNECT_REQUESTED): SessionState.DISCONNECTED,
}

ACTIVE_STATES = frozenset({SessionState.CONNECTING, SessionState.CONNECTED})


def next_state(state: SessionState, event: SessionEvent) -> Optional[SessionState]:
    """Look up a transition. None means the event is not valid in ``state``."""
    return TRANSITIONS.get((state, event))


def random_client_id(prefix: str = "mqtt_dialer_") -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


# =============================================================================
# Connection Session
# =============================================================================

class ConnectionSession:
    """
    One subscription to one topic, with its message pipeline.

    Attributes:
        state: Current SessionState
        status: Connected/Disconnected as shown to the user
        config: BrokerConfig of the current (or last) attempt
    """

    def __init__(
        self,
        settings: Settings,
        transport_factory: TransportFactory,
        call_trigger: CallTrigger,
        notifications: NotificationCenter,
        message_log: MessageLog,
        client_id_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the session.

        Args:
            settings: Transport policy (keep-alive, secure port, ...)
            transport_factory: Builds a Transport for each connection attempt
            call_trigger: Action for detected phone numbers
            notifications: Sink for user-visible notices
            message_log: Where received messages are recorded
            client_id_factory: Produces a fresh client id per attempt
            clock: Source of receipt timestamps
        """
        self._settings = settings
        self._transport_factory = transport_factory
        self._call_trigger = call_trigger
        self._notifications = notifications
        self._message_log = message_log
        self._client_id_factory = client_id_factory or (
            lambda: random_client_id(settings.mqtt_client_id_prefix)
        )
        self._clock = clock

        self._lock = RLock()
        self._state = SessionState.IDLE
        self._transport: Optional[Transport] = None
        self._options: Optional[TransportOptions] = None
        self._config: Optional[BrokerConfig] = None
        self._listeners: List[SessionListener] = []

    # -------------------------------------------------------------------------
    # Read-only view
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def config(self) -> Optional[BrokerConfig]:
        return self._config

    @property
    def client_id(self) -> Optional[str]:
        return self._options.client_id if self._options else None

    @property
    def url(self) -> Optional[str]:
        return self._options.url if self._options else None

    @property
    def topic(self) -> Optional[str]:
        return self._config.topic if self._config else None

    @property
    def has_transport(self) -> bool:
        return self._transport is not None

    @property
    def message_log(self) -> MessageLog:
        return self._message_log

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Observe state changes and new messages. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def connect(self, config: BrokerConfig) -> None:
        """
        Start a connection attempt with ``config``.

        Returns once the transport has been handed the request; the outcome
        arrives through transport events. Failures to even start become a
        "Connection Failed" notification and the ERROR state.

        Raises:
            SessionActiveError: If already connecting or connected
        """
        with self._lock:
            self._ensure_inactive()
            # A closed-but-reconnecting handle may still be alive
            lingering = self._detach_transport()
        self._end_transport(lingering)

        with self._lock:
            self._ensure_inactive()

            self._config = config
            self._options = build_transport_options(
                config, self._client_id_factory(), self._settings
            )
            self._apply(SessionEvent.CONNECT_REQUESTED)

            logger.info(
                "Connecting: url=%s, topic=%s, auth=%s",
                self._options.url,
                config.topic,
                "yes" if self._options.username else "no",
            )

            try:
                transport = self._transport_factory(self._options)
                self._transport = transport
                transport.start(self._bind_events(transport))
                return
            except Exception as e:
                logger.error("Connection attempt failed: %s", str(e), exc_info=True)
                failed = self._detach_transport()
                self._apply(SessionEvent.CONNECT_FAILED)

        self._end_transport(failed)
        self._notifications.error(
            "Connection Failed",
            "Could not connect to MQTT broker",
        )

    def disconnect(self) -> bool:
        """
        End the connection.

        Returns:
            True if a live transport was closed, False if there was nothing
            to close (no notification is published in that case).
        """
        with self._lock:
            transport = self._detach_transport()
            if transport is None:
                return False
            self._apply(SessionEvent.DISCONNECT_REQUESTED)

        # Joins the network thread, whose close callback needs the lock
        self._end_transport(transport)
        self._notifications.publish("Disconnected", "MQTT connection closed")
        return True

    def close(self) -> None:
        """Release the network resource without user-facing notices."""
        with self._lock:
            transport = self._detach_transport()
            if transport is None:
                return
            self._apply(SessionEvent.DISCONNECT_REQUESTED)

        self._end_transport(transport)
        logger.info("Session closed")

    def __enter__(self) -> ConnectionSession:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    def _bind_events(self, transport: Transport) -> TransportEvents:
        """Callbacks that only act while ``transport`` is the current handle."""
        return TransportEvents(
            on_connect=lambda: self._on_connect(transport),
            on_message=lambda topic, payload: self._on_message(transport, topic, payload),
            on_error=lambda message: self._on_error(transport, message),
            on_close=lambda: self._on_close(transport),
        )

    def _is_current(self, transport: Transport) -> bool:
        return transport is self._transport

    def _on_connect(self, transport: Transport) -> None:
        with self._lock:
            if not self._is_current(transport):
                return
            if self._apply(SessionEvent.TRANSPORT_CONNECTED) is None:
                return
            topic = self._config.topic

        try:
            transport.subscribe(
                topic, lambda error: self._on_subscribed(transport, topic, error)
            )
        except Exception as e:
            self._on_subscribed(transport, topic, str(e))

    def _on_subscribed(self, transport: Transport, topic: str, error: Optional[str]) -> None:
        if not self._is_current(transport):
            return

        # Connection stays CONNECTED even when the subscription is rejected
        if error:
            logger.error("Subscription to %s failed: %s", topic, error)
            self._notifications.error(
                "Subscription Failed",
                f"Could not subscribe to topic: {topic}",
            )
            return

        logger.info("Subscribed to %s", topic)
        self._notifications.publish("Connected & Subscribed", f"Listening to {topic}")

    def _on_message(self, transport: Transport, topic: str, payload: bytes) -> None:
        with self._lock:
            if not self._is_current(transport):
                return
            client_id = self.client_id

        with LogContext(client_id=client_id, topic=topic):
            text = payload.decode("utf-8", errors="replace")
            phone_number = extract_phone_number(text)
            record = MessageRecord(
                topic=topic,
                payload=text,
                received_at=self._clock(),
                phone_number=phone_number,
            )

            if phone_number:
                logger.info("Phone number detected: %s", mask_phone_number(phone_number))
                self._notifications.publish(
                    "Phone Number Detected",
                    f"Calling {phone_number}...",
                )
                self._call_trigger.trigger(phone_number)
            else:
                logger.debug("Message without phone number (%d bytes)", len(payload))

            self._message_log.append(record)

        self._emit(SessionUpdate(kind="message", state=self._state, record=record))

    def _on_error(self, transport: Transport, message: str) -> None:
        if not self._is_current(transport):
            return
        logger.warning("Transport error: %s", message)
        self._notifications.error("Connection Error", message)

    def _on_close(self, transport: Transport) -> None:
        with self._lock:
            if not self._is_current(transport):
                return
            self._apply(SessionEvent.TRANSPORT_CLOSED)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _apply(self, event: SessionEvent) -> Optional[SessionState]:
        """Run one transition. Returns the new state, or None if ignored."""
        with self._lock:
            previous = self._state
            target = next_state(previous, event)
            if target is None:
                logger.debug("Ignoring %s in state %s", event.value, previous.value)
                return None
            self._state = target

        if target is not previous:
            logger.info("Session state: %s -> %s", previous.value, target.value)
            self._emit(SessionUpdate(kind="status", state=target))
        return target

    def _ensure_inactive(self) -> None:
        if self._state in ACTIVE_STATES:
            raise SessionActiveError(
                f"Session is already {self._state.value}; disconnect first"
            )

    def _detach_transport(self) -> Optional[Transport]:
        """Drop the current handle under the lock. Its late events are ignored."""
        transport, self._transport = self._transport, None
        return transport

    def _end_transport(self, transport: Optional[Transport]) -> None:
        """Close a detached handle. Must be called without holding the lock."""
        if transport is None:
            return
        try:
            transport.end()
        except Exception as e:
            logger.warning("Error while closing transport: %s", str(e))

    def _emit(self, update: SessionUpdate) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(update)
            except Exception as e:
                logger.error("Session listener failed: %s", str(e))


def create_session(
    settings: Settings,
    transport_factory: TransportFactory,
    call_trigger: CallTrigger,
    notifications: NotificationCenter,
    message_log: MessageLog,
) -> ConnectionSession:
    """Create the application's connection session."""
    return ConnectionSession(
        settings=settings,
        transport_factory=transport_factory,
        call_trigger=call_trigger,
        notifications=notifications,
        message_log=message_log,
    )
