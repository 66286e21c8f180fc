"""
MQTT Dialer - Test Configuration and Fixtures

Shared fixtures for all test modules. No broker or network is needed:
FakeTransport lets tests fire connect/message/error/close events by hand.
"""

import threading
from datetime import datetime, timedelta
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from dialer.config import CallMode, Settings
from dialer.core.message_log import MessageLog
from dialer.core.notifications import NotificationCenter
from dialer.core.session import ConnectionSession
from dialer.core.types import BrokerConfig
from dialer.telephony.call_trigger import CallTrigger
from dialer.telephony.providers import CallProvider
from dialer.transport.base import SubscribeCallback, TransportEvents, TransportOptions


# =============================================================================
# Fakes
# =============================================================================

class FakeTransport:
    """Transport double whose events are fired by the test."""

    def __init__(self, options: TransportOptions):
        self.options = options
        self.events: Optional[TransportEvents] = None
        self.subscriptions: List[str] = []
        self.subscribe_error: Optional[str] = None
        self.end_calls = 0

    # Transport protocol

    def start(self, events: TransportEvents) -> None:
        self.events = events

    def subscribe(self, topic: str, on_result: SubscribeCallback) -> None:
        self.subscriptions.append(topic)
        on_result(self.subscribe_error)

    def end(self) -> None:
        self.end_calls += 1

    # Test helpers

    def fire_connect(self) -> None:
        self.events.on_connect()

    def fire_message(self, payload, topic: Optional[str] = None) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self.events.on_message(topic or "dialer/phone", payload)

    def fire_error(self, message: str) -> None:
        self.events.on_error(message)

    def fire_close(self) -> None:
        self.events.on_close()


class ThreadedCloseTransport(FakeTransport):
    """
    Ends the way paho does: the close callback fires on the network thread
    and end() waits for that thread to finish.
    """

    def __init__(self, options: TransportOptions):
        super().__init__(options)
        self.network_thread_finished: Optional[bool] = None

    def end(self) -> None:
        super().end()
        network = threading.Thread(target=self.fire_close)
        network.start()
        network.join(timeout=5)
        self.network_thread_finished = not network.is_alive()


class FakeTransportFactory:
    """Records every transport it builds; can be told to fail."""

    def __init__(self, transport_class: type = FakeTransport):
        self.transport_class = transport_class
        self.created: List[FakeTransport] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, options: TransportOptions) -> FakeTransport:
        if self.fail_with is not None:
            raise self.fail_with
        transport = self.transport_class(options)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class RecordingCallProvider(CallProvider):
    """Call provider that remembers URIs instead of dialing."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.calls: List[str] = []
        self.fail_with = fail_with

    @property
    def name(self) -> str:
        return "recording"

    def place_call(self, uri: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append(uri)


class FrozenClock:
    """Deterministic clock; each call advances one second."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with safe defaults: development mode, calls simulated."""
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",
        call_mode=CallMode.SIMULATE,
        mqtt_broker="broker.example.com",
        mqtt_port=8000,
        mqtt_topic="dialer/phone",
        mqtt_auto_connect=False,
        message_log_max_entries=50,
    )


@pytest.fixture
def dial_settings(test_settings: Settings) -> Settings:
    """Settings that hand numbers to the call provider."""
    return test_settings.model_copy(update={"call_mode": CallMode.DIAL})


@pytest.fixture
def broker_config() -> BrokerConfig:
    return BrokerConfig(host="broker.example.com", port=8000, topic="dialer/phone")


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter(max_entries=100)


@pytest.fixture
def message_log() -> MessageLog:
    return MessageLog(max_entries=50)


@pytest.fixture
def call_provider() -> RecordingCallProvider:
    return RecordingCallProvider()


@pytest.fixture
def simulated_trigger(notifications: NotificationCenter, call_provider) -> CallTrigger:
    """Development-mode trigger. The provider is present but must stay unused."""
    return CallTrigger(notifications=notifications, provider=call_provider, simulate=True)


@pytest.fixture
def dialing_trigger(notifications: NotificationCenter, call_provider) -> CallTrigger:
    return CallTrigger(notifications=notifications, provider=call_provider, simulate=False)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


def _make_session(settings, factory, trigger, notifications, message_log, clock):
    ids = iter(f"mqtt_dialer_test{i:04d}" for i in range(1000))
    return ConnectionSession(
        settings=settings,
        transport_factory=factory,
        call_trigger=trigger,
        notifications=notifications,
        message_log=message_log,
        client_id_factory=lambda: next(ids),
        clock=clock,
    )


@pytest.fixture
def session(
    test_settings, transport_factory, simulated_trigger, notifications, message_log, clock
) -> ConnectionSession:
    """Session wired to fakes, calls simulated."""
    return _make_session(
        test_settings, transport_factory, simulated_trigger, notifications, message_log, clock
    )


@pytest.fixture
def dialing_session(
    dial_settings, transport_factory, dialing_trigger, notifications, message_log, clock
) -> ConnectionSession:
    """Session wired to fakes, calls handed to the recording provider."""
    return _make_session(
        dial_settings, transport_factory, dialing_trigger, notifications, message_log, clock
    )


@pytest.fixture
def connected_session(session: ConnectionSession, broker_config, transport_factory) -> ConnectionSession:
    """Session that has received the transport's connected event."""
    session.connect(broker_config)
    transport_factory.last.fire_connect()
    return session


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings, transport_factory, call_provider):
    """App instance wired to the fake transport."""
    from main import create_app

    return create_app(
        settings=test_settings,
        transport_factory=transport_factory,
        call_provider=call_provider,
    )


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
