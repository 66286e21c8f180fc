"""
MQTT Dialer - Connection Session Tests

These tests verify:
- State transitions driven by connect/disconnect and transport events
- Transport options derived from the broker config
- Message pipeline: extraction, notifications, call trigger, message log
- Events from released transports are ignored

Run with: pytest tests/test_session.py -v
"""

import re
from unittest.mock import Mock

import pytest

from dialer.config import Settings
from dialer.core.exceptions import SessionActiveError
from dialer.core.session import (
    ConnectionSession,
    TRANSITIONS,
    next_state,
    random_client_id,
)
from dialer.core.types import (
    BrokerConfig,
    ConnectionStatus,
    NotificationVariant,
    SessionEvent,
    SessionState,
)
from dialer.transport.base import build_transport_options

from .conftest import ThreadedCloseTransport


def titles(notifications):
    """Notification titles, oldest first."""
    return [n.title for n in reversed(notifications.recent())]


class TestTransitionTable:
    """Tests for the pure transition function."""

    def test_connect_from_idle(self):
        assert next_state(SessionState.IDLE, SessionEvent.CONNECT_REQUESTED) is SessionState.CONNECTING

    def test_connect_failure_is_error(self):
        assert next_state(SessionState.CONNECTING, SessionEvent.CONNECT_FAILED) is SessionState.ERROR

    def test_close_while_connected(self):
        assert next_state(SessionState.CONNECTED, SessionEvent.TRANSPORT_CLOSED) is SessionState.DISCONNECTED

    @pytest.mark.parametrize(
        "state",
        [SessionState.CONNECTING, SessionState.CONNECTED, SessionState.DISCONNECTED, SessionState.ERROR],
    )
    def test_disconnect_requested_always_ends_disconnected(self, state):
        assert next_state(state, SessionEvent.DISCONNECT_REQUESTED) is SessionState.DISCONNECTED

    @pytest.mark.parametrize(
        "state,event",
        [
            (SessionState.IDLE, SessionEvent.TRANSPORT_CLOSED),
            (SessionState.IDLE, SessionEvent.TRANSPORT_CONNECTED),
            (SessionState.CONNECTED, SessionEvent.CONNECT_REQUESTED),
            (SessionState.CONNECTING, SessionEvent.CONNECT_REQUESTED),
        ],
    )
    def test_invalid_events_are_ignored(self, state, event):
        assert next_state(state, event) is None

    def test_only_connected_shows_connected(self):
        for state in SessionState:
            expected = ConnectionStatus.CONNECTED if state is SessionState.CONNECTED else ConnectionStatus.DISCONNECTED
            assert state.status is expected

    def test_every_target_is_a_session_state(self):
        assert all(isinstance(target, SessionState) for target in TRANSITIONS.values())


class TestTransportOptions:
    """Tests for options handed to the transport."""

    def test_plain_websocket_url(self, session: ConnectionSession, broker_config):
        session.connect(broker_config)
        assert session.url == "ws://broker.example.com:8000/mqtt"

    def test_secure_port_selects_wss(self, session: ConnectionSession, transport_factory):
        session.connect(BrokerConfig(host="broker.example.com", port=8884, topic="t"))

        options = transport_factory.last.options
        assert options.secure is True
        assert session.url == "wss://broker.example.com:8884/mqtt"

    def test_policy_defaults(self, session: ConnectionSession, broker_config, transport_factory):
        session.connect(broker_config)

        options = transport_factory.last.options
        assert options.keepalive == 60
        assert options.clean_session is True
        assert options.reconnect_period == 1.0
        assert options.connect_timeout == 30.0
        assert options.client_id == "mqtt_dialer_test0000"

    def test_credentials_require_username(self):
        settings = Settings()
        no_user = BrokerConfig(host="h", port=8000, topic="t", password="secret")
        with_user = BrokerConfig(host="h", port=8000, topic="t", username="alice", password="secret")

        assert build_transport_options(no_user, "cid", settings).password is None
        options = build_transport_options(with_user, "cid", settings)
        assert options.username == "alice"
        assert options.password == "secret"

    def test_fresh_client_id_per_attempt(self, session: ConnectionSession, broker_config):
        session.connect(broker_config)
        first = session.client_id
        session.disconnect()
        session.connect(broker_config)

        assert session.client_id != first

    def test_random_client_id_format(self):
        assert re.fullmatch(r"mqtt_dialer_[0-9a-f]{12}", random_client_id())


class TestConnect:
    """Tests for opening a connection."""

    def test_connect_enters_connecting(self, session: ConnectionSession, broker_config):
        session.connect(broker_config)

        assert session.state is SessionState.CONNECTING
        assert session.status is ConnectionStatus.DISCONNECTED
        assert session.has_transport

    def test_transport_connected_subscribes(self, session: ConnectionSession, broker_config, transport_factory, notifications):
        session.connect(broker_config)
        transport_factory.last.fire_connect()

        assert session.state is SessionState.CONNECTED
        assert session.is_connected
        assert transport_factory.last.subscriptions == ["dialer/phone"]

        latest = notifications.recent()[0]
        assert latest.title == "Connected & Subscribed"
        assert latest.description == "Listening to dialer/phone"

    def test_subscription_failure_stays_connected(self, session: ConnectionSession, broker_config, transport_factory, notifications):
        session.connect(broker_config)
        transport = transport_factory.last
        transport.subscribe_error = "not authorized"
        transport.fire_connect()

        assert session.state is SessionState.CONNECTED
        latest = notifications.recent()[0]
        assert latest.title == "Subscription Failed"
        assert latest.description == "Could not subscribe to topic: dialer/phone"
        assert latest.variant is NotificationVariant.DESTRUCTIVE
        assert "Connected & Subscribed" not in titles(notifications)

    def test_subscribe_exception_reported_as_failure(self, session: ConnectionSession, broker_config, transport_factory, notifications):
        session.connect(broker_config)
        transport = transport_factory.last
        transport.subscribe = Mock(side_effect=RuntimeError("socket gone"))
        transport.fire_connect()

        assert session.state is SessionState.CONNECTED
        assert notifications.recent()[0].title == "Subscription Failed"

    def test_connect_while_connecting_raises(self, session: ConnectionSession, broker_config):
        session.connect(broker_config)
        with pytest.raises(SessionActiveError):
            session.connect(broker_config)

    def test_connect_while_connected_raises(self, connected_session: ConnectionSession, broker_config, transport_factory):
        with pytest.raises(SessionActiveError):
            connected_session.connect(broker_config)
        assert len(transport_factory.created) == 1

    def test_factory_failure_is_error(self, session: ConnectionSession, broker_config, transport_factory, notifications):
        transport_factory.fail_with = OSError("no route to host")

        session.connect(broker_config)

        assert session.state is SessionState.ERROR
        assert not session.has_transport
        latest = notifications.recent()[0]
        assert latest.title == "Connection Failed"
        assert latest.description == "Could not connect to MQTT broker"
        assert latest.variant is NotificationVariant.DESTRUCTIVE

    def test_retry_after_failure(self, session: ConnectionSession, broker_config, transport_factory):
        transport_factory.fail_with = OSError("no route to host")
        session.connect(broker_config)

        transport_factory.fail_with = None
        session.connect(broker_config)

        assert session.state is SessionState.CONNECTING

    def test_connect_after_close_releases_old_handle(self, connected_session: ConnectionSession, broker_config, transport_factory):
        old = transport_factory.last
        old.fire_close()

        connected_session.connect(broker_config)

        assert old.end_calls == 1
        assert transport_factory.last is not old


class TestTransportEvents:
    """Tests for close/error/reconnect events."""

    def test_close_while_connected(self, connected_session: ConnectionSession, transport_factory):
        transport_factory.last.fire_close()

        assert connected_session.state is SessionState.DISCONNECTED
        assert connected_session.status is ConnectionStatus.DISCONNECTED

    def test_close_after_messages(self, connected_session: ConnectionSession, transport_factory, message_log):
        """Messages received before the close do not keep the session connected."""
        transport = transport_factory.last
        transport.fire_message("hello")
        transport.fire_message("call 5551234567")
        transport.fire_message("+1 800 555 0199")

        transport.fire_close()

        assert connected_session.state is SessionState.DISCONNECTED
        assert connected_session.status is ConnectionStatus.DISCONNECTED
        assert [r.payload for r in message_log.records()] == [
            "+1 800 555 0199",
            "call 5551234567",
            "hello",
        ]

    def test_close_while_connecting(self, session: ConnectionSession, broker_config, transport_factory):
        session.connect(broker_config)
        transport_factory.last.fire_close()

        assert session.state is SessionState.DISCONNECTED

    def test_error_only_notifies(self, connected_session: ConnectionSession, transport_factory, notifications):
        transport_factory.last.fire_error("keepalive timeout")

        assert connected_session.state is SessionState.CONNECTED
        latest = notifications.recent()[0]
        assert latest.title == "Connection Error"
        assert latest.description == "keepalive timeout"
        assert latest.is_error

    def test_reconnect_resubscribes(self, connected_session: ConnectionSession, transport_factory):
        transport = transport_factory.last
        transport.fire_close()
        transport.fire_connect()

        assert connected_session.state is SessionState.CONNECTED
        assert transport.subscriptions == ["dialer/phone", "dialer/phone"]

    def test_stale_transport_events_ignored(self, connected_session: ConnectionSession, broker_config, transport_factory, message_log, notifications):
        old = transport_factory.last
        connected_session.disconnect()
        connected_session.connect(broker_config)
        before = titles(notifications)

        old.fire_message("call 5551234567")
        old.fire_error("late error")
        old.fire_close()
        old.fire_connect()

        assert connected_session.state is SessionState.CONNECTING
        assert len(message_log) == 0
        assert titles(notifications) == before


class TestDisconnect:
    """Tests for closing a connection."""

    def test_disconnect_connected(self, connected_session: ConnectionSession, transport_factory, notifications):
        assert connected_session.disconnect() is True

        assert connected_session.state is SessionState.DISCONNECTED
        assert not connected_session.has_transport
        assert transport_factory.last.end_calls == 1

        latest = notifications.recent()[0]
        assert latest.title == "Disconnected"
        assert latest.description == "MQTT connection closed"

    def test_second_disconnect_is_a_no_op(self, connected_session: ConnectionSession, transport_factory, notifications):
        connected_session.disconnect()
        assert connected_session.disconnect() is False

        assert titles(notifications).count("Disconnected") == 1
        assert transport_factory.last.end_calls == 1

    def test_disconnect_without_connection(self, session: ConnectionSession, notifications):
        assert session.disconnect() is False
        assert session.state is SessionState.IDLE
        assert notifications.recent() == []

    def test_disconnect_while_connecting(self, session: ConnectionSession, broker_config):
        session.connect(broker_config)
        assert session.disconnect() is True
        assert session.state is SessionState.DISCONNECTED

    def test_close_is_silent(self, connected_session: ConnectionSession, transport_factory, notifications):
        connected_session.close()

        assert connected_session.state is SessionState.DISCONNECTED
        assert transport_factory.last.end_calls == 1
        assert "Disconnected" not in titles(notifications)

    def test_context_manager_closes(self, session: ConnectionSession, broker_config, transport_factory):
        with session:
            session.connect(broker_config)

        assert not session.has_transport
        assert transport_factory.last.end_calls == 1

    def test_end_failure_does_not_propagate(self, connected_session: ConnectionSession, transport_factory):
        transport_factory.last.end = Mock(side_effect=OSError("already closed"))

        assert connected_session.disconnect() is True
        assert connected_session.state is SessionState.DISCONNECTED


class TestMessagePipeline:
    """Tests for inbound message handling."""

    def test_message_with_number(self, connected_session: ConnectionSession, transport_factory, message_log, notifications):
        transport_factory.last.fire_message("call me at (555) 123-4567 please")

        record = message_log.records()[0]
        assert record.topic == "dialer/phone"
        assert record.payload == "call me at (555) 123-4567 please"
        assert record.phone_number == "5551234567"

        recent = notifications.recent()
        assert recent[1].title == "Phone Number Detected"
        assert recent[1].description == "Calling 5551234567..."
        assert recent[0].title == "Phone Call Triggered"
        assert recent[0].description == "Would call: 5551234567"

    def test_message_without_number(self, connected_session: ConnectionSession, transport_factory, message_log, notifications):
        before = titles(notifications)
        transport_factory.last.fire_message("hello world")

        assert message_log.records()[0].phone_number is None
        assert titles(notifications) == before

    def test_invalid_utf8_is_replaced(self, connected_session: ConnectionSession, transport_factory, message_log):
        transport_factory.last.fire_message(b"\xff\xfe dial 5551234567")

        record = message_log.records()[0]
        assert "\ufffd" in record.payload
        assert record.phone_number == "5551234567"

    def test_receipt_timestamps_come_from_clock(self, connected_session: ConnectionSession, transport_factory, message_log):
        transport = transport_factory.last
        transport.fire_message("first")
        transport.fire_message("second")

        newest, oldest = message_log.records()
        assert oldest.received_at.isoformat() == "2024-01-01T12:00:00"
        assert newest.received_at.isoformat() == "2024-01-01T12:00:01"

    def test_message_topic_is_kept(self, connected_session: ConnectionSession, transport_factory, message_log):
        transport_factory.last.fire_message("x", topic="dialer/phone/desk")
        assert message_log.records()[0].topic == "dialer/phone/desk"

    def test_dialing_calls_provider_once_per_message(self, dialing_session: ConnectionSession, broker_config, transport_factory, call_provider):
        dialing_session.connect(broker_config)
        transport = transport_factory.last
        transport.fire_connect()

        transport.fire_message("5551234567")
        transport.fire_message("no number")
        transport.fire_message("+1 800 555 0199")

        assert call_provider.calls == ["tel:5551234567", "tel:+18005550199"]

    def test_call_failure_still_records_message(self, dialing_session: ConnectionSession, broker_config, transport_factory, call_provider, message_log, notifications):
        call_provider.fail_with = OSError("no handler")
        dialing_session.connect(broker_config)
        transport_factory.last.fire_connect()

        transport_factory.last.fire_message("5551234567")

        assert len(message_log) == 1
        assert notifications.recent()[0].title == "Call Failed"


class TestListeners:
    """Tests for session update listeners."""

    def test_status_and_message_updates(self, session: ConnectionSession, broker_config, transport_factory):
        updates = []
        session.add_listener(updates.append)

        session.connect(broker_config)
        transport_factory.last.fire_connect()
        transport_factory.last.fire_message("5551234567")

        assert [(u.kind, u.state) for u in updates] == [
            ("status", SessionState.CONNECTING),
            ("status", SessionState.CONNECTED),
            ("message", SessionState.CONNECTED),
        ]
        assert updates[-1].record.phone_number == "5551234567"
        assert updates[-1].to_dict()["record"]["phone_number"] == "5551234567"

    def test_failing_listener_does_not_break_session(self, session: ConnectionSession, broker_config):
        updates = []
        session.add_listener(Mock(side_effect=RuntimeError("listener bug")))
        session.add_listener(updates.append)

        session.connect(broker_config)

        assert session.state is SessionState.CONNECTING
        assert len(updates) == 1

    def test_remove_listener(self, session: ConnectionSession, broker_config):
        updates = []
        remove = session.add_listener(updates.append)
        remove()

        session.connect(broker_config)

        assert updates == []


class TestNetworkThreadClose:
    """Ending a transport whose close event arrives on its own thread."""

    @pytest.fixture
    def threaded_session(self, connected_session: ConnectionSession, transport_factory):
        transport_factory.transport_class = ThreadedCloseTransport
        connected_session.disconnect()
        connected_session.connect(BrokerConfig(host="broker.example.com", port=8000, topic="dialer/phone"))
        transport_factory.last.fire_connect()
        return connected_session

    def test_disconnect_does_not_block_close_event(self, threaded_session: ConnectionSession, transport_factory, notifications):
        transport = transport_factory.last

        assert threaded_session.disconnect() is True

        assert transport.network_thread_finished is True
        assert threaded_session.state is SessionState.DISCONNECTED
        assert titles(notifications).count("Disconnected") == 2

    def test_close_does_not_block_close_event(self, threaded_session: ConnectionSession, transport_factory):
        transport = transport_factory.last

        threaded_session.close()

        assert transport.network_thread_finished is True
        assert threaded_session.state is SessionState.DISCONNECTED

    def test_reconnect_ends_lingering_handle(self, threaded_session: ConnectionSession, broker_config, transport_factory):
        old = transport_factory.last
        old.fire_close()

        threaded_session.connect(broker_config)

        assert old.network_thread_finished is True
        assert threaded_session.state is SessionState.CONNECTING
        assert transport_factory.last is not old
