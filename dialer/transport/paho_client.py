"""
MQTT Dialer - paho-mqtt Transport

MQTT 3.1.1 over WebSockets using paho-mqtt. paho runs its network loop in a
background thread (loop_start) and takes care of keep-alive pings and
reconnection; this class only translates its callbacks into TransportEvents.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Dict, Optional

import paho.mqtt.client as mqtt

from dialer.core.exceptions import SubscriptionError, TransportConnectError
from .base import SubscribeCallback, TransportEvents, TransportOptions

logger = logging.getLogger(__name__)


class PahoTransport:
    """paho-mqtt backed implementation of the Transport protocol."""

    def __init__(self, options: TransportOptions):
        self.options = options
        self._events: Optional[TransportEvents] = None
        self._pending: Dict[int, SubscribeCallback] = {}
        self._lock = Lock()

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=options.client_id,
            clean_session=options.clean_session,
            protocol=mqtt.MQTTv311,
            transport="websockets",
        )
        self.client.ws_set_options(path=options.path)
        if options.secure:
            self.client.tls_set()
        if options.username:
            self.client.username_pw_set(options.username, options.password)

        # Fixed-interval retry
        self.client.reconnect_delay_set(
            min_delay=options.reconnect_period,
            max_delay=options.reconnect_period,
        )
        self.client.connect_timeout = options.connect_timeout
        self.client.enable_logger(logging.getLogger("paho.mqtt"))

        self.client.on_connect = self._handle_connect
        self.client.on_connect_fail = self._handle_connect_fail
        self.client.on_disconnect = self._handle_disconnect
        self.client.on_message = self._handle_message
        self.client.on_subscribe = self._handle_subscribe

    def start(self, events: TransportEvents) -> None:
        """Connect asynchronously and start the network thread."""
        self._events = events
        try:
            self.client.connect_async(
                self.options.host,
                self.options.port,
                keepalive=self.options.keepalive,
            )
            rc = self.client.loop_start()
        except Exception as e:
            raise TransportConnectError(
                f"Failed to connect to {self.options.url}: {e}"
            ) from e

        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportConnectError(
                f"Failed to start network loop: {mqtt.error_string(rc)}"
            )

        logger.info("Connecting to %s", self.options.url)

    def subscribe(self, topic: str, on_result: SubscribeCallback) -> None:
        """
        Send SUBSCRIBE; on_result fires when the SUBACK arrives.

        Raises:
            SubscriptionError: If paho rejects the topic before sending
        """
        with self._lock:
            try:
                rc, mid = self.client.subscribe(topic)
            except ValueError as e:
                raise SubscriptionError(
                    f"Invalid subscription to {topic}: {e}",
                    details={"topic": topic},
                ) from e
            if rc == mqtt.MQTT_ERR_SUCCESS:
                self._pending[mid] = on_result
                return

        on_result(mqtt.error_string(rc))

    def end(self) -> None:
        """Disconnect and stop the network thread."""
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()
            with self._lock:
                self._pending.clear()
        logger.info("Connection to %s ended", self.options.url)

    # -------------------------------------------------------------------------
    # paho callbacks (network thread)
    # -------------------------------------------------------------------------

    def _handle_connect(self, client, userdata, flags, reason_code, properties):
        if self._events is None:
            return
        if reason_code.is_failure:
            logger.error("Broker refused connection: %s", reason_code)
            self._events.on_error(f"Connection refused: {reason_code}")
            return
        logger.info("Connected to the MQTT broker at %s", self.options.url)
        self._events.on_connect()

    def _handle_connect_fail(self, client, userdata):
        if self._events is None:
            return
        logger.warning("Could not reach %s, retrying", self.options.url)
        self._events.on_error(f"Could not reach {self.options.url}")

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning("Unexpected disconnection: %s", reason_code)
        else:
            logger.info("Disconnected from the MQTT broker gracefully")
        if self._events is not None:
            self._events.on_close()

    def _handle_message(self, client, userdata, message):
        if self._events is None:
            return
        self._events.on_message(message.topic, message.payload)

    def _handle_subscribe(self, client, userdata, mid, reason_code_list, properties):
        with self._lock:
            on_result = self._pending.pop(mid, None)
        if on_result is None:
            return

        failures = [rc for rc in reason_code_list if rc.is_failure]
        on_result(str(failures[0]) if failures else None)


def paho_transport_factory(options: TransportOptions) -> PahoTransport:
    return PahoTransport(options)
