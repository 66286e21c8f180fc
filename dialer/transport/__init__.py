"""
MQTT Dialer - Transport Package

Broker transport interface and the paho-mqtt implementation.
"""

from .base import (
    SubscribeCallback,
    Transport,
    TransportEvents,
    TransportFactory,
    TransportOptions,
    build_transport_options,
)
from .paho_client import PahoTransport, paho_transport_factory

__all__ = [
    "SubscribeCallback",
    "Transport",
    "TransportEvents",
    "TransportFactory",
    "TransportOptions",
    "build_transport_options",
    "PahoTransport",
    "paho_transport_factory",
]
