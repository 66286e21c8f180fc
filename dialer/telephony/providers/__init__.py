"""
MQTT Dialer - Call Providers

Ways of handing a tel: URI to the platform.

Supported Providers:
- system: the operating system's default URI handler
"""

from .base import CallProvider
from .system import SystemCallProvider

__all__ = ["CallProvider", "SystemCallProvider"]
