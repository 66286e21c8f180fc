"""
MQTT Dialer - System Call Provider

Hands tel: URIs to the operating system's registered handler (a softphone,
a paired mobile, FaceTime, ...) through the standard browser launcher.
"""

import logging
import webbrowser

from dialer.core.exceptions import CallTriggerError
from .base import CallProvider

logger = logging.getLogger(__name__)


class SystemCallProvider(CallProvider):
    """Opens tel: URIs with the platform's default handler."""

    @property
    def name(self) -> str:
        return "system"

    def place_call(self, uri: str) -> None:
        if not webbrowser.open(uri):
            raise CallTriggerError(
                "No handler accepted the call request",
                details={"scheme": uri.split(":", 1)[0]},
            )
        logger.debug("Call request handed to system handler")
