"""
MQTT Dialer - Call Trigger

Turns a detected phone number into a call request.

Modes:
    simulate: never reaches the platform; publishes a "would call" notification
    dial:     hands a tel: URI to the configured CallProvider

Failures are contained here: they become a "Call Failed" notification and a
log line, never an exception in the caller.
"""

from __future__ import annotations

from typing import Optional

from dialer.config import Settings
from dialer.core.logging import get_logger
from dialer.core.notifications import NotificationCenter
from .privacy import mask_phone_number, tel_uri
from .providers import CallProvider, SystemCallProvider

logger = get_logger(__name__)


class CallTrigger:
    """
    Fire-and-forget call action.

    Attributes:
        simulate: True for development hosts (no real call is placed)
        provider: Platform mechanism used when not simulating
    """

    def __init__(
        self,
        notifications: NotificationCenter,
        provider: Optional[CallProvider] = None,
        simulate: bool = True,
    ):
        self._notifications = notifications
        self._provider = provider
        self._simulate = simulate

    @property
    def simulate(self) -> bool:
        return self._simulate

    @property
    def provider_name(self) -> str:
        if self._simulate:
            return "simulator"
        return self._provider.name if self._provider else "none"

    def trigger(self, phone_number: str) -> None:
        """
        Place (or simulate) a call to ``phone_number``.

        Never raises.
        """
        try:
            if self._simulate:
                self._notifications.publish(
                    "Phone Call Triggered",
                    f"Would call: {phone_number}",
                )
                logger.info("Simulated call", data={"phone_number": phone_number})
                return

            if self._provider is None:
                raise RuntimeError("No call provider configured")

            self._provider.place_call(tel_uri(phone_number))
            logger.info(
                f"Call requested via {self._provider.name} to {mask_phone_number(phone_number)}"
            )
        except Exception as e:
            logger.error(
                f"Call trigger failed: {e}",
                data={"phone_number": phone_number},
            )
            self._notifications.error(
                "Call Failed",
                f"Could not initiate call to {phone_number}",
            )


def create_call_trigger(
    settings: Settings,
    notifications: NotificationCenter,
    provider: Optional[CallProvider] = None,
) -> CallTrigger:
    """
    Create the call trigger for the configured call mode.

    Args:
        settings: Application settings (call_mode, app_env)
        notifications: Where user-visible notices go
        provider: Override the platform provider (defaults to SystemCallProvider)
    """
    simulate = settings.simulate_calls
    if not simulate and provider is None:
        provider = SystemCallProvider()

    logger.info(
        "CallTrigger configured",
        data={
            "mode": "simulate" if simulate else "dial",
            "provider": provider.name if provider else "none",
        },
    )
    return CallTrigger(notifications=notifications, provider=provider, simulate=simulate)
