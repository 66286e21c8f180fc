"""
MQTT Dialer - Call Provider Base

Abstract base class for call provider implementations.
"""

from abc import ABC, abstractmethod


class CallProvider(ABC):
    """
    Abstract base class for call providers.

    A provider places (or requests) a call for a tel: URI. It may raise
    CallTriggerError or any other exception; the caller handles both.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @abstractmethod
    def place_call(self, uri: str) -> None:
        """
        Request a call.

        Args:
            uri: tel: URI, e.g. "tel:+18005550199"

        Raises:
            CallTriggerError: If the platform refused the request
        """
        ...
