"""
MQTT Dialer - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.
"""

from typing import Optional


class DialerError(Exception):
    """Base exception for all dialer errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Transport Errors
# =============================================================================

class TransportError(DialerError):
    """Error in the broker transport."""
    code = "TRANSPORT_ERROR"
    status_code = 502


class TransportConnectError(TransportError):
    """Transport could not be created or started."""
    code = "TRANSPORT_CONNECT_ERROR"


class SubscriptionError(TransportError):
    """Broker rejected the topic subscription."""
    code = "SUBSCRIPTION_ERROR"


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(DialerError):
    """Error related to session management."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionActiveError(SessionError):
    """A connection attempt is already in progress or established."""
    code = "SESSION_ACTIVE"
    status_code = 409


# =============================================================================
# Telephony Errors
# =============================================================================

class CallTriggerError(DialerError):
    """Platform call mechanism unavailable or refused the request."""
    code = "CALL_TRIGGER_ERROR"
    status_code = 502


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(DialerError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
