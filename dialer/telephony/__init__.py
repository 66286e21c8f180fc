"""
MQTT Dialer - Telephony Module

Turns detected phone numbers into call requests.

Components:
- call_trigger: simulate-or-dial action used by the connection session
- providers: platform call mechanisms
- privacy: phone number masking for logs
"""

from .call_trigger import CallTrigger, create_call_trigger
from .privacy import mask_phone_number, tel_uri
from .providers import CallProvider, SystemCallProvider

__all__ = [
    "CallTrigger",
    "create_call_trigger",
    "CallProvider",
    "SystemCallProvider",
    "mask_phone_number",
    "tel_uri",
]
