"""
MQTT Dialer - Telephony Privacy Utilities

Phone number masking for log output.

Numbers are shown in full only in user-visible notifications; log lines use
the masked form.
"""

import re
from typing import Optional


def mask_phone_number(number: Optional[str], show_last_digits: int = 2) -> str:
    """
    Mask a phone number for logging.

    Examples:
        +14155551234 → ***34
        5551234      → ***34
        None         → unknown

    Args:
        number: Phone number to mask
        show_last_digits: Number of digits to show (default: 2)

    Returns:
        Masked phone number string
    """
    if not number:
        return "unknown"

    digits = re.sub(r'\D', '', str(number))

    if len(digits) < show_last_digits:
        return "***"

    return f"***{digits[-show_last_digits:]}"


def tel_uri(number: str) -> str:
    """Build the tel: URI handed to the platform dialer."""
    return f"tel:{number}"
