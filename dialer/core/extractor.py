"""
MQTT Dialer - Phone Number Extractor

Heuristic scan of free-form text for something that looks like a phone
number. This is not a validator: any 7-15 character run of digits,
whitespace, hyphens and parentheses (optionally led by '+') is a candidate,
and false positives such as order numbers are expected.

Examples:
    "call me at (555) 123-4567 please" -> "5551234567"
    "+1 800 555 0199"                  -> "+18005550199"
    "no digits here"                   -> None
"""

from __future__ import annotations

import re
from typing import Optional

PHONE_CANDIDATE_RE = re.compile(r"\+?[0-9\s\-()]{7,15}")
FORMATTING_RE = re.compile(r"[\s\-()]")
DIGIT_RE = re.compile(r"[0-9]")


def extract_phone_number(text: str) -> Optional[str]:
    """
    Return the first phone-like run in ``text`` with formatting stripped.

    Args:
        text: Arbitrary message payload

    Returns:
        Digits with an optional leading '+', or None if nothing matched.
        A first match made only of separators (e.g. a run of spaces) also
        yields None.
    """
    if not text:
        return None

    match = PHONE_CANDIDATE_RE.search(text)
    if match is None:
        return None

    cleaned = FORMATTING_RE.sub("", match.group(0))
    if not DIGIT_RE.search(cleaned):
        return None
    return cleaned
