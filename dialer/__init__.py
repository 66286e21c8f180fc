"""
MQTT Dialer - Application Package

This package contains the dialer service:
- API routes and WebSocket event stream
- Connection session and message handling
- MQTT transport adapter
- Call trigger and phone number privacy helpers
"""

__version__ = "0.1.0"
