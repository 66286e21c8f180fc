"""
MQTT Dialer - Health Check Endpoints

System health monitoring endpoints for process supervisors and
operational visibility.
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Request

from dialer import __version__
from dialer.core.types import SessionState

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """
    Overall system health check.

    Returns:
        - status: "healthy" or "degraded"
        - checks: Individual component statuses
        - timestamp: Current server time

    A broker that is not connected is reported but does not make the
    service unhealthy: connecting is a user action.
    """
    settings = request.app.state.settings
    session = request.app.state.session
    call_trigger = request.app.state.call_trigger

    checks = {
        "session": {
            "status": "degraded" if session.state is SessionState.ERROR else "healthy",
            "state": session.state.value,
            "connected": session.is_connected,
        },
        "calls": {
            "status": "healthy",
            "mode": "simulate" if call_trigger.simulate else "dial",
            "provider": call_trigger.provider_name,
        },
    }

    all_healthy = all(c.get("status") == "healthy" for c in checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": settings.app_env,
        "checks": checks,
    }


@router.get("/ready")
async def readiness_check() -> dict:
    """Readiness probe. Returns 200 once the app has started."""
    return {
        "ready": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe. Returns 200 if the process is alive."""
    return {
        "alive": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/config")
async def config_info(request: Request) -> dict:
    """
    Non-sensitive configuration information.

    Useful for debugging and operational visibility.
    Excludes broker credentials.
    """
    settings = request.app.state.settings
    return {
        "environment": settings.app_env,
        "debug": settings.app_debug,
        "log_level": settings.app_log_level,
        "transport": {
            "secure_port": settings.mqtt_secure_port,
            "ws_path": settings.mqtt_ws_path,
            "keepalive_seconds": settings.mqtt_keepalive_seconds,
            "reconnect_period_seconds": settings.mqtt_reconnect_period_seconds,
            "connect_timeout_seconds": settings.mqtt_connect_timeout_seconds,
        },
        "features": {
            "call_mode": settings.call_mode.value,
            "simulate_calls": settings.simulate_calls,
            "auto_connect": settings.mqtt_auto_connect,
        },
        "limits": {
            "message_log_max_entries": settings.message_log_max_entries,
            "notifications_max_entries": settings.notifications_max_entries,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
