"""
MQTT Dialer - REST API Routes

Endpoints for the connection session: status, broker settings,
connect/disconnect, received messages and notifications.
Live updates are pushed separately via WebSocket.

Architecture:
    The session, message log and notification center are created once by the
    application factory and read from app.state, so every handler sees the
    same single session.
"""

from fastapi import APIRouter, Body, Depends, Query, Request, status
from typing import List, Optional
import logging

from dialer.core.message_log import MessageLog
from dialer.core.notifications import NotificationCenter
from dialer.core.session import ConnectionSession
from dialer.core.types import BrokerConfig

from .schemas import (
    BrokerConfigRequest,
    BrokerConfigResponse,
    BrokerConfigUpdate,
    DisconnectResponse,
    HealthResponse,
    MessageListResponse,
    MessageSchema,
    NotificationSchema,
    SessionStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_session(request: Request) -> ConnectionSession:
    """Dependency to get the connection session from app state."""
    return request.app.state.session


def get_message_log(request: Request) -> MessageLog:
    return request.app.state.message_log


def get_notifications(request: Request) -> NotificationCenter:
    return request.app.state.notifications


def session_status(session: ConnectionSession) -> SessionStatusResponse:
    """Snapshot of the session for the status badge."""
    return SessionStatusResponse(
        status=session.status.value,
        state=session.state.value,
        connected=session.is_connected,
        client_id=session.client_id,
        url=session.url,
        topic=session.topic,
        message_count=len(session.message_log),
    )


# =============================================================================
# Health & Status
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    session: ConnectionSession = Depends(get_session),
):
    """
    Service health check.

    The service is healthy whether or not the broker is connected; the
    connection state is reported as a component.
    """
    call_trigger = request.app.state.call_trigger
    components = {
        "api": "operational",
        "session": session.state.value,
        "call_provider": call_trigger.provider_name,
    }

    return HealthResponse(status="healthy", components=components)


@router.get("/status", response_model=SessionStatusResponse)
async def get_status(session: ConnectionSession = Depends(get_session)):
    """Current connection status."""
    return session_status(session)


# =============================================================================
# Broker Settings
# =============================================================================

@router.get("/config", response_model=BrokerConfigResponse)
async def get_broker_config(request: Request):
    """Broker settings used by the next connect."""
    return BrokerConfigResponse.from_domain(request.app.state.broker_config)


@router.put("/config", response_model=BrokerConfigResponse)
async def update_broker_config(request: Request, update: BrokerConfigUpdate):
    """
    Edit the broker settings.

    Changes apply to the next connection attempt; an open connection keeps
    the settings it was opened with.
    """
    config: BrokerConfig = update.apply_to(request.app.state.broker_config)
    request.app.state.broker_config = config

    logger.info("Broker config updated: host=%s, port=%d, topic=%s", config.host, config.port, config.topic)
    return BrokerConfigResponse.from_domain(config)


# =============================================================================
# Connection
# =============================================================================

@router.post(
    "/connect",
    response_model=SessionStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def connect(
    request: Request,
    body: Optional[BrokerConfigRequest] = Body(default=None),
    session: ConnectionSession = Depends(get_session),
):
    """
    Open the broker connection.

    An optional body replaces the stored broker settings first. The call
    returns as soon as the attempt has started; watch /api/status or the
    WebSocket stream for the outcome.

    Plain def: ending a lingering transport joins its network thread,
    so this runs in the threadpool.

    Raises:
        SessionActiveError (409): already connecting or connected
    """
    if body is not None:
        request.app.state.broker_config = body.to_domain()

    session.connect(request.app.state.broker_config)
    return session_status(session)


@router.post("/disconnect", response_model=DisconnectResponse)
def disconnect(session: ConnectionSession = Depends(get_session)):
    """
    Close the broker connection. A no-op when nothing is open.

    Plain def: ending the transport blocks until its network thread exits.
    """
    return DisconnectResponse(disconnected=session.disconnect())


# =============================================================================
# Messages & Notifications
# =============================================================================

@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum messages to return"),
    message_log: MessageLog = Depends(get_message_log),
):
    """Received messages, newest first."""
    records = message_log.records(limit=limit)
    return MessageListResponse(
        count=len(message_log),
        max_entries=message_log.max_entries,
        messages=[MessageSchema.from_domain(r) for r in records],
    )


@router.get("/notifications", response_model=List[NotificationSchema])
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=1000, description="Maximum notifications to return"),
    notifications: NotificationCenter = Depends(get_notifications),
):
    """Recent notifications, newest first."""
    return [NotificationSchema.from_domain(n) for n in notifications.recent(limit=limit)]
