"""
MQTT Dialer - WebSocket Event Stream

Pushes live updates to connected clients:
- notifications (the UI's toasts)
- session status changes
- newly received messages

Protocol:
    Server → Client (JSON text frames):
        {"type": "connected", "status": "...", "state": "..."}
        {"type": "notification", "data": {...}}
        {"type": "status", "state": "...", "status": "..."}
        {"type": "message", "state": "...", "status": "...", "record": {...}}

    Client → Server:
        Any text frame is ignored; it only keeps the connection alive.

Threading:
    Notifications and session updates are produced on the MQTT network
    thread. They are handed to the event loop with call_soon_threadsafe and
    drained from an asyncio.Queue.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dialer.core.notifications import NotificationCenter
from dialer.core.session import ConnectionSession
from dialer.core.types import Notification, SessionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def _drain_client(websocket: WebSocket) -> None:
    """Read and discard client frames until the client goes away."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/events")
async def event_stream(websocket: WebSocket):
    """Stream notifications and session updates to one client."""
    session: ConnectionSession = websocket.app.state.session
    notifications: NotificationCenter = websocket.app.state.notifications

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(item) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, item)

    unsubscribe_notifications = notifications.subscribe(forward)
    unsubscribe_session = session.add_listener(forward)
    receiver = asyncio.create_task(_drain_client(websocket))

    logger.info("Event stream client connected")

    try:
        await websocket.send_json({
            "type": "connected",
            "status": session.status.value,
            "state": session.state.value,
        })

        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter not in done:
                getter.cancel()
                break

            item = getter.result()
            if isinstance(item, Notification):
                await websocket.send_json({"type": "notification", "data": item.to_dict()})
            elif isinstance(item, SessionUpdate):
                await websocket.send_json(item.to_dict())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("Event stream error: %s", str(e), exc_info=True)
    finally:
        unsubscribe_notifications()
        unsubscribe_session()
        receiver.cancel()
        logger.info("Event stream client disconnected")
