"""
MQTT Dialer - Service Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dialer import __version__
from dialer.api import health, routes, websocket
from dialer.api.schemas import ErrorResponse
from dialer.config import Settings, get_settings
from dialer.core.exceptions import DialerError
from dialer.core.logging import setup_structured_logging
from dialer.core.message_log import create_message_log
from dialer.core.notifications import create_notification_center
from dialer.core.session import create_session
from dialer.core.types import BrokerConfig
from dialer.telephony.call_trigger import create_call_trigger
from dialer.telephony.providers import CallProvider
from dialer.transport import TransportFactory, paho_transport_factory

settings = get_settings()

# Configure logging
setup_structured_logging(settings.app_log_level, json_format=settings.log_json)
logger = logging.getLogger(__name__)


def default_broker_config(settings: Settings) -> BrokerConfig:
    """Initial contents of the settings form."""
    return BrokerConfig.from_form(
        host=settings.mqtt_broker,
        port=settings.mqtt_port,
        topic=settings.mqtt_topic,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
    )


def create_app(
    settings: Optional[Settings] = None,
    transport_factory: Optional[TransportFactory] = None,
    call_provider: Optional[CallProvider] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Override settings (defaults to environment)
        transport_factory: Override the broker transport (defaults to paho-mqtt)
        call_provider: Override the platform call mechanism
    """
    settings = settings or get_settings()
    transport_factory = transport_factory or paho_transport_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Build notification center, message log, call trigger, session
            - Optionally connect with the configured broker defaults

        Shutdown:
            - Close the session so the broker connection is released
        """
        logger.info("MQTT Dialer starting in %s mode", settings.app_env)

        notifications = create_notification_center(settings)
        message_log = create_message_log(settings)
        call_trigger = create_call_trigger(settings, notifications, provider=call_provider)
        session = create_session(
            settings=settings,
            transport_factory=transport_factory,
            call_trigger=call_trigger,
            notifications=notifications,
            message_log=message_log,
        )

        app.state.settings = settings
        app.state.notifications = notifications
        app.state.message_log = message_log
        app.state.call_trigger = call_trigger
        app.state.session = session
        app.state.broker_config = default_broker_config(settings)

        logger.info(
            "Calls: mode=%s, provider=%s",
            "simulate" if call_trigger.simulate else "dial",
            call_trigger.provider_name,
        )

        if settings.mqtt_auto_connect:
            session.connect(app.state.broker_config)

        yield

        logger.info("MQTT Dialer shutting down")
        # Joins the paho network thread
        await run_in_threadpool(session.close)
        logger.info("Shutdown complete")

    app = FastAPI(
        title="MQTT Dialer",
        description="Subscribes to an MQTT topic and calls phone numbers found in messages",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Errors ---
    @app.exception_handler(DialerError)
    async def dialer_error_handler(request: Request, exc: DialerError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.code, message=exc.message, details=exc.details
            ).model_dump(),
        )

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root health check."""
        return {
            "service": "MQTT Dialer",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app(settings)


def run() -> None:
    """Start the server with uvicorn."""
    uvicorn.run(
        app,
        host=settings.backend_host,
        port=settings.backend_port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
