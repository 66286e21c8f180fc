"""
MQTT Dialer - Configuration Management

Centralized configuration using Pydantic Settings.
Broker defaults and credentials are loaded from environment variables.
"""

from enum import Enum
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class CallMode(str, Enum):
    """How detected numbers are acted upon."""
    AUTO = "auto"          # simulate unless APP_ENV=production
    SIMULATE = "simulate"  # notify only, never dial
    DIAL = "dial"          # hand tel: URI to the platform


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # --- Broker defaults (editable at runtime via /api/config) ---
    mqtt_broker: str = "broker.hivemq.com"
    mqtt_port: int = 8000
    mqtt_topic: str = "dialer/phone"
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_auto_connect: bool = False

    # --- Transport policy ---
    mqtt_secure_port: int = 8884          # wss:// is used on this port only
    mqtt_ws_path: str = "/mqtt"
    mqtt_keepalive_seconds: int = 60
    mqtt_reconnect_period_seconds: float = 1.0
    mqtt_connect_timeout_seconds: float = 30.0
    mqtt_client_id_prefix: str = "mqtt_dialer_"

    # --- Behaviour ---
    call_mode: CallMode = CallMode.AUTO
    message_log_max_entries: int = 50
    notifications_max_entries: int = 100

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def simulate_calls(self) -> bool:
        """True when detected numbers must not reach the platform dialer."""
        if self.call_mode == CallMode.AUTO:
            return not self.is_production
        return self.call_mode == CallMode.SIMULATE


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
