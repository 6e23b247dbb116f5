"""
Configuration Management

All service settings live here and are loaded once from environment
variables (or a local .env file) through Pydantic Settings, so the rest of
the code can import a single, already-validated `settings` object.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application Settings

    Pydantic automatically loads from environment variables.
    Variable names match field names (case-insensitive).
    """

    log_level: str = "INFO"
    log_categories: Optional[str] = None  # Comma-separated categories (eventsub,prediction,registrar,system). If None, show all logs.
    port: int = 8000
    host: str = "0.0.0.0"

    # Twitch Configuration
    twitch_client_id: Optional[str] = None
    twitch_access_token: Optional[str] = None  # Broadcaster user token with channel:read:predictions
    target_user_id: Optional[str] = None  # Broadcaster whose predictions are shown

    # EventSub WebSocket Configuration
    eventsub_enabled: bool = True  # Enable/disable EventSub client
    eventsub_ws_url: str = "wss://eventsub.wss.twitch.tv/ws"
    helix_api_base: str = "https://api.twitch.tv/helix"
    eventsub_reconnect_delay: int = 5  # Initial reconnect delay in seconds
    eventsub_max_reconnect_delay: int = 60  # Maximum reconnect delay in seconds
    eventsub_welcome_timeout_seconds: int = 10  # Time allowed for session_welcome after connecting
    eventsub_keepalive_grace_seconds: int = 5  # Added on top of the session keepalive timeout
    eventsub_dedupe_window: int = 256  # Recent message ids remembered for duplicate detection

    # Overlay Configuration
    prediction_reset_seconds: float = 30.0  # How long a finished prediction stays on screen
    overlay_layout: str = "vertical"  # vertical or horizontal

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra env vars without validation errors


# Loaded once when the module is imported
settings = Settings()

"""
USAGE EXAMPLE:
    from prediction_overlay.config import settings

    print(settings.log_level)                 # "INFO"
    print(settings.prediction_reset_seconds)  # 30.0
"""
