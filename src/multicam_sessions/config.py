"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    public_base_url: str = "http://localhost:5173"
    session_code_attempts: int = 5
    heartbeat_timeout_seconds: int = 30
    require_camera_to_record: bool = False
    change_feed_queue_size: int = 256
    cors_allowed_origins: list[str] = []
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def cors_origins(self) -> list[str]:
        """Return browser origins allowed to call the API."""
        return self.cors_allowed_origins or [self.public_base_url.rstrip("/")]
