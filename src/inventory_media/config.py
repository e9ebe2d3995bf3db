"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    media_api_base_url: str = "http://localhost:3001/api"
    media_api_token: str | None = None
    upload_timeout_seconds: float = 120.0
    max_upload_bytes: int = 100 * 1024 * 1024
    camera_device: str = "/dev/video0"
    camera_input_format: str | None = "v4l2"
    audio_device: str | None = None
    audio_input_format: str | None = "pulse"
    capture_width: int = 1280
    capture_height: int = 720
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_bearer_token(raw: str | None) -> str | None:
    """Normalize a configured API token, accepting an optional Bearer prefix."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned.lower().startswith("bearer "):
        cleaned = cleaned[len("bearer ") :].strip()
    return cleaned or None
