"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

FACE_PROVIDERS = {"mock", "rekognition"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    jwt_secret: str
    face_provider: str = "mock"
    aws_region: str = "ap-south-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    rekognition_collection_id: str = "guest-access-faces"
    face_match_threshold: float = 80.0
    provider_timeout_seconds: float = 15.0
    selfie_rate_limit_max_attempts: int = 10
    selfie_rate_limit_window_seconds: int = 3600
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_face_provider(raw: str | None) -> str:
    """Return a normalized matching provider name."""
    cleaned = (raw or "mock").strip().lower()
    if cleaned not in FACE_PROVIDERS:
        raise ValueError(f"Unknown face provider: {raw}")
    return cleaned
