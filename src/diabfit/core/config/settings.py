"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """DiabFit Health server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    diabfit_host: str = "127.0.0.1"
    diabfit_port: int = 8001
    diabfit_log_level: str = "info"
    diabfit_allow_insecure_bind: bool = False
    diabfit_transport: Literal["streamable-http", "stdio"] = "streamable-http"

    # Vision model used for meal photo analysis
    vision_provider: Literal["openai", "anthropic", "mock"] = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    vision_max_tokens: int = 3000
    vision_temperature: float = 0.2
    vision_timeout_seconds: float = 60.0
    vision_max_retries: int = 3

    # Image preprocessing
    image_max_dimension: int = 2048
    image_jpeg_quality: int = 80

    # Storage
    db_path: str = "~/.diabfit/health.db"
    encryption_key: str = ""

    # Local profile (single-user server)
    user_email: str = "me@localhost"
    user_name: str = "DiabFit User"

    # Medication reminders
    reminder_window_days: int = 30
    snooze_minutes: int = 15

    # Exercise
    weekly_exercise_goal_minutes: int = 150

    # Meal analysis cache
    analysis_cache_max_age_days: int = 30
    analysis_cache_max_entries: int = 500

    # Connectors
    apple_health_export_path: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
