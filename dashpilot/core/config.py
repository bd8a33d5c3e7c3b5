"""Application configuration loaded from environment variables."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central place for strongly typed application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="DashPilot Webhooks")
    environment: Literal["development", "staging", "production"] = Field(default="development")
    api_prefix: str = Field(default="/api")

    database_url: str = Field(validation_alias="DATABASE_URL")
    redis_url: str = Field(validation_alias="REDIS_URL")
    celery_broker_url: str = Field(validation_alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(validation_alias="CELERY_RESULT_BACKEND")

    # Outbound webhook delivery
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    webhook_backoff_base_seconds: int = Field(default=60, ge=0)
    webhook_backoff_max_seconds: int = Field(default=900, ge=0)
    webhook_default_max_retries: int = Field(default=3, ge=1, le=10)
    webhook_signature_header: str = Field(default="X-Signature")
    webhook_user_agent: str = Field(default="DashPilot/1.0")
    webhook_max_response_body: int = Field(default=1000, ge=0)
    webhook_allow_private_hosts: bool = Field(default=False)
    webhook_queue: str = Field(default="webhooks")

    @model_validator(mode="after")
    def convert_database_url(self) -> "Settings":
        """Convert postgresql+psycopg:// (psycopg3) to postgresql:// (psycopg2)."""
        if self.database_url.startswith("postgresql+psycopg://"):
            self.database_url = self.database_url.replace("postgresql+psycopg://", "postgresql://")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance so downstream code can import directly."""

    return Settings()
