"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

_POSTGRES_SCHEMES = ("postgresql+asyncpg://", "postgresql://", "postgres://")


class Settings(BaseSettings):
    """Study Mode settings, read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "Study Mode"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]

    # Postgres. A full URL (Neon, Render, ...) wins over the individual parts
    database_url_override: str | None = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "studymode"
    postgres_password: str = ""
    postgres_db: str = "studymode"

    # Tokens are issued elsewhere; this service only verifies them
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7

    # Gemini
    gemini_api_key: str
    gemini_model: str = "gemini-3-pro-preview"
    gemini_grading_model: str = "gemini-3-pro-preview"
    gemini_thinking_level: Literal["low", "high"] | None = "low"
    gemini_max_attempts: int = 3
    gemini_retry_base_delay: float = 1.0

    # Provider-hosted files expire after 48h
    gemini_file_ttl_hours: int = 47
    file_poll_interval_seconds: float = 5.0
    file_processing_timeout_seconds: float = 300.0
    material_file_concurrency: int = 3

    # S3 copy of material blobs, used to re-upload expired provider files
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_s3_bucket: str = ""
    aws_s3_region: str = "us-east-2"
    aws_s3_endpoint_url: str | None = None  # MinIO / LocalStack

    # Study chat
    chat_history_limit: int = 50
    chat_title_max_chars: int = 50
    message_page_default: int = 50
    message_page_max: int = 100
    max_upload_bytes: int = 100 * 1024 * 1024

    def _postgres_url(self, scheme: str) -> str:
        if not self.database_url_override:
            return (
                f"{scheme}{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        url = self.database_url_override
        for known in _POSTGRES_SCHEMES:
            if url.startswith(known):
                return scheme + url[len(known):]
        return url

    @computed_field
    @property
    def database_url(self) -> str:
        """asyncpg URL for the app. Query params are dropped; SSL goes through connect_args."""
        return self._postgres_url("postgresql+asyncpg://").split("?", 1)[0]

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """psycopg2 URL for Alembic."""
        return self._postgres_url("postgresql://")

    @computed_field
    @property
    def database_requires_ssl(self) -> bool:
        override = self.database_url_override or ""
        return "sslmode=require" in override or "ssl=require" in override


@lru_cache
def get_settings() -> Settings:
    return Settings()


def sanitize_error(error: Exception, *, generic_message: str = "An internal error occurred.") -> str:
    """Full error text in development, a generic message anywhere else."""
    if get_settings().environment == "development":
        return str(error)
    return generic_message
