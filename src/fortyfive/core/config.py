"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_IMAGE_PROVIDERS = ("mock", "replicate")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    # Database Configuration
    # SQLite (aiosqlite) for local development, PostgreSQL (psycopg) in production
    database_url: str = Field(default="sqlite+aiosqlite:///./fortyfive.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=25, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")

    # Generation queue and worker pool
    queue_capacity: int = Field(default=100, ge=1, alias="QUEUE_CAPACITY")
    worker_count: int = Field(default=2, ge=1, alias="WORKER_COUNT")
    shutdown_timeout_seconds: float = Field(default=30.0, gt=0, alias="SHUTDOWN_TIMEOUT_SECONDS")
    generation_timeout_seconds: float = Field(
        default=120.0, gt=0, alias="GENERATION_TIMEOUT_SECONDS"
    )
    max_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1, alias="MAX_IMAGE_BYTES")

    # Image generation provider ("mock" or "replicate")
    image_provider: str = Field(default="mock", alias="IMAGE_PROVIDER")
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="black-forest-labs/flux-kontext-pro", alias="REPLICATE_MODEL_VERSION"
    )
    replicate_prompt: str = Field(
        default="Restyle this portrait using style template #{template_id}, keep the face",
        alias="REPLICATE_PROMPT",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate provider selection and its credentials on startup.

        Unknown providers are always rejected. Missing credentials are only
        checked outside test environments so tests can run with defaults.
        """
        if self.image_provider not in SUPPORTED_IMAGE_PROVIDERS:
            raise ValueError(
                f"IMAGE_PROVIDER must be one of {', '.join(SUPPORTED_IMAGE_PROVIDERS)}, "
                f"got {self.image_provider!r}"
            )

        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if self.image_provider == "replicate" and not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability

    Events below LOG_LEVEL are dropped in both modes.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
