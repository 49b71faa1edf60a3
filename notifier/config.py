import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

load_dotenv()

LOG_LEVELS = ("error", "warn", "info", "debug")
LOG_FORMATS = ("pretty", "json")


class ConfigError(Exception):
    """Raised when a required setting is missing or invalid."""


class Settings(BaseModel):
    telegram_bot_token: str
    telegram_chat_id: str
    github_webhook_secret: str

    port: int = Field(default=3000, ge=1, le=65535)
    environment: str = "development"

    # Logging: level is one of LOG_LEVELS, format is "pretty" or "json".
    log_level: str = "info"
    log_format: str = "pretty"

    dedup_max_entries: int = Field(default=10_000, ge=1)
    dedup_expiration_seconds: float = Field(default=24 * 60 * 60, gt=0)
    # None disables the periodic sweep (always the case under APP_ENV=test).
    dedup_cleanup_interval_seconds: float | None = Field(default=60 * 60, gt=0)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level. Must be one of: {', '.join(LOG_LEVELS)}"
            )
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log format. Must be one of: {', '.join(LOG_FORMATS)}"
            )
        return value


def _require(name: str) -> str:
    value = os.getenv(name, "")
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def load_settings() -> Settings:
    environment = os.getenv("APP_ENV", "development")
    cleanup_interval = os.getenv("DEDUP_CLEANUP_INTERVAL_SECONDS", "3600")

    try:
        return Settings(
            telegram_bot_token=_require("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=_require("TELEGRAM_CHAT_ID"),
            github_webhook_secret=_require("GITHUB_WEBHOOK_SECRET"),
            port=os.getenv("PORT", "3000"),
            environment=environment,
            log_level=os.getenv("LOG_LEVEL", "info"),
            log_format=os.getenv("LOG_FORMAT", "pretty"),
            dedup_max_entries=os.getenv("DEDUP_MAX_ENTRIES", "10000"),
            dedup_expiration_seconds=os.getenv("DEDUP_EXPIRATION_SECONDS", "86400"),
            dedup_cleanup_interval_seconds=(
                None if environment == "test" else cleanup_interval
            ),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
