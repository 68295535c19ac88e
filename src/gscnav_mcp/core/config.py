"""Configuration management for GSCNav."""

import logging
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


class GSCConfig(BaseModel):
    """Google Search Console Search Analytics API configuration."""

    api_base_url: str = Field(
        default="https://www.googleapis.com/webmasters/v3",
        description="Base URL of the Search Console API",
    )
    rate_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum upstream requests per second",
    )
    default_row_limit: int = Field(
        default=25000, ge=1, le=25000, description="Row limit used when none is given"
    )
    max_row_limit: int = Field(
        default=25000,
        ge=1,
        le=25000,
        description="Largest row limit the Search Analytics API accepts",
    )
    request_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Upstream request timeout in seconds (None disables the timeout)",
    )
    country_label_locale: str = Field(
        default="en", description="Locale used for country display names"
    )

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.rstrip("/")


class OAuthConfig(BaseModel):
    """Google OAuth credentials used to obtain Search Console access tokens."""

    client_id: str | None = None
    client_secret: SecretStr | None = None
    refresh_token: SecretStr | None = None
    access_token: SecretStr | None = None
    token_uri: str = Field(default="https://oauth2.googleapis.com/token")
    scopes: list[str] = Field(
        default=[
            "https://www.googleapis.com/auth/webmasters.readonly",
            "https://www.googleapis.com/auth/webmasters",
        ]
    )

    @property
    def can_refresh(self) -> bool:
        """Whether enough credentials are present to refresh access tokens."""
        return bool(self.client_id and self.client_secret and self.refresh_token)


class CacheConfig(BaseModel):
    """Search Analytics response cache configuration."""

    ttl_seconds: int = Field(
        default=3600, ge=1, description="Cache TTL for fetched rows in seconds"
    )
    key_prefix: str = Field(default="gsc", description="Prefix for all cache keys")


class RedisConfig(BaseModel):
    """Redis configuration for the shared response cache."""

    enabled: bool = Field(default=False, description="Enable Redis backend")
    url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON
    log_file: Path | None = None


class Settings(BaseSettings):
    """Application settings.

    Environment Variables:
        Google OAuth:
            GSCNAV_OAUTH__CLIENT_ID=your_client_id
            GSCNAV_OAUTH__CLIENT_SECRET=your_client_secret
            GSCNAV_OAUTH__REFRESH_TOKEN=your_refresh_token

        Search Console:
            GSCNAV_GSC__RATE_LIMIT=10
            GSCNAV_GSC__REQUEST_TIMEOUT_SECONDS=30

        Cache:
            GSCNAV_CACHE__TTL_SECONDS=3600
            GSCNAV_REDIS__ENABLED=true
            GSCNAV_REDIS__URL=redis://localhost:6379/0
    """

    model_config = SettingsConfigDict(
        env_prefix="GSCNAV_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".gscnav")
    user_settings_path: Path | None = Field(
        default=None,
        description="JSON file holding branded keyword rules and sync state",
    )

    gsc: GSCConfig = Field(default_factory=GSCConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def resolved_user_settings_path(self) -> Path:
        """Location of the user settings file."""
        return self.user_settings_path or self.data_dir / "settings.json"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load settings from the environment, reading a .env file first."""
        if env_file:
            load_dotenv(env_file)
        else:
            root_dir = Path(__file__).parent.parent.parent.parent
            env_path = root_dir / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        return cls()

    def validate_required_settings(self) -> None:
        """Check cross-field requirements that pydantic cannot express."""
        errors: list[str] = []

        oauth = self.oauth
        if not oauth.access_token and not oauth.can_refresh:
            logging.getLogger(__name__).warning(
                "No Search Console credentials configured. Set GSCNAV_OAUTH__CLIENT_ID, "
                "GSCNAV_OAUTH__CLIENT_SECRET and GSCNAV_OAUTH__REFRESH_TOKEN."
            )

        if self.redis.enabled and not self.redis.url.startswith(
            ("redis://", "rediss://", "unix://")
        ):
            errors.append(f"Invalid Redis URL scheme: {self.redis.url}")

        if self.gsc.default_row_limit > self.gsc.max_row_limit:
            errors.append("gsc.default_row_limit cannot exceed gsc.max_row_limit")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Get environment variable with GSCNAV_ prefix."""
        return os.environ.get(f"GSCNAV_{key}", default)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        settings = Settings.from_env()
        settings.validate_required_settings()
        return settings
    except (ValidationError, ValueError) as e:
        logging.error(f"Configuration error: {e}")
        raise


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper())

    if settings.logging.format == LogFormat.JSON:
        import json

        class JsonFormatter(logging.Formatter):
            def format(self, record: logging.LogRecord) -> str:
                log_data: dict[str, Any] = {
                    "timestamp": self.formatTime(record),
                    "level": record.levelname,
                    "logger": record.name,
                    "message": record.getMessage(),
                    "module": record.module,
                    "function": record.funcName,
                    "line": record.lineno,
                }
                if record.exc_info:
                    log_data["exception"] = self.formatException(record.exc_info)
                return json.dumps(log_data)

        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.logging.log_file:
        settings.logging.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.logging.log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
