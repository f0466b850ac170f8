"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation.

Credential material (GA4_ACCESS_TOKEN, GOOGLE_APPLICATION_CREDENTIALS, ...)
is not part of Settings; the credential readers probe the environment each
time credentials are resolved.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # Server identity
    SERVER_NAME: str = Field(default="ga4-mcp-server")
    SERVER_VERSION: str = Field(default="1.0.0")

    # Monitoring
    SENTRY_DSN: str = Field(default="")

    # Credential locations
    GA4_MCP_HOME: Optional[str] = Field(
        default=None,
        description="Home directory used to locate token files (defaults to the user's home)"
    )
    GA4_CREDENTIAL_FOLDER: str = Field(
        default="Credential",
        description="Folder scanned for a service account JSON file"
    )

    # OAuth token refresh
    GOOGLE_TOKEN_URL: str = Field(default="https://oauth2.googleapis.com/token")
    GA4_TOKEN_REFRESH_MARGIN_SECONDS: int = Field(default=60, ge=0)
    GA4_TOKEN_REFRESH_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # GA4 API calls
    GA4_API_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    GA4_VALIDATION_ROW_LIMIT: int = Field(default=500, ge=1, le=250000)
    GA4_VALIDATION_MAX_CONCURRENCY: int = Field(default=1)
    GA4_DEFAULT_START_DATE: str = Field(default="7daysAgo")
    GA4_DEFAULT_END_DATE: str = Field(default="yesterday")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level names (e.g. 'debug' -> 'DEBUG')."""
        level = v.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {v}")
        return level

    @field_validator("GA4_VALIDATION_MAX_CONCURRENCY")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensure at least one report query may run at a time."""
        if v < 1:
            raise ValueError("GA4_VALIDATION_MAX_CONCURRENCY must be at least 1")
        return v

    @property
    def home_dir(self) -> Path:
        """Directory that token and credential files are resolved against."""
        if self.GA4_MCP_HOME:
            return Path(self.GA4_MCP_HOME).expanduser()
        return Path.home()

    @property
    def credential_folder(self) -> Path:
        """Absolute path of the service account credentials folder."""
        return Path(self.GA4_CREDENTIAL_FOLDER).expanduser().resolve()


# Global settings instance
settings = Settings()
