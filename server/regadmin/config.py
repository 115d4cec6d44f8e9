"""
Application configuration using Pydantic Settings.
All configuration is loaded from environment variables (12-factor app).

The settings object is validated once at process entry (see ``load_settings``)
and handed to ``create_app``; nothing in the package reads it globally.
"""

import logging
import sys
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    app_name: str = Field(default="Registration Admin Proxy", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # === Server ===
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # === Hosted backend (required) ===
    supabase_url: str = Field(..., min_length=1, description="Backend base URL")
    supabase_service_role_key: str = Field(..., min_length=1, description="Backend service credential")
    backend_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for backend and identity service requests",
    )

    # === Admin access ===
    admin_api_key: Optional[str] = Field(default=None, description="Static admin key (optional)")
    admin_emails: str = Field(default="", description="Comma-separated admin email allowlist")

    # === Import / upload ===
    max_upload_bytes: int = Field(default=200 * 1024 * 1024, gt=0, description="Maximum upload size")
    import_chunk_size: int = Field(default=500, gt=0, description="Records per insert batch")

    # === Rate limiting ===
    rate_limit: str = Field(default="1000/15 minutes", description="Per-client request limit for every route")
    rate_limit_enabled: bool = Field(default=True, description="Apply the per-client request limit")

    # === CORS ===
    cors_origins: str = Field(default="*", description="Comma-separated list of allowed CORS origins")

    # === Logging ===
    log_level: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL")
    log_format: str = Field(default="json", description="Log format: json or text")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def admin_email_list(self) -> list[str]:
        """Parse the admin allowlist, normalized to lowercase."""
        return [email.strip().lower() for email in self.admin_emails.split(",") if email.strip()]

    @property
    def static_admin_key(self) -> Optional[str]:
        """The static admin key, or None when unset or blank."""
        if self.admin_api_key and self.admin_api_key.strip():
            return self.admin_api_key
        return None


def load_settings() -> Settings:
    """
    Load and validate settings at process entry.

    Exits the process with status 1 when required backend variables are missing.
    """
    try:
        return Settings()
    except ValidationError as exc:
        missing = sorted(
            str(err["loc"][0]).upper() for err in exc.errors() if err.get("loc")
        )
        logger.error("Invalid configuration, missing or bad: %s", ", ".join(missing))
        sys.exit(1)
