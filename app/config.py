# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Numeric PWA knobs come in two flavours:
# - "clamped" values are pulled into their range (rollout percent, row caps)
# - SLO thresholds fall back to their default when out of range
# =============================================================================

import math
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# (default, minimum, maximum)
SLO_THRESHOLD_BOUNDS: dict[str, tuple[float, float, float]] = {
    "PWA_SLO_MIN_SAMPLES": (30, 5, 1000),
    "PWA_SLO_LCP_P75_MS": (2500, 500, 10000),
    "PWA_SLO_INP_P75_MS": (200, 50, 2000),
    "PWA_SLO_CLS_P75": (0.1, 0.01, 1),
    "PWA_SLO_FCP_P75_MS": (1800, 500, 8000),
    "PWA_SLO_TTFB_P75_MS": (800, 100, 4000),
    "PWA_SLO_INSTALL_ACCEPT_RATE_MIN": (0.2, 0.01, 1),
    "PWA_SLO_PUSH_ENABLE_RATE_MIN": (0.25, 0.01, 1),
    "PWA_SLO_SW_REGISTRATION_FAILURE_RATE_MAX": (0.05, 0, 1),
    "PWA_SLO_POOR_VITALS_RATE_MAX": (0.15, 0, 1),
}

# (default, minimum, maximum)
CLAMPED_INT_BOUNDS: dict[str, tuple[int, int, int]] = {
    "PWA_ROLLOUT_PERCENT": (100, 0, 100),
    "PWA_TELEMETRY_SUMMARY_MAX_ROWS": (15000, 1000, 50000),
    "PWA_TELEMETRY_RETENTION_DAYS": (14, 1, 90),
    "PWA_SLO_ALERT_COOLDOWN_MINUTES": (30, 1, 1440),
    "PWA_SLO_ALERT_TIMEOUT_MS": (8000, 1000, 30000),
}

DEFAULT_ALLOWED_ORIGINS = [
    "https://ku-online.vercel.app",
    "https://ku-online-dev.vercel.app",
    "http://localhost:5000",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # These are required - app won't start without them

    SUPABASE_URL: str = Field(
        ...,
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    SUPABASE_JWT_SECRET: str = Field(
        default="",
        description="Legacy HS256 JWT secret used to verify access tokens"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (Celery broker and shared PWA state)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker and PWA state"
    )

    PWA_STATE_BACKEND: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where install-prompt visitor state is kept"
    )

    # -------------------------------------------------------------------------
    # OpenAI (message translation)
    # -------------------------------------------------------------------------

    OPENAI_API_KEY: str | None = Field(
        default=None,
        description="OpenAI API key for message translation"
    )

    OPENAI_TRANSLATION_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Chat model used for translation"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # -------------------------------------------------------------------------
    # Origins
    # -------------------------------------------------------------------------

    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    SITE_URL: str | None = Field(
        default=None,
        description="Canonical public site URL"
    )

    PUBLIC_SITE_URL: str | None = Field(
        default=None,
        description="Public site URL exposed to the browser"
    )

    VERCEL_URL: str | None = Field(
        default=None,
        description="Deployment host without scheme (preview deployments)"
    )

    # -------------------------------------------------------------------------
    # Storage / Uploads
    # -------------------------------------------------------------------------

    STORAGE_BUCKET: str = Field(
        default="product-images",
        description="Supabase Storage bucket for listing images"
    )

    MAX_UPLOAD_SIZE_MB: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum file upload size in MB"
    )

    UPLOAD_MAX_EDGE: int = Field(default=1600, ge=320, le=8000)
    UPLOAD_WEBP_QUALITY: int = Field(default=82, ge=1, le=100)
    UPLOAD_WEBP_MIN_BYTES: int = Field(default=80000, ge=0)

    # -------------------------------------------------------------------------
    # Moderation / Partnerships
    # -------------------------------------------------------------------------

    ADMIN_REVALIDATE_TOKEN: str | None = Field(
        default=None,
        description="Shared token for the x-admin-token moderation endpoint"
    )

    RESEND_API_KEY: str | None = None
    PARTNERSHIPS_NOTIFY_EMAIL: str | None = None
    PARTNERSHIPS_FROM_EMAIL: str | None = None
    PUBLIC_PARTNERSHIPS_EMAIL: str | None = None
    PUBLIC_PARTNERSHIPS_WHATSAPP: str | None = None

    # -------------------------------------------------------------------------
    # PWA Feature Flags
    # -------------------------------------------------------------------------

    PWA_ENABLED: bool = False
    PWA_INSTALL_UI_ENABLED: bool = True
    PWA_PUSH_ENABLED: bool = False
    PWA_TELEMETRY_ENABLED: bool = True
    PWA_ROLLOUT_PERCENT: int = 100

    # -------------------------------------------------------------------------
    # PWA Telemetry / SLO Alerts
    # -------------------------------------------------------------------------

    PWA_TELEMETRY_DURABLE_ENABLED: bool = True
    PWA_TELEMETRY_SUMMARY_MAX_ROWS: int = 15000
    PWA_TELEMETRY_RETENTION_DAYS: int = 14

    PWA_SLO_ALERT_WEBHOOK_URL: str | None = None
    PWA_SLO_ALERT_SECRET: str | None = None
    PWA_SLO_ALERT_COOLDOWN_MINUTES: int = 30
    PWA_SLO_ALERT_TIMEOUT_MS: int = 8000

    PWA_SLO_MIN_SAMPLES: float = 30
    PWA_SLO_LCP_P75_MS: float = 2500
    PWA_SLO_INP_P75_MS: float = 200
    PWA_SLO_CLS_P75: float = 0.1
    PWA_SLO_FCP_P75_MS: float = 1800
    PWA_SLO_TTFB_P75_MS: float = 800
    PWA_SLO_INSTALL_ACCEPT_RATE_MIN: float = 0.2
    PWA_SLO_PUSH_ENABLE_RATE_MIN: float = 0.25
    PWA_SLO_SW_REGISTRATION_FAILURE_RATE_MAX: float = 0.05
    PWA_SLO_POOR_VITALS_RATE_MAX: float = 0.15

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
    )

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator(*CLAMPED_INT_BOUNDS.keys(), mode="before")
    @classmethod
    def _clamp_int(cls, value, info):
        default, minimum, maximum = CLAMPED_INT_BOUNDS[info.field_name]
        try:
            parsed = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default
        return max(minimum, min(maximum, parsed))

    @field_validator(*SLO_THRESHOLD_BOUNDS.keys(), mode="before")
    @classmethod
    def _bounded_threshold(cls, value, info):
        default, minimum, maximum = SLO_THRESHOLD_BOUNDS[info.field_name]
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        if not math.isfinite(parsed) or parsed < minimum or parsed > maximum:
            return default
        return parsed

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://myapp.com" -> ["http://localhost:3000", "https://myapp.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def origin_candidates(self) -> list[str]:
        """Site URLs that are allowed to call mutating endpoints."""
        candidates = [self.SITE_URL, self.PUBLIC_SITE_URL]
        if self.VERCEL_URL:
            candidates.append(f"https://{self.VERCEL_URL}")
        candidates.extend(DEFAULT_ALLOWED_ORIGINS)
        return [c for c in candidates if c]

    @property
    def max_upload_size_bytes(self) -> int:
        """
        Convert MB to bytes for file size validation.
        """
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def pwa_telemetry_active(self) -> bool:
        """Telemetry is only collected when the PWA itself is on."""
        return self.PWA_ENABLED and self.PWA_TELEMETRY_ENABLED

    @property
    def slo_thresholds(self) -> dict[str, float]:
        """SLO targets keyed the way telemetry summaries report them."""
        return {
            "minSamples": self.PWA_SLO_MIN_SAMPLES,
            "lcpP75Ms": self.PWA_SLO_LCP_P75_MS,
            "inpP75Ms": self.PWA_SLO_INP_P75_MS,
            "clsP75": self.PWA_SLO_CLS_P75,
            "fcpP75Ms": self.PWA_SLO_FCP_P75_MS,
            "ttfbP75Ms": self.PWA_SLO_TTFB_P75_MS,
            "installAcceptRateMin": self.PWA_SLO_INSTALL_ACCEPT_RATE_MIN,
            "pushEnableRateMin": self.PWA_SLO_PUSH_ENABLE_RATE_MIN,
            "swRegistrationFailureRateMax": self.PWA_SLO_SW_REGISTRATION_FAILURE_RATE_MAX,
            "poorVitalsRateMax": self.PWA_SLO_POOR_VITALS_RATE_MAX,
        }

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
