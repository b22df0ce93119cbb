"""
Configuration management for the Marketplace Admin Console API.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() enforces a JWT secret and strict CORS in production
    - The token signing secret is never logged
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/admin_console.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Token Service (JWT) ─────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "admin-console-api"
    jwt_access_ttl_minutes: int = 60

    # ── Order Lifecycle ─────────────────────────────────────────────
    # Literal phrase the caller must type before an order is erased
    delete_confirmation_phrase: str = "DELETE"
    repair_rate_limit_per_hour: int = 6

    # ── Users ───────────────────────────────────────────────────────
    # Stored when a suspension/ban is issued without a reason
    empty_reason_placeholder: str = "No reason provided"

    # ── Audit Log ───────────────────────────────────────────────────
    audit_page_size: int = 50

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign admin session tokens."
                )
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (session tokens cannot be issued)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
