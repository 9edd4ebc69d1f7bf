"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Bargain Market"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/bargain.db"

    # Bargaining rules
    MAX_DISCOUNT_FRACTION: float = 0.05  # 5% below the listing price at most
    MAX_TURNS_PER_PARTICIPANT: int = 2  # messages per role per session
    SESSION_TTL_HOURS: int = 24
    COUNTER_OFFER_STEP: float = 0.6  # scripted seller moves 60% of the gap

    # Identity (bearer tokens issued by the identity provider)
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    @field_validator("MAX_DISCOUNT_FRACTION")
    @classmethod
    def validate_discount(cls, v: float) -> float:
        """Discount must leave a non-empty, positive price window."""
        if not 0.0 < v < 1.0:
            raise ValueError("MAX_DISCOUNT_FRACTION must be between 0 and 1 (exclusive)")
        return v

    @field_validator("MAX_TURNS_PER_PARTICIPANT")
    @classmethod
    def validate_turns(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_TURNS_PER_PARTICIPANT must be at least 1")
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"
    LOGS_DIR: str = "./data/logs/transcripts"
    LOG_RETENTION_DAYS: int = 7
    AUTO_SAVE_TRANSCRIPTS: bool = True

    # Expiry sweeper (0 disables; expiry is still enforced on every read)
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 300

    # Realtime gateway bounds
    WS_MAX_CONNECTIONS: int = 1000
    WS_MAX_ROOMS_PER_CONNECTION: int = 20

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Singleton instance
settings = Settings()
