# app/core/config.py
import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from .env"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///./rbac.db"
    DATABASE_TEST_URL: str = "sqlite+aiosqlite:///:memory:"

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database URL is safe for current environment"""
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env == "production" and ("localhost" in v or v.startswith("sqlite")):
            raise ValueError("Production environment cannot use a local database")
        return v

    # === Redis / authorization cache ===
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_BACKEND: str = "redis"    # 'redis' | 'memory'
    REDIS_KEY_PREFIX: str = "rbac:"
    REDIS_SOCKET_TIMEOUT: float = 2.0
    AUTH_CACHE_TTL_SECONDS: int = 300

    # === CORS ===
    ALLOWED_ORIGINS: List[str] = ["*"]
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # === System ===
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # === Actor headers (set by the authenticating gateway) ===
    ACTOR_ID_HEADER: str = "X-Actor-Id"
    ACTOR_ELEVATED_HEADER: str = "X-Actor-Elevated"


# Create a global settings instance
settings = Settings()
