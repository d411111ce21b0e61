"""
Configuration settings for the presence hub.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find the .env file in potential locations."""
    # Check environment variable first
    env_file = os.getenv("ENV_FILE")
    if env_file and os.path.exists(env_file):
        return env_file

    possible_locations = [
        # Repository root (local development)
        os.path.join(Path(__file__).parent.parent.parent.parent.parent, ".env"),
        # Docker container root
        "/app/.env",
        # Current directory
        ".env",
    ]

    for location in possible_locations:
        if os.path.exists(location):
            return location

    return possible_locations[0]


class Settings(BaseSettings):
    """Presence hub configuration settings."""

    # Service information
    PROJECT_NAME: str = "Companion Presence Hub"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    # Environment
    ENV: str = Field(
        default="development",
        description="Environment (development, staging, production)"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # CORS settings
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        description="CORS allowed origins"
    )

    # Security settings
    JWT_SECRET_KEY: SecretStr = Field(
        default=...,
        description="Secret used to verify the access tokens clients connect with"
    )
    JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )

    # Database settings
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default=SecretStr("postgres"))
    POSTGRES_HOST: str = Field(default="postgres_db")
    POSTGRES_PORT: str = Field(default="5432")
    POSTGRES_DB: str = Field(default="companion")
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the POSTGRES_* settings"
    )
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")

    # Hub settings
    SERVER_VERSION: int = Field(
        default=4,
        description="Protocol version reported to every connecting client"
    )
    UID_LENGTH: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Length of generated user identifiers"
    )
    SYSTEM_INFO_REFRESH_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="How often the system info snapshot is recomputed"
    )

    # Socket.IO settings
    SOCKET_IO_HOST: str = "0.0.0.0"
    SOCKET_IO_PORT: int = 8000
    SOCKET_IO_PATH: str = "socket.io"
    SOCKET_IO_PING_TIMEOUT: int = 5
    SOCKET_IO_PING_INTERVAL: int = 25
    SOCKET_IO_MAX_HTTP_BUFFER_SIZE: int = 1000000  # 1MB

    @field_validator("ENV")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"ENV must be one of {allowed_envs}")
        return v

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_cors_origins(cls, v: List[str], info: Any) -> List[str]:
        if info.data.get("ENV") == "production":
            if "*" in v:
                raise ValueError(
                    "Wildcard CORS origin not allowed in production")
            if any(not origin.startswith("https://") for origin in v):
                raise ValueError("Production CORS origins must use HTTPS")
        return v

    @field_validator("JWT_SECRET_KEY")
    @classmethod
    def validate_jwt_secret(cls, v: SecretStr) -> SecretStr:
        if len(v.get_secret_value()) < 32:
            raise ValueError(
                "JWT_SECRET_KEY must be at least 32 characters long")
        return v

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD.get_secret_value()}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_socket_io_config(settings: Settings) -> Dict[str, Any]:
    """Get Socket.IO server configuration."""
    return {
        "async_mode": "asgi",
        "cors_allowed_origins": settings.CORS_ORIGINS,
        "ping_timeout": settings.SOCKET_IO_PING_TIMEOUT,
        "ping_interval": settings.SOCKET_IO_PING_INTERVAL,
        "max_http_buffer_size": settings.SOCKET_IO_MAX_HTTP_BUFFER_SIZE,
    }
