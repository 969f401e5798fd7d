"""
Application Configuration
Uses Pydantic Settings for environment-based configuration
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars like POSTGRES_* used by docker-compose
    )

    # Application
    PROJECT_NAME: str = "Shell Auth Service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(
        default="development", pattern="^(development|staging|production|test)$"
    )
    DEBUG: bool = Field(default=False)

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 900  # 15 minutes
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    TOKEN_CLOCK_SKEW_SECONDS: int = 5

    # Argon2id password hashing
    ARGON2_TIME_COST: int = Field(default=3, ge=1)
    ARGON2_MEMORY_COST: int = Field(default=65536, ge=8)  # KiB (64MB)
    ARGON2_PARALLELISM: int = Field(default=4, ge=1)

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(default=["*"])

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False
    DB_TIMEOUT_SECONDS: float = 5.0

    # Redis (shared rate-limit counters)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_TIMEOUT_SECONDS: float = 1.0
    RATE_LIMIT_BACKEND: str = Field(default="redis", pattern="^(redis|memory)$")

    # Rate Limiting
    LOGIN_RATE_LIMIT: int = 5
    LOGIN_RATE_WINDOW_SECONDS: int = 900  # 15 minutes
    REFRESH_RATE_LIMIT: int = 10
    REFRESH_RATE_WINDOW_SECONDS: int = 900  # 15 minutes
    # Reverse proxies in front of the service; their X-Forwarded-For entries
    # are trusted. 0 means the socket peer is the client.
    TRUSTED_PROXY_COUNT: int = Field(default=0, ge=0)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


# Create global settings instance

load_dotenv()
settings = Settings()  # type: ignore[call-arg]


class AuthEventType:
    """Event type constants for the auth_logs audit trail"""

    REGISTER = "register"
    LOGIN = "login"
    FAILED_LOGIN = "failed_login"
    REFRESH = "refresh"
    LOGOUT = "logout"
    REUSE_DETECTED = "reuse_detected"
    PASSWORD_CHANGE = "password_change"
