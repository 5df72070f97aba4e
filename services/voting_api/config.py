"""Configuration management for the Voting API service."""
from datetime import datetime
from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ballot_engine import ElectionWindow


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service configuration
    SERVICE_NAME: str = "voting-api"
    API_VERSION: str = "v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Election window, immutable for the life of the instance
    ELECTION_STARTS_AT: datetime = datetime.fromisoformat("2025-11-23T18:00:00+05:30")
    ELECTION_ENDS_AT: datetime = datetime.fromisoformat("2025-11-23T20:00:00+05:30")
    ELIGIBLE_VOTERS: Optional[int] = None

    # Store selection
    STORE_BACKEND: Literal["postgres", "redis", "memory"] = "postgres"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # PostgreSQL configuration
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "election_db"
    POSTGRES_USER: str = "election_user"
    POSTGRES_PASSWORD: str = "election_pass"
    POSTGRES_POOL_MIN_SIZE: int = 10
    POSTGRES_POOL_MAX_SIZE: int = 20

    # Redis configuration
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_KEY_PREFIX: str = "election"

    # Voter sessions
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 180

    # Rate limiting
    RATE_LIMIT: str = "100/second"
    RATE_LIMIT_ENABLED: bool = True

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    @model_validator(mode="after")
    def check_window(self):
        """Refuse to start with an empty or inverted election window."""
        ElectionWindow(self.ELECTION_STARTS_AT, self.ELECTION_ENDS_AT)
        return self

    @property
    def election_window(self) -> ElectionWindow:
        return ElectionWindow(self.ELECTION_STARTS_AT, self.ELECTION_ENDS_AT)

    @property
    def postgres_dsn(self) -> str:
        """Generate PostgreSQL connection string."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        """Generate Redis connection URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
