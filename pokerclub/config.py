"""Application configuration."""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings."""

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pokerclub.db",
        description="SQLAlchemy async database URL",
    )
    db_echo: bool = False

    # Redis (only needed for the distributed lock and the event stream)
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL",
    )
    redis_max_connections: int = 20
    redis_socket_timeout: float = 5.0

    # Tournament locking
    lock_backend: Literal["local", "redis"] = Field(
        default="local",
        description="'local' for a single process, 'redis' for several workers",
    )
    lock_timeout_ms: int = Field(
        default=10000,
        description="Lock auto-expire time in ms (redis backend)",
    )
    lock_acquire_timeout_ms: int = Field(
        default=5000,
        description="Max time to wait for a tournament lock in ms",
    )

    # Tournament defaults
    default_seats_per_table: int = Field(
        default=10,
        description="Seats per table when a tournament does not set its own",
    )
    default_capacity: int = Field(default=90, description="Default max players")

    # Event stream
    event_stream_key: str = "pokerclub:tournament:events"
    event_stream_max_len: int = 10000

    @field_validator("default_capacity")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("default_seats_per_table")
    @classmethod
    def validate_seats_per_table(cls, v: int) -> int:
        if v < 2:
            raise ValueError("a table needs at least 2 seats")
        return v

    @model_validator(mode="after")
    def validate_lock_backend(self) -> "Settings":
        """The redis lock backend needs a redis URL."""
        if self.lock_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when lock_backend is 'redis'")

        if self.app_env == "production" and self.log_level == "DEBUG":
            import warnings

            warnings.warn(
                "DEBUG log level in production may expose player data"
            )

        return self

    model_config = SettingsConfigDict(
        env_prefix="POKERCLUB_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
