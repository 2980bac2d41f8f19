"""Cache configuration settings."""

from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class CacheRedisSettings(BaseSettings):
    """Redis cache backend configuration."""

    host: str | None = None
    port: int = 6379
    password: SecretStr | None = None
    db: int = 0

    model_config = SettingsConfigDict(
        env_prefix="PLAYSTATS_CACHE_REDIS_", env_file=".env", extra="ignore"
    )


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    enable: bool = True
    backend: Literal["memory", "redis"] = "memory"
    namespace: str = "playstats"
    max_key_length: int = 2048

    # Persist entries in background tasks drained at shutdown
    defer_writes: bool = False

    # Set to an empty string to disable the HIT/MISS header
    status_header: str = "X-Cache"

    redis: CacheRedisSettings = Field(default_factory=CacheRedisSettings)

    model_config = SettingsConfigDict(
        env_prefix="PLAYSTATS_CACHE_", env_file=".env", extra="ignore"
    )

    @model_validator(mode="after")
    def check_backend_settings(self) -> Self:
        """Check the selected backend is configured."""
        if self.enable and self.backend == "redis" and not self.redis.host:
            raise ValueError(
                "PLAYSTATS_CACHE_REDIS_HOST must be set when the redis backend is used"
            )
        return self
