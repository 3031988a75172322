"""
Configuration.

Settings reads DATAHUB_* environment variables (and .env) once at import and
only supplies defaults. A Hub takes an explicit HubConfig at construction and
never consults the environment afterwards.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DATAHUB_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Pool
    POOL_SIZE: int = 10  # used when use_pool=True and no size is passed
    POOL_ACQUIRE_TIMEOUT: float | None = 30.0  # None = wait forever, 0 = fail fast
    POOL_MAX_AGE_SEC: float = 600.0  # 10 minutes
    POOL_PING_IDLE_THRESHOLD: float = 30.0  # ping idle connections older than this
    POOL_PREWARM: int = 1

    # Backend connections
    CONNECT_TIMEOUT: int = 10
    STATEMENT_TIMEOUT: int | None = None  # seconds; None or 0 disables


settings = Settings()  # type: ignore


class HubConfig(BaseModel):
    """Per-hub configuration passed to ``Hub(...)``."""

    model_config = ConfigDict(frozen=True)

    pool_size: int = Field(default=10, ge=1)
    acquire_timeout: float | None = Field(default=30.0, ge=0)
    max_age: float = Field(default=600.0, gt=0)
    ping_idle_threshold: float = Field(default=30.0, ge=0)
    pool_prewarm: int = Field(default=1, ge=0)

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "HubConfig":
        s = source or settings
        return cls(
            pool_size=s.POOL_SIZE,
            acquire_timeout=s.POOL_ACQUIRE_TIMEOUT,
            max_age=s.POOL_MAX_AGE_SEC,
            ping_idle_threshold=s.POOL_PING_IDLE_THRESHOLD,
            pool_prewarm=s.POOL_PREWARM,
        )
