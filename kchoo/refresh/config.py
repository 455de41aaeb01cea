"""Configuration for the refresh scheduler."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RefreshConfig(BaseSettings):
    """
    Settings for periodic re-admission of standby sources.

    Override via environment variables prefixed with REFRESH_, e.g.
    REFRESH_INTERVAL_SECONDS=900.
    """

    model_config = SettingsConfigDict(
        env_prefix="REFRESH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    interval_seconds: float = Field(
        default=3600.0,
        ge=1.0,
        description="Pause between refresh sweeps",
    )
    backoff_base_delay: float = Field(
        default=1.0,
        gt=0.0,
        description="First retry delay after a transient store error",
    )
    backoff_max_delay: float = Field(
        default=300.0,
        gt=0.0,
        description="Upper bound for retry delays",
    )
