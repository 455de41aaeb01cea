"""Configuration for the source lifecycle manager."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourcesConfig(BaseSettings):
    """Settings for claiming sources. Override via ``SOURCES_*`` env vars."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCES_",
        case_sensitive=False,
        extra="ignore",
    )

    claim_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Default number of sources handed out per populate claim",
    )
