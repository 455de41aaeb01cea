"""Configuration for the image ingestion ledger."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImagesConfig(BaseSettings):
    """Settings for handing images to downloaders. Override via ``IMAGES_*``."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGES_",
        case_sensitive=False,
        extra="ignore",
    )

    claim_batch_size: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Default number of images leased per claim",
    )
    lease_seconds: int = Field(
        default=900,
        ge=1,
        description="How long a claimed image stays reserved for one downloader",
    )
