"""Runtime configuration read from FLEET_BUILD_* environment variables."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration with environment variable overrides.

    Examples:
        export FLEET_BUILD_API_TOKEN=...
        export FLEET_BUILD_BLOB_CONCURRENCY=4
        export FLEET_BUILD_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLEET_BUILD_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_url: str = "https://api.balena-cloud.com"
    builder_url: str = "https://builder.balena-cloud.com"
    api_token: Optional[str] = None

    # seconds; builds stream for a long time so the builder gets no total cap
    request_timeout: int = Field(default=30, gt=0)
    blob_concurrency: Optional[int] = Field(default=None, gt=0)
    insecure_registry: bool = False

    log_level: str = "INFO"
