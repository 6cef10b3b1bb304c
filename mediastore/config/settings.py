"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Components never read these settings themselves; the API dependencies
turn them into immutable SignerConfig / MetaStoreConfig values once and
hand those to each component.

Mock modes enable local development without a bucket or metadata API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    """

    # API Configuration
    api_title: str = "mediastore"
    api_version: str = "v1"

    # Metadata API Configuration
    meta_endpoint: str = Field(
        default="",
        description="Base URL of the metadata API, e.g. https://api.example.com"
    )
    api_media_type: str = Field(
        default="application/vnd.git-lfs+json",
        description="Media type sent in the Accept header to the metadata API"
    )
    hmac_key: str = Field(
        default="",
        description="Shared secret for Content-Hmac body signing. Empty disables signing."
    )
    meta_mock_mode: bool = Field(
        default=False,
        description="Use an in-memory metadata authority instead of the metadata API."
    )

    # S3 Storage Configuration
    s3_access_key_id: str = Field(
        default="",
        description="S3 access key ID"
    )
    s3_secret_access_key: str = Field(
        default="",
        description="S3 secret access key"
    )
    s3_bucket_name: str = Field(
        default="media",
        description="Bucket objects are stored in"
    )
    s3_region: str = Field(
        default="us-east-1",
        description="Region used in SigV4 signatures"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint for S3-compatible stores. None means AWS."
    )
    storage_path_prefix: str = Field(
        default="",
        description="Namespace segment prepended to every object path in the bucket"
    )
    s3_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock storage with mock:// links instead of S3."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        """
        missing = []

        if not self.meta_mock_mode and not self.meta_endpoint:
            missing.append("META_ENDPOINT")

        if not self.s3_mock_mode:
            if not self.s3_access_key_id:
                missing.append("S3_ACCESS_KEY_ID")
            if not self.s3_secret_access_key:
                missing.append("S3_SECRET_ACCESS_KEY")
            if not self.s3_bucket_name:
                missing.append("S3_BUCKET_NAME")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings load once per process and are read-only afterwards.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
