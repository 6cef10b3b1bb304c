"""
FastAPI dependency injection.

Dependencies provide the content store, metadata store, and settings to
route handlers. Routes never build their own clients, so tests swap them
out through app.dependency_overrides.
"""

import logging
from typing import Annotated

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..infrastructure.metadata.client import MetaStore, MetaStoreConfig, create_meta_store
from ..infrastructure.storage.client import ContentStore, create_content_store
from ..infrastructure.storage.signer import S3Signer, SignerConfig

logger = logging.getLogger(__name__)

# Global mock instances (shared across requests so state persists in dev)
_mock_content_store = None
_mock_meta_store = None


def get_content_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ContentStore:
    """
    Provide the object store redirector.

    In mock mode, we reuse the same store across requests so that
    simulated uploads persist during the session.
    """
    global _mock_content_store

    if settings.s3_mock_mode:
        if _mock_content_store is None:
            _mock_content_store = create_content_store(mock_mode=True)
            logger.info("Created shared mock content store for session")
        return _mock_content_store

    signer = S3Signer(SignerConfig(
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        bucket_name=settings.s3_bucket_name,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
    ))
    return create_content_store(signer=signer)


def get_meta_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> MetaStore:
    """Provide the metadata store (HTTP client or shared in-memory mock)."""
    global _mock_meta_store

    if settings.meta_mock_mode:
        if _mock_meta_store is None:
            _mock_meta_store = create_meta_store(mock_mode=True)
            logger.info("Created shared mock metadata store for session")
        return _mock_meta_store

    config = MetaStoreConfig(
        endpoint=settings.meta_endpoint,
        media_type=settings.api_media_type,
        hmac_key=settings.hmac_key,
    )
    return create_meta_store(config=config)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

ContentStoreDep = Annotated[ContentStore, Depends(get_content_store)]
MetaStoreDep = Annotated[MetaStore, Depends(get_meta_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
