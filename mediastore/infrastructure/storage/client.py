"""
Object storage redirector.

The server never proxies object bytes. Downloads are answered with a
redirect to a short-lived signed URL, uploads get a signed PUT link the
client uses directly, and existence is checked with a signed HEAD.

Mock mode keeps a set of "stored" oids in memory, enabling API testing
without provisioning a bucket.
"""

import logging
from typing import Optional, Protocol

import httpx
from fastapi import Response

from ...core.models import Link, Meta, storage_path
from .signer import AMZ_DATE_FORMAT, MockSigner, Signer

logger = logging.getLogger(__name__)

GET_EXPIRY_SECONDS = 300
EXISTS_EXPIRY_SECONDS = 30  # HEAD checks are frequent; keep their URLs short-lived

# Statuses a signed HEAD returns for an object that isn't there. S3 answers
# 403 instead of 404 when the credentials lack list permission.
_ABSENT_STATUSES = {403, 404}


class StorageError(Exception):
    """Raised when the object store can't answer an existence check."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentStore(Protocol):
    """
    Retrieve/store/check capability for object bytes.

    Using a protocol means the API layer doesn't care whether objects
    live in S3, another S3-compatible store, or memory.
    """

    def get(self, meta: Meta, response: Response) -> int:
        """Point the response at the object's bytes. Returns the status used."""
        ...

    def put_link(self, meta: Meta) -> Link:
        """Link the client uses to upload the object's bytes."""
        ...

    async def exists(self, meta: Meta) -> bool:
        """True if the object's bytes are in the store."""
        ...


class S3Redirector:
    """
    Content store backed by an S3-compatible bucket.

    All paths come from storage_path(), so get, put_link and exists
    always address the same key for the same object.
    """

    def __init__(
        self,
        signer: Signer,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._signer = signer
        self._transport = transport

    def get(self, meta: Meta, response: Response) -> int:
        """Redirect to a signed GET URL valid for five minutes."""
        token = self._signer.sign_query("GET", storage_path(meta), GET_EXPIRY_SECONDS)

        response.status_code = 302
        response.headers["Location"] = token.location

        logger.debug("Redirecting download", extra={"oid": meta.oid, "status": 302})
        return 302

    def put_link(self, meta: Meta) -> Link:
        """
        Signed upload link bound to the object's content hash.

        x-amz-content-sha256 is part of the signature, so the store refuses
        an upload whose body doesn't hash to the oid even though the URL
        itself is valid.
        """
        token = self._signer.sign_header("PUT", storage_path(meta), meta.oid)

        header = {
            "Authorization": token.token,
            "x-amz-content-sha256": meta.oid,
            "x-amz-date": token.time.strftime(AMZ_DATE_FORMAT),
        }

        logger.debug("Signed upload link", extra={"oid": meta.oid})
        return Link(href=token.location, header=header)

    async def exists(self, meta: Meta) -> bool:
        """
        HEAD the object through a 30 second signed URL.

        200 means present. 404 and 403 mean absent. Transport failures and
        any other status raise StorageError, so callers never mistake an
        unhealthy store for a missing object.
        """
        token = self._signer.sign_query("HEAD", storage_path(meta), EXISTS_EXPIRY_SECONDS)

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.head(token.location)
        except httpx.HTTPError as e:
            logger.error(
                "Existence check failed",
                extra={"oid": meta.oid, "error": str(e)}
            )
            raise StorageError(f"Existence check failed: {e}") from e

        if response.status_code == 200:
            logger.debug("Object in store", extra={"oid": meta.oid, "status": 200})
            return True

        if response.status_code in _ABSENT_STATUSES:
            logger.debug(
                "Object not in store",
                extra={"oid": meta.oid, "status": response.status_code}
            )
            return False

        logger.warning(
            "Unexpected existence check status",
            extra={"oid": meta.oid, "status": response.status_code}
        )
        raise StorageError(
            f"Existence check returned status: {response.status_code}",
            status_code=response.status_code,
        )


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockContentStore:
    """
    In-memory content store.

    Links point at mock:// URLs, so nothing can actually be uploaded;
    call mark_stored() to simulate a client finishing an upload.
    """

    def __init__(self, signer: Optional[MockSigner] = None) -> None:
        self._redirector = S3Redirector(signer or MockSigner())
        self._stored: set[str] = set()
        logger.info("Initialized mock content store (in-memory)")

    def mark_stored(self, oid: str) -> None:
        self._stored.add(oid)

    def get(self, meta: Meta, response: Response) -> int:
        return self._redirector.get(meta, response)

    def put_link(self, meta: Meta) -> Link:
        return self._redirector.put_link(meta)

    async def exists(self, meta: Meta) -> bool:
        return meta.oid in self._stored


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_content_store(
    signer: Optional[Signer] = None,
    mock_mode: bool = False,
) -> ContentStore:
    """
    Create a content store based on configuration.

    Args:
        signer: Signer for the bucket (required if not mock_mode)
        mock_mode: If True, return the in-memory store

    Returns:
        ContentStore implementation (S3 or Mock)
    """
    if mock_mode:
        return MockContentStore()

    if signer is None:
        raise ValueError("signer is required when not in mock mode")

    return S3Redirector(signer)
