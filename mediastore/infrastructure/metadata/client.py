"""
Metadata API client.

The metadata API is the authority on which objects exist, how big they
are, and whether their upload has been verified. This module fetches,
reserves, and verifies records against it over plain HTTP.

Each call maps the response status onto an outcome from core.outcomes
and branches on that. Transport errors propagate unchanged; nothing is
retried.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ...core.models import Meta, RequestVars
from ...core.outcomes import (
    LookupOutcome,
    ReservationOutcome,
    VerificationOutcome,
    classify_lookup,
    classify_reservation,
    classify_verification,
)

logger = logging.getLogger(__name__)

HMAC_HEADER = "Content-Hmac"


class MetadataError(Exception):
    """Base class for metadata API failures."""
    pass


class MetadataAuthError(MetadataError):
    """The metadata API refused the forwarded credentials (403)."""

    def __init__(self) -> None:
        super().__init__("metadata API denied access")


class MetadataStatusError(MetadataError):
    """The metadata API answered with a status this client doesn't handle."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"status: {status_code}")
        self.status_code = status_code


class MetadataDecodeError(MetadataError):
    """The metadata API returned a body that isn't a metadata record."""
    pass


@dataclass(frozen=True)
class MetaStoreConfig:
    """
    Where the metadata API lives and how to talk to it.

    Built once at startup and shared read-only by every request.
    An empty hmac_key disables body signing.
    """
    endpoint: str
    media_type: str = "application/vnd.git-lfs+json"
    hmac_key: str = ""


class MetaStore(Protocol):
    """Fetch/reserve/verify capability for object metadata."""

    async def get(self, v: RequestVars) -> Meta:
        ...

    async def send(self, v: RequestVars) -> Meta:
        ...

    async def verify(self, v: RequestVars) -> None:
        ...


def signed_body(v: RequestVars, hmac_key: str) -> tuple[bytes, dict[str, str]]:
    """
    Serialize the reservation body and sign it.

    The body only carries Oid and Size; the metadata API owns everything
    else. The HMAC covers these exact bytes, so callers must send them
    as-is rather than re-encoding.
    """
    body = json.dumps({"Oid": v.oid, "Size": v.size}, separators=(",", ":")).encode("utf-8")

    headers: dict[str, str] = {}
    if hmac_key:
        digest = hmac.new(hmac_key.encode("utf-8"), body, hashlib.sha256).hexdigest()
        headers[HMAC_HEADER] = f"sha256 {digest}"

    return body, headers


def _decode_meta(response: httpx.Response, existing: bool = False) -> Meta:
    try:
        return Meta.from_payload(response.json(), existing=existing)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        raise MetadataDecodeError(f"Invalid metadata record: {e}") from e


class HttpMetaStore:
    """
    Metadata store backed by the metadata API.

    A fresh httpx.AsyncClient is opened per call; pass `transport` to
    point it at something other than the network (tests use
    httpx.MockTransport).
    """

    def __init__(
        self,
        config: MetaStoreConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def meta_link(self, v: RequestVars) -> str:
        return f"{self._config.endpoint.rstrip('/')}/{v.user}/{v.repo}/media/blobs/{v.oid}"

    def verify_link(self, v: RequestVars) -> str:
        return f"{self._config.endpoint.rstrip('/')}/{v.user}/{v.repo}/media/blobs/verify/{v.oid}"

    def _headers(self, v: RequestVars) -> dict[str, str]:
        headers = {"Accept": self._config.media_type}
        if v.authorization:
            headers["Authorization"] = v.authorization
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                return await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error(
                "Metadata request failed",
                extra={"method": method, "url": url, "error": str(e)}
            )
            raise

    async def _signed_post(self, url: str, v: RequestVars) -> httpx.Response:
        body, headers = signed_body(v, self._config.hmac_key)
        headers.update(self._headers(v))
        headers["Content-Type"] = "application/json"
        return await self._request("POST", url, content=body, headers=headers)

    async def get(self, v: RequestVars) -> Meta:
        """
        Fetch the metadata record for v.oid.

        A 204 means the API has no record yet; the Meta the client asked
        about is returned as-is so a first-time download can proceed.
        """
        response = await self._request("GET", self.meta_link(v), headers=self._headers(v))
        outcome = classify_lookup(response.status_code)

        logger.info(
            "Metadata lookup",
            extra={"oid": v.oid, "status": response.status_code, "outcome": outcome.value}
        )

        if outcome is LookupOutcome.FOUND:
            return _decode_meta(response)

        if outcome is LookupOutcome.NOT_FOUND:
            return Meta(oid=v.oid, size=v.size, path_prefix=v.path_prefix)

        raise MetadataStatusError(response.status_code)

    async def send(self, v: RequestVars) -> Meta:
        """
        Reserve v.oid with the metadata API.

        The returned Meta has existing=True when the API already had the
        object (200) and existing=False when it was just reserved (201).
        """
        response = await self._signed_post(self.meta_link(v), v)
        outcome = classify_reservation(response.status_code)

        logger.info(
            "Metadata reservation",
            extra={"oid": v.oid, "status": response.status_code, "outcome": outcome.value}
        )

        if outcome is ReservationOutcome.FORBIDDEN:
            raise MetadataAuthError()

        if outcome in (ReservationOutcome.EXISTING, ReservationOutcome.CREATED):
            return _decode_meta(response, existing=outcome is ReservationOutcome.EXISTING)

        raise MetadataStatusError(response.status_code)

    async def verify(self, v: RequestVars) -> None:
        """Tell the metadata API that v.oid's bytes have been stored."""
        response = await self._signed_post(self.verify_link(v), v)
        outcome = classify_verification(response.status_code)

        logger.info(
            "Metadata verification",
            extra={"oid": v.oid, "status": response.status_code, "outcome": outcome.value}
        )

        if outcome is VerificationOutcome.FORBIDDEN:
            raise MetadataAuthError()

        if outcome is VerificationOutcome.FAILED:
            raise MetadataStatusError(response.status_code)


# ---------------------------------------------------------------------------
# Mock Metadata Store for Local Development
# ---------------------------------------------------------------------------

class MockMetaStore:
    """
    In-memory metadata authority.

    Follows the same outcomes as the real API: the first send for an oid
    reserves it, later sends report it as existing, and verifying an oid
    nobody reserved fails with status 404. Users in `forbidden_users` get
    MetadataAuthError on send and verify.
    """

    def __init__(self, forbidden_users: Optional[set[str]] = None) -> None:
        self._records: dict[tuple[str, str, str], Meta] = {}
        self.verified: set[tuple[str, str, str]] = set()
        self._forbidden_users = forbidden_users or set()
        logger.info("Initialized mock metadata store (in-memory)")

    @staticmethod
    def _key(v: RequestVars) -> tuple[str, str, str]:
        return (v.user, v.repo, v.oid)

    async def get(self, v: RequestVars) -> Meta:
        record = self._records.get(self._key(v))
        if record is None:
            return Meta(oid=v.oid, size=v.size, path_prefix=v.path_prefix)
        return record

    async def send(self, v: RequestVars) -> Meta:
        if v.user in self._forbidden_users:
            raise MetadataAuthError()

        record = self._records.get(self._key(v))
        if record is not None:
            return Meta(oid=record.oid, size=record.size, path_prefix=record.path_prefix, existing=True)

        record = Meta(oid=v.oid, size=v.size, path_prefix=v.path_prefix)
        self._records[self._key(v)] = record
        return record

    async def verify(self, v: RequestVars) -> None:
        if v.user in self._forbidden_users:
            raise MetadataAuthError()

        if self._key(v) not in self._records:
            raise MetadataStatusError(404)

        self.verified.add(self._key(v))


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_meta_store(
    config: Optional[MetaStoreConfig] = None,
    mock_mode: bool = False,
) -> MetaStore:
    """
    Create a metadata store based on configuration.

    Args:
        config: Metadata API configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory store

    Returns:
        MetaStore implementation (HTTP or Mock)
    """
    if mock_mode:
        return MockMetaStore()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return HttpMetaStore(config)
