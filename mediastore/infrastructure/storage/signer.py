"""
Delegated-access signing for the object store.

The signer turns (verb, path, expiry) into a time-limited URL, or
(verb, path, content hash) into a URL plus the Authorization header the
client has to replay. Signing is a local computation; nothing here talks
to the network.

Two signing styles:
- Query signing: the proof lives in the URL (used for GET and HEAD).
- Header signing: the proof lives in Authorization/x-amz-date headers and
  covers x-amz-content-sha256, so the store rejects any body whose hash
  differs from the declared content id (used for PUT).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.config import Config
from botocore.credentials import Credentials

from ...core.models import Token

logger = logging.getLogger(__name__)

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# boto3 client methods used for query signing
_CLIENT_METHODS = {
    "GET": "get_object",
    "HEAD": "head_object",
    "PUT": "put_object",
}


@dataclass(frozen=True)
class SignerConfig:
    """Credentials and location of the bucket objects are signed against."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None


class Signer(Protocol):
    """Issues delegated-access tokens for one object path."""

    def sign_query(self, verb: str, path: str, expiry_seconds: int) -> Token:
        """Return a token whose location is a self-contained signed URL."""
        ...

    def sign_header(self, verb: str, path: str, content_sha256: str) -> Token:
        """Return a token bound to a content hash, with header auth."""
        ...


class ContentHashSigV4Auth(SigV4Auth):
    """
    SigV4 for S3 with a caller-declared payload hash.

    Unlike S3SigV4Auth, the x-amz-content-sha256 header already on the
    request is signed as-is rather than replaced by the hash of the (empty)
    request body. Like S3SigV4Auth, the URL path is used verbatim as the
    canonical URI: S3 does not encode it a second time.
    """

    def _normalize_url_path(self, path):
        return path


class S3Signer:
    """
    SigV4 signer for S3-compatible stores.

    Query signing goes through boto3's presigned URL support. Header
    signing uses botocore's SigV4Auth directly because presigned URLs
    cannot bind a payload hash the client has to declare.
    """

    def __init__(self, config: SignerConfig) -> None:
        self._config = config
        self._credentials = Credentials(
            access_key=config.access_key_id,
            secret_key=config.secret_access_key,
        )

        boto_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        )

        self._s3_client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 signer",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url or "aws",
                "region": config.region,
            }
        )

    def sign_query(self, verb: str, path: str, expiry_seconds: int) -> Token:
        client_method = _CLIENT_METHODS.get(verb.upper())
        if client_method is None:
            raise ValueError(f"Unsupported verb for query signing: {verb}")

        url = self._s3_client.generate_presigned_url(
            client_method,
            Params={
                "Bucket": self._config.bucket_name,
                "Key": _object_key(path),
            },
            ExpiresIn=expiry_seconds,
        )

        logger.debug(
            "Signed query",
            extra={"verb": verb, "path": path, "expiry_seconds": expiry_seconds}
        )

        return Token(location=url, time=datetime.now(timezone.utc))

    def sign_header(self, verb: str, path: str, content_sha256: str) -> Token:
        request = AWSRequest(
            method=verb.upper(),
            url=self._object_url(path),
            headers={"x-amz-content-sha256": content_sha256},
        )

        ContentHashSigV4Auth(self._credentials, "s3", self._config.region).add_auth(request)

        signed_at = datetime.strptime(
            request.headers["X-Amz-Date"], AMZ_DATE_FORMAT
        ).replace(tzinfo=timezone.utc)

        logger.debug("Signed header", extra={"verb": verb, "path": path})

        return Token(
            location=request.url,
            token=request.headers["Authorization"],
            time=signed_at,
        )

    def _object_url(self, path: str) -> str:
        """
        Path-style URL of an object, matching the boto3 client's addressing.

        The key is percent-encoded here, once; ContentHashSigV4Auth signs
        this path without re-encoding it.
        """
        base = self._config.endpoint_url or f"https://s3.{self._config.region}.amazonaws.com"
        key = quote(_object_key(path), safe="/~")
        return f"{base.rstrip('/')}/{self._config.bucket_name}/{key}"


# ---------------------------------------------------------------------------
# Mock Signer for Local Development
# ---------------------------------------------------------------------------

class MockSigner:
    """
    Signer that produces mock:// URLs.

    Enables running the transfer API without object store credentials.
    Every call is recorded in `calls` as (verb, path, expiry_or_content_id)
    so tests can check what was requested.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object]] = []
        logger.info("Initialized mock signer")

    def sign_query(self, verb: str, path: str, expiry_seconds: int) -> Token:
        self.calls.append((verb, path, expiry_seconds))
        return Token(
            location=f"mock://storage{path}?verb={verb}&expires={expiry_seconds}",
            time=datetime.now(timezone.utc),
        )

    def sign_header(self, verb: str, path: str, content_sha256: str) -> Token:
        self.calls.append((verb, path, content_sha256))
        signed_at = datetime.now(timezone.utc).replace(microsecond=0)
        return Token(
            location=f"mock://storage{path}",
            token=f"MOCK-SIGV4 {verb} {content_sha256}",
            time=signed_at,
        )


def _object_key(path: str) -> str:
    return path.lstrip("/")
