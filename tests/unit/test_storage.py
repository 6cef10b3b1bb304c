"""
Unit tests for the object storage redirector and signer.

The redirector is exercised with MockSigner so each test can see exactly
which verb, path, and expiry were requested. Existence checks run against
httpx.MockTransport; S3Signer signs with static test credentials, which
needs no network.
"""

import logging
import re
from datetime import timezone

import httpx
import pytest
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from fastapi import Response

from mediastore.core.models import Meta
from mediastore.infrastructure.storage.client import (
    EXISTS_EXPIRY_SECONDS,
    GET_EXPIRY_SECONDS,
    MockContentStore,
    S3Redirector,
    StorageError,
    create_content_store,
)
from mediastore.infrastructure.storage.signer import MockSigner, S3Signer, SignerConfig

OID = "aa11bb22" * 8
PATH = f"/tenant/aa/11/{OID}"


@pytest.fixture
def signer():
    return MockSigner()


@pytest.fixture
def meta():
    return Meta(oid=OID, size=42, path_prefix="tenant")


def head_transport(status_code):
    """Transport answering every HEAD with the given status."""
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        return httpx.Response(status_code, request=request)
    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Redirector Tests
# ---------------------------------------------------------------------------

class TestRedirectorGet:

    def test_get_redirects_to_signed_url(self, signer, meta):
        response = Response()
        status = S3Redirector(signer).get(meta, response)

        assert status == 302
        assert response.status_code == 302
        assert response.headers["location"] == f"mock://storage{PATH}?verb=GET&expires=300"

    def test_get_signs_for_five_minutes(self, signer, meta):
        S3Redirector(signer).get(meta, Response())
        assert signer.calls == [("GET", PATH, GET_EXPIRY_SECONDS)]
        assert GET_EXPIRY_SECONDS == 300


class TestRedirectorPutLink:

    def test_put_link_headers(self, signer, meta):
        link = S3Redirector(signer).put_link(meta)

        assert link.href == f"mock://storage{PATH}"
        assert set(link.header) == {"Authorization", "x-amz-content-sha256", "x-amz-date"}
        assert link.header["Authorization"] == f"MOCK-SIGV4 PUT {OID}"
        assert link.header["x-amz-content-sha256"] == OID
        assert re.fullmatch(r"\d{8}T\d{6}Z", link.header["x-amz-date"])

    def test_put_link_is_bound_to_oid(self, signer, meta):
        S3Redirector(signer).put_link(meta)
        assert signer.calls == [("PUT", PATH, OID)]

    def test_put_link_is_logged(self, signer, meta, caplog):
        caplog.set_level(logging.DEBUG, logger="mediastore.infrastructure.storage.client")
        S3Redirector(signer).put_link(meta)

        record = next(r for r in caplog.records if r.getMessage() == "Signed upload link")
        assert record.oid == OID


class TestRedirectorExists:

    @pytest.mark.asyncio
    async def test_exists_true_on_200(self, signer, meta):
        redirector = S3Redirector(signer, transport=head_transport(200))
        assert await redirector.exists(meta) is True

    @pytest.mark.asyncio
    async def test_exists_logs_hit(self, signer, meta, caplog):
        caplog.set_level(logging.DEBUG, logger="mediastore.infrastructure.storage.client")
        await S3Redirector(signer, transport=head_transport(200)).exists(meta)

        record = next(r for r in caplog.records if r.getMessage() == "Object in store")
        assert record.oid == OID
        assert record.status == 200

    @pytest.mark.asyncio
    async def test_exists_signs_for_thirty_seconds(self, signer, meta):
        redirector = S3Redirector(signer, transport=head_transport(200))
        await redirector.exists(meta)

        assert signer.calls == [("HEAD", PATH, EXISTS_EXPIRY_SECONDS)]
        assert EXISTS_EXPIRY_SECONDS == 30
        assert EXISTS_EXPIRY_SECONDS != GET_EXPIRY_SECONDS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [403, 404])
    async def test_exists_false_when_absent(self, signer, meta, status_code):
        redirector = S3Redirector(signer, transport=head_transport(status_code))
        assert await redirector.exists(meta) is False

    @pytest.mark.asyncio
    async def test_unexpected_status_raises_with_code(self, signer, meta):
        """A sick store must not look like a missing object."""
        redirector = S3Redirector(signer, transport=head_transport(503))

        with pytest.raises(StorageError, match="503") as exc_info:
            await redirector.exists(meta)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self, signer, meta):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        redirector = S3Redirector(signer, transport=httpx.MockTransport(handler))

        with pytest.raises(StorageError, match="connection refused") as exc_info:
            await redirector.exists(meta)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestPathConsistency:

    @pytest.mark.asyncio
    async def test_all_operations_use_same_path(self, signer, meta):
        redirector = S3Redirector(signer, transport=head_transport(200))

        redirector.get(meta, Response())
        redirector.put_link(meta)
        await redirector.exists(meta)

        assert {path for _, path, _ in signer.calls} == {PATH}


# ---------------------------------------------------------------------------
# Mock Store and Factory Tests
# ---------------------------------------------------------------------------

class TestMockContentStore:

    @pytest.mark.asyncio
    async def test_exists_after_mark_stored(self, meta):
        store = MockContentStore()
        assert await store.exists(meta) is False

        store.mark_stored(OID)
        assert await store.exists(meta) is True

    def test_links_use_mock_scheme(self, meta):
        store = MockContentStore()
        assert store.put_link(meta).href.startswith("mock://")


class TestFactory:

    def test_mock_mode_returns_mock(self):
        assert isinstance(create_content_store(mock_mode=True), MockContentStore)

    def test_requires_signer_outside_mock_mode(self):
        with pytest.raises(ValueError, match="signer is required"):
            create_content_store()

    def test_wraps_signer(self, signer):
        assert isinstance(create_content_store(signer=signer), S3Redirector)


# ---------------------------------------------------------------------------
# S3 Signer Tests
# ---------------------------------------------------------------------------

@pytest.fixture
def s3_signer():
    return S3Signer(SignerConfig(
        access_key_id="AKIDTEST",
        secret_access_key="secret-test-key",
        bucket_name="media",
        region="us-east-1",
        endpoint_url="https://s3.example.test",
    ))


class TestS3Signer:

    def test_query_signing_embeds_expiry(self, s3_signer):
        token = s3_signer.sign_query("GET", PATH, 300)

        assert token.location.startswith(f"https://s3.example.test/media{PATH}?")
        assert "X-Amz-Expires=300" in token.location
        assert "X-Amz-Signature=" in token.location

    def test_head_uses_its_own_expiry(self, s3_signer):
        token = s3_signer.sign_query("HEAD", PATH, 30)
        assert "X-Amz-Expires=30&" in token.location or token.location.endswith("X-Amz-Expires=30")

    def test_unsupported_verb_is_rejected(self, s3_signer):
        with pytest.raises(ValueError, match="Unsupported verb"):
            s3_signer.sign_query("DELETE", PATH, 30)

    def test_header_signing_covers_content_hash(self, s3_signer):
        token = s3_signer.sign_header("PUT", PATH, OID)

        assert token.location == f"https://s3.example.test/media{PATH}"
        assert token.token.startswith("AWS4-HMAC-SHA256 Credential=AKIDTEST/")
        assert "x-amz-content-sha256" in token.token
        assert "x-amz-date" in token.token
        assert token.time.tzinfo == timezone.utc

    def test_put_link_from_real_signer(self, s3_signer, meta):
        link = S3Redirector(s3_signer).put_link(meta)

        assert link.header["x-amz-content-sha256"] == OID
        assert link.header["Authorization"].startswith("AWS4-HMAC-SHA256")
        assert re.fullmatch(r"\d{8}T\d{6}Z", link.header["x-amz-date"])

    def test_header_signature_matches_s3_for_escaped_prefix(self, s3_signer):
        """
        A prefix needing percent-encoding is encoded once in the URL and
        signed over that same path, the way S3 computes its canonical URI.
        """
        link = S3Redirector(s3_signer).put_link(Meta(oid=OID, path_prefix="team space"))
        assert link.href == f"https://s3.example.test/media/team%20space/aa/11/{OID}"

        amz_date = link.header["x-amz-date"]
        request = AWSRequest(
            method="PUT",
            url=link.href,
            headers={"x-amz-content-sha256": OID, "X-Amz-Date": amz_date},
        )
        request.context["timestamp"] = amz_date

        s3_auth = S3SigV4Auth(Credentials("AKIDTEST", "secret-test-key"), "s3", "us-east-1")
        canonical = s3_auth.canonical_request(request)

        assert canonical.split("\n")[1] == f"/media/team%20space/aa/11/{OID}"
        assert "%2520" not in canonical
        assert canonical.split("\n")[-1] == OID

        expected = s3_auth.signature(s3_auth.string_to_sign(request, canonical), request)
        assert link.header["Authorization"].endswith(f"Signature={expected}")
