"""
Unit tests for the transfer domain models.

These tests verify the core logic without touching external services
(no object store, no metadata API, no web framework).
"""

import pytest

from mediastore.core.models import (
    Link,
    Meta,
    RequestVars,
    oid_path,
    storage_path,
)
from mediastore.core.outcomes import (
    LookupOutcome,
    ReservationOutcome,
    VerificationOutcome,
    classify_lookup,
    classify_reservation,
    classify_verification,
)

OID = "aa11bb22" * 8


# ---------------------------------------------------------------------------
# Storage Path Tests
# ---------------------------------------------------------------------------

class TestStoragePath:
    """Tests for object path sharding."""

    def test_oid_path_shards_two_levels(self):
        assert oid_path(OID) == f"/aa/11/{OID}"

    def test_storage_path_includes_prefix(self):
        meta = Meta(oid=OID, path_prefix="tenant")
        assert storage_path(meta) == f"/tenant/aa/11/{OID}"

    def test_empty_prefix_collapses(self):
        """No prefix means no empty segment in the path."""
        assert storage_path(Meta(oid=OID)) == f"/aa/11/{OID}"

    def test_slashes_in_prefix_are_normalized(self):
        meta = Meta(oid=OID, path_prefix="/org/team/")
        assert storage_path(meta) == f"/org/team/aa/11/{OID}"

    @pytest.mark.parametrize("oid", [
        "0" * 64,
        "ffee" + "0" * 60,
        "0123456789abcdef" * 4,
    ])
    def test_path_form_holds_for_any_oid(self, oid):
        path = storage_path(Meta(oid=oid, path_prefix="p"))
        assert path == f"/p/{oid[0:2]}/{oid[2:4]}/{oid}"

    def test_short_oid_is_rejected(self):
        with pytest.raises(ValueError, match="too short"):
            oid_path("abc")


# ---------------------------------------------------------------------------
# Meta Tests
# ---------------------------------------------------------------------------

class TestMeta:
    """Tests for the Meta record."""

    def test_meta_is_immutable(self):
        meta = Meta(oid=OID, size=42)
        with pytest.raises(AttributeError):
            meta.oid = "other"

    def test_negative_size_is_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            Meta(oid=OID, size=-1)

    def test_from_payload_matches_keys_case_insensitively(self):
        meta = Meta.from_payload({"Oid": OID, "Size": 42, "PathPrefix": "tenant"})
        assert meta == Meta(oid=OID, size=42, path_prefix="tenant")

        meta = Meta.from_payload({"oid": OID, "size": 7, "path_prefix": "x"})
        assert meta == Meta(oid=OID, size=7, path_prefix="x")

    def test_from_payload_ignores_client_existence_flag(self):
        """Only the synchronizer decides whether an object existed."""
        meta = Meta.from_payload({"oid": OID, "size": 1, "existing": True})
        assert meta.existing is False

    def test_from_payload_rejects_missing_oid(self):
        with pytest.raises(ValueError, match="oid"):
            Meta.from_payload({"size": 1})

    def test_from_payload_rejects_non_integer_size(self):
        with pytest.raises(ValueError, match="size"):
            Meta.from_payload({"oid": OID, "size": "42"})

    def test_from_payload_rejects_non_object(self):
        with pytest.raises(ValueError, match="JSON object"):
            Meta.from_payload([OID])


class TestRequestVars:

    def test_defaults_are_empty(self):
        v = RequestVars(user="u", repo="r", oid=OID)
        assert v.size == 0
        assert v.path_prefix == ""
        assert v.authorization == ""


class TestLink:

    def test_to_dict_shape(self):
        link = Link(href="https://store/obj", header={"x-amz-date": "20240101T000000Z"})
        assert link.to_dict() == {
            "href": "https://store/obj",
            "header": {"x-amz-date": "20240101T000000Z"},
        }

    def test_header_defaults_to_empty(self):
        assert Link(href="https://x").to_dict()["header"] == {}


# ---------------------------------------------------------------------------
# Response Classification Tests
# ---------------------------------------------------------------------------

class TestOutcomes:
    """Every metadata status maps to exactly one outcome."""

    @pytest.mark.parametrize("status,expected", [
        (200, LookupOutcome.FOUND),
        (204, LookupOutcome.NOT_FOUND),
        (201, LookupOutcome.FAILED),
        (404, LookupOutcome.FAILED),
        (500, LookupOutcome.FAILED),
    ])
    def test_classify_lookup(self, status, expected):
        assert classify_lookup(status) is expected

    @pytest.mark.parametrize("status,expected", [
        (200, ReservationOutcome.EXISTING),
        (201, ReservationOutcome.CREATED),
        (403, ReservationOutcome.FORBIDDEN),
        (204, ReservationOutcome.FAILED),
        (500, ReservationOutcome.FAILED),
    ])
    def test_classify_reservation(self, status, expected):
        assert classify_reservation(status) is expected

    @pytest.mark.parametrize("status,expected", [
        (200, VerificationOutcome.VERIFIED),
        (403, VerificationOutcome.FORBIDDEN),
        (201, VerificationOutcome.FAILED),
        (404, VerificationOutcome.FAILED),
    ])
    def test_classify_verification(self, status, expected):
        assert classify_verification(status) is expected
