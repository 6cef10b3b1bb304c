"""
Classification of metadata API responses.

Each metadata call maps the backend's status code onto a small set of
outcomes. The synchronizer branches on these enums instead of raw status
codes, and the tests can check every branch against every outcome.
"""

from enum import Enum


class LookupOutcome(Enum):
    """Result of fetching an object's metadata record."""
    FOUND = "found"          # 200, record in body
    NOT_FOUND = "not_found"  # 204, no record yet
    FAILED = "failed"


class ReservationOutcome(Enum):
    """Result of reserving an object with the metadata API."""
    EXISTING = "existing"    # 200, backend already had it
    CREATED = "created"      # 201, newly reserved, client must upload
    FORBIDDEN = "forbidden"  # 403
    FAILED = "failed"


class VerificationOutcome(Enum):
    """Result of confirming a completed transfer."""
    VERIFIED = "verified"
    FORBIDDEN = "forbidden"
    FAILED = "failed"


def classify_lookup(status_code: int) -> LookupOutcome:
    if status_code == 200:
        return LookupOutcome.FOUND
    if status_code == 204:
        return LookupOutcome.NOT_FOUND
    return LookupOutcome.FAILED


def classify_reservation(status_code: int) -> ReservationOutcome:
    if status_code == 403:
        return ReservationOutcome.FORBIDDEN
    if status_code == 200:
        return ReservationOutcome.EXISTING
    if status_code == 201:
        return ReservationOutcome.CREATED
    return ReservationOutcome.FAILED


def classify_verification(status_code: int) -> VerificationOutcome:
    if status_code == 403:
        return VerificationOutcome.FORBIDDEN
    if status_code == 200:
        return VerificationOutcome.VERIFIED
    return VerificationOutcome.FAILED
