"""
Domain models for object transfer.

These models describe what the server knows about a stored object and
the short-lived descriptors it hands to clients. They have no dependencies
on the object store, the metadata API, or the web framework.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

OID_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class Meta:
    """
    Identity record for a stored object.

    Frozen because an oid never changes once assigned. The oid is also
    the leaf of the object's storage path.

    `existing` is only ever set by the metadata synchronizer: True when the
    metadata API already had a record for this oid at reservation time.
    It is not part of the wire format in either direction.
    """
    oid: str
    size: int = 0
    path_prefix: str = ""
    existing: bool = False

    def __post_init__(self) -> None:
        if not self.oid:
            raise ValueError("Meta requires an oid")
        if self.size < 0:
            raise ValueError("Size cannot be negative")

    @classmethod
    def from_payload(cls, payload: Any, existing: bool = False) -> "Meta":
        """
        Build a Meta from a metadata API record.

        Key matching is case-insensitive, so {"Oid": ...} and {"oid": ...}
        both decode. Unknown keys are ignored.
        """
        if not isinstance(payload, dict):
            raise ValueError("Metadata record must be a JSON object")

        fields = {
            key.lower().replace("_", ""): value
            for key, value in payload.items()
            if isinstance(key, str)
        }

        oid = fields.get("oid")
        if not isinstance(oid, str) or not oid:
            raise ValueError("Metadata record is missing an oid")

        size = fields.get("size", 0)
        if isinstance(size, bool) or not isinstance(size, int):
            raise ValueError("Metadata record size must be an integer")

        path_prefix = fields.get("pathprefix") or ""
        if not isinstance(path_prefix, str):
            raise ValueError("Metadata record path prefix must be a string")

        return cls(oid=oid, size=size, path_prefix=path_prefix, existing=existing)


@dataclass(frozen=True)
class RequestVars:
    """
    Context for one client operation.

    Built by the API layer for each incoming request and discarded when
    the request completes. `authorization` is forwarded to the metadata
    API untouched and may be empty.
    """
    user: str
    repo: str
    oid: str
    size: int = 0
    path_prefix: str = ""
    authorization: str = ""


@dataclass(frozen=True)
class Link:
    """
    Transfer descriptor handed to a client.

    The client must send every header in `header` exactly as given;
    the signed URL only validates with that exact header set.
    """
    href: str
    header: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"href": self.href, "header": dict(self.header)}


@dataclass(frozen=True)
class Token:
    """Output of the delegated-access signer."""
    location: str
    token: str = ""  # Authorization header value for header-style signing
    time: Optional[datetime] = None


def oid_path(oid: str) -> str:
    """Shard an oid two levels deep: /ab/cd/abcd..."""
    if len(oid) < 4:
        raise ValueError(f"Oid too short to shard: {oid!r}")
    return f"/{oid[0:2]}/{oid[2:4]}/{oid}"


def storage_path(meta: Meta) -> str:
    """
    Path of an object inside the object store.

    /<path_prefix>/<oid[0:2]>/<oid[2:4]>/<oid>, with an empty prefix
    collapsing to /<oid[0:2]>/<oid[2:4]>/<oid>.
    """
    segments = [s for s in meta.path_prefix.split("/") if s]
    return "/" + "/".join(segments + [oid_path(meta.oid).lstrip("/")])
