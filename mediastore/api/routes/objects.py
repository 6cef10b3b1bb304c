"""
Object transfer endpoints.

The transfer flow:
1. Client POSTs {oid, size} -> metadata API reserves the object
2. New objects get a signed upload link plus a verify link
3. Client PUTs bytes straight to the object store
4. Client POSTs to the verify link -> we check the store, then confirm
   with the metadata API
5. Downloads redirect to a signed GET URL

The server never touches object bytes; it only signs links and keeps
the metadata API in sync.
"""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Header, HTTPException, Path, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.models import OID_PATTERN, Link, Meta, RequestVars
from ...infrastructure.metadata.client import MetadataAuthError, MetadataError, MetaStore
from ...infrastructure.storage.client import StorageError
from ..dependencies import ContentStoreDep, MetaStoreDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()

OidPath = Annotated[str, Path(pattern=OID_PATTERN.pattern)]
AuthorizationHeader = Annotated[str, Header()]


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ObjectRequest(BaseModel):
    """An object the client wants to upload or has finished uploading."""
    oid: str = Field(pattern=OID_PATTERN.pattern, description="SHA-256 of the object bytes")
    size: int = Field(ge=0, description="Object size in bytes")


class ObjectResponse(BaseModel):
    """Reservation result with the links the client should follow next."""
    model_config = ConfigDict(populate_by_name=True)

    oid: str
    size: int
    links: dict[str, dict] = Field(alias="_links")


class VerifyResponse(BaseModel):
    oid: str
    verified: bool = True


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _auth_required() -> HTTPException:
    """401 asking the client for credentials the metadata API accepts."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credentials rejected by metadata API",
        headers={"WWW-Authenticate": 'Basic realm="mediastore"'},
    )


def _bad_gateway(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


async def _lookup(meta_store: MetaStore, v: RequestVars) -> Meta:
    """
    Fetch the metadata record, falling back to the configured prefix.

    A lookup the metadata API can't answer means the object is unknown
    to us, so it maps to 404.
    """
    try:
        meta = await meta_store.get(v)
    except MetadataAuthError:
        raise _auth_required()
    except MetadataError as e:
        logger.warning("Object lookup failed", extra={"oid": v.oid, "error": str(e)})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    except httpx.RequestError as e:
        raise _bad_gateway(f"Metadata API unreachable: {e}")

    if meta.path_prefix:
        return meta
    return Meta(oid=meta.oid, size=meta.size, path_prefix=v.path_prefix)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{user}/{repo}/objects/{oid}",
    name="download_object",
    status_code=status.HTTP_302_FOUND,
    summary="Download an object",
    description="Redirects to a signed object store URL valid for five minutes.",
)
async def download_object(
    user: str,
    repo: str,
    oid: OidPath,
    settings: SettingsDep,
    content_store: ContentStoreDep,
    meta_store: MetaStoreDep,
    authorization: AuthorizationHeader = "",
) -> Response:
    v = RequestVars(
        user=user,
        repo=repo,
        oid=oid,
        path_prefix=settings.storage_path_prefix,
        authorization=authorization,
    )
    meta = await _lookup(meta_store, v)

    response = Response()
    content_store.get(meta, response)
    return response


@router.post(
    "/{user}/{repo}/objects",
    name="reserve_object",
    response_model=ObjectResponse,
    summary="Reserve an object for upload",
    description=(
        "Registers the object with the metadata API. Returns 201 with upload "
        "and verify links for new objects, 200 with download and verify links "
        "when the object already exists."
    ),
    responses={201: {"model": ObjectResponse}},
)
async def reserve_object(
    user: str,
    repo: str,
    body: ObjectRequest,
    request: Request,
    response: Response,
    settings: SettingsDep,
    content_store: ContentStoreDep,
    meta_store: MetaStoreDep,
    authorization: AuthorizationHeader = "",
):
    v = RequestVars(
        user=user,
        repo=repo,
        oid=body.oid,
        size=body.size,
        path_prefix=settings.storage_path_prefix,
        authorization=authorization,
    )

    try:
        meta = await meta_store.send(v)
    except MetadataAuthError:
        raise _auth_required()
    except MetadataError as e:
        logger.error("Object reservation failed", extra={"oid": body.oid, "error": str(e)})
        raise _bad_gateway(f"Metadata API error: {e}")
    except httpx.RequestError as e:
        raise _bad_gateway(f"Metadata API unreachable: {e}")

    stored = Meta(
        oid=meta.oid,
        size=meta.size,
        path_prefix=meta.path_prefix or settings.storage_path_prefix,
        existing=meta.existing,
    )

    verify_header = {"Authorization": authorization} if authorization else {}
    verify = str(request.url_for("verify_object", user=user, repo=repo))
    links = {"verify": Link(href=verify, header=verify_header).to_dict()}

    if stored.existing:
        download = str(request.url_for("download_object", user=user, repo=repo, oid=stored.oid))
        links["download"] = Link(href=download).to_dict()
        response.status_code = status.HTTP_200_OK
    else:
        links["upload"] = content_store.put_link(stored).to_dict()
        response.status_code = status.HTTP_201_CREATED

    logger.info(
        "Object reserved",
        extra={"oid": stored.oid, "existing": stored.existing, "user": user, "repo": repo}
    )

    return ObjectResponse(oid=stored.oid, size=stored.size, links=links)


@router.post(
    "/{user}/{repo}/objects/verify",
    name="verify_object",
    response_model=VerifyResponse,
    summary="Confirm an upload",
    description="Checks the object store for the bytes, then confirms with the metadata API.",
)
async def verify_object(
    user: str,
    repo: str,
    body: ObjectRequest,
    settings: SettingsDep,
    content_store: ContentStoreDep,
    meta_store: MetaStoreDep,
    authorization: AuthorizationHeader = "",
) -> VerifyResponse:
    v = RequestVars(
        user=user,
        repo=repo,
        oid=body.oid,
        size=body.size,
        path_prefix=settings.storage_path_prefix,
        authorization=authorization,
    )
    meta = await _lookup(meta_store, v)

    try:
        present = await content_store.exists(meta)
    except StorageError as e:
        raise _bad_gateway(f"Object store error: {e}")

    if not present:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Object not found in store",
        )

    try:
        await meta_store.verify(v)
    except MetadataAuthError:
        raise _auth_required()
    except MetadataError as e:
        logger.error("Object verification failed", extra={"oid": body.oid, "error": str(e)})
        raise _bad_gateway(f"Metadata API error: {e}")
    except httpx.RequestError as e:
        raise _bad_gateway(f"Metadata API unreachable: {e}")

    return VerifyResponse(oid=body.oid)
