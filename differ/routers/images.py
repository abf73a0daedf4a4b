"""Image, release and diff API router."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from differ.auth import require_auth
from differ.diff import DiffResult, Package
from differ.services.diff_service import DiffService
from differ.storage import Storage

router = APIRouter()
write_router = APIRouter(dependencies=[Depends(require_auth)])
log = logging.getLogger("differ.api")


class ImageRequest(BaseModel):
    """Request model for image creation."""

    name: str = Field(min_length=1)


class ReleaseRequest(BaseModel):
    """Request model for release creation."""

    digest: str = Field(min_length=1)
    date: Optional[datetime] = None
    packages: list[Package]


class DiffRequest(BaseModel):
    """Request model for diffing two releases."""

    old_digest: str
    new_digest: str


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_diff_service(request: Request) -> DiffService:
    return request.app.state.diff_service


def diff_response(old_digest: str, new_digest: str, diff: DiffResult) -> dict:
    return {
        "_old_digest": old_digest,
        "_new_digest": new_digest,
        **diff.to_dict(),
    }


@router.get("/status")
def api_status(request: Request, service: DiffService = Depends(get_diff_service)):
    """Check that the API is running"""
    return {
        "status": "ok",
        "read_only": request.app.state.read_only,
        "cache": service.stats(),
    }


@router.get("/images")
def api_images(storage: Storage = Depends(get_storage)):
    return {"images": [image.model_dump() for image in storage.list_images()]}


@router.get("/images/{name}")
def api_image(name: str, storage: Storage = Depends(get_storage)):
    return {"image": storage.get_image(name).model_dump()}


@router.get("/images/{name}/diff")
def api_release_diff(
    name: str,
    old_digest: str = Query(min_length=1),
    new_digest: str = Query(min_length=1),
    service: DiffService = Depends(get_diff_service),
):
    """
    Diff two releases of an image.

    Returns the packages added, upgraded, downgraded and removed going from
    the release ``old_digest`` to the release ``new_digest``.
    """
    diff = service.diff(name, old_digest, new_digest)
    return diff_response(old_digest, new_digest, diff)


@router.post("/images/{name}/diff")
def api_release_diff_post(
    name: str,
    diff_request: DiffRequest,
    service: DiffService = Depends(get_diff_service),
):
    """Diff two releases of an image, digests given in the request body"""
    diff = service.diff(name, diff_request.old_digest, diff_request.new_digest)
    return diff_response(diff_request.old_digest, diff_request.new_digest, diff)


@router.get("/images/{name}/latest")
def api_latest_release(name: str, storage: Storage = Depends(get_storage)):
    return {"release": storage.latest_release(name).model_dump()}


@router.get("/images/{name}/{digest}")
def api_release(name: str, digest: str, storage: Storage = Depends(get_storage)):
    return {"release": storage.lookup_release(name, digest).model_dump()}


@write_router.post("/images/new")
def api_add_image(image_request: ImageRequest, storage: Storage = Depends(get_storage)):
    image = storage.add_image(image_request.name)
    return {"image": image.model_dump()}


@write_router.post("/images/{name}/new")
def api_add_release(
    name: str,
    release_request: ReleaseRequest,
    storage: Storage = Depends(get_storage),
):
    """
    Create a new release of an image.

    The date defaults to the current time. Releases can't be changed once
    created.
    """
    release = storage.add_release(
        name,
        release_request.digest,
        release_request.packages,
        date=release_request.date,
    )
    return {"release": release.model_dump()}
