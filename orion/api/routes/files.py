"""File listing, metadata and thumbnail endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from orion.api.dependencies import get_backend, get_thumbnail_cache
from orion.backends.service import BackendService
from orion.models import FileRef
from orion.schemas import SimpleMessage
from orion.services.thumbnail_cache import ThumbnailCache

router = APIRouter()


def _default_location(backend: BackendService, location: Optional[str]) -> str:
    if location:
        return location
    return "Usb" if backend.options.use_usb_by_default else "Local"


@router.get("", summary="List files")
async def list_files(
    location: Optional[str] = Query(default=None),
    subdirectory: str = Query(default=""),
    page_size: int = Query(default=100, ge=1, le=1000),
    page_index: int = Query(default=0, ge=0),
    backend: BackendService = Depends(get_backend),
) -> dict:
    return await backend.list_items(_default_location(backend, location), page_size, page_index, subdirectory)


@router.get("/usb", summary="Whether USB storage is available")
async def usb_available(backend: BackendService = Depends(get_backend)) -> dict:
    return {"available": await backend.usb_available()}


@router.get("/metadata", summary="Metadata of one file")
async def file_metadata(
    path: str = Query(..., min_length=1),
    location: Optional[str] = Query(default=None),
    backend: BackendService = Depends(get_backend),
) -> dict:
    return await backend.get_file_metadata(_default_location(backend, location), path)


@router.get("/thumbnail", summary="Cached thumbnail of one file")
async def file_thumbnail(
    path: str = Query(..., min_length=1),
    location: Optional[str] = Query(default=None),
    size: str = Query(default="Small", pattern="^(Small|Large)$"),
    last_modified: int = Query(default=0, ge=0),
    force_refresh: bool = Query(default=False),
    backend: BackendService = Depends(get_backend),
    thumbnails: ThumbnailCache = Depends(get_thumbnail_cache),
) -> Response:
    target = _default_location(backend, location)
    file_ref = FileRef(path=path, last_modified=last_modified, location_category=target)
    thumb = await thumbnails.get_thumbnail(target, "", path, file_ref, size, force_refresh=force_refresh)
    if thumb is None:
        return Response(status_code=204)
    return Response(
        content=thumb.data,
        media_type="image/png",
        headers={"X-Thumbnail-Placeholder": "1" if thumb.is_placeholder else "0"},
    )


@router.delete("", response_model=SimpleMessage, summary="Delete a file")
async def delete_file(
    path: str = Query(..., min_length=1),
    location: Optional[str] = Query(default=None),
    backend: BackendService = Depends(get_backend),
) -> SimpleMessage:
    await backend.delete_file(_default_location(backend, location), path)
    return SimpleMessage(success=True, message=f"Deleted {path}")
