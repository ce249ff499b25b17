"""Status engine endpoints."""
from fastapi import APIRouter, Depends, Response

from orion.api.dependencies import get_backend, get_status_service, get_thumbnail_cache
from orion.backends.service import BackendService
from orion.core.exceptions import NotFoundError
from orion.schemas import ResetStatusRequest, SimpleMessage, StatusView
from orion.services.status_service import THUMBNAIL_SIZE, StatusService
from orion.services.thumbnail_cache import ThumbnailCache

router = APIRouter()


@router.get("/status", response_model=StatusView, summary="Reconciled printer status")
async def read_status(status_service: StatusService = Depends(get_status_service)) -> StatusView:
    return StatusView(**status_service.view())


@router.post("/status/refresh", response_model=StatusView, summary="Force one status refresh")
async def refresh_status(status_service: StatusService = Depends(get_status_service)) -> StatusView:
    await status_service.refresh(force=True)
    return StatusView(**status_service.view())


@router.post("/status/reset", response_model=StatusView, summary="Reset status ahead of a new job")
async def reset_status(
    payload: ResetStatusRequest | None = None,
    status_service: StatusService = Depends(get_status_service),
    backend: BackendService = Depends(get_backend),
    thumbnails: ThumbnailCache = Depends(get_thumbnail_cache),
) -> StatusView:
    payload = payload or ResetStatusRequest()
    initial_thumbnail = None
    if payload.initial_file_path:
        location = payload.location or ("Usb" if backend.options.use_usb_by_default else "Local")
        thumb = await thumbnails.get_thumbnail(location, "", payload.initial_file_path, size=THUMBNAIL_SIZE)
        if thumb is not None and not thumb.is_placeholder:
            initial_thumbnail = thumb.data
    await status_service.reset_status(initial_thumbnail, payload.initial_file_path)
    return StatusView(**status_service.view())


@router.post("/status/clear-error", response_model=SimpleMessage, summary="Clear the sticky error")
async def clear_error(status_service: StatusService = Depends(get_status_service)) -> SimpleMessage:
    await status_service.clear_error()
    return SimpleMessage(success=True, message="Error cleared")


@router.post("/status/polling/pause", response_model=SimpleMessage, summary="Suspend polling")
async def pause_polling(status_service: StatusService = Depends(get_status_service)) -> SimpleMessage:
    await status_service.pause_polling()
    return SimpleMessage(success=True, message="Polling paused")


@router.post("/status/polling/resume", response_model=SimpleMessage, summary="Resume polling")
async def resume_polling(status_service: StatusService = Depends(get_status_service)) -> SimpleMessage:
    await status_service.resume_polling()
    return SimpleMessage(success=True, message="Polling resumed")


@router.get("/status/thumbnail", summary="Thumbnail of the current job")
async def read_job_thumbnail(status_service: StatusService = Depends(get_status_service)) -> Response:
    data = status_service.thumbnail
    if data is None:
        raise NotFoundError("No thumbnail for the current job")
    return Response(
        content=data,
        media_type="image/png",
        headers={
            "Cache-Control": "no-store",
            "X-Thumbnail-Placeholder": "1" if status_service.thumbnail_is_placeholder else "0",
        },
    )
