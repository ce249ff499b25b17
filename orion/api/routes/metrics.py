"""Metrics endpoint for operational visibility."""
from fastapi import APIRouter, Depends

from orion.api.dependencies import get_thumbnail_cache
from orion.core.metrics import metrics
from orion.services.thumbnail_cache import ThumbnailCache

router = APIRouter()


@router.get("/metrics", summary="API, backend and thumbnail cache metrics")
async def read_metrics(thumbnails: ThumbnailCache = Depends(get_thumbnail_cache)) -> dict:
    return {
        "api": metrics.snapshot("api"),
        "backend": metrics.snapshot("backend"),
        "thumbnail_cache": thumbnails.stats(),
    }
