"""Analytics time-series endpoints."""
from fastapi import APIRouter, Depends

from orion.api.dependencies import get_analytics_service
from orion.backends.nanodlp.analytics import metric_id, metric_key
from orion.core.exceptions import NotFoundError
from orion.schemas import AnalyticsResponse, AnalyticsSeriesResponse
from orion.services.analytics_service import AnalyticsService

router = APIRouter()


@router.get("", response_model=AnalyticsResponse, summary="All analytics series")
async def read_analytics(analytics: AnalyticsService = Depends(get_analytics_service)) -> AnalyticsResponse:
    return AnalyticsResponse(
        loading=analytics.loading,
        capacity=analytics.capacity,
        latest=analytics.latest_values(),
        series=analytics.snapshot(),
    )


@router.get("/{key}", response_model=AnalyticsSeriesResponse, summary="One analytics series")
async def read_series(key: str, analytics: AnalyticsService = Depends(get_analytics_service)) -> AnalyticsSeriesResponse:
    """``key`` is a series name or a numeric NanoDLP metric id."""
    if key not in analytics.keys():
        numeric = metric_id(key)
        if numeric is not None:
            key = metric_key(numeric)
    if key not in analytics.keys():
        raise NotFoundError(f"Unknown analytics series: {key}")
    return AnalyticsSeriesResponse(
        key=key,
        latest=analytics.latest(key),
        points=[point.model_dump() for point in analytics.series(key)],
    )
