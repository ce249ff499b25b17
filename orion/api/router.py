"""Root API router that aggregates all endpoint modules."""
from fastapi import APIRouter

from orion.api.routes import (
    analytics,
    config,
    control,
    files,
    health,
    metrics,
    state_stream,
    status,
)

api_router = APIRouter(prefix="/api")
api_router.include_router(status.router, tags=["status"])
api_router.include_router(control.router, prefix="/control", tags=["control"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
api_router.include_router(config.router, tags=["config"])
api_router.include_router(health.router, tags=["health"])
api_router.include_router(metrics.router, tags=["metrics"])
api_router.include_router(state_stream.router, tags=["state"])
