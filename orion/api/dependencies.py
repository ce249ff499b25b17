"""FastAPI dependency providers."""
from fastapi import Depends, Request

from orion.backends.service import BackendService
from orion.services.analytics_service import AnalyticsService
from orion.services.health_service import HealthService
from orion.services.registry import ServiceRegistry
from orion.services.state_stream_service import StateStreamService
from orion.services.status_service import StatusService
from orion.services.thumbnail_cache import ThumbnailCache


def get_service_registry(request: Request) -> ServiceRegistry:
    """Return the service registry stored on the FastAPI application state."""

    registry = request.app.state.services
    if not isinstance(registry, ServiceRegistry):
        raise RuntimeError("Service registry not initialised")
    return registry


def get_backend(registry: ServiceRegistry = Depends(get_service_registry)) -> BackendService:
    return registry.backend


def get_status_service(registry: ServiceRegistry = Depends(get_service_registry)) -> StatusService:
    return registry.status_service


def get_analytics_service(
    registry: ServiceRegistry = Depends(get_service_registry),
) -> AnalyticsService:
    return registry.analytics_service


def get_thumbnail_cache(registry: ServiceRegistry = Depends(get_service_registry)) -> ThumbnailCache:
    return registry.thumbnail_cache


def get_health_service(registry: ServiceRegistry = Depends(get_service_registry)) -> HealthService:
    return HealthService(registry)


def get_state_stream_service(
    registry: ServiceRegistry = Depends(get_service_registry),
) -> StateStreamService:
    return registry.state_stream_service
