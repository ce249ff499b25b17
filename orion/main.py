"""FastAPI application entrypoint."""
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from orion.api.error_handlers import register_exception_handlers
from orion.api.router import api_router
from orion.core.config import AppConfig, get_app_config, get_settings
from orion.core.logging import configure_logging
from orion.core.metrics import metrics
from orion.core.request_context import clear_request_id, new_request_id, set_request_id
from orion.services import ServiceRegistry

logger = logging.getLogger("orion")


class RequestIdMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        path = scope.get("path") or ""
        request_id = request.headers.get("X-Request-ID") or new_request_id()
        set_request_id(request_id)
        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_request_id()

        duration_ms = int((time.perf_counter() - start) * 1000)
        if status_code < 400:
            metric_name = f"api.{path}"
            metrics.record(metric_name, ok=True, duration_ms=duration_ms)
            overrides = self._metric_threshold_overrides(path)
            if metrics.should_alert(metric_name, **overrides):
                logger.warning("Metric alert for %s (slow or error rate)", metric_name)

    @classmethod
    def _metric_threshold_overrides(cls, path: str) -> dict[str, int]:
        return {
            "/api/state/stream": {"avg_ms": 10_000},
        }.get(path, {})


def create_app(
    config: AppConfig | None = None,
    *,
    registry: ServiceRegistry | None = None,
) -> FastAPI:
    """Build the ASGI app; the registry is created on startup unless injected."""

    app_config = config or (registry.config if registry is not None else get_app_config())
    configure_logging(get_settings() if config is None and registry is None else app_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown of background services."""

        services = registry or ServiceRegistry(app_config)
        app.state.services = services

        await services.startup()
        try:
            yield
        finally:
            await services.shutdown()

    app = FastAPI(
        title="Orion Printer Backend API",
        description="Reconciled status, control and telemetry for resin printers",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)
    register_exception_handlers(app)
    return app
