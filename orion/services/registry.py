"""Service registry that wires all application services together."""
import asyncio
import logging
from typing import Optional

from orion.backends.service import BackendService
from orion.core.config import AppConfig, RuntimeOptions, get_app_config
from orion.core.request_context import request_context
from orion.core.tasks import LifecycleManager
from orion.services.analytics_service import AnalyticsService
from orion.services.state_notifier import StateNotifier
from orion.services.state_stream_service import StateStreamService
from orion.services.status_service import StatusService
from orion.services.thumbnail_cache import ThumbnailCache

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Container object for dependency injection."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        backend: Optional[BackendService] = None,
    ) -> None:
        self.config = config or get_app_config()
        self.options = backend.options if backend is not None else RuntimeOptions.from_config(self.config)
        self.backend = backend or BackendService.from_config(self.config, self.options)
        self.state_notifier = StateNotifier()
        self.thumbnail_cache = ThumbnailCache(
            self.backend,
            memory_max_bytes=self.config.thumbnails.memory_max_bytes,
            real_ttl=self.config.thumbnails.real_ttl_seconds,
            placeholder_ttl=self.config.thumbnails.placeholder_ttl_seconds,
            disk_cache_dir=self.config.thumbnails.disk_cache_dir,
        )
        self.analytics_service = AnalyticsService(
            self.backend,
            self.options,
            self.config.analytics,
            notifier=self.state_notifier,
        )
        self.status_service = StatusService(
            self.backend,
            self.options,
            thumbnails=self.thumbnail_cache,
            analytics=self.analytics_service,
            notifier=self.state_notifier,
        )
        self.state_stream_service = StateStreamService(self.state_notifier)
        self.state_stream_service.register_channel("status", self.status_service.view)
        self.state_stream_service.register_channel(
            "analytics", lambda: {"latest": self.analytics_service.latest_values()}
        )
        self._startup_lock = asyncio.Lock()
        self._shutdown_lock = asyncio.Lock()
        self._lifecycle = LifecycleManager(name="service-registry", logger=logger)

    @property
    def started(self) -> bool:
        return self._lifecycle.started

    async def startup(self) -> None:
        async with self._startup_lock:
            with request_context("bg:registry"):
                logger.info(
                    "Starting background services (backend=%s, nanodlp_mode=%s)",
                    self.backend.name,
                    self.options.is_nanodlp_mode,
                )
                self.state_stream_service.reset()
                await self._lifecycle.start([self.status_service.start, self.analytics_service.start])
                logger.info("Background services started")

    async def shutdown(self) -> None:
        async with self._shutdown_lock:
            with request_context("bg:registry"):
                logger.info("Stopping background services")
                await self.state_stream_service.shutdown()
                await self._lifecycle.stop([self.status_service.stop, self.analytics_service.stop])
                await self.backend.close()
                logger.info("Background services stopped")
