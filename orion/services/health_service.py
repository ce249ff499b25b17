"""Health check service."""
import time
from datetime import datetime, timedelta, timezone

from orion.services.registry import ServiceRegistry

SERVER_START_TIME = time.time()


class HealthService:
    """Encapsulates health probe logic for the API layer."""

    def __init__(self, registry: ServiceRegistry) -> None:
        self._registry = registry

    def check(self) -> dict:
        status = self._registry.status_service
        uptime_seconds = max(0.0, time.time() - SERVER_START_TIME)
        connected = status.has_ever_connected and status.error is None
        return {
            "status": "healthy" if connected else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "backend": self._registry.backend.name,
            "nanodlp_mode": self._registry.options.is_nanodlp_mode,
            "printer_online": connected,
            "transport": status.transport_mode.value,
            "consecutive_errors": status.consecutive_errors,
            "uptime": str(timedelta(seconds=int(uptime_seconds))),
            "uptime_seconds": uptime_seconds,
        }
