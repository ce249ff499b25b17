"""Backend selection and the façade every service talks to."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from orion.backends.base import BackendClient, Thumbnail
from orion.backends.nanodlp.client import NanoDlpClient
from orion.backends.nanodlp.simulated import SimulatedNanoDlpClient
from orion.backends.odyssey import OdysseyClient
from orion.core.config import AppConfig, RuntimeOptions

logger = logging.getLogger(__name__)


def create_backend_client(config: AppConfig, options: RuntimeOptions) -> BackendClient:
    """Pick the adapter: simulator override, then NanoDLP, then Odyssey."""
    if options.simulated:
        logger.info("Using simulated NanoDLP backend (developer override)")
        return SimulatedNanoDlpClient()
    if options.backend.strip().lower() == "nanodlp":
        logger.info("Using NanoDLP backend at %s", config.nanodlp_url)
        return NanoDlpClient(config.nanodlp_url, timeout=config.request_timeout)
    logger.info("Using Odyssey backend at %s", config.odyssey_url)
    return OdysseyClient(config.odyssey_url, timeout=config.request_timeout)


class BackendService:
    """Forwards the backend contract to the configured adapter."""

    def __init__(self, client: BackendClient, options: RuntimeOptions) -> None:
        self._client = client
        self.options = options

    @classmethod
    def from_config(cls, config: AppConfig, options: RuntimeOptions | None = None) -> "BackendService":
        options = options or RuntimeOptions.from_config(config)
        return cls(create_backend_client(config, options), options)

    @property
    def client(self) -> BackendClient:
        return self._client

    @property
    def name(self) -> str:
        return self._client.name

    @property
    def is_nanodlp_mode(self) -> bool:
        return self.options.is_nanodlp_mode

    async def get_status(self) -> dict[str, Any]:
        return await self._client.get_status()

    async def get_status_stream(self) -> AsyncIterator[dict[str, Any]]:
        return await self._client.get_status_stream()

    async def list_items(
        self,
        location: str,
        page_size: int,
        page_index: int,
        subdirectory: str,
    ) -> dict[str, Any]:
        return await self._client.list_items(location, page_size, page_index, subdirectory)

    async def usb_available(self) -> bool:
        return await self._client.usb_available()

    async def get_file_metadata(self, location: str, file_path: str) -> dict[str, Any]:
        return await self._client.get_file_metadata(location, file_path)

    async def get_config(self) -> dict[str, Any]:
        return await self._client.get_config()

    async def get_backend_version(self) -> str:
        return await self._client.get_backend_version()

    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        return await self._client.get_file_thumbnail(location, file_path, size)

    async def start_print(self, location: str, file_path: str) -> None:
        await self._client.start_print(location, file_path)

    async def delete_file(self, location: str, file_path: str) -> dict[str, Any]:
        return await self._client.delete_file(location, file_path)

    async def cancel_print(self) -> None:
        await self._client.cancel_print()

    async def pause_print(self) -> None:
        await self._client.pause_print()

    async def resume_print(self) -> None:
        await self._client.resume_print()

    async def move(self, height: float) -> dict[str, Any]:
        return await self._client.move(height)

    async def move_delta(self, delta_mm: float) -> dict[str, Any]:
        return await self._client.move_delta(delta_mm)

    async def can_move_to_top(self) -> bool:
        return await self._client.can_move_to_top()

    async def move_to_top(self) -> dict[str, Any]:
        return await self._client.move_to_top()

    async def manual_home(self) -> dict[str, Any]:
        return await self._client.manual_home()

    async def manual_cure(self, cure: bool) -> dict[str, Any]:
        return await self._client.manual_cure(cure)

    async def manual_command(self, command: str) -> dict[str, Any]:
        return await self._client.manual_command(command)

    async def get_analytics(self, n: int) -> list[dict[str, Any]]:
        return await self._client.get_analytics(n)

    async def get_analytic_value(self, metric_id: int) -> Any:
        return await self._client.get_analytic_value(metric_id)

    def reset_state(self) -> None:
        self._client.reset_state()

    async def close(self) -> None:
        await self._client.close()
