"""Odyssey REST + SSE backend adapter."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping

from orion.backends.base import BackendClient, Thumbnail, thumbnail_dimensions
from orion.backends.http import HttpTransport
from orion.core.exceptions import TransportError

logger = logging.getLogger(__name__)


def _clean_path(file_path: str) -> str:
    return file_path.replace("//", "")


def _as_dict(payload: Any) -> dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


class OdysseyClient(BackendClient):
    """Adapter for the push-capable Odyssey API."""

    name = "odyssey"

    def __init__(self, base_url: str, *, timeout: float = 5.0, transport: HttpTransport | None = None) -> None:
        self._http = transport or HttpTransport(base_url, timeout=timeout)

    async def get_status(self) -> dict[str, Any]:
        return _as_dict(await self._http.get_json("/status"))

    async def get_status_stream(self) -> AsyncIterator[dict[str, Any]]:
        return await self._http.open_event_stream("/status/stream")

    async def list_items(
        self,
        location: str,
        page_size: int,
        page_index: int,
        subdirectory: str,
    ) -> dict[str, Any]:
        params = {
            "location": location,
            "subdirectory": subdirectory,
            "page_index": page_index,
            "page_size": page_size,
        }
        return _as_dict(await self._http.get_json("/files", params=params))

    async def usb_available(self) -> bool:
        for location in ("Local", "Usb"):
            try:
                await self.list_items(location, 1, 0, "")
            except TransportError:
                return False
        return True

    async def get_file_metadata(self, location: str, file_path: str) -> dict[str, Any]:
        params = {"location": location, "file_path": _clean_path(file_path)}
        return _as_dict(await self._http.get_json("/file/metadata", params=params))

    async def get_config(self) -> dict[str, Any]:
        return _as_dict(await self._http.get_json("/config"))

    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        params: Mapping[str, Any] = {
            "location": location,
            "file_path": _clean_path(file_path),
            "size": size,
        }
        data = await self._http.get_bytes("/file/thumbnail", params=params)
        width, height = thumbnail_dimensions(size)
        return Thumbnail(data=data, is_placeholder=False, width=width, height=height)

    async def start_print(self, location: str, file_path: str) -> None:
        params = {"location": location, "file_path": _clean_path(file_path)}
        await self._http.post_json("/print/start", params=params)

    async def delete_file(self, location: str, file_path: str) -> dict[str, Any]:
        params = {"location": location, "file_path": _clean_path(file_path)}
        return _as_dict(await self._http.delete_json("/file", params=params))

    async def cancel_print(self) -> None:
        await self._http.post_json("/print/cancel")

    async def pause_print(self) -> None:
        await self._http.post_json("/print/pause")

    async def resume_print(self) -> None:
        await self._http.post_json("/print/resume")

    async def move(self, height: float) -> dict[str, Any]:
        return _as_dict(await self._http.post_json("/manual", params={"z": height}))

    async def move_delta(self, delta_mm: float) -> dict[str, Any]:
        status = await self.get_status()
        physical = status.get("physical_state") or {}
        current = float(physical.get("z") or 0.0)
        return await self.move(current + delta_mm)

    async def manual_cure(self, cure: bool) -> dict[str, Any]:
        return _as_dict(await self._http.post_json("/manual", params={"cure": cure}))

    async def manual_home(self) -> dict[str, Any]:
        return _as_dict(await self._http.post_json("/manual/home"))

    async def manual_command(self, command: str) -> dict[str, Any]:
        return _as_dict(await self._http.post_json("/manual/hardware_command", params={"command": command}))

    async def close(self) -> None:
        await self._http.close()
