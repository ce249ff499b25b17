"""Capability contract every printer backend adapter implements."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

from orion.core.exceptions import UnsupportedCapabilityError

THUMBNAIL_SIZES: dict[str, tuple[int, int]] = {
    "Large": (800, 480),
    "Small": (400, 400),
}


def thumbnail_dimensions(size: str) -> tuple[int, int]:
    """Pixel dimensions for a size class; unknown classes are treated as Small."""
    return THUMBNAIL_SIZES.get(size, THUMBNAIL_SIZES["Small"])


@dataclass(frozen=True)
class Thumbnail:
    data: bytes
    is_placeholder: bool = False
    width: int = 0
    height: int = 0


class BackendClient(ABC):
    """Async interface over one printer backend.

    Every call may raise :class:`~orion.core.exceptions.TransportError`. None
    of the calls cache anything except where an adapter documents it.
    """

    name = "backend"

    @abstractmethod
    async def get_status(self) -> dict[str, Any]:
        """Return the canonical status map for the current device state."""

    @abstractmethod
    async def get_status_stream(self) -> AsyncIterator[dict[str, Any]]:
        """Open a status subscription.

        Awaiting this call establishes the subscription; a returned iterator
        means the stream is live. Adapters that cannot push raise
        :class:`~orion.core.exceptions.StreamUnsupportedError` or wrap polling.
        """

    @abstractmethod
    async def list_items(
        self,
        location: str,
        page_size: int,
        page_index: int,
        subdirectory: str,
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def usb_available(self) -> bool:
        ...

    @abstractmethod
    async def get_file_metadata(self, location: str, file_path: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_config(self) -> dict[str, Any]:
        ...

    async def get_backend_version(self) -> str:
        config = await self.get_config()
        general = config.get("general") or {}
        return str(general.get("version") or config.get("version") or "unknown")

    @abstractmethod
    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        ...

    @abstractmethod
    async def start_print(self, location: str, file_path: str) -> None:
        ...

    async def delete_file(self, location: str, file_path: str) -> dict[str, Any]:
        raise UnsupportedCapabilityError(f"{self.name} cannot delete files")

    @abstractmethod
    async def cancel_print(self) -> None:
        ...

    @abstractmethod
    async def pause_print(self) -> None:
        ...

    @abstractmethod
    async def resume_print(self) -> None:
        ...

    @abstractmethod
    async def move(self, height: float) -> dict[str, Any]:
        ...

    @abstractmethod
    async def move_delta(self, delta_mm: float) -> dict[str, Any]:
        ...

    async def can_move_to_top(self) -> bool:
        return False

    async def move_to_top(self) -> dict[str, Any]:
        raise UnsupportedCapabilityError(f"{self.name} cannot move to top")

    @abstractmethod
    async def manual_home(self) -> dict[str, Any]:
        ...

    async def manual_cure(self, cure: bool) -> dict[str, Any]:
        raise UnsupportedCapabilityError(f"{self.name} does not support manual cure")

    async def manual_command(self, command: str) -> dict[str, Any]:
        raise UnsupportedCapabilityError(f"{self.name} does not support manual commands")

    async def get_analytics(self, n: int) -> list[dict[str, Any]]:
        return []

    async def get_analytic_value(self, metric_id: int) -> Any:
        raise UnsupportedCapabilityError(f"{self.name} does not expose analytic values")

    def reset_state(self) -> None:
        """Forget any per-session latch memory kept by the adapter."""

    async def close(self) -> None:
        """Release network resources."""
