"""In-process NanoDLP stand-in used by the developer ``simulated`` switch.

The simulator produces raw NanoDLP-shaped payloads and runs them through the
same parser, canonicalizer and mapper as the real adapter, so every latch
rule is exercised without hardware.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from orion.backends.base import BackendClient, Thumbnail, thumbnail_dimensions
from orion.backends.nanodlp.mapper import to_status_map
from orion.backends.nanodlp.plates import find_plate
from orion.backends.nanodlp.state import (
    STATE_CANCEL_REQUESTED,
    STATE_IDLE,
    STATE_PAUSED,
    STATE_PAUSING,
    STATE_PRINTING,
    STATE_STARTING,
    NanoDlpStateHandler,
)
from orion.backends.nanodlp.status import NanoFile, NanoStatus
from orion.backends.nanodlp.thumbnails import generate_placeholder
from orion.backends.payload import MAX_Z_MM, NANODLP_TICKS_PER_MM
from orion.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

SIM_LAYERS = 200
SIM_LAYER_SECONDS = 1.0
SIM_LAYER_HEIGHT_MM = 0.05
SIM_STREAM_INTERVAL = 1.0

SIM_PLATES = tuple(
    NanoFile.from_payload(
        {
            "PlateID": index,
            "Path": f"sim_part_{index}.zip",
            "LayerCount": SIM_LAYERS,
            "PrintTime": SIM_LAYERS * SIM_LAYER_SECONDS,
            "UsedMaterial": 12.5 * index,
            "LastModified": 1_700_000_000 + index,
            "ProfileName": "Simulated Resin",
            "LayerThickness": 50,
            "Preview": False,
        }
    )
    for index in range(1, 6)
)


class SimulatedNanoDlpClient(BackendClient):
    """Advances a fake job one layer per second while printing."""

    name = "simulated"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._state = NanoDlpStateHandler()
        self._plate: Optional[NanoFile] = None
        self._printing = False
        self._paused = False
        self._layer: Optional[int] = None
        self._state_code = STATE_IDLE
        self._last_tick = clock()
        self._z = 0.0

    def _advance(self) -> None:
        now = self._clock()
        elapsed = now - self._last_tick
        if not self._printing or self._paused or self._layer is None:
            self._last_tick = now
            return
        steps = int(elapsed // SIM_LAYER_SECONDS)
        if steps <= 0:
            return
        self._last_tick += steps * SIM_LAYER_SECONDS
        self._layer = min(self._layer + steps, SIM_LAYERS)
        self._z = round(self._layer * SIM_LAYER_HEIGHT_MM, 3)
        if self._layer >= SIM_LAYERS:
            logger.info("Simulated print of %s finished", self._plate.name if self._plate else "?")
            self._printing = False
            self._state_code = STATE_IDLE

    def _raw_status(self) -> dict[str, Any]:
        self._advance()
        code = self._state_code
        raw: dict[str, Any] = {
            "Printing": self._printing,
            "Paused": self._paused,
            "State": code,
            "Status": "Printing" if self._printing else "Idle",
            "CurrentHeight": int(round(self._z * NANODLP_TICKS_PER_MM)),
            "temp": 42.0,
            "mcu": 38.5,
        }
        if self._layer is not None:
            raw["LayerID"] = self._layer
            raw["LayersCount"] = SIM_LAYERS
        if self._plate is not None and (self._printing or self._paused):
            raw["PlateID"] = self._plate.plate_id
            raw["file"] = dict(self._plate.raw)
        # Transitional codes are reported once before settling.
        self._settle()
        return raw

    def _settle(self) -> None:
        if self._state_code == STATE_STARTING:
            self._state_code = STATE_PRINTING
        elif self._state_code == STATE_PAUSING:
            self._state_code = STATE_PAUSED
        elif self._state_code == STATE_CANCEL_REQUESTED:
            self._state_code = STATE_IDLE
            self._layer = None

    def _transition(self, code: int) -> None:
        self._state_code = code
        self._last_tick = self._clock()

    async def get_status(self) -> dict[str, Any]:
        raw = self._raw_status()
        status = NanoStatus.from_payload(raw)
        canonical = self._state.canonicalize(status)
        return to_status_map(status, canonical, raw)

    async def get_status_stream(self) -> AsyncIterator[dict[str, Any]]:
        return self._poll_stream()

    async def _poll_stream(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            yield await self.get_status()
            await self._sleep(SIM_STREAM_INTERVAL)

    def reset_state(self) -> None:
        self._state.reset()

    async def list_items(
        self,
        location: str,
        page_size: int,
        page_index: int,
        subdirectory: str,
    ) -> dict[str, Any]:
        return {
            "files": [plate.to_file_entry() for plate in SIM_PLATES],
            "dirs": [],
            "page_index": page_index,
            "page_size": page_size,
        }

    async def usb_available(self) -> bool:
        return False

    def _find(self, file_path: str) -> NanoFile:
        plate = find_plate(SIM_PLATES, file_path)
        if plate is None:
            raise NotFoundError(f"Simulated plate {file_path!r} not found")
        return plate

    async def get_file_metadata(self, location: str, file_path: str) -> dict[str, Any]:
        return self._find(file_path).to_metadata()

    async def get_config(self) -> dict[str, Any]:
        return {
            "general": {"hostname": "orion-sim", "ip": "127.0.0.1", "status": "Simulated"},
            "advanced": {"backend": "nanodlp", "nanodlp": {"build": "sim", "version": "simulated"}},
            "machine": {"disk": None, "wifi": None, "resin_level": None},
            "vendor": {},
        }

    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        width, height = thumbnail_dimensions(size)
        return Thumbnail(generate_placeholder(width, height), True, width, height)

    async def start_print(self, location: str, file_path: str) -> None:
        self._plate = self._find(file_path)
        self._printing = True
        self._paused = False
        self._layer = 0
        self._z = 0.0
        self._transition(STATE_STARTING)
        logger.info("Simulated print started: %s", self._plate.name)

    async def cancel_print(self) -> None:
        self._printing = False
        self._paused = False
        self._transition(STATE_CANCEL_REQUESTED)

    async def pause_print(self) -> None:
        if not self._printing:
            return
        self._advance()
        self._paused = True
        self._transition(STATE_PAUSING)

    async def resume_print(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self._transition(STATE_PRINTING)

    async def move(self, height: float) -> dict[str, Any]:
        self._z = max(0.0, min(float(height), MAX_Z_MM))
        return {"ok": True, "message": None}

    async def move_delta(self, delta_mm: float) -> dict[str, Any]:
        return await self.move(self._z + delta_mm)

    async def can_move_to_top(self) -> bool:
        return True

    async def move_to_top(self) -> dict[str, Any]:
        return await self.move(MAX_Z_MM)

    async def manual_home(self) -> dict[str, Any]:
        return await self.move(0.0)

    async def get_analytics(self, n: int) -> list[dict[str, Any]]:
        return []
