"""Shared fixtures: fake backends, a manual clock and parking sleeps."""
from __future__ import annotations

import asyncio
import random
from typing import Any, Optional

import pytest

from orion.backends.base import BackendClient, Thumbnail, thumbnail_dimensions
from orion.core.config import RuntimeOptions
from orion.core.exceptions import StreamUnsupportedError, TransportError


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ParkingSleep:
    """Records requested delays; positive delays park until cancelled.

    The first ``free_passes`` positive delays return at once instead.
    """

    def __init__(self, free_passes: int = 0) -> None:
        self.calls: list[float] = []
        self.free_passes = free_passes

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if delay > 0 and self.free_passes > 0:
            self.free_passes -= 1
            delay = 0
        if delay <= 0:
            await asyncio.sleep(0)
            return
        await asyncio.Event().wait()


class FakeBackend(BackendClient):
    """Scriptable backend: queue status results, count actions."""

    name = "fake"

    def __init__(self) -> None:
        self.status_results: list[Any] = []
        self.default_status: dict[str, Any] = idle_payload()
        self.status_calls = 0
        self.stream_error: Optional[BaseException] = StreamUnsupportedError()
        self.stream_queue: asyncio.Queue = asyncio.Queue()
        self.stream_opened = 0
        self.thumbnail_result: Any = Thumbnail(b"\x89PNG-real", False, 800, 480)
        self.thumbnail_calls: list[tuple[str, str, str]] = []
        self.action_gate: Optional[asyncio.Event] = None
        self.action_error: Optional[BaseException] = None
        self.calls: list[str] = []
        self.analytic_value: Any = 1.5
        self.analytics_entries: list[dict[str, Any]] = []
        self.reset_calls = 0

    async def get_status(self) -> dict[str, Any]:
        self.status_calls += 1
        if self.status_results:
            result = self.status_results.pop(0)
        else:
            result = self.default_status
        if isinstance(result, BaseException):
            raise result
        return dict(result)

    async def get_status_stream(self):
        self.stream_opened += 1
        if self.stream_error is not None:
            raise self.stream_error
        return self._stream()

    async def _stream(self):
        while True:
            item = await self.stream_queue.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def list_items(self, location, page_size, page_index, subdirectory):
        return {"files": [], "dirs": []}

    async def usb_available(self) -> bool:
        return False

    async def get_file_metadata(self, location, file_path):
        return {"file_data": {"path": file_path}}

    async def get_config(self):
        return {"general": {"version": "1.2.3"}}

    async def get_file_thumbnail(self, location, file_path, size):
        self.thumbnail_calls.append((location, file_path, size))
        result = self.thumbnail_result
        if isinstance(result, BaseException):
            raise result
        if result == "placeholder":
            width, height = thumbnail_dimensions(size)
            return Thumbnail(b"", True, width, height)
        return result

    async def start_print(self, location, file_path):
        self.calls.append("start")

    async def _action(self, name: str) -> None:
        self.calls.append(name)
        if self.action_gate is not None:
            await self.action_gate.wait()
        if self.action_error is not None:
            raise self.action_error

    async def cancel_print(self):
        await self._action("cancel")

    async def pause_print(self):
        await self._action("pause")

    async def resume_print(self):
        await self._action("resume")

    async def move(self, height):
        return {"ok": True}

    async def move_delta(self, delta_mm):
        return {"ok": True}

    async def manual_home(self):
        return {"ok": True}

    async def get_analytics(self, n):
        return list(self.analytics_entries)

    async def get_analytic_value(self, metric_id):
        if isinstance(self.analytic_value, BaseException):
            raise self.analytic_value
        return self.analytic_value

    def reset_state(self) -> None:
        self.reset_calls += 1


def idle_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": "Idle",
        "paused": False,
        "layer": None,
        "print_data": None,
        "physical_state": {"z": 0.0, "curing": False},
    }
    payload.update(overrides)
    return payload


def printing_payload(layer: int = 3, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": "Printing",
        "paused": False,
        "layer": layer,
        "print_data": {
            "layer_count": 100,
            "used_material": 10.0,
            "print_time": 600,
            "file_data": {"name": "part.zip", "path": "jobs/part.zip", "location_category": "Local"},
        },
        "physical_state": {"z": layer * 0.05, "curing": False},
    }
    payload.update(overrides)
    return payload


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they park."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def wall_clock() -> ManualClock:
    return ManualClock(start=1_700_000_000.0)


@pytest.fixture
def parking_sleep() -> ParkingSleep:
    return ParkingSleep()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def odyssey_options() -> RuntimeOptions:
    return RuntimeOptions(backend="odyssey")


@pytest.fixture
def nanodlp_options() -> RuntimeOptions:
    return RuntimeOptions(backend="nanodlp")


@pytest.fixture
def transport_error() -> TransportError:
    return TransportError("connection refused")
