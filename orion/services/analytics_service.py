"""Rolling telemetry time series sampled from the printer backend.

NanoDLP has two endpoints: a scalar one that is cheap enough to sample one
metric quickly, and a batched list that is fetched every Nth fast cycle.
Odyssey has no analytics endpoint; every status event is treated as one
sample instead.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Iterable, Mapping, Optional

from orion.backends.nanodlp.analytics import metric_key
from orion.backends.payload import parse_float, parse_int
from orion.core.config import AnalyticsConfig, RuntimeOptions
from orion.core.request_context import request_context
from orion.core.tasks import LifecycleManager, cancel_task, spawn
from orion.models import TimeSeriesPoint
from orion.services.state_notifier import StateNotifier

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Maintain bounded per-metric ring buffers."""

    def __init__(
        self,
        backend: Any,
        options: RuntimeOptions,
        config: AnalyticsConfig | None = None,
        *,
        notifier: StateNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._options = options
        self._config = config or AnalyticsConfig()
        self._notifier = notifier
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._series: dict[str, Deque[TimeSeriesPoint]] = {}
        self._last_ids: dict[str, int] = {}
        self._cycle = 0
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._lifecycle = LifecycleManager(name="analytics", logger=logger)
        self.loading = True
        self.last_error: Optional[str] = None

    @property
    def capacity(self) -> int:
        if self._options.is_nanodlp_mode:
            hz = self._config.fast_hz
        else:
            hz = 1.0 / max(self._config.poll_interval, 0.001)
        return max(1, int(self._config.window_seconds * hz))

    @property
    def fast_interval(self) -> float:
        return 1.0 / max(self._config.fast_hz, 0.001)

    # -- lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        await self._lifecycle.start([self._start_loop])

    async def stop(self) -> None:
        await self._lifecycle.stop([self._stop_loop])

    async def _start_loop(self) -> None:
        loop = self._run_nanodlp if self._options.is_nanodlp_mode else self._run_odyssey
        self._task = spawn(loop(), name="analytics-poller", logger=logger)

    async def _stop_loop(self) -> None:
        await cancel_task(self._task)
        self._task = None

    async def _run_nanodlp(self) -> None:
        with request_context("bg:analytics"):
            logger.info(
                "Analytics polling metric %s at %.1f Hz (batch every %d cycles)",
                metric_key(self._config.fast_metric_id),
                self._config.fast_hz,
                self._config.batch_every,
            )
            while True:
                started = self._clock()
                await self.refresh()
                latency = self._clock() - started
                await self._sleep(max(0.0, self.fast_interval - latency))

    async def _run_odyssey(self) -> None:
        with request_context("bg:analytics"):
            try:
                stream = await self._backend.get_status_stream()
                async for payload in stream:
                    await self._record_sample(payload)
                logger.info("Analytics stream closed; falling back to polling")
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.info("Analytics stream unavailable, polling instead: %s", exc)
            while True:
                await self.refresh()
                await self._sleep(self._config.poll_interval)

    # -- sampling ---------------------------------------------------------------

    async def refresh(self) -> None:
        """Run one sampling cycle; failures are logged and skipped."""
        if self._in_flight:
            return
        self._in_flight = True
        try:
            if self._options.is_nanodlp_mode:
                await self._nanodlp_cycle()
            else:
                await self._odyssey_cycle()
        finally:
            self._in_flight = False

    async def _nanodlp_cycle(self) -> None:
        self._cycle += 1
        fast_id = self._config.fast_metric_id
        added = False
        try:
            value = parse_float(await self._backend.get_analytic_value(fast_id))
        except Exception as exc:  # noqa: BLE001
            self._skip("fast", exc)
        else:
            if value is not None:
                self._append(metric_key(fast_id), TimeSeriesPoint(id=self._now_ms(), v=value))
                added = True

        if self._cycle == 1 or self._cycle % max(self._config.batch_every, 1) == 0:
            try:
                entries = await self._backend.get_analytics(self._config.batch_size)
            except Exception as exc:  # noqa: BLE001
                self._skip("batch", exc)
            else:
                added = self.ingest_batch(entries, skip_ids=(fast_id,)) > 0 or added

        if added:
            self.loading = False
            self.last_error = None
            await self._publish()

    async def _odyssey_cycle(self) -> None:
        try:
            payload = await self._backend.get_status()
        except Exception as exc:  # noqa: BLE001
            self._skip("status", exc)
            return
        await self._record_sample(payload)

    def _skip(self, path: str, exc: BaseException) -> None:
        self.last_error = str(exc) or exc.__class__.__name__
        logger.debug("Analytics %s sample skipped: %s", path, exc)

    async def _record_sample(self, payload: Mapping[str, Any]) -> None:
        if self.ingest_sample(payload):
            self.loading = False
            self.last_error = None
            await self._publish()

    def ingest_batch(self, entries: Iterable[Any], *, skip_ids: tuple[int, ...] = ()) -> int:
        """Append ``[{ID, T, V}]`` entries grouped by metric id ``T``.

        Entries whose ``ID`` was already seen for that metric are dropped.
        Returns the number of points appended.
        """
        grouped: dict[int, list[tuple[int, float]]] = {}
        for item in entries or ():
            if not isinstance(item, Mapping):
                continue
            metric = parse_int(item.get("T"))
            entry_id = parse_int(item.get("ID"))
            value = parse_float(item.get("V"))
            if metric is None or entry_id is None or value is None or metric in skip_ids:
                continue
            grouped.setdefault(metric, []).append((entry_id, value))

        appended = 0
        for metric, points in grouped.items():
            key = metric_key(metric)
            last_id = self._last_ids.get(key)
            for entry_id, value in sorted(points):
                if last_id is not None and entry_id <= last_id:
                    continue
                self._append(key, TimeSeriesPoint(id=entry_id, v=value))
                last_id = entry_id
                appended += 1
        return appended

    def ingest_sample(self, payload: Mapping[str, Any]) -> int:
        """Treat numeric fields of a status event as one sample each.

        Top-level numbers become ``key``; numbers one level down become
        ``parent.key``.
        """
        if not isinstance(payload, Mapping):
            return 0
        sample_id = self._now_ms()
        appended = 0
        for key, value in payload.items():
            if isinstance(value, Mapping):
                for sub_key, sub_value in value.items():
                    if _is_number(sub_value):
                        self._append(f"{key}.{sub_key}", TimeSeriesPoint(id=sample_id, v=float(sub_value)))
                        appended += 1
            elif _is_number(value):
                self._append(str(key), TimeSeriesPoint(id=sample_id, v=float(value)))
                appended += 1
        return appended

    def _append(self, key: str, point: TimeSeriesPoint) -> None:
        series = self._series.get(key)
        if series is None:
            series = deque(maxlen=self.capacity)
            self._series[key] = series
        series.append(point)
        self._last_ids[key] = max(point.id, self._last_ids.get(key, point.id))

    def _now_ms(self) -> int:
        return int(self._wall_clock() * 1000)

    async def _publish(self) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify("analytics", {"latest": self.latest_values()})

    # -- queries ----------------------------------------------------------------

    def keys(self) -> list[str]:
        return sorted(self._series)

    def series(self, key: str) -> list[TimeSeriesPoint]:
        return list(self._series.get(key, ()))

    def latest(self, key: str) -> Optional[float]:
        series = self._series.get(key)
        if not series:
            return None
        return series[-1].v

    def latest_values(self) -> dict[str, float]:
        return {key: series[-1].v for key, series in self._series.items() if series}

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return {
            key: [point.model_dump() for point in series]
            for key, series in self._series.items()
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
