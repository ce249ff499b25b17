"""Status reconciliation engine.

Owns the single view of printer status the UI consumes. It chooses between
the status stream and polling, schedules retries with jittered exponential
backoff, keeps the optimistic pausing/canceling flags, gates the "ready"
state after a reset and suppresses notifications that would not change what
the UI renders.

Two loops may exist per engine, the poll loop and the stream session, and
they never run at the same time: a live stream cancels polling and a failed
stream restarts it. Every backend error is absorbed here; callers only see
``error`` and ``consecutive_errors``.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from orion.backends.payload import first_present, parse_layer_duration_seconds, parse_temperature
from orion.core.config import RuntimeOptions
from orion.core.exceptions import StreamUnsupportedError
from orion.core.request_context import request_context
from orion.core.tasks import LifecycleManager, cancel_task, spawn
from orion.models import FileRef, PrinterStatus, StatusSnapshot
from orion.services.analytics_service import AnalyticsService
from orion.services.state_notifier import StateNotifier
from orion.services.thumbnail_cache import ThumbnailCache
from orion.services.utils.backoff import RetryBudget

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 2
MAX_POLL_INTERVAL = 60
INITIAL_MAX_POLL_INTERVAL = 5
SSE_RECONNECT_BASE = 3
SSE_POLL_ERROR_THRESHOLD = 3
SSE_RETRY_AFTER_RECOVERY = 0.25
MAX_ATTEMPTS = 20
AWAITING_TIMEOUT = 12.0
MIN_SPINNER = 2.0
MAX_THUMBNAIL_RETRIES = 3
MAX_LAYER_DELTA = 24 * 3600
THUMBNAIL_SIZE = "Large"

RESIN_TEMPERATURE_KEYS = ("resin", "Resin", "resin_temperature", "ResinTemperature")
CPU_TEMPERATURE_KEYS = ("temp", "Temp", "cpu_temp")
PREV_LAYER_KEYS = ("PrevLayerTime", "prev_layer_seconds")


class TransportMode(str, Enum):
    UNINITIALIZED = "uninitialized"
    POLLING = "polling"
    STREAMING = "streaming"


class FetchPhase(str, Enum):
    IDLE = "idle"
    FETCH_IN_FLIGHT = "fetch_in_flight"
    BACKING_OFF = "backing_off"


@dataclass
class AwaitingGate:
    """Armed by a reset; holds "not ready" until a job signal or timeout."""

    awaiting: bool = False
    since: Optional[float] = None

    def arm(self, now: float) -> None:
        self.awaiting = True
        self.since = now

    def clear(self) -> None:
        self.awaiting = False
        self.since = None

    def expired(self, now: float, timeout: float = AWAITING_TIMEOUT) -> bool:
        return self.since is not None and now - self.since > timeout

    def active(self, now: float, timeout: float = AWAITING_TIMEOUT) -> bool:
        return self.awaiting and not self.expired(now, timeout)


def _resin_temperature(raw: Mapping[str, Any]) -> Optional[int]:
    value = first_present(raw, RESIN_TEMPERATURE_KEYS)
    parsed = parse_temperature(value)
    if parsed is None:
        return None
    if isinstance(value, (int, float)):
        return int(parsed)
    return round(parsed)


def _cpu_temperature(raw: Mapping[str, Any]) -> Optional[float]:
    return parse_temperature(first_present(raw, CPU_TEMPERATURE_KEYS))


class StatusService:
    """Reconcile backend status into one notification-friendly view."""

    def __init__(
        self,
        backend: Any,
        options: RuntimeOptions,
        *,
        thumbnails: ThumbnailCache | None = None,
        analytics: AnalyticsService | None = None,
        notifier: StateNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._backend = backend
        self._options = options
        self._thumbnails = thumbnails or ThumbnailCache(backend)
        self._analytics = analytics
        self._notifier = notifier
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep
        rng = rng or random.Random()
        self._poll_budget = RetryBudget(
            base_delay=MIN_POLL_INTERVAL,
            max_delay=MAX_POLL_INTERVAL,
            max_attempts=MAX_ATTEMPTS,
            rng=rng,
        )
        self._sse_budget = RetryBudget(
            base_delay=SSE_RECONNECT_BASE,
            max_delay=MAX_POLL_INTERVAL,
            max_attempts=MAX_ATTEMPTS,
            rng=rng,
        )
        self._lifecycle = LifecycleManager(name="status-service", logger=logger)

        self._status: Optional[StatusSnapshot] = None
        self._raw_message: Optional[str] = None
        self._error: Optional[str] = None
        self._loading = True
        self._has_ever_connected = False
        self._phase = FetchPhase.IDLE
        self._mode = TransportMode.UNINITIALIZED
        self._poll_interval: float = MIN_POLL_INTERVAL
        self._next_poll_at: Optional[float] = None
        self._next_sse_at: Optional[float] = None
        self._polling_paused = False
        self._disposed = False

        self._sse_supported: Optional[bool] = None
        self._sse_connected = False
        self._sse_ever_connected = False

        self._is_pausing = False
        self._is_canceling = False
        self._awaiting = AwaitingGate()
        self._min_spinner_until: Optional[float] = None

        self._thumbnail: Optional[bytes] = None
        self._thumbnail_is_placeholder = False
        self._thumbnail_ready = False
        self._thumbnail_in_flight = False
        self._thumbnail_retries: dict[str, int] = {}

        self._last_layer: Optional[int] = None
        self._last_layer_at: Optional[float] = None
        self._prev_layer_seconds: Optional[float] = None
        self._current_layer_seconds: Optional[float] = None
        self._resin_temperature: Optional[int] = None
        self._cpu_temperature: Optional[float] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._sse_task: Optional[asyncio.Task] = None
        self._spinner_task: Optional[asyncio.Task] = None
        self._awaiting_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._last_notified: Optional[tuple] = None
        self.notify_count = 0

    # -- lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        self._disposed = False
        await self._lifecycle.start([self._start_transport])

    async def stop(self) -> None:
        self._disposed = True
        if self._lifecycle.started:
            await self._lifecycle.stop([self._cancel_tasks])
        else:
            await self._cancel_tasks()

    async def _start_transport(self) -> None:
        if self._should_try_sse():
            self._schedule_sse(0.0)
        else:
            logger.info("Status stream skipped (%s); polling", self._sse_skip_reason())
            self._ensure_polling()

    async def _cancel_tasks(self) -> None:
        for task in (self._sse_task, self._poll_task, self._spinner_task, self._awaiting_task, self._refresh_task):
            await cancel_task(task)
        self._sse_task = self._poll_task = self._spinner_task = None
        self._awaiting_task = self._refresh_task = None
        self._sse_connected = False
        self._mode = TransportMode.UNINITIALIZED

    # -- read-only view ---------------------------------------------------------

    @property
    def status(self) -> Optional[StatusSnapshot]:
        return self._status

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def consecutive_errors(self) -> int:
        return self._poll_budget.attempts

    @property
    def initial_attempt_in_progress(self) -> bool:
        return self._loading

    @property
    def has_ever_connected(self) -> bool:
        return self._has_ever_connected

    @property
    def transport_mode(self) -> TransportMode:
        return self._mode

    @property
    def fetch_phase(self) -> FetchPhase:
        return self._phase

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def sse_supported(self) -> Optional[bool]:
        return self._sse_supported

    @property
    def sse_connected(self) -> bool:
        return self._sse_connected

    @property
    def polling_paused(self) -> bool:
        return self._polling_paused

    @property
    def is_pausing(self) -> bool:
        return self._is_pausing

    @property
    def is_canceling(self) -> bool:
        return self._is_canceling

    @property
    def awaiting_new_print_data(self) -> bool:
        return self._awaiting.active(self._clock())

    @property
    def min_spinner_active(self) -> bool:
        return self._min_spinner_until is not None and self._clock() < self._min_spinner_until

    @property
    def next_retry_at(self) -> Optional[float]:
        """Wall-clock time of the earliest scheduled poll or stream retry."""
        pending = [at for at in (self._next_poll_at, self._next_sse_at) if at is not None]
        return min(pending) if pending else None

    @property
    def thumbnail(self) -> Optional[bytes]:
        return self._thumbnail

    @property
    def thumbnail_is_placeholder(self) -> bool:
        return self._thumbnail_is_placeholder

    @property
    def thumbnail_ready(self) -> bool:
        return self._thumbnail_ready

    @property
    def new_print_ready(self) -> bool:
        status = self._status
        return bool(status and status.is_active and status.file_data is not None and self._thumbnail_ready)

    @property
    def device_status_message(self) -> Optional[str]:
        if self._status is not None and self._status.device_status_message:
            return self._status.device_status_message
        return self._raw_message

    @property
    def resin_temperature(self) -> Optional[int]:
        return self._resin_temperature

    @property
    def cpu_temperature(self) -> Optional[float]:
        return self._cpu_temperature

    @property
    def mcu_temperature(self) -> Optional[float]:
        return self._analytics.latest("TemperatureMCU") if self._analytics else None

    @property
    def uv_temperature(self) -> Optional[float]:
        return self._analytics.latest("TemperatureOutside") if self._analytics else None

    @property
    def prev_layer_seconds(self) -> Optional[float]:
        return self._prev_layer_seconds

    @property
    def current_layer_seconds(self) -> Optional[float]:
        return self._current_layer_seconds

    def view(self) -> dict[str, Any]:
        status = self._status
        return {
            "status": status.model_dump(mode="json") if status else None,
            "display_label": status.display_label(
                transitional_cancel=self._is_canceling,
                transitional_pause=self._is_pausing,
            ) if status else None,
            "is_printing": bool(status and status.is_printing),
            "is_paused": bool(status and status.is_paused),
            "is_canceled": bool(status and status.is_canceled),
            "is_idle": bool(status and status.is_idle),
            "progress": status.progress if status else 0.0,
            "is_pausing": self._is_pausing,
            "is_canceling": self._is_canceling,
            "awaiting_new_print_data": self.awaiting_new_print_data,
            "min_spinner_active": self.min_spinner_active,
            "loading": self._loading or self.min_spinner_active,
            "error": self._error,
            "consecutive_errors": self.consecutive_errors,
            "has_ever_connected": self._has_ever_connected,
            "transport": self._mode.value,
            "phase": self._phase.value,
            "polling_paused": self._polling_paused,
            "sse_supported": self._sse_supported,
            "sse_connected": self._sse_connected,
            "poll_interval": self._poll_interval,
            "next_retry_at": self.next_retry_at,
            "thumbnail_ready": self._thumbnail_ready,
            "has_thumbnail": self._thumbnail is not None,
            "thumbnail_is_placeholder": self._thumbnail_is_placeholder,
            "new_print_ready": self.new_print_ready,
            "device_status_message": self.device_status_message,
            "resin_temperature": self._resin_temperature,
            "cpu_temperature": self._cpu_temperature,
            "mcu_temperature": self.mcu_temperature,
            "uv_temperature": self.uv_temperature,
            "prev_layer_seconds": self._prev_layer_seconds,
            "current_layer_seconds": self._current_layer_seconds,
        }

    # -- notifications ----------------------------------------------------------

    def _observable(self) -> tuple:
        return (
            self._error,
            self.consecutive_errors,
            self._loading,
            self._sse_supported,
            self._is_pausing,
            self._is_canceling,
            self._awaiting.awaiting,
            self.min_spinner_active,
            self._thumbnail_ready,
        )

    async def _notify_if_changed(self, *, force: bool = False) -> None:
        if self._disposed:
            return
        status = self._status
        key = (status.fingerprint() if status else None, self._observable())
        # Active jobs always notify so progress keeps ticking on repetitive payloads.
        active = status is not None and status.is_active
        if not force and not active and key == self._last_notified:
            return
        self._last_notified = key
        self.notify_count += 1
        if self._notifier is not None:
            await self._notifier.notify("status", self.view())

    # -- polling ----------------------------------------------------------------

    async def refresh(self, *, force: bool = False) -> None:
        """Fetch once. No-op while a fetch is in flight, or while backing off unless forced."""
        await self._fetch(force=force)

    async def _fetch(self, *, force: bool) -> None:
        if self._disposed:
            return
        if self._phase is FetchPhase.FETCH_IN_FLIGHT:
            logger.debug("Status fetch already in flight; skipping")
            return
        if self._phase is FetchPhase.BACKING_OFF and not force:
            logger.debug("Status fetch skipped while backing off")
            return
        self._phase = FetchPhase.FETCH_IN_FLIGHT
        try:
            payload = await self._backend.get_status()
        except asyncio.CancelledError:
            self._phase = FetchPhase.IDLE
            raise
        except Exception as exc:  # noqa: BLE001
            await self._record_failure(exc)
            return
        self._phase = FetchPhase.IDLE
        if self._disposed:
            return
        try:
            await self._apply_payload(payload)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Status payload rejected: %r", payload, exc_info=True)
            await self._record_failure(exc)

    async def _record_failure(self, exc: BaseException) -> None:
        self._error = str(exc) or exc.__class__.__name__
        self._loading = False
        attempts = self._poll_budget.record_failure()
        cap = MAX_POLL_INTERVAL if self._has_ever_connected else INITIAL_MAX_POLL_INTERVAL
        self._poll_interval = self._poll_budget.next_delay(cap=cap)
        self._phase = FetchPhase.BACKING_OFF
        logger.warning(
            "Status refresh failed (attempt %d, next poll in %ss): %s",
            attempts,
            self._poll_interval,
            self._error,
        )
        await self._notify_if_changed()

    def _ensure_polling(self) -> None:
        if self._disposed or self._polling_paused or self._mode is TransportMode.STREAMING:
            return
        self._mode = TransportMode.POLLING
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = spawn(self._poll_loop(), name="status-poll", logger=logger)

    async def _poll_loop(self) -> None:
        with request_context("bg:status-poll"):
            while not self._disposed and self._mode is TransportMode.POLLING:
                await self._fetch(force=True)
                if self._disposed or self._mode is not TransportMode.POLLING:
                    break
                delay = self._poll_interval
                if self._phase is FetchPhase.BACKING_OFF:
                    self._next_poll_at = self._wall_clock() + delay
                else:
                    self._next_poll_at = None
                await self._sleep(delay)

    # -- payload processing -----------------------------------------------------

    async def _apply_payload(self, payload: Mapping[str, Any]) -> None:
        snapshot = StatusSnapshot.from_payload(payload)
        now = self._clock()
        recovered = self._poll_budget.attempts > 0

        self._status = snapshot
        message = payload.get("device_status_message") or first_present(payload, ("Status", "status"))
        self._raw_message = str(message) if message is not None else None
        self._error = None
        self._loading = False
        self._has_ever_connected = True
        self._poll_budget.reset()
        self._poll_interval = MIN_POLL_INTERVAL
        self._next_poll_at = None
        if self._phase is FetchPhase.BACKING_OFF:
            self._phase = FetchPhase.IDLE

        self._resin_temperature = _resin_temperature(payload)
        self._cpu_temperature = _cpu_temperature(payload)
        self._update_layer_timing(snapshot, payload, now)
        self._update_transitional_flags(snapshot)
        self._update_awaiting_gate(snapshot, now)

        if recovered and self._mode is TransportMode.POLLING and self._should_try_sse():
            logger.info("Polling recovered; retrying status stream shortly")
            self._schedule_sse(SSE_RETRY_AFTER_RECOVERY, replace=True)

        await self._notify_if_changed()
        if await self._acquire_thumbnail(snapshot):
            await self._notify_if_changed()

    def _update_layer_timing(self, snapshot: StatusSnapshot, payload: Mapping[str, Any], now: float) -> None:
        layer = snapshot.layer
        if layer is not None:
            if self._last_layer is None or layer < self._last_layer:
                self._last_layer, self._last_layer_at = layer, now
            elif layer > self._last_layer:
                if self._last_layer_at is not None:
                    delta = now - self._last_layer_at
                    if 0 < delta < MAX_LAYER_DELTA:
                        self._prev_layer_seconds = delta
                self._last_layer, self._last_layer_at = layer, now

        raw_prev = first_present(payload, PREV_LAYER_KEYS)
        if raw_prev is not None:
            parsed = parse_layer_duration_seconds(raw_prev)
            if parsed is not None:
                self._prev_layer_seconds = parsed
        elif snapshot.prev_layer_seconds is not None:
            self._prev_layer_seconds = snapshot.prev_layer_seconds

        if snapshot.is_printing and self._analytics is not None:
            layer_time = self._analytics.latest("LayerTime")
            if layer_time is not None:
                self._current_layer_seconds = layer_time
                self._prev_layer_seconds = layer_time
        elif not snapshot.is_printing:
            self._current_layer_seconds = None

    def _update_transitional_flags(self, snapshot: StatusSnapshot) -> None:
        if snapshot.status is PrinterStatus.CANCELING or (snapshot.cancel_latched and not snapshot.is_idle):
            self._is_canceling = True
        elif self._is_canceling and (snapshot.is_canceled or snapshot.finished or snapshot.is_idle):
            self._is_canceling = False

        if snapshot.pause_latched or snapshot.status is PrinterStatus.PAUSING:
            self._is_pausing = True
        elif self._is_pausing and (snapshot.is_paused or snapshot.is_idle or snapshot.is_canceled):
            self._is_pausing = False

    def _update_awaiting_gate(self, snapshot: StatusSnapshot, now: float) -> None:
        if not self._awaiting.awaiting:
            return
        reason = None
        if snapshot.is_active:
            reason = "active job"
        elif snapshot.is_idle and snapshot.layer is not None:
            reason = "finished"
        elif snapshot.cancel_latched or (snapshot.is_canceled and snapshot.print_data is not None):
            reason = "canceled"
        elif self._awaiting.expired(now):
            reason = "timeout"
        if reason is not None:
            logger.info("No longer awaiting new print data (%s)", reason)
            self._awaiting.clear()

    async def _acquire_thumbnail(self, snapshot: StatusSnapshot) -> bool:
        """Fetch the job thumbnail lazily; returns True when thumbnail state changed."""
        if not snapshot.is_printing or self._thumbnail_ready or self._thumbnail is not None:
            return False
        if self._thumbnail_in_flight:
            return False
        file_data = snapshot.file_data
        if file_data is None or not file_data.path:
            return False

        location = file_data.location_category or ("Usb" if self._options.use_usb_by_default else "Local")
        file_ref = FileRef.from_file_data(file_data)
        self._thumbnail_in_flight = True
        try:
            thumb = await self._thumbnails.get_thumbnail(
                location, file_data.subdirectory, file_data.name, file_ref, THUMBNAIL_SIZE
            )
            if thumb is None:
                self._thumbnail = None
                self._thumbnail_ready = True
                return True
            if not thumb.is_placeholder:
                self._set_thumbnail(thumb.data, placeholder=False)
                return True

            tried = self._thumbnail_retries.get(file_data.path, 0)
            if tried < MAX_THUMBNAIL_RETRIES:
                self._thumbnail_retries[file_data.path] = tried + 1
                fresh = await self._thumbnails.get_thumbnail(
                    location,
                    file_data.subdirectory,
                    file_data.name,
                    file_ref,
                    THUMBNAIL_SIZE,
                    force_refresh=True,
                )
                if fresh is not None and not fresh.is_placeholder:
                    self._set_thumbnail(fresh.data, placeholder=False)
                    return True
                logger.debug(
                    "Thumbnail for %s still a placeholder (attempt %d/%d)",
                    file_data.path,
                    tried + 1,
                    MAX_THUMBNAIL_RETRIES,
                )
                return False
            self._set_thumbnail(thumb.data, placeholder=True)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("Thumbnail acquisition failed for %s: %s", file_data.path, exc)
            self._thumbnail = None
            self._thumbnail_ready = True
            return True
        finally:
            self._thumbnail_in_flight = False

    def _set_thumbnail(self, data: bytes, *, placeholder: bool) -> None:
        self._thumbnail = data
        self._thumbnail_is_placeholder = placeholder
        self._thumbnail_ready = True

    # -- status stream ----------------------------------------------------------

    def _sse_skip_reason(self) -> Optional[str]:
        if self._options.is_nanodlp_mode:
            return "polling-only backend"
        if self._sse_supported is False:
            return "stream unsupported this session"
        if self.consecutive_errors >= SSE_POLL_ERROR_THRESHOLD:
            return f"{self.consecutive_errors} consecutive poll errors"
        return None

    def _should_try_sse(self) -> bool:
        return self._sse_skip_reason() is None

    def _schedule_sse(self, delay: float, *, replace: bool = False) -> None:
        if self._disposed:
            return
        current = self._sse_task
        if current is not None and not current.done() and current is not asyncio.current_task():
            if not replace:
                return
            current.cancel()
        self._next_sse_at = self._wall_clock() + delay if delay > 0 else None
        self._sse_task = spawn(self._sse_session(delay), name="status-sse", logger=logger)

    def _schedule_sse_reconnect(self) -> None:
        attempts = self._sse_budget.record_failure()
        delay = self._sse_budget.next_delay()
        logger.info("Status stream reconnect %d scheduled in %ss", attempts, delay)
        self._schedule_sse(delay)

    def _mark_sse_unsupported(self, reason: str) -> None:
        if self._sse_supported is not False:
            logger.info("Status stream marked unsupported for this session: %s", reason)
        self._sse_supported = False
        self._next_sse_at = None

    async def _sse_session(self, delay: float) -> None:
        with request_context("bg:status-sse"):
            if delay > 0:
                await self._sleep(delay)
            self._next_sse_at = None
            if self._disposed or self._polling_paused or self._mode is TransportMode.STREAMING:
                return
            if not self._should_try_sse():
                logger.info("Status stream skipped (%s); polling", self._sse_skip_reason())
                self._ensure_polling()
                return

            logger.info("Attempting status stream subscription")
            try:
                stream = await self._backend.get_status_stream()
            except StreamUnsupportedError as exc:
                self._mark_sse_unsupported(str(exc))
                self._ensure_polling()
                await self._notify_if_changed()
                return
            except Exception as exc:  # noqa: BLE001
                await self._on_sse_failure(exc)
                return

            await self._on_sse_connected()
            try:
                async for payload in stream:
                    if self._disposed:
                        return
                    await self._apply_payload(payload)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                await self._on_sse_failure(exc)
                return
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            await self._on_sse_failure(None)

    async def _on_sse_connected(self) -> None:
        self._sse_connected = True
        self._sse_ever_connected = True
        self._sse_supported = True
        self._sse_budget.reset()
        self._next_sse_at = None
        self._mode = TransportMode.STREAMING
        poll_task, self._poll_task = self._poll_task, None
        await cancel_task(poll_task)
        self._next_poll_at = None
        if self._phase is not FetchPhase.IDLE:
            self._phase = FetchPhase.IDLE
        logger.info("Status stream connected; polling suspended")
        await self._notify_if_changed()

    async def _on_sse_failure(self, exc: BaseException | None) -> None:
        self._sse_connected = False
        if self._mode is TransportMode.STREAMING:
            self._mode = TransportMode.POLLING
        if self._disposed:
            return
        if exc is None:
            logger.info("Status stream closed by backend; falling back to polling")
        else:
            logger.warning("Status stream failed, falling back to polling: %s", exc)

        if self._sse_ever_connected:
            self._schedule_sse_reconnect()
        elif self._has_ever_connected and self.consecutive_errors < SSE_POLL_ERROR_THRESHOLD:
            # Polling works but the stream does not: the backend lacks it.
            self._mark_sse_unsupported("stream failed while polling is healthy")
        else:
            self._schedule_sse_reconnect()
        self._ensure_polling()
        await self._notify_if_changed()

    # -- actions ----------------------------------------------------------------

    async def pause_or_resume(self) -> Optional[bool]:
        """Toggle pause. Returns None when skipped, else whether the call succeeded."""
        status = self._status
        if status is None or self._is_pausing:
            return None
        resuming = status.is_paused
        self._is_pausing = True
        await self._notify_if_changed()
        try:
            if resuming:
                await self._backend.resume_print()
                self._is_pausing = False
            else:
                await self._backend.pause_print()
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("%s failed: %s", "Resume" if resuming else "Pause", exc)
            self._is_pausing = False
            return False
        finally:
            await self.refresh(force=True)

    async def cancel(self) -> Optional[bool]:
        """Cancel the job. The canceling flag survives a failed call until a snapshot settles it."""
        if self._is_canceling:
            return None
        self._is_canceling = True
        await self._notify_if_changed()
        try:
            await self._backend.cancel_print()
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("Cancel failed: %s", exc)
            return False
        finally:
            await self.refresh(force=True)

    async def reset_status(
        self,
        initial_thumbnail: Optional[bytes] = None,
        initial_file_path: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Purge status ahead of a new job and arm the awaiting gate.

        Adapter latches from the previous job are forgotten as well.

        Returns the task running the immediate refresh.
        """
        logger.info("Resetting status%s", f" for {initial_file_path}" if initial_file_path else "")
        now = self._clock()
        self._status = None
        self._raw_message = None
        self._error = None
        self._loading = True
        self._is_pausing = False
        self._is_canceling = False
        self._thumbnail = initial_thumbnail
        self._thumbnail_is_placeholder = False
        self._thumbnail_ready = initial_thumbnail is not None
        self._thumbnail_retries.clear()
        self._last_layer = None
        self._last_layer_at = None
        self._prev_layer_seconds = None
        self._current_layer_seconds = None
        self._backend.reset_state()
        self._awaiting.arm(now)
        self._min_spinner_until = now + MIN_SPINNER
        await self._notify_if_changed(force=True)
        if self._disposed:
            return None

        await cancel_task(self._spinner_task)
        await cancel_task(self._awaiting_task)
        self._spinner_task = spawn(self._expire_spinner(), name="status-spinner", logger=logger)
        self._awaiting_task = spawn(self._expire_awaiting(), name="status-awaiting", logger=logger)
        self._refresh_task = spawn(self.refresh(), name="status-reset-refresh", logger=logger)
        return self._refresh_task

    async def _expire_spinner(self) -> None:
        await self._sleep(MIN_SPINNER)
        if self._disposed:
            return
        self._min_spinner_until = None
        await self._notify_if_changed(force=True)

    async def _expire_awaiting(self) -> None:
        # Streams can stay quiet after a reset; no snapshot would clear the gate.
        await self._sleep(AWAITING_TIMEOUT)
        if self._disposed or not self._awaiting.awaiting:
            return
        logger.info("No longer awaiting new print data (timeout)")
        self._awaiting.clear()
        await self._notify_if_changed(force=True)

    async def clear_error(self) -> None:
        self._error = None
        await self._notify_if_changed()

    async def pause_polling(self) -> None:
        """Stop polling and the stream, e.g. while the backend is updating."""
        self._polling_paused = True
        for task in (self._sse_task, self._poll_task):
            await cancel_task(task)
        self._sse_task = self._poll_task = None
        self._sse_connected = False
        self._mode = TransportMode.UNINITIALIZED
        self._next_poll_at = None
        self._next_sse_at = None
        if self._phase is not FetchPhase.IDLE:
            self._phase = FetchPhase.IDLE
        self._error = None
        logger.info("Status polling paused")
        await self._notify_if_changed()

    async def resume_polling(self) -> None:
        if not self._polling_paused:
            return
        self._polling_paused = False
        logger.info("Status polling resumed")
        self._ensure_polling()
        await self._notify_if_changed(force=True)
