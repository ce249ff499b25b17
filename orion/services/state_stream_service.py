"""Channel snapshot + diff publisher over SSE."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from orion.services.state_notifier import StateNotifier

logger = logging.getLogger(__name__)

QUEUE_SIZE = 200

SnapshotProvider = Callable[[], dict[str, Any]]


@dataclass(eq=False)
class _Subscriber:
    queue: asyncio.Queue
    channels: Optional[frozenset[str]] = None
    __hash__ = object.__hash__

    def wants(self, channel: str) -> bool:
        return self.channels is None or channel in self.channels


class StateStreamService:
    """Publish full snapshots and diffs of each channel to SSE subscribers.

    The first update on a channel is sent as a ``snapshot``; later updates
    carry only the dotted paths that changed.
    """

    def __init__(self, notifier: StateNotifier) -> None:
        self._providers: dict[str, SnapshotProvider] = {}
        self._subscribers: set[_Subscriber] = set()
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        notifier.register(self._handle_state_update)

    def register_channel(self, channel: str, provider: SnapshotProvider) -> None:
        self._providers[channel] = provider

    @property
    def channels(self) -> list[str]:
        return sorted(self._providers)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def is_shutdown(self) -> bool:
        return self._shutdown_event.is_set()

    def reset(self) -> None:
        self._shutdown_event.clear()

    async def shutdown(self) -> None:
        self._shutdown_event.set()
        async with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for sub in subscribers:
            self._drain_queue(sub.queue)
            with contextlib.suppress(asyncio.QueueFull):
                sub.queue.put_nowait(None)

    async def subscribe(self, channels: Iterable[str] | None = None) -> _Subscriber:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        wanted = frozenset(channels) if channels else None
        subscriber = _Subscriber(queue=queue, channels=wanted)
        async with self._lock:
            self._subscribers.add(subscriber)
        return subscriber

    async def unsubscribe(self, subscriber: _Subscriber) -> None:
        async with self._lock:
            self._subscribers.discard(subscriber)

    def build_snapshot(self, channel: str) -> dict[str, Any]:
        provider = self._providers.get(channel)
        state = provider() if provider is not None else self._snapshots.get(channel, {})
        version = self._next_version(channel)
        self._snapshots[channel] = state
        return {
            "version": version,
            "ts": _utc_now(),
            "channel": channel,
            "state": state,
        }

    async def _handle_state_update(self, channel: str, state: dict[str, Any]) -> None:
        try:
            payload = self._build_diff_payload(channel, state)
            if not payload:
                return
            await self._broadcast(channel, payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("State stream publish failed: %s", exc)

    def _build_diff_payload(self, channel: str, current: dict[str, Any]) -> Optional[dict[str, Any]]:
        previous = self._snapshots.get(channel)
        if previous is None:
            version = self._next_version(channel)
            self._snapshots[channel] = current
            return {
                "event": "snapshot",
                "id": version,
                "data": {
                    "version": version,
                    "ts": _utc_now(),
                    "channel": channel,
                    "state": current,
                },
            }

        changes: dict[str, Any] = {}
        self._diff_dict(previous, current, "", changes)
        if not changes:
            return None

        version = self._next_version(channel)
        self._snapshots[channel] = current
        return {
            "event": "diff",
            "id": version,
            "data": {
                "version": version,
                "ts": _utc_now(),
                "channel": channel,
                "changes": changes,
            },
        }

    def _next_version(self, channel: str) -> int:
        version = self._versions.get(channel, 0) + 1
        self._versions[channel] = version
        return version

    async def _broadcast(self, channel: str, payload: dict[str, Any]) -> None:
        if self._shutdown_event.is_set():
            return
        dead: list[_Subscriber] = []
        async with self._lock:
            for sub in self._subscribers:
                if not sub.wants(channel):
                    continue
                try:
                    sub.queue.put_nowait(payload)
                except asyncio.QueueFull:
                    dead.append(sub)
        if dead:
            async with self._lock:
                for sub in dead:
                    self._subscribers.discard(sub)
            for sub in dead:
                self._drain_queue(sub.queue)
                with contextlib.suppress(asyncio.QueueFull):
                    sub.queue.put_nowait(None)
            logger.warning("State stream subscriber dropped due to backpressure")

    @staticmethod
    def _drain_queue(queue: asyncio.Queue) -> None:
        with contextlib.suppress(asyncio.QueueEmpty):
            while True:
                queue.get_nowait()

    def _diff_dict(
        self,
        previous: dict[str, Any],
        current: dict[str, Any],
        prefix: str,
        out: dict[str, Any],
    ) -> None:
        for key, value in current.items():
            path = f"{prefix}.{key}" if prefix else key
            if key not in previous:
                out[path] = value
                continue
            old_value = previous[key]
            if isinstance(value, dict) and isinstance(old_value, dict):
                self._diff_dict(old_value, value, path, out)
                continue
            if value != old_value:
                out[path] = value

        for key in previous.keys():
            if key not in current:
                path = f"{prefix}.{key}" if prefix else key
                out[path] = None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
