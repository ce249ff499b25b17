"""Utilities for monitoring background asyncio tasks."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Sequence

Logger = logging.Logger


def monitor_task(task: asyncio.Task, *, name: str, logger: Logger, on_error: Callable[[BaseException], None] | None = None) -> asyncio.Task:
    """Attach a callback to log unexpected task termination."""

    def _callback(finished: asyncio.Task) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            exc = finished.exception()
            if exc is None:
                return
            logger.error("Background task %s crashed: %s", name, exc, exc_info=exc)
            if on_error:
                on_error(exc)

    task.add_done_callback(_callback)
    return task


def spawn(coro: Awaitable[None], *, name: str, logger: Logger) -> asyncio.Task:
    """Create a named, monitored task on the running loop."""

    return monitor_task(asyncio.create_task(coro, name=name), name=name, logger=logger)


async def cancel_task(task: asyncio.Task | None) -> None:
    """Cancel ``task`` and wait for it, ignoring the resulting CancelledError."""

    if task is None or task.done():
        return
    if task is asyncio.current_task():
        task.cancel()
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class LifecycleManager:
    """Shared lifecycle helper for starting/stopping async services."""

    def __init__(self, *, name: str, logger: Logger) -> None:
        self._name = name
        self._logger = logger
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, steps: Sequence[Callable[[], Awaitable[None]]]) -> None:
        if self._started:
            return
        self._started = True
        if not steps:
            return
        await asyncio.gather(*(step() for step in steps))

    async def stop(self, steps: Sequence[Callable[[], Awaitable[None]]]) -> None:
        if not self._started:
            return
        self._started = False
        if not steps:
            return
        results = await asyncio.gather(*(step() for step in steps), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                self._logger.error("%s stop failed: %s", self._name, result, exc_info=result)

