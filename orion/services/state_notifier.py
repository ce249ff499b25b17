"""Publish service state updates to registered observers."""
from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List

StateHook = Callable[[str, dict[str, Any]], Awaitable[None] | None]

logger = logging.getLogger(__name__)


class StateNotifier:
    """Central dispatcher for state change hooks.

    Each update carries a channel name (``"status"``, ``"analytics"``) and a
    JSON-ready payload.
    """

    def __init__(self) -> None:
        self._hooks: List[StateHook] = []

    def register(self, hook: StateHook) -> None:
        self._hooks.append(hook)

    def unregister(self, hook: StateHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    async def notify(self, channel: str, payload: dict[str, Any]) -> None:
        for hook in self._hooks:
            try:
                result = hook(channel, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.warning("State hook failed for channel %s", channel)
