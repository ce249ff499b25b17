"""Channel snapshot + diff stream over SSE.

``GET /api/state/stream?channel=status&channel=analytics`` sends one
``snapshot`` event per requested channel, then ``diff`` events carrying only
the dotted paths that changed. A ``ping`` goes out after 25 s of silence.
"""
from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from orion.api.dependencies import get_state_stream_service
from orion.core.exceptions import BadRequestError
from orion.services.state_stream_service import StateStreamService
from orion.services.status_service import SSE_RECONNECT_BASE

router = APIRouter()

PING_INTERVAL = 25


class SafeStreamingResponse(StreamingResponse):
    async def listen_for_disconnect(self, receive) -> None:
        try:
            await super().listen_for_disconnect(receive)
        except asyncio.CancelledError:
            return


def _sse_event(event: str, data: dict, event_id: Optional[int] = None) -> str:
    payload = json.dumps(data, separators=(",", ":"))
    parts = []
    if event_id is not None:
        parts.append(f"id: {event_id}")
    parts.append(f"event: {event}")
    parts.append(f"data: {payload}")
    return "\n".join(parts) + "\n\n"


async def _relay(
    request: Request,
    stream_service: StateStreamService,
    subscriber,
    snapshots: list[dict],
) -> AsyncIterator[str]:
    try:
        # Browsers reconnect on the same schedule the engine uses for the printer.
        yield f"retry: {SSE_RECONNECT_BASE * 1000}\n\n"
        for snapshot in snapshots:
            yield _sse_event("snapshot", snapshot, snapshot.get("version"))
        while not stream_service.is_shutdown():
            if await request.is_disconnected():
                break
            try:
                item = await asyncio.wait_for(subscriber.queue.get(), timeout=PING_INTERVAL)
            except asyncio.TimeoutError:
                yield _sse_event("ping", {"ts": asyncio.get_running_loop().time()})
                continue
            if item is None:
                break
            if item:
                yield _sse_event(item["event"], item["data"], item.get("id"))
    except asyncio.CancelledError:
        return
    finally:
        await stream_service.unsubscribe(subscriber)


@router.get("/state/stream", summary="Snapshot + diff stream of service state")
async def stream_state(
    request: Request,
    channel: Optional[list[str]] = Query(default=None),
    stream_service: StateStreamService = Depends(get_state_stream_service),
):
    channels = channel or stream_service.channels
    unknown = sorted(set(channels) - set(stream_service.channels))
    if unknown:
        raise BadRequestError(f"Unknown channel(s): {', '.join(unknown)}")

    subscriber = await stream_service.subscribe(channels)
    snapshots = [stream_service.build_snapshot(name) for name in channels]
    return SafeStreamingResponse(
        _relay(request, stream_service, subscriber, snapshots),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
