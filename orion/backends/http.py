"""Shared aiohttp transport used by the HTTP backend adapters."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional

import aiohttp

from orion.core.exceptions import TransportError
from orion.core.metrics import metrics

logger = logging.getLogger(__name__)


class HttpTransport:
    """Thin wrapper over one lazily created :class:`aiohttp.ClientSession`.

    Every request is bounded by ``timeout`` seconds; network errors, timeouts
    and non-2xx answers all surface as :class:`TransportError`.
    """

    def __init__(self, base_url: str, *, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        accept_status: tuple[int, ...] = (200,),
    ) -> tuple[int, bytes]:
        session = self._get_session()
        metric_name = f"backend.{path.split('?', 1)[0]}"
        try:
            with metrics.timed(metric_name):
                async with session.request(method, self.url(path), params=_clean_params(params)) as resp:
                    body = await resp.read()
                    if resp.status not in accept_status:
                        raise TransportError(
                            f"{method} {path} failed with HTTP {resp.status}",
                            extra={"status": resp.status},
                        )
                    return resp.status, body
        except TransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{method} {path} timed out") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

    async def get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        _, body = await self.request("GET", path, params=params)
        return _decode_json(path, body)

    async def post_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        _, body = await self.request("POST", path, params=params)
        return _decode_json(path, body) if body else {}

    async def delete_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        _, body = await self.request("DELETE", path, params=params)
        return _decode_json(path, body) if body else {}

    async def get_bytes(self, path: str, *, params: Mapping[str, Any] | None = None) -> bytes:
        _, body = await self.request("GET", path, params=params)
        return body

    async def open_event_stream(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Connect to a server-sent-events endpoint.

        Returns once the response headers arrived, so a successful await means
        the subscription is established. The iterator yields each ``data:``
        payload decoded as a JSON object; blank and undecodable lines are
        skipped.
        """
        session = self._get_session()
        # Only the connect phase is bounded; the stream itself stays open.
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._timeout.total)
        try:
            resp = await session.get(
                self.url(path),
                params=_clean_params(params),
                timeout=timeout,
                headers={"Accept": "text/event-stream"},
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"GET {path} stream timed out") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"GET {path} stream failed: {exc}") from exc
        if resp.status != 200:
            resp.release()
            raise TransportError(
                f"GET {path} stream failed with HTTP {resp.status}",
                extra={"status": resp.status},
            )
        return _iter_events(path, resp)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


async def _iter_events(path: str, resp: aiohttp.ClientResponse) -> AsyncIterator[dict[str, Any]]:
    try:
        async for raw_line in resp.content:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if not data:
                continue
            try:
                payload = json.loads(data)
            except ValueError:
                logger.debug("Skipping undecodable event on %s", path)
                continue
            if isinstance(payload, dict):
                yield payload
    except asyncio.TimeoutError as exc:
        raise TransportError(f"GET {path} stream timed out") from exc
    except aiohttp.ClientError as exc:
        raise TransportError(f"GET {path} stream interrupted: {exc}") from exc
    finally:
        resp.release()


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    return {
        key: str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in params.items()
        if value is not None
    }


def _decode_json(path: str, body: bytes) -> Any:
    try:
        return json.loads(body.decode("utf-8"))
    except ValueError as exc:
        raise TransportError(f"Invalid JSON from {path}") from exc
