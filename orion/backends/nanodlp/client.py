"""NanoDLP HTTP backend adapter.

NanoDLP only offers polling endpoints, so the status "stream" is a poll loop
and all state canonicalization happens here, before the status map leaves
the adapter.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from orion.backends.base import BackendClient, Thumbnail, thumbnail_dimensions
from orion.backends.http import HttpTransport
from orion.backends.nanodlp.mapper import to_status_map
from orion.backends.nanodlp.plates import PlateCatalog, find_plate, find_plate_by_id, normalize_path
from orion.backends.nanodlp.state import NanoDlpStateHandler
from orion.backends.nanodlp.status import NanoFile, NanoStatus
from orion.backends.nanodlp.thumbnails import generate_placeholder
from orion.core.exceptions import TransportError, UnsupportedCapabilityError
from orion.core.tasks import spawn

logger = logging.getLogger(__name__)

STATUS_ATTEMPTS = 2
STATUS_RETRY_DELAY = 0.2
STREAM_POLL_INTERVAL = 2.0
RESOLVED_PLATE_TTL = 120.0
STARTUP_GRACE = 2.0
THUMBNAIL_TTL = 30.0
PLACEHOLDER_TTL = 5.0


@dataclass
class _CachedThumbnail:
    thumbnail: Thumbnail
    stored_at: float


@dataclass
class _ResolvedPlate:
    plate_id: int
    plate: NanoFile
    resolved_at: float


def _manual_result(body: bytes) -> dict[str, Any]:
    text = body.decode("utf-8", errors="replace").strip() if body else ""
    if not text:
        return {"ok": True, "message": None}
    try:
        decoded = json.loads(text)
    except ValueError:
        return {"ok": True, "message": text}
    if isinstance(decoded, dict):
        ok = decoded.get("ok", decoded.get("success", True))
        message = decoded.get("message")
        return {"ok": bool(ok), "message": str(message) if message is not None else None}
    if isinstance(decoded, bool):
        return {"ok": decoded, "message": None}
    return {"ok": True, "message": str(decoded)}


class NanoDlpClient(BackendClient):
    """Adapter for the polling-only NanoDLP web API."""

    name = "nanodlp"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        transport: HttpTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = transport or HttpTransport(base_url, timeout=timeout)
        self._clock = clock
        self._sleep = sleep
        self._created_at = clock()
        self._state = NanoDlpStateHandler()
        self._plates = PlateCatalog(self._http, clock=clock)
        self._resolved: Optional[_ResolvedPlate] = None
        self._resolving: Optional[int] = None
        self._thumbnails: dict[str, _CachedThumbnail] = {}
        self._thumbnail_inflight: dict[str, asyncio.Future] = {}
        self._background: set[asyncio.Task] = set()

    # -- status -----------------------------------------------------------------

    async def _fetch_raw_status(self) -> dict[str, Any]:
        decoded = await self._http.get_json("/status")
        if not isinstance(decoded, dict):
            raise TransportError("NanoDLP /status returned a non-object payload")
        # Per-layer fill areas are large and unused.
        decoded.pop("FillAreas", None)
        return decoded

    async def get_status(self) -> dict[str, Any]:
        attempt = 0
        while True:
            attempt += 1
            try:
                raw = await self._fetch_raw_status()
            except TransportError as exc:
                if attempt >= STATUS_ATTEMPTS:
                    raise
                logger.info("Retrying NanoDLP /status (attempt %d): %s", attempt + 1, exc)
                await self._sleep(STATUS_RETRY_DELAY)
                continue
            return self._map_status(raw)

    def _map_status(self, raw: dict[str, Any]) -> dict[str, Any]:
        status = NanoStatus.from_payload(raw)
        if status.file is None and status.plate_id is not None:
            status = self._attach_resolved_plate(status)
        canonical = self._state.canonicalize(status)
        return to_status_map(status, canonical, raw)

    def _attach_resolved_plate(self, status: NanoStatus) -> NanoStatus:
        plate_id = status.plate_id
        resolved = self._resolved
        if (
            resolved is not None
            and resolved.plate_id == plate_id
            and self._clock() - resolved.resolved_at < RESOLVED_PLATE_TTL
        ):
            return status.with_file(resolved.plate)
        if not status.printing:
            return status
        age = self._clock() - self._created_at
        if age < STARTUP_GRACE:
            logger.debug("Skipping PlateID %s resolve during startup (age=%.1fs)", plate_id, age)
            return status
        if self._resolving != plate_id:
            self._resolving = plate_id
            self._run_background(self._resolve_plate_id(plate_id), name=f"nanodlp-resolve-{plate_id}")
        return status

    async def _resolve_plate_id(self, plate_id: int, *, force_refresh: bool = False) -> None:
        try:
            plates = await self._plates.plates(force_refresh=force_refresh)
            found = find_plate_by_id(plates, plate_id)
            if found is not None:
                logger.debug("Resolved PlateID %s -> %s", plate_id, found.name)
                self._remember_plate(found)
        finally:
            if self._resolving == plate_id:
                self._resolving = None

    def _remember_plate(self, plate: NanoFile) -> None:
        if plate.plate_id is None:
            return
        self._resolved = _ResolvedPlate(plate.plate_id, plate, self._clock())

    def _run_background(self, coro: Awaitable[None], *, name: str) -> None:
        task = spawn(coro, name=name, logger=logger)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def get_status_stream(self) -> AsyncIterator[dict[str, Any]]:
        return self._poll_stream()

    async def _poll_stream(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            try:
                yield await self.get_status()
            except TransportError as exc:
                logger.debug("NanoDLP poll stream skipped a cycle: %s", exc)
            await self._sleep(STREAM_POLL_INTERVAL)

    def reset_state(self) -> None:
        self._state.reset()

    # -- files ------------------------------------------------------------------

    async def list_items(
        self,
        location: str,
        page_size: int,
        page_index: int,
        subdirectory: str,
    ) -> dict[str, Any]:
        plates = await self._plates.plates()
        files = [plate.to_file_entry() for plate in plates]
        logger.debug("listItems: mapped %d files from NanoDLP plates", len(files))
        return {
            "files": files,
            "dirs": [],
            "page_index": page_index,
            "page_size": page_size,
        }

    async def usb_available(self) -> bool:
        return False

    async def get_file_metadata(self, location: str, file_path: str) -> dict[str, Any]:
        plate = await self._plates.find(file_path)
        if plate is not None:
            return plate.to_metadata()
        return {
            "file_data": {
                "path": file_path,
                "name": file_path,
                "last_modified": 0,
                "parent_path": "",
            },
        }

    async def get_config(self) -> dict[str, Any]:
        decoded = await self._fetch_raw_status()
        return {
            "general": {
                "hostname": decoded.get("Hostname") or decoded.get("hostname") or "",
                "ip": decoded.get("IP") or decoded.get("ip") or "",
                "status": decoded.get("Status") or decoded.get("status") or "",
            },
            "advanced": {
                "backend": "nanodlp",
                "nanodlp": {
                    "build": decoded.get("Build", decoded.get("build")),
                    "version": decoded.get("Version", decoded.get("version")),
                },
            },
            "machine": {
                "disk": decoded.get("disk", decoded.get("Disk")),
                "wifi": decoded.get("Wifi", decoded.get("wifi")),
                "resin_level": next(
                    (decoded[key] for key in ("resin", "ResinLevelMm", "resin_level_mm") if decoded.get(key) is not None),
                    None,
                ),
            },
            "vendor": {},
        }

    async def get_backend_version(self) -> str:
        config = await self.get_config()
        version = config["advanced"]["nanodlp"].get("version")
        return str(version) if version is not None else "unknown"

    # -- thumbnails -------------------------------------------------------------

    def _placeholder(self, width: int, height: int) -> Thumbnail:
        return Thumbnail(generate_placeholder(width, height), True, width, height)

    def _cached_thumbnail(self, key: str) -> Optional[Thumbnail]:
        entry = self._thumbnails.get(key)
        if entry is None:
            return None
        ttl = PLACEHOLDER_TTL if entry.thumbnail.is_placeholder else THUMBNAIL_TTL
        if self._clock() - entry.stored_at >= ttl:
            del self._thumbnails[key]
            return None
        return entry.thumbnail

    def _store_thumbnail(self, key: str, thumbnail: Thumbnail) -> Thumbnail:
        self._thumbnails[key] = _CachedThumbnail(thumbnail, self._clock())
        return thumbnail

    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        width, height = thumbnail_dimensions(size)
        normalized = normalize_path(file_path).lower()
        missing_key = f"missing:{normalized}|{width}|{height}"
        cached = self._cached_thumbnail(missing_key)
        if cached is not None:
            return cached

        plate = await self._plates.find(file_path)
        if plate is None:
            logger.debug("NanoDLP thumbnail lookup found no plate for %s", file_path)
            return self._store_thumbnail(missing_key, self._placeholder(width, height))

        resolved_path = plate.path.lower() if plate.path else normalized
        key = f"path:{resolved_path}|lm:{plate.last_modified or 0}|{width}|{height}"
        cached = self._cached_thumbnail(key)
        if cached is not None:
            return cached

        if plate.plate_id is None or not plate.preview_available:
            logger.debug(
                "NanoDLP plate %s has no preview (plate_id=%s, preview=%s)",
                plate.path,
                plate.plate_id,
                plate.preview_available,
            )
            return self._store_thumbnail(key, self._placeholder(width, height))

        inflight = self._thumbnail_inflight.get(key)
        if inflight is not None:
            return await asyncio.shield(inflight)

        future = asyncio.ensure_future(self._download_preview(plate.plate_id, width, height))
        self._thumbnail_inflight[key] = future
        try:
            thumbnail = await asyncio.shield(future)
        finally:
            if self._thumbnail_inflight.get(key) is future:
                del self._thumbnail_inflight[key]
        return self._store_thumbnail(key, thumbnail)

    async def _download_preview(self, plate_id: int, width: int, height: int) -> Thumbnail:
        path = f"/static/plates/{plate_id}/3d.png"
        try:
            _, body = await self._http.request("GET", path)
        except TransportError as exc:
            logger.warning("NanoDLP preview request failed for plate %s: %s", plate_id, exc)
            return self._placeholder(width, height)
        if not body:
            logger.debug("NanoDLP preview for plate %s was empty", plate_id)
            return self._placeholder(width, height)
        return Thumbnail(body, False, width, height)

    # -- print control ----------------------------------------------------------

    async def _command(self, path: str, label: str) -> dict[str, Any]:
        logger.info("NanoDLP %s request: %s", label, path)
        try:
            _, body = await self._http.request("GET", path)
        except TransportError as exc:
            logger.warning("NanoDLP %s failed: %s", label, exc)
            raise
        return _manual_result(body)

    async def start_print(self, location: str, file_path: str) -> None:
        plate = await self._plates.find(file_path)
        plate_id = plate.plate_id if plate is not None else None
        target = str(plate_id) if plate_id is not None else file_path
        await self._command(f"/printer/start/{target}", "startPrint")
        self._run_background(self._prefetch_after_start(file_path, plate_id), name="nanodlp-prefetch-plates")

    async def _prefetch_after_start(self, file_path: str, plate_id: Optional[int]) -> None:
        plates = await self._plates.plates(force_refresh=True)
        if plate_id is not None:
            found = find_plate_by_id(plates, plate_id)
        else:
            found = find_plate(plates, normalize_path(file_path))
        if found is not None:
            logger.debug("Prefetched and resolved %s -> %s", file_path, found.name)
            self._remember_plate(found)

    async def cancel_print(self) -> None:
        await self._command("/printer/stop", "stopPrint")

    async def pause_print(self) -> None:
        await self._command("/printer/pause", "pausePrint")

    async def resume_print(self) -> None:
        await self._command("/printer/unpause", "resumePrint")

    # -- motion -----------------------------------------------------------------

    async def _move_microns(self, delta_mm: float, label: str) -> dict[str, Any]:
        delta_microns = round(delta_mm * 1000)
        if delta_microns == 0:
            return {"ok": True, "message": "no-op"}
        direction = "up" if delta_microns > 0 else "down"
        return await self._command(f"/z-axis/move/{direction}/micron/{abs(delta_microns)}", label)

    async def move(self, height: float) -> dict[str, Any]:
        # Read z from the raw payload; canonicalizing here would advance the latch.
        raw = await self._fetch_raw_status()
        current_z = NanoStatus.from_payload(raw).z or 0.0
        return await self._move_microns(height - current_z, "move")

    async def move_delta(self, delta_mm: float) -> dict[str, Any]:
        return await self._move_microns(delta_mm, "moveDelta")

    async def can_move_to_top(self) -> bool:
        try:
            raw = await self._fetch_raw_status()
        except TransportError:
            return False
        return "CurrentHeight" in raw or "physical_state" in raw

    async def move_to_top(self) -> dict[str, Any]:
        return await self._command("/z-axis/top", "moveToTop")

    async def manual_home(self) -> dict[str, Any]:
        return await self._command("/z-axis/calibrate", "manualHome")

    async def manual_cure(self, cure: bool) -> dict[str, Any]:
        raise UnsupportedCapabilityError("NanoDLP manual cure is not supported")

    async def manual_command(self, command: str) -> dict[str, Any]:
        raise UnsupportedCapabilityError("NanoDLP manual commands are not supported")

    # -- analytics --------------------------------------------------------------

    async def get_analytics(self, n: int) -> list[dict[str, Any]]:
        decoded = await self._http.get_json(f"/analytic/list/{int(n)}")
        if not isinstance(decoded, list):
            return []
        return [entry for entry in decoded if isinstance(entry, dict)]

    async def get_analytic_value(self, metric_id: int) -> Any:
        decoded = await self._http.get_json(f"/analytic/value/{int(metric_id)}")
        if isinstance(decoded, dict):
            return decoded.get("V", decoded.get("value"))
        return decoded

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        await self._http.close()
