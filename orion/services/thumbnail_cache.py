"""Shared single-flight thumbnail cache.

One instance serves both the file listing routes and the status engine.
Concurrent lookups for the same key share one backend fetch through the
in-flight map; no global lock is involved.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import aiofiles
import aiofiles.os

from orion.backends.base import Thumbnail, thumbnail_dimensions
from orion.backends.nanodlp.thumbnails import generate_placeholder, is_placeholder
from orion.models import FileRef

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_BUDGET = 50 * 1024 * 1024
DEFAULT_REAL_TTL = 120.0
DEFAULT_PLACEHOLDER_TTL = 5.0


class ThumbnailSource(Protocol):
    async def get_file_thumbnail(self, location: str, file_path: str, size: str) -> Thumbnail:
        ...


@dataclass
class ThumbnailCacheEntry:
    thumbnail: Thumbnail
    fetched_at: float

    @property
    def size_bytes(self) -> int:
        return len(self.thumbnail.data)


def join_path(subdirectory: str, file_name: str) -> str:
    subdirectory = subdirectory.strip("/")
    file_name = file_name.lstrip("/")
    path = f"{subdirectory}/{file_name}" if subdirectory else file_name
    return path.replace("//", "/")


def cache_key(location: str, path: str, last_modified: int, size: str) -> str:
    return f"{location}|{path}|{last_modified}|{size}"


def placeholder_thumbnail(size: str) -> Thumbnail:
    width, height = thumbnail_dimensions(size)
    return Thumbnail(generate_placeholder(width, height), True, width, height)


class ThumbnailCache:
    """TTL + LRU cache keyed by ``location|path|last_modified|size``."""

    def __init__(
        self,
        source: ThumbnailSource,
        *,
        memory_max_bytes: int = DEFAULT_MEMORY_BUDGET,
        real_ttl: float = DEFAULT_REAL_TTL,
        placeholder_ttl: float = DEFAULT_PLACEHOLDER_TTL,
        disk_cache_dir: str | Path | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._memory_max_bytes = memory_max_bytes
        self._real_ttl = real_ttl
        self._placeholder_ttl = placeholder_ttl
        self._disk_dir = Path(disk_cache_dir) if disk_cache_dir else None
        self._clock = clock
        self._entries: OrderedDict[str, ThumbnailCacheEntry] = OrderedDict()
        self._inflight: dict[str, asyncio.Future] = {}
        self._latest_version: dict[tuple[str, str], int] = {}
        self._bytes = 0
        self.fetch_count = 0

    @property
    def memory_bytes(self) -> int:
        return self._bytes

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "bytes": self._bytes,
            "budget_bytes": self._memory_max_bytes,
            "in_flight": len(self._inflight),
            "fetches": self.fetch_count,
        }

    def clear(self) -> None:
        self._entries.clear()
        self._latest_version.clear()
        self._bytes = 0

    def _ttl(self, entry: ThumbnailCacheEntry) -> float:
        return self._placeholder_ttl if entry.thumbnail.is_placeholder else self._real_ttl

    def _fresh(self, entry: ThumbnailCacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self._ttl(entry)

    def _lookup(self, key: str) -> Optional[ThumbnailCacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._fresh(entry):
            self._drop(key)
            return None
        self._entries.move_to_end(key)
        return entry

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._bytes -= entry.size_bytes

    def _store(self, key: str, thumbnail: Thumbnail) -> None:
        size = len(thumbnail.data)
        if size > self._memory_max_bytes:
            logger.debug("Thumbnail %s larger than cache budget; not cached", key)
            return
        self._drop(key)
        self._entries[key] = ThumbnailCacheEntry(thumbnail, self._clock())
        self._bytes += size
        while self._bytes > self._memory_max_bytes and self._entries:
            evicted, entry = self._entries.popitem(last=False)
            self._bytes -= entry.size_bytes
            logger.debug("Evicted thumbnail %s (lru)", evicted)

    def _evict_older_versions(self, location: str, path: str, last_modified: int) -> None:
        marker = (location, path)
        known = self._latest_version.get(marker)
        if known is not None and last_modified <= known:
            return
        self._latest_version[marker] = last_modified
        if known is None:
            return
        prefix = f"{location}|{path}|"
        stale = [
            key
            for key in self._entries
            if key.startswith(prefix) and key[len(prefix):].split("|", 1)[0] != str(last_modified)
        ]
        for key in stale:
            self._drop(key)
        if stale:
            logger.debug("Evicted %d outdated thumbnail(s) for %s", len(stale), path)

    async def get_thumbnail(
        self,
        location: str,
        subdirectory: str,
        file_name: str,
        file_ref: FileRef | None = None,
        size: str = "Small",
        *,
        force_refresh: bool = False,
    ) -> Optional[Thumbnail]:
        """Return the thumbnail for a file, fetching at most once per key.

        Download failures yield a placeholder of the requested dimensions;
        nothing is raised to the caller.
        """
        path = file_ref.path if file_ref is not None and file_ref.path else join_path(subdirectory, file_name)
        if not path:
            return None
        last_modified = file_ref.last_modified if file_ref is not None else 0
        key = cache_key(location, path, last_modified, size)
        self._evict_older_versions(location, path, last_modified)

        if not force_refresh:
            entry = self._lookup(key)
            if entry is not None:
                return entry.thumbnail

        inflight = self._inflight.get(key)
        if inflight is not None:
            return await asyncio.shield(inflight)

        future = asyncio.ensure_future(self._resolve(key, location, path, size, force_refresh))
        self._inflight[key] = future
        try:
            return await asyncio.shield(future)
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    async def _resolve(
        self,
        key: str,
        location: str,
        path: str,
        size: str,
        force_refresh: bool,
    ) -> Thumbnail:
        if not force_refresh:
            from_disk = await self._read_disk(key, size)
            if from_disk is not None:
                self._store(key, from_disk)
                return from_disk

        thumbnail = await self._download(location, path, size)
        existing = self._entries.get(key)
        if (
            thumbnail.is_placeholder
            and existing is not None
            and not existing.thumbnail.is_placeholder
            and self._fresh(existing)
        ):
            # Keep the real image; a transient placeholder must not downgrade it.
            return existing.thumbnail
        self._store(key, thumbnail)
        if not thumbnail.is_placeholder:
            await self._write_disk(key, thumbnail)
        return thumbnail

    async def _download(self, location: str, path: str, size: str) -> Thumbnail:
        self.fetch_count += 1
        width, height = thumbnail_dimensions(size)
        try:
            result = await self._source.get_file_thumbnail(location, path, size)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Thumbnail fetch failed for %s (%s): %s", path, size, exc)
            return placeholder_thumbnail(size)
        if not result.data or result.is_placeholder or is_placeholder(result.data, width, height):
            return placeholder_thumbnail(size)
        return Thumbnail(result.data, False, result.width or width, result.height or height)

    def _disk_path(self, key: str) -> Optional[Path]:
        if self._disk_dir is None:
            return None
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self._disk_dir / f"{digest}.png"

    async def _read_disk(self, key: str, size: str) -> Optional[Thumbnail]:
        target = self._disk_path(key)
        if target is None or not await aiofiles.os.path.exists(target):
            return None
        try:
            async with aiofiles.open(target, "rb") as handle:
                data = await handle.read()
        except OSError as exc:
            logger.debug("Thumbnail disk cache read failed for %s: %s", target, exc)
            return None
        if not data:
            return None
        width, height = thumbnail_dimensions(size)
        return Thumbnail(data, False, width, height)

    async def _write_disk(self, key: str, thumbnail: Thumbnail) -> None:
        target = self._disk_path(key)
        if target is None:
            return
        tmp_path = target.with_suffix(".tmp")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as handle:
                await handle.write(thumbnail.data)
            await aiofiles.os.replace(tmp_path, target)
        except OSError as exc:
            logger.warning("Thumbnail disk cache write failed for %s: %s", target, exc)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
