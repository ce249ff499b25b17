"""Cached NanoDLP plate catalog with path matching."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Optional

from orion.backends.http import HttpTransport
from orion.backends.nanodlp.status import NanoFile
from orion.core.exceptions import TransportError

logger = logging.getLogger(__name__)

PLATES_PATH = "/plates/list/json"
PLATES_CACHE_TTL = 120.0


def extract_plate_entries(decoded: Any) -> list[Any]:
    """Pull the list of plate objects out of whatever shape the firmware sent."""
    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, dict):
        for key in ("plates", "files", "data"):
            value = decoded.get(key)
            if isinstance(value, list):
                return value
        values = [value for value in decoded.values() if isinstance(value, dict)]
        if values:
            return values
        return [decoded]
    logger.debug("plates list returned unexpected type %s", type(decoded).__name__)
    return []


def parse_plates(decoded: Any) -> list[NanoFile]:
    plates: list[NanoFile] = []
    for entry in extract_plate_entries(decoded):
        if not isinstance(entry, dict):
            continue
        plates.append(NanoFile.from_payload(entry))
    return plates


def normalize_path(path: str) -> str:
    return path.lstrip("/")


def _same(lhs: Optional[str], rhs: str) -> bool:
    if lhs is None:
        return False
    return lhs.strip().lower() == rhs.strip().lower()


def matches_path(plate: NanoFile, file_path: str) -> bool:
    """Case-insensitive match on path (with and without leading slash) or name."""
    normalized = normalize_path(file_path)
    plate_path = plate.path or plate.name
    if _same(plate_path, file_path) or _same(plate_path, normalized) or _same(f"/{plate_path}", file_path):
        return True
    if plate.name:
        return _same(plate.name, file_path) or _same(plate.name, normalized)
    return False


def find_plate(plates: Iterable[NanoFile], file_path: str) -> Optional[NanoFile]:
    for plate in plates:
        if matches_path(plate, file_path):
            return plate
    return None


def find_plate_by_id(plates: Iterable[NanoFile], plate_id: int) -> Optional[NanoFile]:
    for plate in plates:
        if plate.plate_id is not None and plate.plate_id == plate_id:
            return plate
    return None


class PlateCatalog:
    """Single-flight, TTL-cached view of ``/plates/list/json``.

    Network and decode failures yield an empty list; they are never raised.
    """

    def __init__(
        self,
        transport: HttpTransport,
        *,
        ttl: float = PLATES_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = transport
        self._ttl = ttl
        self._clock = clock
        self._plates: Optional[list[NanoFile]] = None
        self._fetched_at: Optional[float] = None
        self._inflight: Optional[asyncio.Future] = None

    def invalidate(self) -> None:
        self._plates = None
        self._fetched_at = None

    async def plates(self, *, force_refresh: bool = False) -> list[NanoFile]:
        if force_refresh:
            self.invalidate()
        else:
            if (
                self._plates is not None
                and self._fetched_at is not None
                and self._clock() - self._fetched_at < self._ttl
            ):
                return self._plates
            if self._inflight is not None:
                return await asyncio.shield(self._inflight)

        future = asyncio.ensure_future(self._load())
        self._inflight = future
        try:
            plates = await asyncio.shield(future)
        finally:
            if self._inflight is future:
                self._inflight = None
        self._plates = plates
        self._fetched_at = self._clock()
        return plates

    async def find(self, file_path: str) -> Optional[NanoFile]:
        return find_plate(await self.plates(), file_path)

    async def find_by_id(self, plate_id: int, *, force_refresh: bool = False) -> Optional[NanoFile]:
        return find_plate_by_id(await self.plates(force_refresh=force_refresh), plate_id)

    async def _load(self) -> list[NanoFile]:
        try:
            decoded = await self._http.get_json(PLATES_PATH)
        except TransportError as exc:
            logger.warning("NanoDLP plates list request failed: %s", exc)
            return []
        plates = parse_plates(decoded)
        logger.debug("Loaded %d NanoDLP plates", len(plates))
        return plates
