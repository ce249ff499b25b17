"""Rolling latency/error metrics for API routes and backend calls.

Names are ``api.<path>`` for inbound requests and ``backend.<path>`` for
calls made to the printer.
"""
from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
import time
from typing import Deque, Dict, Iterator, Optional


@dataclass
class MetricPoint:
    ok: bool
    duration_ms: int


def _percentile(values: list[int], fraction: float) -> int:
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, int(round(fraction * (len(ordered) - 1)))))
    return ordered[index]


class MetricsCollector:
    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._points: Dict[str, Deque[MetricPoint]] = {}
        self._last_alert: Dict[str, float] = {}

    def record(self, name: str, *, ok: bool, duration_ms: int) -> None:
        bucket = self._points.setdefault(name, deque(maxlen=self._window_size))
        bucket.append(MetricPoint(ok=ok, duration_ms=duration_ms))

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Record the duration of the block; an exception marks the point failed."""
        start = time.perf_counter()
        ok = False
        try:
            yield
            ok = True
        finally:
            self.record(name, ok=ok, duration_ms=int((time.perf_counter() - start) * 1000))

    def snapshot(self, prefix: Optional[str] = None) -> dict:
        """Aggregate every metric, optionally only those under ``prefix.``."""
        payload: dict[str, dict] = {}
        for name, points in self._points.items():
            if not points or (prefix and not name.startswith(f"{prefix}.")):
                continue
            durations = [p.duration_ms for p in points]
            total = len(points)
            errors = sum(1 for p in points if not p.ok)
            payload[name] = {
                "count": total,
                "errors": errors,
                "error_rate": round(errors / total, 3),
                "avg_ms": int(sum(durations) / total),
                "p95_ms": _percentile(durations, 0.95),
                "max_ms": max(durations),
            }
        return payload

    def should_alert(
        self,
        name: str,
        *,
        error_rate: float = 0.2,
        avg_ms: int = 2000,
        min_interval_s: int = 60,
    ) -> bool:
        """True when the window is unhealthy and no alert fired recently."""
        bucket = self._points.get(name)
        if not bucket or len(bucket) < 5:
            return False
        total = len(bucket)
        errors = sum(1 for p in bucket if not p.ok)
        avg = int(sum(p.duration_ms for p in bucket) / total)
        if (errors / total) < error_rate and avg < avg_ms:
            return False
        now = time.time()
        if now - self._last_alert.get(name, 0.0) < min_interval_s:
            return False
        self._last_alert[name] = now
        return True

    def reset(self) -> None:
        self._points.clear()
        self._last_alert.clear()


metrics = MetricsCollector()
