"""Tolerant field lookup and number parsing for loosely typed backend payloads.

Backends disagree on key names and units. Every canonical attribute is
resolved through an ordered tuple of candidate keys (first present wins) and
every numeric field goes through one of the parsers below, which return
``None`` instead of raising on junk input.
"""
from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping, Optional

NANODLP_TICKS_PER_MM = 6400
MAX_Z_MM = 300.0

_NUMERIC_JUNK = re.compile(r"[^0-9+\-.eE]")
_LEADING_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_CLOCK = re.compile(r"~?(\d{1,2}):(\d{1,2}):(\d{1,2})")
_TRUE_STRINGS = {"true", "t", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "f", "no", "n", "off", ""}


def first_present(data: Mapping[str, Any] | None, keys: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first key in ``keys`` that is present and not None."""
    if not data:
        return default
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def first_mapping(data: Mapping[str, Any] | None, keys: Iterable[str]) -> Optional[dict[str, Any]]:
    """Return the first candidate value that is itself a mapping."""
    if not data:
        return None
    for key in keys:
        value = data.get(key)
        if isinstance(value, Mapping):
            return dict(value)
    return None


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = _NUMERIC_JUNK.sub("", str(value).strip())
    if not text:
        return None
    return _finite(text)


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = parse_float(value)
    if number is None:
        return None
    return int(number)


def parse_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    number = parse_float(text)
    if number is None:
        return None
    return number != 0


def _leading_number(text: str) -> Optional[float]:
    match = _LEADING_NUMBER.search(text)
    if not match:
        return None
    return _finite(match.group(0))


def parse_temperature(value: Any) -> Optional[float]:
    """Parse ``"31.5 °C"``-style readings into degrees."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = str(value).strip().lower().replace("°", "").replace("c", "")
    return parse_float(text)


def parse_clock_seconds(value: Any) -> Optional[int]:
    """Parse ``hh:mm:ss`` (optionally prefixed with ``~``) into seconds."""
    if value is None:
        return None
    match = _CLOCK.search(str(value))
    if not match:
        return None
    hours, minutes, seconds = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_print_time(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = _finite(value)
        return int(number) if number is not None else None
    clock = parse_clock_seconds(value)
    if clock is not None:
        return clock
    number = parse_float(value)
    return int(number) if number is not None else None


def format_duration(seconds: int | float | None) -> str:
    total = max(int(seconds or 0), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_layer_duration_seconds(value: Any) -> Optional[float]:
    """Interpret a layer duration by magnitude: >=1e9 ns, >=1e3 us, else seconds."""
    number = parse_float(value)
    if number is None:
        return None
    if number >= 1e9:
        return round(number / 1000) / 1e6
    if number >= 1e3:
        return round(number) / 1e6
    return number


def parse_volume_ml(value: Any) -> Optional[float]:
    """Convert a resin volume to millilitres.

    Plain numbers are taken as mL. Strings may carry a unit: microlitres are
    divided by 1000, litres multiplied by 1000, ``ml``/``cc``/``cm3`` kept.
    A unitless string of 1000 or more is assumed to be microlitres.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = str(value).strip().lower()
    number = _leading_number(text)
    if number is None:
        return None
    if "µ" in text or "ul" in text or "microl" in text:
        return number / 1000.0
    if "l" in text and "ml" not in text:
        return number * 1000.0
    if "ml" in text or "cc" in text or "cm3" in text:
        return number
    if number >= 1000:
        return number / 1000.0
    return number


def parse_layer_height(value: Any, *, assume_microns: bool = False) -> Optional[float]:
    """Return a layer height in millimetres."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = _finite(value)
        if number is None:
            return None
        if assume_microns or number >= 10:
            return number / 1000.0
        return number
    text = str(value).strip().lower()
    number = _leading_number(text)
    if number is None:
        return None
    if assume_microns or "µ" in text or "micron" in text:
        return number / 1000.0
    if "mm" in text:
        return number
    if not re.search(r"[a-z]", text) and number >= 10:
        return number / 1000.0
    return number


def ticks_to_mm(raw: Any) -> Optional[float]:
    """Convert NanoDLP ``CurrentHeight`` motor ticks to millimetres."""
    number = parse_float(raw)
    if number is None:
        return None
    return number / NANODLP_TICKS_PER_MM


def normalize_z_mm(raw: Any) -> Optional[float]:
    """Normalize a Z height of unknown unit to millimetres by magnitude.

    Values up to 1000 are already millimetres. Larger values are tried as
    microns, then as nanometres, and must land within the build volume
    (300 mm); anything else falls back to the micron reading.
    """
    number = parse_float(raw)
    if number is None:
        return None
    magnitude = abs(number)
    if magnitude <= 1000:
        return number
    as_microns = number / 1000.0
    if abs(as_microns) <= MAX_Z_MM:
        return as_microns
    as_nanometres = number / 1_000_000.0
    if abs(as_nanometres) <= MAX_Z_MM:
        return as_nanometres
    return as_microns


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
