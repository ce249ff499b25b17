"""Convert parsed NanoDLP status into the canonical status map."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from orion.backends.nanodlp.state import CanonicalStatus
from orion.backends.nanodlp.status import NanoStatus
from orion.models import PrinterStatus

PASSTHROUGH_KEYS = ("PrevLayerTime", "resin_temperature", "ResinTemperature")


def _print_data(status: NanoStatus) -> Optional[dict[str, Any]]:
    plate = status.file
    if plate is not None:
        return {
            "layer_count": plate.layer_count or status.layers_count or 0,
            "used_material": plate.used_material or 0.0,
            "print_time": plate.print_time or 0,
            "file_data": {
                "name": plate.name or plate.path,
                "path": plate.path or plate.name,
                "location_category": "Local",
            },
        }
    if status.printing or status.paused or status.layer_id is not None or status.layers_count is not None:
        return {
            "layer_count": status.layers_count or 0,
            "used_material": 0.0,
            "print_time": 0,
            "file_data": None,
        }
    return None


def _mapped_layer(status: NanoStatus, canonical: CanonicalStatus) -> Optional[int]:
    layer = status.layer_id
    if canonical.status is not PrinterStatus.IDLE:
        return layer
    if canonical.cancel_latched:
        # A canceled job has no meaningful layer; this is what marks it canceled.
        return None
    if canonical.finished and layer is None:
        if status.file is not None:
            return status.file.layer_count or status.layers_count
        return status.layers_count
    return layer


def to_status_map(
    status: NanoStatus,
    canonical: CanonicalStatus,
    raw: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the map consumed by :meth:`StatusSnapshot.from_payload`."""
    result: dict[str, Any] = {
        "status": canonical.status.value,
        "paused": canonical.paused,
        "layer": _mapped_layer(status, canonical),
        "print_data": _print_data(status),
        "device_status_message": status.status_message,
        "physical_state": {"z": status.z or 0.0, "curing": status.curing},
        "cancel_latched": canonical.cancel_latched,
        "pause_latched": canonical.pause_latched,
        "finished": canonical.finished,
        "state_code": canonical.state_code,
        "temp": status.temp,
        "mcu": status.mcu_temp,
    }
    if raw:
        for key in PASSTHROUGH_KEYS:
            if raw.get(key) is not None:
                result[key] = raw[key]
    return result
