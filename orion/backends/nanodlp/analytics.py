"""NanoDLP analytics metric ids."""
from __future__ import annotations

from typing import Optional

METRIC_KEYS: dict[int, str] = {
    0: "LayerHeight",
    1: "SolidArea",
    2: "AreaCount",
    3: "LargestArea",
    4: "Speed",
    5: "Cure",
    6: "Pressure",
    7: "TemperatureInside",
    8: "TemperatureOutside",
    9: "LayerTime",
    10: "LiftHeight",
    11: "TemperatureMCU",
    12: "TemperatureInsideTarget",
    13: "TemperatureOutsideTarget",
    14: "TemperatureMCUTarget",
    15: "MCUFanRPM",
    16: "UVFanRPM",
    17: "DynamicWait",
    18: "TemperatureVat",
    19: "TemperatureVatTarget",
    20: "PTCFanRPM",
    21: "AEGISFanRPM",
    22: "TemperatureChamber",
    23: "TemperatureChamberTarget",
    24: "TemperaturePTC",
    25: "TemperaturePTCTarget",
    26: "VOCInlet",
    27: "VOCOutlet",
}
METRIC_IDS: dict[str, int] = {key: metric_id for metric_id, key in METRIC_KEYS.items()}

PRESSURE_METRIC_ID = 6


def metric_key(metric_id: int) -> str:
    """Name for ``metric_id``; unknown ids fall back to their decimal string."""
    return METRIC_KEYS.get(metric_id, str(metric_id))


def metric_id(key: str) -> Optional[int]:
    if key in METRIC_IDS:
        return METRIC_IDS[key]
    try:
        return int(key)
    except (TypeError, ValueError):
        return None
