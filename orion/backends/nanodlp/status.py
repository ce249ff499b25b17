"""Parsing of raw NanoDLP ``/status`` and plate payloads.

Key aliases are kept as ordered tuples so a new firmware quirk is a one-line
addition to the table rather than another conditional.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from orion.backends.payload import (
    clamp,
    first_mapping,
    first_present,
    format_duration,
    normalize_z_mm,
    parse_bool,
    parse_float,
    parse_int,
    parse_layer_height,
    parse_print_time,
    parse_volume_ml,
    ticks_to_mm,
)

FILE_KEYS = (
    "file", "File", "plate", "Plate", "file_data", "FileData", "fileData",
    "current_file", "CurrentFile", "job", "Job",
)
STATUS_MESSAGE_KEYS = ("Status", "status")
CURRENT_HEIGHT_KEYS = ("CurrentHeight", "current_height")
RAW_Z_KEYS = ("z", "Z")
LAYER_KEYS = ("LayerID", "layer_id")
LAYERS_COUNT_KEYS = ("LayersCount", "layers_count")
RESIN_LEVEL_KEYS = ("resin", "ResinLevelMm", "resin_level_mm")
STATE_CODE_KEYS = ("State", "state_code", "StateCode")
PLATE_ID_KEYS = ("PlateID", "plate_id", "Plateid", "plateId")

FILE_PATH_KEYS = ("path", "Path", "file_path", "File")
FILE_NAME_KEYS = ("name", "Name")
FILE_LAYER_COUNT_KEYS = ("layer_count", "LayerCount", "layerCount")
FILE_PRINT_TIME_KEYS = ("print_time", "printTime", "PrintTime")
FILE_LAST_MODIFIED_KEYS = ("last_modified", "LastModified", "Updated", "UpdatedOn", "CreatedDate")
FILE_PARENT_KEYS = ("parent_path", "parentPath")
FILE_SIZE_KEYS = ("file_size", "FileSize", "size", "Size")
FILE_USED_MATERIAL_KEYS = (
    "used_material", "usedMaterial", "UsedMaterial", "UsedMaterialMl", "UsedResin",
    "ResinVolume", "UsedVolume", "Volume", "TotalSolidArea",
)
FILE_LAYER_HEIGHT_KEYS = ("layer_height", "layerHeight", "PlateHeight")
FILE_MICRON_HEIGHT_KEYS = ("LayerThickness", "ZRes")
FILE_LOCATION_KEYS = ("location_category", "location")
FILE_PLATE_ID_KEYS = ("PlateID", "plate_id")
FILE_PREVIEW_KEYS = ("Preview", "preview", "HasPreview")


def _truthy_flag(raw: Mapping[str, Any], keys: tuple[str, ...]) -> bool:
    return any(raw.get(key) is True for key in keys)


@dataclass(frozen=True)
class NanoFile:
    """A NanoDLP plate (sliced job) as reported by the plates list or status."""

    path: str
    name: str
    layer_count: Optional[int] = None
    print_time: Optional[int] = None
    last_modified: Optional[int] = None
    parent_path: str = ""
    file_size: Optional[int] = None
    material_name: str = "N/A"
    used_material: Optional[float] = None
    layer_height: Optional[float] = None
    location_category: str = "Local"
    plate_id: Optional[int] = None
    preview_available: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "NanoFile":
        path = first_present(raw, FILE_PATH_KEYS)
        name = first_present(raw, FILE_NAME_KEYS)
        path = str(path) if path is not None else None
        name = str(name) if name is not None else None
        if name is None and path is not None:
            name = path.split("/")[-1]
        if path is None and name is not None:
            path = name
        resolved_path = path or ""
        resolved_name = name or resolved_path

        parent = first_present(raw, FILE_PARENT_KEYS)
        parent_path = str(parent) if parent is not None else ""
        if not parent_path and "/" in resolved_path:
            parent_path = resolved_path[: resolved_path.rfind("/")]

        layer_height = parse_layer_height(first_present(raw, FILE_LAYER_HEIGHT_KEYS))
        if layer_height is None:
            for key in FILE_MICRON_HEIGHT_KEYS:
                layer_height = parse_layer_height(raw.get(key), assume_microns=True)
                if layer_height is not None:
                    break

        location = first_present(raw, FILE_LOCATION_KEYS)
        return cls(
            path=resolved_path,
            name=resolved_name,
            layer_count=parse_int(first_present(raw, FILE_LAYER_COUNT_KEYS)),
            print_time=parse_print_time(first_present(raw, FILE_PRINT_TIME_KEYS)),
            last_modified=parse_int(first_present(raw, FILE_LAST_MODIFIED_KEYS)),
            parent_path=parent_path,
            file_size=parse_int(first_present(raw, FILE_SIZE_KEYS)),
            material_name=str(raw.get("ProfileName") or "N/A"),
            used_material=parse_volume_ml(first_present(raw, FILE_USED_MATERIAL_KEYS, 0)),
            layer_height=layer_height,
            location_category=str(location) if location is not None else "Local",
            plate_id=parse_int(first_present(raw, FILE_PLATE_ID_KEYS)),
            preview_available=bool(parse_bool(first_present(raw, FILE_PREVIEW_KEYS))),
            raw=dict(raw),
        )

    def _file_data(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name or self.path,
            "last_modified": self.last_modified or 0,
            "parent_path": self.parent_path,
            "file_size": self.file_size,
        }

    def to_file_entry(self) -> dict[str, Any]:
        """Render the plate in the file-listing shape Odyssey uses."""
        entry: dict[str, Any] = {
            "file_data": self._file_data(),
            "location_category": self.location_category or "Local",
            "material_name": self.material_name or "N/A",
            "used_material": self.used_material or 0.0,
            "print_time": self.print_time or 0,
            "layer_count": self.layer_count or 0,
            "preview_available": self.preview_available,
        }
        if self.print_time is not None:
            entry["print_time_formatted"] = format_duration(self.print_time)
        if self.layer_height is not None:
            entry["layer_height"] = self.layer_height
        if self.plate_id is not None:
            entry["plate_id"] = self.plate_id
        return entry

    def to_metadata(self) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "file_data": self._file_data(),
            "layer_height": self.layer_height,
            "material_name": self.material_name or "N/A",
            "used_material": self.used_material or 0.0,
            "print_time": self.print_time or 0,
            "layer_count": self.layer_count or 0,
            "plate_id": self.plate_id,
            "preview_available": self.preview_available,
        }
        if self.print_time is not None:
            meta["print_time_formatted"] = format_duration(self.print_time)
        return meta


@dataclass(frozen=True)
class NanoStatus:
    """Typed view over one raw NanoDLP status payload."""

    printing: bool = False
    paused: bool = False
    status_message: Optional[str] = None
    current_height: Optional[int] = None
    layer_id: Optional[int] = None
    layers_count: Optional[int] = None
    resin_level: Optional[float] = None
    temp: Optional[float] = None
    mcu_temp: Optional[float] = None
    state_code: Optional[int] = None
    plate_id: Optional[int] = None
    z: Optional[float] = None
    curing: bool = False
    file: Optional[NanoFile] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "NanoStatus":
        file_payload = first_mapping(raw, FILE_KEYS)
        printing = (
            _truthy_flag(raw, ("Printing", "printing"))
            or raw.get("Started") == 1
            or raw.get("started") == 1
        )
        current_height = parse_int(first_present(raw, CURRENT_HEIGHT_KEYS))
        if current_height is not None:
            z = ticks_to_mm(current_height)
        else:
            z = normalize_z_mm(first_present(raw, RAW_Z_KEYS))
        message = first_present(raw, STATUS_MESSAGE_KEYS)
        return cls(
            printing=printing,
            paused=_truthy_flag(raw, ("Paused", "paused")),
            status_message=str(message) if message is not None else None,
            current_height=current_height,
            layer_id=parse_int(first_present(raw, LAYER_KEYS)),
            layers_count=parse_int(first_present(raw, LAYERS_COUNT_KEYS)),
            resin_level=parse_float(first_present(raw, RESIN_LEVEL_KEYS)),
            temp=parse_float(raw.get("temp")),
            mcu_temp=parse_float(raw.get("mcu")),
            state_code=parse_int(first_present(raw, STATE_CODE_KEYS)),
            plate_id=parse_int(first_present(raw, PLATE_ID_KEYS)),
            z=z,
            curing=_truthy_flag(raw, ("Curing", "curing")),
            file=NanoFile.from_payload(file_payload) if file_payload is not None else None,
        )

    @property
    def state(self) -> str:
        if self.printing:
            return "printing"
        if self.paused:
            return "paused"
        return "idle"

    @property
    def progress(self) -> Optional[float]:
        if self.layer_id is None or not self.layers_count or self.layers_count <= 0:
            return None
        return clamp(self.layer_id / self.layers_count, 0.0, 1.0)

    def with_file(self, file: NanoFile) -> "NanoStatus":
        """Return a copy carrying plate metadata resolved out of band."""
        return replace(self, file=file)
