"""Canonical printer status models shared by every backend."""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from orion.backends.payload import (
    clamp,
    format_duration,
    normalize_z_mm,
    parse_bool,
    parse_float,
    parse_int,
    parse_print_time,
    parse_volume_ml,
)


class PrinterStatus(str, Enum):
    """Primary status reported by the canonical snapshot."""

    IDLE = "Idle"
    PRINTING = "Printing"
    PAUSED = "Paused"
    PAUSING = "Pausing"
    CANCELING = "Canceling"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "PrinterStatus":
        if isinstance(value, PrinterStatus):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        # Odyssey spells the cancel transition with a double "l" on some builds.
        if text == "cancelling":
            return cls.CANCELING
        return cls.UNKNOWN


class FileData(BaseModel):
    """File reference attached to an active or finished job."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    path: str = ""
    location_category: Optional[str] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any] | None) -> Optional["FileData"]:
        if not isinstance(raw, Mapping):
            return None
        path = str(raw.get("path") or "")
        name = str(raw.get("name") or "") or path.rsplit("/", 1)[-1]
        location = raw.get("location_category")
        return cls(
            name=name,
            path=path or name,
            location_category=str(location) if location is not None else None,
        )

    @property
    def subdirectory(self) -> str:
        """Directory part of ``path``; empty for files at the storage root."""
        if "/" not in self.path:
            return ""
        return self.path[: self.path.rfind("/")]


class FileRef(BaseModel):
    """Stable identity of a file for cache keys: path plus modification time."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str = ""
    parent_path: str = ""
    last_modified: int = 0
    location_category: Optional[str] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any] | None) -> Optional["FileRef"]:
        """Accept a listing entry (``{"file_data": {...}}``) or a bare file_data map."""
        if not isinstance(raw, Mapping):
            return None
        data = raw.get("file_data") if isinstance(raw.get("file_data"), Mapping) else raw
        path = str(data.get("path") or "")
        if not path:
            return None
        location = raw.get("location_category") or data.get("location_category")
        return cls(
            path=path,
            name=str(data.get("name") or path.rsplit("/", 1)[-1]),
            parent_path=str(data.get("parent_path") or ""),
            last_modified=parse_int(data.get("last_modified")) or 0,
            location_category=str(location) if location is not None else None,
        )

    @classmethod
    def from_file_data(cls, file_data: FileData) -> "FileRef":
        return cls(
            path=file_data.path,
            name=file_data.name,
            parent_path=file_data.subdirectory,
            location_category=file_data.location_category,
        )


class PrintData(BaseModel):
    model_config = ConfigDict(frozen=True)

    layer_count: int = 0
    used_material: float = 0.0
    print_time: float = 0
    file_data: Optional[FileData] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any] | None) -> Optional["PrintData"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            layer_count=parse_int(raw.get("layer_count")) or 0,
            used_material=parse_volume_ml(raw.get("used_material")) or 0.0,
            print_time=parse_print_time(raw.get("print_time")) or 0,
            file_data=FileData.from_payload(raw.get("file_data")),
        )

    @property
    def print_time_seconds(self) -> int:
        return int(self.print_time)


class PhysicalState(BaseModel):
    model_config = ConfigDict(frozen=True)

    z: float = 0.0
    curing: Optional[bool] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any] | None) -> "PhysicalState":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            z=normalize_z_mm(raw.get("z")) or 0.0,
            curing=parse_bool(raw.get("curing")),
        )


class StatusSnapshot(BaseModel):
    """Immutable result of one successful fetch or stream event.

    Built fresh for every payload and replaced wholesale by the next one.
    ``physical_state.z`` is always millimetres.
    """

    model_config = ConfigDict(frozen=True)

    status: PrinterStatus = PrinterStatus.UNKNOWN
    paused: Optional[bool] = None
    layer: Optional[int] = None
    print_data: Optional[PrintData] = None
    physical_state: PhysicalState = Field(default_factory=PhysicalState)
    cancel_latched: Optional[bool] = None
    pause_latched: Optional[bool] = None
    finished: Optional[bool] = None
    device_status_message: Optional[str] = None
    prev_layer_seconds: Optional[float] = None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "StatusSnapshot":
        message = raw.get("device_status_message")
        return cls(
            status=PrinterStatus.parse(raw.get("status")),
            paused=parse_bool(raw.get("paused")),
            layer=parse_int(raw.get("layer")),
            print_data=PrintData.from_payload(raw.get("print_data")),
            physical_state=PhysicalState.from_payload(raw.get("physical_state")),
            cancel_latched=parse_bool(raw.get("cancel_latched")),
            pause_latched=parse_bool(raw.get("pause_latched")),
            finished=parse_bool(raw.get("finished")),
            device_status_message=str(message) if message not in (None, "") else None,
            prev_layer_seconds=parse_float(raw.get("prev_layer_seconds")),
        )

    @property
    def is_canceled(self) -> bool:
        return self.layer is None and (
            self.print_data is not None or self.status is not PrinterStatus.PRINTING
        )

    @property
    def is_printing(self) -> bool:
        return self.status is PrinterStatus.PRINTING and not self.is_canceled

    @property
    def is_paused(self) -> bool:
        return self.paused is True

    @property
    def is_idle(self) -> bool:
        return self.status is PrinterStatus.IDLE

    @property
    def is_curing(self) -> bool:
        return self.physical_state.curing is True

    @property
    def is_active(self) -> bool:
        return self.is_printing or self.is_paused

    @property
    def file_data(self) -> Optional[FileData]:
        return self.print_data.file_data if self.print_data else None

    @property
    def layer_count(self) -> Optional[int]:
        return self.print_data.layer_count if self.print_data else None

    @property
    def progress(self) -> float:
        if self.layer is None:
            return 0.0
        total = self.layer_count
        if not total:
            return 0.0
        return clamp(self.layer, 0, total) / total

    @property
    def formatted_print_time(self) -> str:
        return format_duration(self.print_data.print_time_seconds if self.print_data else 0)

    def fingerprint(self) -> tuple:
        """Fields that move during an active print; z rounded to 3 decimals."""
        return (
            self.status,
            self.paused,
            self.layer,
            self.layer_count,
            round(self.physical_state.z, 3),
        )

    def display_label(self, *, transitional_cancel: bool, transitional_pause: bool) -> str:
        if transitional_cancel and not self.is_canceled:
            return "Canceling"
        if self.is_canceled:
            return "Canceled"
        if transitional_pause and not self.is_paused:
            return "Pausing"
        if self.is_paused:
            return "Paused"
        if self.is_idle and self.layer is not None:
            return "Finished"
        if self.is_curing:
            return "Curing"
        return self.status.value


class TimeSeriesPoint(BaseModel):
    """One analytics sample: sequence/timestamp id and numeric value."""

    model_config = ConfigDict(frozen=True)

    id: int
    v: float
