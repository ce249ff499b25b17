"""Domain models."""
from .status import (
    FileData,
    FileRef,
    PhysicalState,
    PrintData,
    PrinterStatus,
    StatusSnapshot,
    TimeSeriesPoint,
)

__all__ = [
    "FileData",
    "FileRef",
    "PhysicalState",
    "PrintData",
    "PrinterStatus",
    "StatusSnapshot",
    "TimeSeriesPoint",
]
