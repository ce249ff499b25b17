"""Pydantic schemas exposed by the application API."""
from .config import ConfigUpdateRequest, ConfigUpdateResponse
from .control import (
    ActionResponse,
    CureRequest,
    ManualCommandRequest,
    MoveDeltaRequest,
    MoveRequest,
    ResetStatusRequest,
    SimpleMessage,
    StartPrintRequest,
)
from .status import (
    AnalyticsResponse,
    AnalyticsSeriesResponse,
    StatusView,
    TimeSeriesPointSchema,
)

__all__ = [
    "ActionResponse",
    "AnalyticsResponse",
    "AnalyticsSeriesResponse",
    "ConfigUpdateRequest",
    "ConfigUpdateResponse",
    "CureRequest",
    "ManualCommandRequest",
    "MoveDeltaRequest",
    "MoveRequest",
    "ResetStatusRequest",
    "SimpleMessage",
    "StartPrintRequest",
    "StatusView",
    "TimeSeriesPointSchema",
]
