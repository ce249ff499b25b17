"""Schemas for status and analytics endpoints."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class StatusView(BaseModel):
    """Reconciled status as served to the UI."""

    status: Optional[Dict[str, Any]] = None
    display_label: Optional[str] = None
    is_printing: bool = False
    is_paused: bool = False
    is_canceled: bool = False
    is_idle: bool = False
    progress: float = 0.0
    is_pausing: bool = False
    is_canceling: bool = False
    awaiting_new_print_data: bool = False
    min_spinner_active: bool = False
    loading: bool = True
    error: Optional[str] = None
    consecutive_errors: int = 0
    has_ever_connected: bool = False
    transport: str
    phase: str
    polling_paused: bool = False
    sse_supported: Optional[bool] = None
    sse_connected: bool = False
    poll_interval: float
    next_retry_at: Optional[float] = None
    thumbnail_ready: bool = False
    has_thumbnail: bool = False
    thumbnail_is_placeholder: bool = False
    new_print_ready: bool = False
    device_status_message: Optional[str] = None
    resin_temperature: Optional[int] = None
    cpu_temperature: Optional[float] = None
    mcu_temperature: Optional[float] = None
    uv_temperature: Optional[float] = None
    prev_layer_seconds: Optional[float] = None
    current_layer_seconds: Optional[float] = None


class TimeSeriesPointSchema(BaseModel):
    id: int
    v: float


class AnalyticsSeriesResponse(BaseModel):
    key: str
    latest: Optional[float] = None
    points: List[TimeSeriesPointSchema]


class AnalyticsResponse(BaseModel):
    loading: bool
    capacity: int
    latest: Dict[str, float]
    series: Dict[str, List[TimeSeriesPointSchema]]
