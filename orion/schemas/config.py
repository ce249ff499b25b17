"""Schemas for runtime configuration endpoints."""
from typing import Literal, Optional

from pydantic import BaseModel


class ConfigUpdateRequest(BaseModel):
    """Persisted switches; they take effect on the next start."""

    backend: Optional[Literal["odyssey", "nanodlp"]] = None
    simulated: Optional[bool] = None
    use_usb_by_default: Optional[bool] = None


class ConfigUpdateResponse(BaseModel):
    success: bool
    restart_required: bool
    app: dict
