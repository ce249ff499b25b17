"""Schemas for printer control endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class SimpleMessage(BaseModel):
    """Generic success/error wrapper."""

    success: bool
    message: str


class ActionResponse(SimpleMessage):
    """Result of an engine action; ``skipped`` when a duplicate was ignored."""

    skipped: bool = False


class StartPrintRequest(BaseModel):
    location: str = "Local"
    file_path: str


class MoveRequest(BaseModel):
    """Absolute Z target in millimetres."""

    height: float = Field(..., ge=0)


class MoveDeltaRequest(BaseModel):
    delta_mm: float


class CureRequest(BaseModel):
    cure: bool = True


class ManualCommandRequest(BaseModel):
    command: str = Field(..., min_length=1)


class ResetStatusRequest(BaseModel):
    """Optional hints for the job that is about to start."""

    location: Optional[str] = None
    initial_file_path: Optional[str] = None
