"""Printer control endpoints."""
import logging

from fastapi import APIRouter, Depends, status

from orion.api.dependencies import get_backend, get_status_service
from orion.backends.service import BackendService
from orion.core.exceptions import ActionFailedError, BadRequestError, UnsupportedCapabilityError
from orion.schemas import (
    ActionResponse,
    CureRequest,
    ManualCommandRequest,
    MoveDeltaRequest,
    MoveRequest,
    SimpleMessage,
    StartPrintRequest,
)
from orion.services.status_service import StatusService

logger = logging.getLogger(__name__)

router = APIRouter()


def _action_response(result: bool | None, label: str) -> ActionResponse:
    if result is None:
        return ActionResponse(success=True, message=f"{label} already in progress", skipped=True)
    if not result:
        raise ActionFailedError(f"{label} failed")
    return ActionResponse(success=True, message=f"{label} requested")


def _manual_message(result: dict, default: str) -> SimpleMessage:
    if result.get("ok") is False:
        raise ActionFailedError(str(result.get("message") or f"{default} failed"))
    return SimpleMessage(success=True, message=str(result.get("message") or default))


@router.post("/pause-resume", response_model=ActionResponse, summary="Toggle pause")
async def pause_or_resume(status_service: StatusService = Depends(get_status_service)) -> ActionResponse:
    if status_service.status is None:
        raise BadRequestError("No printer status available yet")
    label = "Resume" if status_service.status.is_paused else "Pause"
    return _action_response(await status_service.pause_or_resume(), label)


@router.post("/cancel", response_model=ActionResponse, summary="Cancel the current job")
async def cancel_print(status_service: StatusService = Depends(get_status_service)) -> ActionResponse:
    return _action_response(await status_service.cancel(), "Cancel")


@router.post(
    "/start",
    response_model=SimpleMessage,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start printing a file",
)
async def start_print(
    payload: StartPrintRequest,
    backend: BackendService = Depends(get_backend),
    status_service: StatusService = Depends(get_status_service),
) -> SimpleMessage:
    await backend.start_print(payload.location, payload.file_path)
    logger.info("Print started for %s (%s)", payload.file_path, payload.location)
    await status_service.reset_status(initial_file_path=payload.file_path)
    return SimpleMessage(success=True, message=f"Print started: {payload.file_path}")


@router.post("/move", response_model=SimpleMessage, summary="Move Z to an absolute height")
async def move(payload: MoveRequest, backend: BackendService = Depends(get_backend)) -> SimpleMessage:
    return _manual_message(await backend.move(payload.height), f"Moved to {payload.height} mm")


@router.post("/move-delta", response_model=SimpleMessage, summary="Move Z by a relative delta")
async def move_delta(payload: MoveDeltaRequest, backend: BackendService = Depends(get_backend)) -> SimpleMessage:
    return _manual_message(await backend.move_delta(payload.delta_mm), f"Moved by {payload.delta_mm} mm")


@router.post("/home", response_model=SimpleMessage, summary="Home the Z axis")
async def home(backend: BackendService = Depends(get_backend)) -> SimpleMessage:
    return _manual_message(await backend.manual_home(), "Homing")


@router.post("/top", response_model=SimpleMessage, summary="Move Z to the top")
async def move_to_top(backend: BackendService = Depends(get_backend)) -> SimpleMessage:
    if not await backend.can_move_to_top():
        raise UnsupportedCapabilityError(f"{backend.name} cannot move to top")
    return _manual_message(await backend.move_to_top(), "Moving to top")


@router.post("/cure", response_model=SimpleMessage, summary="Toggle manual cure")
async def manual_cure(payload: CureRequest, backend: BackendService = Depends(get_backend)) -> SimpleMessage:
    return _manual_message(
        await backend.manual_cure(payload.cure),
        "Cure started" if payload.cure else "Cure stopped",
    )


@router.post("/command", response_model=SimpleMessage, summary="Send a raw hardware command")
async def manual_command(
    payload: ManualCommandRequest,
    backend: BackendService = Depends(get_backend),
) -> SimpleMessage:
    return _manual_message(await backend.manual_command(payload.command), "Command sent")
