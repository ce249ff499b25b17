"""Runtime configuration endpoints."""
import asyncio
import logging

from fastapi import APIRouter, Depends

from orion.api.dependencies import get_backend, get_service_registry
from orion.backends.service import BackendService
from orion.core.config import get_app_config_async, update_app_config
from orion.schemas import ConfigUpdateRequest, ConfigUpdateResponse
from orion.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config", summary="Runtime configuration")
async def read_config(registry: ServiceRegistry = Depends(get_service_registry)) -> dict:
    options = registry.options
    persisted = await get_app_config_async()
    return {
        "app": registry.config.model_dump(mode="json"),
        "persisted": persisted.model_dump(mode="json"),
        "backend": registry.backend.name,
        "options": {
            "backend": options.backend,
            "simulated": options.simulated,
            "use_usb_by_default": options.use_usb_by_default,
            "is_nanodlp_mode": options.is_nanodlp_mode,
        },
    }


@router.put("/config", response_model=ConfigUpdateResponse, summary="Persist backend switches")
async def write_config(
    payload: ConfigUpdateRequest,
    registry: ServiceRegistry = Depends(get_service_registry),
) -> ConfigUpdateResponse:
    updated = await asyncio.to_thread(
        update_app_config,
        backend=payload.backend,
        simulated=payload.simulated,
        use_usb_by_default=payload.use_usb_by_default,
    )
    current = registry.options
    restart_required = (
        updated.backend != current.backend
        or updated.developer.simulated != current.simulated
        or updated.use_usb_by_default != current.use_usb_by_default
    )
    logger.info("Configuration updated (restart required: %s)", restart_required)
    return ConfigUpdateResponse(
        success=True,
        restart_required=restart_required,
        app=updated.model_dump(mode="json"),
    )


@router.get("/config/backend", summary="Configuration reported by the printer backend")
async def read_backend_config(backend: BackendService = Depends(get_backend)) -> dict:
    config = await backend.get_config()
    return {"version": await backend.get_backend_version(), "config": config}
