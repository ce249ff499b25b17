"""CLI entry-point for running the FastAPI application."""
from __future__ import annotations

import asyncio

import uvicorn

from orion.core.config import get_settings


def selector_loop_factory(use_subprocess: bool = False) -> asyncio.AbstractEventLoop:
    """Always use the selector loop, matching the loop the service is tested on."""
    return asyncio.SelectorEventLoop()


def main() -> None:
    """Run the ASGI application using uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "orion.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=2,
        reload=False,
        access_log=False,
        loop=selector_loop_factory,
    )


if __name__ == "__main__":
    main()
